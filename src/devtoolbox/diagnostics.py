"""
Diagnostics for wrapped IDEs and container browser integration
"""

import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from . import catalog
from .config import DISABLE_EXTENSIONS_ENV, ActivationConfig, auto_extensions_disabled
from .container_manager import ContainerManager
from .errors import RegistrationError
from .reconciler import ExtensionReconciler
from .wrapper import WrapperRegistry, sidecar_path

# xdg-open replacement that forwards URLs to the host browser
BROWSER_FORWARDER = r"""#!/bin/bash
LOG_FILE="/tmp/xdg-open-$(date +%Y%m%d).log"
echo "$(date): xdg-open called with: $*" >> "$LOG_FILE"
for forwarder in distrobox-host-exec host-spawn; do
    if command -v "$forwarder" >/dev/null 2>&1; then
        if timeout 10 "$forwarder" xdg-open "$@" 2>>"$LOG_FILE"; then
            exit 0
        fi
    fi
done
echo "Please copy this URL to your browser:"
echo "$1"
if command -v wl-copy >/dev/null 2>&1; then
    echo "$1" | wl-copy && echo "Copied to clipboard"
fi
exit 0
"""

_FIX_BROWSER_SCRIPT = f"""
set -e
if [ -f /usr/bin/xdg-open ] && [ ! -e /usr/bin/xdg-open.orig ] && [ ! -L /usr/bin/xdg-open ]; then
    sudo cp /usr/bin/xdg-open /usr/bin/xdg-open.orig
fi
sudo tee /usr/local/bin/xdg-open-host > /dev/null <<'WRAPPER_EOF'
{BROWSER_FORWARDER}WRAPPER_EOF
sudo chmod +x /usr/local/bin/xdg-open-host
sudo ln -sf /usr/local/bin/xdg-open-host /usr/bin/xdg-open
sudo ln -sf /usr/local/bin/xdg-open-host /usr/local/bin/xdg-open
grep -q '^BROWSER=' /etc/environment 2>/dev/null || echo "BROWSER=/usr/local/bin/xdg-open-host" | sudo tee -a /etc/environment > /dev/null
"""


@dataclass(frozen=True)
class Check:
    """One diagnostic line; ok=None marks a warning"""

    label: str
    ok: Optional[bool]
    detail: str = ""


def wrapper_checks(
    config: ActivationConfig,
    environ: Optional[Mapping[str, str]] = None,
    which: Callable[[str], Optional[str]] = shutil.which,
    reconciler: Optional[ExtensionReconciler] = None,
) -> Dict[str, List[Check]]:
    """Inspect wrapper, registry, log and extension state for each IDE"""
    environ = os.environ if environ is None else environ
    reconciler = reconciler or ExtensionReconciler(config, which=which)
    sections: Dict[str, List[Check]] = {}

    try:
        registrations = WrapperRegistry(config.registry_file).load()
        registry_check = Check("registry", True, str(config.registry_file))
    except RegistrationError as e:
        registrations = {}
        registry_check = Check("registry", False, e.message)

    for ide_id in catalog.EXTENSION_IDE_IDS:
        component = catalog.get(ide_id)
        checks: List[Check] = []
        found = which(component.binary)
        if not found:
            checks.append(Check(f"{component.binary} on PATH", None, "not installed"))
            sections[ide_id] = checks
            continue
        checks.append(Check(f"{component.binary} on PATH", True, found))

        path = Path(found)
        wrapper = config.wrapper_dir / f"{component.binary}-wrapped"
        if path.is_symlink():
            target = os.readlink(path)
            checks.append(Check("wrapped", Path(target) == wrapper, f"symlink to {target}"))
        else:
            checks.append(Check("wrapped", None, "not a symlink"))

        registration = registrations.get(ide_id)
        real = registration.real_binary_path if registration else sidecar_path(path)
        checks.append(Check("real binary", real.exists(), str(real)))
        checks.append(
            Check(
                "wrapper script",
                wrapper.exists() and os.access(wrapper, os.X_OK),
                str(wrapper),
            )
        )

        binary = reconciler.resolve_binary(ide_id)
        try:
            installed = reconciler.list_extensions(binary) if binary else set()
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            checks.append(Check("extensions", None, f"could not list: {e}"))
        else:
            for ext in reconciler.requirements:
                present = ext.lower() in installed
                checks.append(Check(ext, True if present else None, "" if present else "missing"))
        sections[ide_id] = checks

    value = environ.get(DISABLE_EXTENSIONS_ENV)
    disabled = auto_extensions_disabled(environ)
    logs = sorted(
        config.log_dir.glob(f"{config.log_purpose}-*.log"), key=lambda p: p.name, reverse=True
    )
    sections["environment"] = [
        registry_check,
        Check(
            DISABLE_EXTENSIONS_ENV,
            None if disabled else True,
            "auto-install disabled" if disabled else f"auto-install enabled ({value or 'unset'})",
        ),
        Check(
            "extension logs",
            True if logs else None,
            ", ".join(p.name for p in logs[:5]) or "none yet (launch an IDE and wait)",
        ),
    ]
    return sections


def browser_checks(containers: ContainerManager, name: str) -> List[Check]:
    """Check that URLs opened in the container reach the host browser"""
    checks = [
        Check("xdg-open", containers.has_command(name, "xdg-open")),
        Check("distrobox-host-exec", containers.has_command(name, "distrobox-host-exec")),
    ]
    if checks[-1].ok:
        result = containers.enter(name, ["distrobox-host-exec", "true"])
        checks.append(Check("host command execution", result.returncode == 0))
    return checks


def fix_browser_integration(containers: ContainerManager, name: str) -> bool:
    """Install an xdg-open forwarder inside the container"""
    return containers.run_script(name, _FIX_BROWSER_SCRIPT) == 0
