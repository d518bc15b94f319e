"""
Extension reconciliation for the VS Code family of IDEs

Compares the required extensions with what each installed IDE reports and
installs the difference. Runs are idempotent: when nothing is missing no
install command is issued.
"""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from . import catalog
from .config import DISABLE_EXTENSIONS_ENV, ActivationConfig
from .errors import ExtensionInstallFailed, RegistrationError
from .wrapper import WrapperRegistry

logger = logging.getLogger(__name__)


class InstallStatus(Enum):
    INSTALLED = "installed"
    ALREADY_INSTALLED = "already_installed"
    FAILED = "failed"


@dataclass
class IdeReconciliation:
    ide_id: str
    binary: Path
    missing: List[str] = field(default_factory=list)
    results: Dict[str, InstallStatus] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def failed(self) -> List[str]:
        return [ext for ext, status in self.results.items() if status is InstallStatus.FAILED]


class ExtensionReconciler:
    """Installs missing required extensions into every resolvable IDE"""

    def __init__(
        self,
        config: ActivationConfig,
        requirements: Sequence[str] = catalog.REQUIRED_EXTENSIONS,
        which: Callable[[str], Optional[str]] = shutil.which,
        timeout: float = 300,
    ):
        self.config = config
        self.requirements = tuple(requirements)
        self.registry = WrapperRegistry(config.registry_file)
        self._which = which
        self.timeout = timeout

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        # IDE CLI calls must not start another background cycle
        env[DISABLE_EXTENSIONS_ENV] = "1"
        return env

    def resolve_binary(self, ide_id: str) -> Optional[Path]:
        """Prefer the registered real binary so wrappers are never re-entered"""
        try:
            registration = self.registry.get(ide_id)
        except RegistrationError as e:
            logger.warning("%s", e.message)
            registration = None
        if registration is not None and registration.real_binary_path.exists():
            return registration.real_binary_path
        found = self._which(catalog.get(ide_id).binary)
        return Path(found) if found else None

    def installed_ides(self) -> List[Tuple[str, Path]]:
        ides = []
        for ide_id in catalog.EXTENSION_IDE_IDS:
            binary = self.resolve_binary(ide_id)
            if binary is not None:
                ides.append((ide_id, binary))
        return ides

    def list_extensions(self, binary: Path) -> Set[str]:
        """Return installed extension ids, lowercased"""
        result = subprocess.run(
            [str(binary), "--list-extensions"],
            capture_output=True,
            text=True,
            timeout=self.timeout,
            env=self._env(),
            check=True,
        )
        return {line.strip().lower() for line in result.stdout.splitlines() if line.strip()}

    def missing_extensions(self, installed: Set[str]) -> List[str]:
        return [ext for ext in self.requirements if ext.lower() not in installed]

    def install_extension(self, ide_id: str, binary: Path, extension_id: str) -> InstallStatus:
        try:
            result = subprocess.run(
                [str(binary), "--install-extension", extension_id, "--force"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
            )
        except (subprocess.TimeoutExpired, OSError) as e:
            raise ExtensionInstallFailed(ide_id, extension_id, str(e)) from e

        output = f"{result.stdout}\n{result.stderr}"
        if result.returncode != 0:
            raise ExtensionInstallFailed(ide_id, extension_id, output.strip())
        if "already installed" in output.lower():
            return InstallStatus.ALREADY_INSTALLED
        return InstallStatus.INSTALLED

    def reconcile_ide(self, ide_id: str, binary: Path, log: logging.Logger) -> IdeReconciliation:
        report = IdeReconciliation(ide_id, binary)
        try:
            installed = self.list_extensions(binary)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            report.error = f"could not list extensions: {e}"
            log.warning("%s: %s (IDE may need to run first)", ide_id, report.error)
            return report

        report.missing = self.missing_extensions(installed)
        log.info("%s: %d missing", ide_id, len(report.missing))
        for extension_id in report.missing:
            log.info("%s: installing %s", ide_id, extension_id)
            try:
                status = self.install_extension(ide_id, binary, extension_id)
            except ExtensionInstallFailed as e:
                log.warning("%s (will retry on next launch)", e.message)
                status = InstallStatus.FAILED
            else:
                log.info("%s: %s %s", ide_id, extension_id, status.value.replace("_", " "))
            report.results[extension_id] = status
        return report

    def reconcile_all(self, log: Optional[logging.Logger] = None) -> List[IdeReconciliation]:
        """Reconcile every IDE currently resolvable on this system"""
        log = log or logger
        ides = self.installed_ides()
        if not ides:
            log.info("No extension-capable IDEs found")
        return [self.reconcile_ide(ide_id, binary, log) for ide_id, binary in ides]
