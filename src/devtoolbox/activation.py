"""
Runtime for wrapped IDEs

``run_wrapper`` is what every generated wrapper calls: it hands the
background extension cycle to a detached process, then replaces itself with
the real IDE binary. ``python -m devtoolbox.activation <ide>`` is the
background process.
"""

import logging
import os
import subprocess
import sys
import time
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Mapping, Optional

import yaml

from .config import ActivationConfig, auto_extensions_disabled, load_config
from .errors import RealBinaryMissing, RegistrationError
from .logging_config import close_file_logger, open_file_logger
from .reconciler import ExtensionReconciler
from .wrapper import WrapperRegistry

logger = logging.getLogger(__name__)


def _activation_config() -> ActivationConfig:
    try:
        return load_config().activation
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        print(f"⚠️  devtoolbox: ignoring unreadable config: {e}", file=sys.stderr)
        return ActivationConfig()


def _with_registry(config: ActivationConfig, registry_file) -> ActivationConfig:
    if not registry_file:
        return config
    return replace(config, registry_file=Path(registry_file))


def locate_real_binary(ide_id: str, config: ActivationConfig) -> Path:
    """Return the sidecar executable registered for ``ide_id``"""
    registration = WrapperRegistry(config.registry_file).get(ide_id)
    if registration is None:
        raise RealBinaryMissing(ide_id)
    real = registration.real_binary_path
    if not str(real).strip() or not real.exists():
        raise RealBinaryMissing(ide_id, str(real))
    return real


def spawn_background(ide_id: str, registry_file: Path) -> subprocess.Popen:
    """Start the extension cycle in its own session so it outlives the wrapper"""
    return subprocess.Popen(
        [sys.executable, "-m", "devtoolbox.activation", ide_id, str(registry_file)],
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
        close_fds=True,
    )


def run_wrapper(
    ide_id: str,
    argv: Optional[List[str]] = None,
    config: Optional[ActivationConfig] = None,
    environ: Optional[Mapping[str, str]] = None,
    execv: Callable = os.execv,
    spawn: Callable[[str, Path], object] = spawn_background,
    registry_file: Optional[str] = None,
) -> int:
    """Launch the real IDE, scheduling extension setup in the background

    ``registry_file`` is the registry the wrapper was registered into; it
    overrides whatever the current configuration names.
    """
    argv = sys.argv[1:] if argv is None else argv
    config = _with_registry(config or _activation_config(), registry_file)

    try:
        real = locate_real_binary(ide_id, config)
    except RegistrationError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        if e.hint:
            print(f"💡 {e.hint}", file=sys.stderr)
        return 127

    if not auto_extensions_disabled(environ):
        try:
            spawn(ide_id, config.registry_file)
        except OSError as e:
            print(f"⚠️  devtoolbox: extension setup not started: {e}", file=sys.stderr)

    execv(str(real), [str(real)] + list(argv))
    return 0


def log_path_for(config: ActivationConfig, ide_id: str, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d-%H%M%S-%f")
    return config.log_dir / f"{config.log_purpose}-{ide_id}-{stamp}.log"


def prune_logs(config: ActivationConfig, ide_id: str) -> List[Path]:
    """Delete all but the newest ``log_retention`` logs for one IDE"""
    logs = sorted(
        config.log_dir.glob(f"{config.log_purpose}-{ide_id}-*.log"),
        key=lambda p: p.name,
        reverse=True,
    )
    removed = []
    for old in logs[max(config.log_retention, 0):]:
        try:
            old.unlink()
            removed.append(old)
        except FileNotFoundError:
            pass
    return removed


def run_background_cycle(
    ide_id: str,
    config: ActivationConfig,
    environ: Optional[Mapping[str, str]] = None,
    sleep: Callable[[float], None] = time.sleep,
    reconciler: Optional[ExtensionReconciler] = None,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """Wait for the IDE to start, then reconcile extensions into a fresh log

    Returns the log path, or None when auto extensions are disabled.
    """
    if auto_extensions_disabled(environ):
        return None

    sleep(config.settle_interval)
    config.log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_path_for(config, ide_id, now)
    log = open_file_logger(f"{__name__}.cycle.{ide_id}", log_path)
    try:
        log.info("Extension setup triggered by %s launch (pid %d)", ide_id, os.getpid())
        reconciler = reconciler or ExtensionReconciler(config)
        reports = reconciler.reconcile_all(log)
        failures = sum(len(r.failed) for r in reports)
        log.info("Extension setup finished: %d IDE(s), %d failure(s)", len(reports), failures)
    except Exception:
        log.exception("Extension setup aborted")
        raise
    finally:
        close_file_logger(log)
        prune_logs(config, ide_id)
    return log_path


def background_main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) not in (1, 2):
        print(
            "usage: python -m devtoolbox.activation <ide-id> [registry-file]", file=sys.stderr
        )
        return 2
    registry_file = argv[1] if len(argv) == 2 else None
    run_background_cycle(argv[0], _with_registry(_activation_config(), registry_file))
    return 0


if __name__ == "__main__":
    sys.exit(background_main())
