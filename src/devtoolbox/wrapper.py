"""
Wrapper registration for GUI IDEs

Registering an IDE moves its executable to a ``.real`` sidecar, installs a
generated wrapper script and points the original path at the wrapper. The
triple is also persisted in a YAML registry so the wrapper can find the
real binary by IDE id.
"""

import logging
import os
import shutil
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from string import Template
from typing import Dict, Optional

import yaml

from . import catalog
from .config import ActivationConfig
from .errors import RealBinaryMissing, RegistrationError, WrapperInstallFailed

logger = logging.getLogger(__name__)

TEMPLATE_FILE = Path(__file__).parent / "templates" / "ide_wrapper.tmpl"
SIDECAR_SUFFIX = ".real"


@dataclass(frozen=True)
class WrapperRegistration:
    ide_id: str
    original_path: Path
    real_binary_path: Path
    wrapper_path: Path

    def to_dict(self) -> Dict[str, str]:
        return {
            "original_path": str(self.original_path),
            "real_binary_path": str(self.real_binary_path),
            "wrapper_path": str(self.wrapper_path),
        }

    @classmethod
    def from_dict(cls, ide_id: str, data: Dict[str, str]) -> "WrapperRegistration":
        return cls(
            ide_id=ide_id,
            original_path=Path(data["original_path"]),
            real_binary_path=Path(data["real_binary_path"]),
            wrapper_path=Path(data["wrapper_path"]),
        )


class RegistrationStatus(Enum):
    REGISTERED = "registered"
    ALREADY_REGISTERED = "already_registered"


class WrapperRegistry:
    """YAML file mapping IDE id -> WrapperRegistration"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> Dict[str, WrapperRegistration]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
            return {
                ide_id: WrapperRegistration.from_dict(ide_id, entry)
                for ide_id, entry in data.items()
            }
        except (yaml.YAMLError, KeyError, TypeError, AttributeError) as e:
            raise RegistrationError(
                f"Wrapper registry {self.path} is unreadable: {e}",
                f"Remove {self.path} and re-register the IDEs",
            ) from e

    def get(self, ide_id: str) -> Optional[WrapperRegistration]:
        return self.load().get(ide_id)

    def save(self, registration: WrapperRegistration):
        entries = self.load()
        entries[registration.ide_id] = registration
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        with open(tmp_path, "w") as f:
            yaml.safe_dump(
                {ide_id: entry.to_dict() for ide_id, entry in sorted(entries.items())},
                f,
                default_flow_style=False,
            )
        os.replace(tmp_path, self.path)


def sidecar_path(original: Path) -> Path:
    return original.with_name(original.name + SIDECAR_SUFFIX)


class Registrar:
    """Installs wrappers in place of IDE executables"""

    def __init__(self, config: ActivationConfig, python: str = sys.executable):
        self.config = config
        self.python = python
        self.registry = WrapperRegistry(config.registry_file)

    def wrapper_path(self, ide_id: str) -> Path:
        return self.config.wrapper_dir / f"{catalog.get(ide_id).binary}-wrapped"

    def render_wrapper(self, ide_id: str) -> str:
        """Render the wrapper script with the IDE id and registry baked in"""
        template = Template(TEMPLATE_FILE.read_text())
        return template.substitute(
            python=self.python,
            ide_id=ide_id,
            display_name=catalog.get(ide_id).display_name,
            registry_file=repr(str(self.config.registry_file)),
        )

    def is_registered(self, original: Path, wrapper: Path) -> bool:
        if original.is_symlink() and Path(os.readlink(original)) == wrapper:
            return True
        return sidecar_path(original).exists()

    def register(self, ide_id: str, original_path) -> RegistrationStatus:
        """Wrap the executable at ``original_path`` for ``ide_id``"""
        component = catalog.COMPONENTS.get(ide_id)
        if component is None or not component.wraps_extensions:
            raise RegistrationError(
                f"'{ide_id}' does not support extension wrapping",
                f"Wrappable IDEs: {', '.join(catalog.EXTENSION_IDE_IDS)}",
            )

        original = Path(original_path)
        sidecar = sidecar_path(original)
        wrapper = self.wrapper_path(ide_id)
        registration = WrapperRegistration(ide_id, original, sidecar, wrapper)

        if self.is_registered(original, wrapper):
            logger.info("%s is already wrapped", original)
            if self.registry.get(ide_id) is None and sidecar.exists():
                self.registry.save(registration)
            return RegistrationStatus.ALREADY_REGISTERED

        if not (original.exists() or original.is_symlink()):
            raise RealBinaryMissing(ide_id, str(original))

        wrapper_existed = wrapper.exists()
        moved = wrapper_written = linked = False
        try:
            shutil.move(str(original), str(sidecar))
            moved = True
            wrapper.parent.mkdir(parents=True, exist_ok=True)
            wrapper.write_text(self.render_wrapper(ide_id))
            wrapper_written = True
            wrapper.chmod(0o755)
            original.symlink_to(wrapper)
            linked = True
            self.registry.save(registration)
        except (OSError, RegistrationError) as e:
            logger.error("Wrapping %s failed, rolling back: %s", original, e)
            if linked:
                original.unlink()
            if wrapper_written and not wrapper_existed:
                wrapper.unlink()
            if moved:
                shutil.move(str(sidecar), str(original))
            raise WrapperInstallFailed(
                f"Failed to install wrapper for {ide_id}: {e}",
                f"{original} was restored; check permissions on {wrapper.parent}",
            ) from e

        logger.info("Wrapped %s -> %s (real binary at %s)", original, wrapper, sidecar)
        return RegistrationStatus.REGISTERED
