"""
Configuration for devtoolbox

Values come from dataclass defaults, then ``~/.devtoolbox/config.yaml``
(or the file named by ``DEVTOOLBOX_CONFIG``), then command-line flags.
"""

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

CONFIG_ENV = "DEVTOOLBOX_CONFIG"
DISABLE_EXTENSIONS_ENV = "DISABLE_IDE_AUTO_EXTENSIONS"
DEFAULT_CONFIG_FILE = Path.home() / ".devtoolbox" / "config.yaml"


@dataclass
class ActivationConfig:
    """Settings for wrapped IDEs inside the container"""

    wrapper_dir: Path = Path("/usr/local/bin")
    registry_file: Path = Path("/usr/local/share/devtoolbox/wrappers.yaml")
    log_dir: Path = Path("/tmp")
    log_purpose: str = "ide-extension-setup"
    settle_interval: float = 10.0
    log_retention: int = 5


@dataclass
class ToolboxConfig:
    """Settings for one orchestration run"""

    container_name: str = "devtoolbox"
    image_name: str = "localhost/devtoolbox"
    context_dir: Path = field(default_factory=Path.cwd)
    containerfile: str = "Containerfile"
    settle_delay: float = 3.0
    poll_interval: float = 0.5
    export_path: str = "~/.local/bin"
    volumes: List[str] = field(
        default_factory=lambda: ["/home/linuxbrew/.linuxbrew:/home/linuxbrew/.linuxbrew"]
    )
    additional_flags: List[str] = field(
        default_factory=lambda: [
            "--userns=keep-id",
            "--security-opt=label=disable",
            "--device=/dev/dri",
        ]
    )
    activation: ActivationConfig = field(default_factory=ActivationConfig)

    def with_overrides(self, **overrides) -> "ToolboxConfig":
        """Return a copy with the non-None overrides applied"""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


_PATH_FIELDS = {"context_dir", "wrapper_dir", "registry_file", "log_dir"}


def _coerce(cls, values: Mapping[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
    coerced = {}
    for key, value in values.items():
        if key in _PATH_FIELDS and value is not None:
            value = Path(value).expanduser()
        coerced[key] = value
    return coerced


def config_from_dict(data: Optional[Dict[str, Any]]) -> ToolboxConfig:
    """Build a ToolboxConfig from a parsed YAML mapping"""
    data = dict(data or {})
    activation = ActivationConfig(**_coerce(ActivationConfig, data.pop("activation", None) or {}))
    return ToolboxConfig(activation=activation, **_coerce(ToolboxConfig, data))


def config_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    environ = os.environ if environ is None else environ
    if environ.get(CONFIG_ENV):
        return Path(environ[CONFIG_ENV]).expanduser()
    return DEFAULT_CONFIG_FILE


def load_config(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> ToolboxConfig:
    """Load configuration, falling back to defaults when no file exists"""
    path = Path(path) if path else config_path(environ)
    if not path.exists():
        return ToolboxConfig()
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if data is not None and not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return config_from_dict(data)


def auto_extensions_disabled(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True when DISABLE_IDE_AUTO_EXTENSIONS is '1' or 'true'"""
    environ = os.environ if environ is None else environ
    return environ.get(DISABLE_EXTENSIONS_ENV, "") in ("1", "true")
