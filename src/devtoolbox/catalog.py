"""
Static catalog of installable components, language servers and required
editor extensions
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Component:
    """An installable IDE or editor"""

    id: str
    display_name: str
    binary: str
    export_kind: str  # "app" or "bin"
    export_target: str
    is_gui: bool = False
    is_cli: bool = False
    uses_language_servers: bool = False
    wraps_extensions: bool = False
    aliases: Tuple[str, ...] = ()
    probe_commands: Tuple[str, ...] = ()

    @property
    def probes(self) -> Tuple[str, ...]:
        """Commands whose presence means the component is installed"""
        return self.probe_commands or (self.binary,)


_COMPONENTS = (
    # GUI IDEs
    Component(
        id="zed",
        display_name="Zed",
        binary="zed",
        export_kind="app",
        export_target="zed",
        is_gui=True,
    ),
    Component(
        id="vscode",
        display_name="Visual Studio Code",
        binary="code",
        export_kind="app",
        export_target="code",
        is_gui=True,
        wraps_extensions=True,
        aliases=("code",),
    ),
    Component(
        id="windsurf",
        display_name="Windsurf",
        binary="windsurf",
        export_kind="app",
        export_target="windsurf",
        is_gui=True,
        wraps_extensions=True,
    ),
    Component(
        id="cursor",
        display_name="Cursor",
        binary="cursor",
        export_kind="app",
        export_target="cursor",
        is_gui=True,
        wraps_extensions=True,
    ),
    Component(
        id="jetbrains",
        display_name="JetBrains Toolbox",
        binary="jetbrains-toolbox",
        export_kind="app",
        export_target="jetbrains-toolbox",
        is_gui=True,
        aliases=("toolbox",),
    ),
    # CLI IDEs
    Component(
        id="neovim",
        display_name="Neovim",
        binary="nvim",
        export_kind="bin",
        export_target="/usr/bin/nvim",
        is_cli=True,
        uses_language_servers=True,
        aliases=("nvim",),
    ),
    Component(
        id="emacs",
        display_name="Emacs",
        binary="emacs",
        export_kind="bin",
        export_target="/usr/bin/emacs",
        is_cli=True,
    ),
    Component(
        id="helix",
        display_name="Helix",
        binary="hx",
        export_kind="bin",
        export_target="/usr/bin/hx",
        is_cli=True,
        uses_language_servers=True,
        aliases=("hx",),
        probe_commands=("hx", "helix"),
    ),
)


def _build_alias_index(components) -> Dict[str, str]:
    index = {}
    for component in components:
        for name in (component.id,) + component.aliases:
            if name in index:
                raise ValueError(
                    f"'{name}' maps to both {index[name]} and {component.id}"
                )
            index[name] = component.id
    return index


COMPONENTS: Mapping[str, Component] = MappingProxyType({c.id: c for c in _COMPONENTS})
ALIASES: Mapping[str, str] = MappingProxyType(_build_alias_index(_COMPONENTS))

GUI_IDS: Tuple[str, ...] = tuple(c.id for c in _COMPONENTS if c.is_gui)
CLI_IDS: Tuple[str, ...] = tuple(c.id for c in _COMPONENTS if c.is_cli)
# "all" expands to every GUI IDE followed by every CLI IDE
ALL_IDS: Tuple[str, ...] = GUI_IDS + CLI_IDS
EXTENSION_IDE_IDS: Tuple[str, ...] = tuple(c.id for c in _COMPONENTS if c.wraps_extensions)

LANGUAGE_SERVERS: Mapping[str, str] = MappingProxyType(
    {
        "typescript": "TypeScript/JavaScript",
        "python": "Python (pyright)",
        "rust": "Rust (rust-analyzer)",
        "go": "Go (gopls)",
        "clang": "C/C++ (clangd)",
        "lua": "Lua",
        "bash": "Bash",
        "html": "HTML",
        "css": "CSS",
        "json": "JSON",
        "yaml": "YAML",
        "docker": "Dockerfile",
        "markdown": "Markdown",
    }
)

REQUIRED_EXTENSIONS: Tuple[str, ...] = (
    "ms-vscode-remote.remote-containers",
    "ms-vscode-remote.remote-ssh",
    "ms-azuretools.vscode-docker",
    "DankLinux.dms-theme",
)


def resolve(name: str) -> Optional[str]:
    """Resolve a component id or alias to its canonical id"""
    return ALIASES.get(name.strip().lower())


def get(component_id: str) -> Component:
    """Return the component for a canonical id"""
    return COMPONENTS[component_id]
