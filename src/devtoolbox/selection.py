"""
Parsing and validation of component and language server selections
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from . import catalog
from .errors import EmptySelection, UnknownComponent

ALL_TOKEN = "all"
LSP_PREFIXES = ("LSP:", "lsp:")


@dataclass(frozen=True)
class Selection:
    """Ordered, deduplicated set of canonical component ids"""

    ids: Tuple[str, ...]
    is_all: bool = False

    def __iter__(self):
        return iter(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, component_id) -> bool:
        return component_id in self.ids

    @property
    def uses_language_servers(self) -> bool:
        return any(catalog.get(i).uses_language_servers for i in self.ids)

    def to_arg(self) -> str:
        """Render the selection as the image build argument"""
        return ALL_TOKEN if self.is_all else ",".join(self.ids)


@dataclass(frozen=True)
class LanguageServerSelection:
    """Ordered, deduplicated set of language server ids"""

    ids: Tuple[str, ...] = ()
    is_all: bool = False

    def __bool__(self) -> bool:
        return bool(self.ids)

    def __iter__(self):
        return iter(self.ids)

    def to_arg(self) -> str:
        return ALL_TOKEN if self.is_all else ",".join(self.ids)


def _split(raw: str) -> List[str]:
    return [token.strip().lower() for token in raw.split(",") if token.strip()]


def parse_selection(raw: Optional[str]) -> Selection:
    """Parse a comma-separated component list

    Tokens are trimmed and case-folded, then resolved through the alias
    index. All unknown tokens are reported together.
    """
    tokens = _split(raw or "")
    if not tokens:
        raise EmptySelection()

    ids: List[str] = []
    unknown: List[str] = []
    is_all = False
    for token in tokens:
        if token == ALL_TOKEN:
            is_all = True
            continue
        component_id = catalog.resolve(token)
        if component_id is None:
            if token not in unknown:
                unknown.append(token)
        elif component_id not in ids:
            ids.append(component_id)

    if unknown:
        raise UnknownComponent(unknown, known=catalog.ALL_IDS + (ALL_TOKEN,))
    if is_all:
        return Selection(ids=catalog.ALL_IDS, is_all=True)
    return Selection(ids=tuple(ids))


def strip_lsp_prefix(raw: str) -> str:
    for prefix in LSP_PREFIXES:
        if raw.startswith(prefix):
            return raw[len(prefix):]
    return raw


def is_lsp_token(raw: str) -> bool:
    return raw.startswith(LSP_PREFIXES)


def parse_language_servers(raw: Optional[str]) -> LanguageServerSelection:
    """Parse an optional ``LSP:``-prefixed language server list"""
    tokens = _split(strip_lsp_prefix(raw or ""))
    if not tokens:
        return LanguageServerSelection()

    ids: List[str] = []
    unknown: List[str] = []
    is_all = False
    for token in tokens:
        if token == ALL_TOKEN:
            is_all = True
        elif token in catalog.LANGUAGE_SERVERS:
            if token not in ids:
                ids.append(token)
        elif token not in unknown:
            unknown.append(token)

    if unknown:
        raise UnknownComponent(
            unknown,
            kind="language server",
            known=tuple(catalog.LANGUAGE_SERVERS) + (ALL_TOKEN,),
        )
    if is_all:
        return LanguageServerSelection(ids=tuple(catalog.LANGUAGE_SERVERS), is_all=True)
    return LanguageServerSelection(ids=tuple(ids))


def language_server_warning(
    selection: Selection, language_servers: LanguageServerSelection
) -> Optional[str]:
    """Explain why requested language servers will go unused, if they will"""
    if language_servers and not selection.uses_language_servers:
        users = ", ".join(i for i in catalog.ALL_IDS if catalog.get(i).uses_language_servers)
        return (
            f"Language servers ({language_servers.to_arg()}) are only used by "
            f"{users}; none of them is selected"
        )
    return None
