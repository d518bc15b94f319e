"""
Error types for devtoolbox

Every fatal error carries a ``hint``: the next concrete step a user can take.
"""

from typing import Iterable, Optional


class DevToolboxError(Exception):
    """Base class for all devtoolbox errors"""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.hint = hint


class SelectionError(DevToolboxError):
    """Invalid component or language server selection"""


class UnknownComponent(SelectionError):
    """One or more tokens did not resolve to a catalog entry"""

    def __init__(self, tokens: Iterable[str], kind: str = "component", known: Iterable[str] = ()):
        self.tokens = list(tokens)
        self.kind = kind
        listing = ", ".join(repr(t) for t in self.tokens)
        plural = "s" if len(self.tokens) != 1 else ""
        hint = None
        known = list(known)
        if known:
            hint = f"Available {kind}s: {', '.join(known)}"
        super().__init__(f"Unknown {kind}{plural}: {listing}", hint)


class EmptySelection(SelectionError):
    """Nothing was selected"""

    def __init__(self, kind: str = "component"):
        super().__init__(
            f"No {kind}s selected",
            "Pass a comma-separated list such as 'zed,cursor', or 'all'",
        )


class PhaseFailed(DevToolboxError):
    """A fatal orchestration phase failed"""

    def __init__(self, message: str, hint: Optional[str] = None, exit_code: int = 1):
        super().__init__(message, hint)
        self.exit_code = exit_code or 1


class BuildFailed(PhaseFailed):
    """The container image build failed"""


class ContainerCreateFailed(PhaseFailed):
    """The distrobox container could not be created"""


class ExportFailed(DevToolboxError):
    """A single component could not be exported (non-fatal)"""

    def __init__(self, component_id: str, reason: str):
        super().__init__(f"Failed to export {component_id}: {reason}")
        self.component_id = component_id
        self.reason = reason


class RegistrationError(DevToolboxError):
    """Wrapper registration failed"""


class WrapperInstallFailed(RegistrationError):
    """Installing the wrapper failed; the original binary was restored"""


class RealBinaryMissing(RegistrationError):
    """The real, unwrapped executable for an IDE cannot be found"""

    def __init__(self, ide_id: str, path: Optional[str] = None):
        self.ide_id = ide_id
        self.path = path
        where = f" at {path}" if path else ""
        super().__init__(
            f"Real binary for '{ide_id}' not found{where}",
            f"Reinstall the IDE, then run: devtoolbox-ide register {ide_id} <path>",
        )


class ExtensionInstallFailed(DevToolboxError):
    """A single extension install failed (non-fatal, retried next launch)"""

    def __init__(self, ide_id: str, extension_id: str, detail: str = ""):
        self.ide_id = ide_id
        self.extension_id = extension_id
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Failed to install {extension_id} for {ide_id}{suffix}")
