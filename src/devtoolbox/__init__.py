"""
devtoolbox - provision IDEs into a distrobox developer toolbox and set up
their extensions on first launch
"""

__version__ = "0.1.0"

from .container_manager import ContainerManager
from .orchestrator import InstallationRun, Orchestrator, RunResult, RunStatus
from .platform_detector import PlatformDetector
from .selection import parse_language_servers, parse_selection

__all__ = [
    "ContainerManager",
    "InstallationRun",
    "Orchestrator",
    "PlatformDetector",
    "RunResult",
    "RunStatus",
    "parse_language_servers",
    "parse_selection",
]
