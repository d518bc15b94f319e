"""
Build -> Create -> Export orchestration

Build and create failures abort the run. Export failures are recorded per
component and never abort: some components may legitimately be missing
from the container.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import click
from rich.console import Console

from . import catalog
from .catalog import Component
from .config import ToolboxConfig
from .container_manager import ContainerManager
from .errors import BuildFailed, ContainerCreateFailed, DevToolboxError, ExportFailed, PhaseFailed
from .platform_detector import PlatformDetector
from .selection import LanguageServerSelection, Selection

logger = logging.getLogger(__name__)

_HOSTS_SCRIPT = """
HOST_IP=$(ip route | grep default | awk '{print $3}' | head -n1)
HOST_IP=${HOST_IP:-172.17.0.1}
for alias in host.docker.internal host.containers.internal; do
    grep -q "$alias" /etc/hosts || echo "$HOST_IP $alias" | sudo tee -a /etc/hosts > /dev/null
done
"""


class Phase(Enum):
    IDLE = "idle"
    BUILDING = "building"
    CREATING_CONTAINER = "creating_container"
    EXPORTING = "exporting"
    DONE = "done"
    FAILED = "failed"


class OutcomeKind(Enum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunStatus(Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    reason: Optional[str] = None

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def skipped(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.SKIPPED, reason)

    @classmethod
    def failed(cls, reason: str) -> "Outcome":
        return cls(OutcomeKind.FAILED, reason)


@dataclass(frozen=True)
class ProgressEvent:
    """One step of a run, for consumers that should not parse text"""

    phase: Phase
    outcome: OutcomeKind
    component_id: Optional[str] = None
    detail: str = ""


@dataclass
class InstallationRun:
    """Everything one invocation asked for, plus per-component export outcomes"""

    selection: Selection
    language_servers: LanguageServerSelection = field(default_factory=LanguageServerSelection)
    force: bool = False
    skip_export: bool = False
    verbose: bool = False
    debug: bool = False
    mount_containers: bool = False
    outcomes: Dict[str, Outcome] = field(default_factory=dict)

    def record(self, component_id: str, outcome: Outcome):
        self.outcomes[component_id] = outcome

    def ids_with(self, kind: OutcomeKind) -> List[str]:
        return [i for i, outcome in self.outcomes.items() if outcome.kind == kind]

    @property
    def failed_ids(self) -> List[str]:
        return self.ids_with(OutcomeKind.FAILED)

    @property
    def exported_ids(self) -> List[str]:
        return self.ids_with(OutcomeKind.SUCCESS)


@dataclass
class RunResult:
    status: RunStatus
    exit_code: int
    failed_ids: List[str] = field(default_factory=list)
    error: Optional[DevToolboxError] = None
    container_reused: bool = False


class Orchestrator:
    """Drives one InstallationRun through build, create and export"""

    def __init__(
        self,
        config: ToolboxConfig,
        container_manager: Optional[ContainerManager] = None,
        platform: Optional[PlatformDetector] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        on_event: Optional[Callable[[ProgressEvent], None]] = None,
        console: Optional[Console] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.containers = container_manager or ContainerManager()
        self.platform = platform or PlatformDetector()
        self._confirm = confirm or (lambda prompt: click.confirm(prompt, default=False))
        self._on_event = on_event
        self.console = console or Console()
        self._sleep = sleep
        self._clock = clock
        self.state = Phase.IDLE
        self.transitions: List[Phase] = []
        self.events: List[ProgressEvent] = []
        self._container_reused = False

    def _enter(self, phase: Phase):
        logger.debug("Phase %s -> %s", self.state.value, phase.value)
        self.state = phase
        self.transitions.append(phase)

    def _emit(self, phase: Phase, outcome: OutcomeKind, component_id=None, detail=""):
        event = ProgressEvent(phase, outcome, component_id, detail)
        self.events.append(event)
        if self._on_event:
            self._on_event(event)

    def run(self, run: InstallationRun) -> RunResult:
        """Execute all phases; fatal phase errors end in the FAILED state"""
        if self.state is not Phase.IDLE:
            raise RuntimeError("An Orchestrator runs exactly one InstallationRun")
        try:
            self._enter(Phase.BUILDING)
            self._build(run)
            self._enter(Phase.CREATING_CONTAINER)
            self._create(run)
        except PhaseFailed as e:
            failed_phase = self.state
            self._enter(Phase.FAILED)
            self._emit(failed_phase, OutcomeKind.FAILED, detail=e.message)
            self.console.print(f"❌ {e.message}", style="bold red")
            return RunResult(RunStatus.FAILED, e.exit_code, error=e)

        if run.debug:
            self._debug_container_state()

        if run.skip_export:
            self.console.print("⏭️  Skipping application export (--no-export)")
        else:
            self._enter(Phase.EXPORTING)
            self._export(run)
            if run.debug and run.failed_ids:
                self._debug_failed_exports(run)

        self._enter(Phase.DONE)
        failed = run.failed_ids
        status = RunStatus.PARTIAL_SUCCESS if failed else RunStatus.SUCCESS
        self._emit(
            Phase.DONE,
            OutcomeKind.SUCCESS,
            detail=status.value,
        )
        return RunResult(status, 0, failed, container_reused=self._container_reused)

    # Building

    def _build(self, run: InstallationRun):
        missing = self.containers.missing_tools()
        if missing:
            raise BuildFailed(
                f"Required tools not found: {', '.join(missing)}",
                "Install podman and distrobox (e.g. 'sudo dnf install podman distrobox')",
                exit_code=127,
            )
        containerfile = self.config.context_dir / self.config.containerfile
        if not containerfile.exists():
            raise BuildFailed(
                f"{self.config.containerfile} not found in {self.config.context_dir}",
                "Run from the developer-toolbox directory or pass --context <dir>",
            )

        selection_arg = run.selection.to_arg()
        lsp_arg = run.language_servers.to_arg() or None
        self.console.print(f"🔨 Building container with IDEs: {selection_arg}")
        if lsp_arg:
            self.console.print(f"🧠 Language servers: {lsp_arg}")

        code = self.containers.build_image(
            self.config.context_dir,
            self.config.image_name,
            selection_arg,
            lsp_arg,
            quiet=not run.verbose,
        )
        if code != 0:
            manual = f"podman build {self.config.context_dir} --build-arg IDE={selection_arg}"
            if lsp_arg:
                manual += f" --build-arg LSP={lsp_arg}"
            manual += f" -t {self.config.image_name}"
            raise BuildFailed(
                f"Container build failed (exit code {code})",
                f"Re-run with --verbose to see build output, or run manually: {manual}",
                exit_code=code,
            )
        self._emit(Phase.BUILDING, OutcomeKind.SUCCESS, detail=self.config.image_name)
        self.console.print("✅ Container built successfully", style="green")

    # Creating

    def _create(self, run: InstallationRun):
        name = self.config.container_name
        if self.containers.container_exists(name):
            if run.force:
                self.console.print(f"⚠️  Container '{name}' exists, removing due to --force", style="yellow")
                self._remove(name)
            elif self._confirm(f"Container '{name}' already exists. Do you want to recreate it?"):
                self._remove(name)
            else:
                self.console.print(f"♻️  Keeping existing container '{name}'")
                self._container_reused = True
                self._emit(Phase.CREATING_CONTAINER, OutcomeKind.SKIPPED, detail="existing container kept")
                return

        volumes = list(self.config.volumes)
        if run.mount_containers:
            for host_path, container_path in self.platform.container_socket_mounts().items():
                self.console.print(f"🔌 Mounting {host_path} -> {container_path}")
                volumes.append(f"{host_path}:{container_path}")
        else:
            logger.info("Skipping Docker/Podman socket mounts (use --mount-containers to enable)")

        self.console.print(f"📦 Creating distrobox container '{name}'...")
        code = self.containers.create_container(
            name, self.config.image_name, volumes, self.config.additional_flags
        )
        if code != 0:
            raise ContainerCreateFailed(
                f"Failed to create distrobox container '{name}' (exit code {code})",
                f"Check 'distrobox list', then try: devtoolbox --force {run.selection.to_arg()}",
                exit_code=code,
            )
        self._emit(Phase.CREATING_CONTAINER, OutcomeKind.SUCCESS, detail=name)
        self.console.print("✅ Distrobox container created successfully", style="green")

        if run.mount_containers:
            if self.containers.run_script(name, _HOSTS_SCRIPT, capture=True) != 0:
                logger.info("Hostname configuration skipped")

    def _remove(self, name: str):
        if not self.containers.remove_container(name):
            raise ContainerCreateFailed(
                f"Failed to remove existing container '{name}'",
                f"Remove it manually: distrobox rm {name} --force",
            )

    # Exporting

    def _wait_for_container(self) -> bool:
        """Poll until the container is listed and enterable, up to the settle delay"""
        name = self.config.container_name
        deadline = self._clock() + self.config.settle_delay
        while True:
            if self.containers.container_exists(name) and self.containers.is_accessible(name):
                return True
            if self._clock() >= deadline:
                return False
            self._sleep(self.config.poll_interval)

    def _export(self, run: InstallationRun):
        name = self.config.container_name
        self.console.print("📤 Exporting applications to host system...")
        ready = self._wait_for_container()

        for component_id in run.selection:
            component = catalog.get(component_id)
            if not ready:
                outcome = Outcome.failed(f"container '{name}' not ready")
            else:
                try:
                    outcome = self._export_component(component, detect_only=run.selection.is_all)
                except ExportFailed as e:
                    logger.info("%s", e.message)
                    outcome = Outcome.failed(e.reason)
            run.record(component_id, outcome)
            self._emit(Phase.EXPORTING, outcome.kind, component_id, outcome.reason or "")
            self._report_export(component, outcome)

        exported = len(run.exported_ids)
        failed = run.failed_ids
        if failed:
            self.console.print(
                f"⚠️  Exported {exported} IDE(s); failed: {', '.join(failed)}", style="yellow"
            )
            self.console.print(
                f"💡 Manual export: distrobox enter {name} -- distrobox-export --app <app_name>"
            )
        else:
            self.console.print(f"✅ Exported {exported} IDE(s) successfully", style="green")

    def _export_component(self, component: Component, detect_only: bool) -> Outcome:
        name = self.config.container_name
        if not any(self.containers.has_command(name, probe) for probe in component.probes):
            if detect_only:
                return Outcome.skipped("not installed")
            raise ExportFailed(component.id, "not found in container")

        if component.export_kind == "app":
            ok = self.containers.export_app(name, component.export_target)
        else:
            ok = self.containers.export_bin(name, component.export_target, self.config.export_path)
        if not ok:
            raise ExportFailed(component.id, "distrobox-export failed")
        return Outcome.success()

    def _report_export(self, component: Component, outcome: Outcome):
        if outcome.kind is OutcomeKind.SUCCESS:
            self.console.print(f"  ✅ {component.display_name} exported")
        elif outcome.kind is OutcomeKind.SKIPPED:
            self.console.print(f"  ⏭️  {component.display_name} {outcome.reason}, skipping", style="dim")
        else:
            self.console.print(f"  ❌ {component.display_name}: {outcome.reason}", style="red")

    # Diagnostics

    def _debug_container_state(self):
        name = self.config.container_name
        self.console.print("🔍 DEBUG: container state", style="bold cyan")
        host = self.platform.detect()
        self.console.print(
            f"   host: {host['platform']}, podman: {host['podman_available']}, "
            f"distrobox: {host['distrobox_available']}"
        )
        for container in self.containers.list_containers():
            self.console.print(
                f"   {container['name']} | {container['status']} | {container['image']}"
            )
        accessible = self.containers.is_accessible(name)
        self.console.print(f"   accessible: {'yes' if accessible else 'no'}")
        if accessible:
            for component_id in catalog.GUI_IDS:
                component = catalog.get(component_id)
                present = self.containers.has_command(name, component.binary)
                self.console.print(f"   {component.binary}: {'found' if present else 'missing'}")

    def _debug_failed_exports(self, run: InstallationRun):
        name = self.config.container_name
        self.console.print("🔍 DEBUG: export failure details", style="bold cyan")
        for component_id in run.failed_ids:
            component = catalog.get(component_id)
            for probe in component.probes:
                result = self.containers.enter(name, ["which", probe])
                where = (result.stdout or "").strip() or "command not found"
                self.console.print(f"   {component_id}: {probe} -> {where}")
