"""
Container tooling for devtoolbox
Wraps podman (image builds) and distrobox (container lifecycle and export)
"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ["podman", "distrobox"]


class ContainerManager:
    """Runs podman and distrobox commands for one host"""

    def __init__(self, podman: str = "podman", distrobox: str = "distrobox"):
        self.podman = podman
        self.distrobox = distrobox

    def _run(self, cmd: List[str], capture: bool = True, **kwargs) -> subprocess.CompletedProcess:
        logger.debug("Running: %s", " ".join(cmd))
        if capture:
            kwargs.setdefault("capture_output", True)
            kwargs.setdefault("text", True)
        return subprocess.run(cmd, **kwargs)

    def missing_tools(self) -> List[str]:
        """Return required tools that are not on PATH"""
        return [
            tool
            for tool, command in (("podman", self.podman), ("distrobox", self.distrobox))
            if shutil.which(command) is None
        ]

    def build_image(
        self,
        context_dir: Path,
        image: str,
        selection: str,
        language_servers: Optional[str] = None,
        quiet: bool = True,
    ) -> int:
        """Build the toolbox image, returning the podman exit code"""
        cmd = [self.podman, "build", str(context_dir), "--build-arg", f"IDE={selection}"]
        if language_servers:
            cmd.extend(["--build-arg", f"LSP={language_servers}"])
        cmd.extend(["-t", image])
        if quiet:
            cmd.append("--quiet")
        try:
            # build output streams straight to the terminal
            result = self._run(cmd, capture=False, cwd=str(context_dir))
        except FileNotFoundError as e:
            logger.error("Failed to run podman: %s", e)
            return 127
        return result.returncode

    def list_containers(self) -> List[Dict[str, str]]:
        """List distrobox containers"""
        try:
            result = self._run([self.distrobox, "list", "--no-color"], check=True)
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.debug("distrobox list failed: %s", e)
            return []
        return self._parse_distrobox_list_output(result.stdout)

    def _parse_distrobox_list_output(self, output: str) -> List[Dict[str, str]]:
        """Parse distrobox list output into structured data (pipe-delimited format)"""
        containers = []
        for line in output.strip().split("\n"):
            # Format: ID | NAME | STATUS | IMAGE
            parts = [part.strip() for part in line.split("|")]
            if len(parts) < 4 or parts[0].upper() == "ID":
                continue
            containers.append(
                {
                    "id": parts[0],
                    "name": parts[1],
                    "status": parts[2],
                    "image": parts[3],
                }
            )
        return containers

    def container_exists(self, name: str) -> bool:
        return any(c["name"] == name for c in self.list_containers())

    def create_container(
        self,
        name: str,
        image: str,
        volumes: Optional[List[str]] = None,
        additional_flags: Optional[List[str]] = None,
    ) -> int:
        """Create a distrobox container, returning the exit code"""
        cmd = [self.distrobox, "create", "-n", name, "-i", image]
        for volume in volumes or []:
            cmd.extend(["--volume", volume])
        for flag in [f"--hostname {name}"] + list(additional_flags or []):
            cmd.extend(["--additional-flags", flag])
        cmd.append("--yes")
        try:
            result = self._run(cmd, capture=False)
        except FileNotFoundError as e:
            logger.error("Failed to run distrobox: %s", e)
            return 127
        return result.returncode

    def remove_container(self, name: str) -> bool:
        try:
            self._run([self.distrobox, "rm", name, "--force"], check=True)
            return True
        except (subprocess.CalledProcessError, FileNotFoundError) as e:
            logger.error("Failed to remove container %s: %s", name, e)
            return False

    def enter(self, name: str, command: List[str], capture: bool = True) -> subprocess.CompletedProcess:
        """Run a command inside the container"""
        return self._run([self.distrobox, "enter", name, "--"] + command, capture=capture)

    def is_accessible(self, name: str) -> bool:
        try:
            return self.enter(name, ["true"]).returncode == 0
        except FileNotFoundError:
            return False

    def has_command(self, name: str, command: str) -> bool:
        """Check whether ``command`` is on PATH inside the container"""
        try:
            return self.enter(name, ["which", command]).returncode == 0
        except FileNotFoundError:
            return False

    def export_app(self, name: str, app: str) -> bool:
        return self._export(name, ["--app", app])

    def export_bin(self, name: str, binary: str, export_path: str) -> bool:
        # distrobox shares $HOME, so the host expansion is valid inside
        export_path = os.path.expanduser(export_path)
        return self._export(name, ["--bin", binary, "--export-path", export_path])

    def _export(self, name: str, args: List[str]) -> bool:
        try:
            result = self.enter(name, ["distrobox-export"] + args)
        except FileNotFoundError as e:
            logger.error("Failed to run distrobox: %s", e)
            return False
        if result.returncode != 0:
            logger.warning(
                "distrobox-export %s exited %s: %s",
                " ".join(args),
                result.returncode,
                (result.stderr or "").strip(),
            )
            return False
        return True

    def run_script(self, name: str, script: str, capture: bool = False) -> int:
        """Run a bash script inside the container, returning the exit code"""
        try:
            return self.enter(name, ["bash", "-c", script], capture=capture).returncode
        except FileNotFoundError as e:
            logger.error("Failed to run distrobox: %s", e)
            return 127
