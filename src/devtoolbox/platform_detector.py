"""
Host platform detection for devtoolbox
"""

import os
import platform
import shutil
from pathlib import Path
from typing import Any, Dict, Optional

DOCKER_SOCKET = Path("/var/run/docker.sock")
PODMAN_SOCKET = Path("/run/podman/podman.sock")


class PlatformDetector:
    """Detects host information relevant to building and running the toolbox"""

    def __init__(self, root: Path = Path("/"), uid: Optional[int] = None):
        # root lets tests point detection at a fake filesystem
        self.root = Path(root)
        self.system = platform.system().lower()
        self.machine = platform.machine().lower()
        self.architecture = self._normalize_architecture()
        self.uid = os.getuid() if uid is None else uid

    def _normalize_architecture(self) -> str:
        """Normalize architecture names to container platform format"""
        arch_map = {
            "x86_64": "amd64",
            "amd64": "amd64",
            "i386": "386",
            "i686": "386",
            "aarch64": "arm64",
            "arm64": "arm64",
        }
        return arch_map.get(self.machine, self.machine)

    def _path(self, path: Path) -> Path:
        return self.root / str(path).lstrip("/")

    def detect(self) -> Dict[str, Any]:
        """Detect platform information used in diagnostics"""
        return {
            "system": self.system,
            "machine": self.machine,
            "architecture": self.architecture,
            "platform": f"{self.system}/{self.architecture}",
            "home_directory": str(Path.home()),
            "inside_container": self.is_inside_container(),
            "podman_available": shutil.which("podman") is not None,
            "distrobox_available": shutil.which("distrobox") is not None,
            "container_sockets": self.container_socket_mounts(),
        }

    def is_inside_container(self) -> bool:
        """Detect if we're running inside a container"""
        if any(key in os.environ for key in ("container", "DISTROBOX_ENTER_PATH")):
            return True

        if self._path(Path("/run/.containerenv")).exists() or self._path(
            Path("/.dockerenv")
        ).exists():
            return True

        cgroup = self._path(Path("/proc/1/cgroup"))
        if cgroup.exists():
            try:
                content = cgroup.read_text()
                if any(
                    indicator in content
                    for indicator in ["docker", "containerd", "crio", "podman", "libpod"]
                ):
                    return True
            except (IOError, OSError):
                pass

        return False

    def _podman_socket_source(self) -> Optional[Path]:
        """Find the host Podman socket, preferring the system-wide one"""
        system_socket = self._path(PODMAN_SOCKET)
        if system_socket.exists() or system_socket.is_symlink():
            if system_socket.is_symlink():
                target = Path(os.path.realpath(system_socket))
                if target.exists():
                    return target
            return system_socket

        user_socket = self._path(Path(f"/run/user/{self.uid}/podman/podman.sock"))
        if user_socket.exists():
            return user_socket
        return None

    def container_socket_mounts(self) -> Dict[str, str]:
        """Host container-engine sockets to mount, as host -> container paths"""
        mounts = {}
        docker_socket = self._path(DOCKER_SOCKET)
        if docker_socket.exists():
            mounts[str(docker_socket)] = str(DOCKER_SOCKET)

        podman_source = self._podman_socket_source()
        if podman_source is not None:
            mounts[str(podman_source)] = str(PODMAN_SOCKET)
        return mounts
