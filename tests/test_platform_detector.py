"""
Tests for platform detection
"""

from devtoolbox.platform_detector import DOCKER_SOCKET, PODMAN_SOCKET, PlatformDetector


class TestPlatformDetector:
    """Test platform detection functionality"""

    def test_initialization(self):
        """Test PlatformDetector initialization"""
        detector = PlatformDetector()
        assert detector.system is not None
        assert detector.machine is not None
        assert detector.architecture is not None

    def test_detect_returns_dict(self, tmp_path):
        """Test that detect() returns a dictionary with expected keys"""
        detector = PlatformDetector(root=tmp_path)
        info = detector.detect()

        expected_keys = [
            "system",
            "machine",
            "architecture",
            "platform",
            "home_directory",
            "inside_container",
            "podman_available",
            "distrobox_available",
            "container_sockets",
        ]

        for key in expected_keys:
            assert key in info

    def test_architecture_normalization(self):
        """Test architecture names map to container platform names"""
        detector = PlatformDetector()
        detector.machine = "x86_64"
        assert detector._normalize_architecture() == "amd64"
        detector.machine = "aarch64"
        assert detector._normalize_architecture() == "arm64"
        detector.machine = "riscv64"
        assert detector._normalize_architecture() == "riscv64"

    def test_inside_container_marker(self, tmp_path, monkeypatch):
        """Test /run/.containerenv marks a container"""
        monkeypatch.delenv("container", raising=False)
        monkeypatch.delenv("DISTROBOX_ENTER_PATH", raising=False)
        detector = PlatformDetector(root=tmp_path)
        assert detector.is_inside_container() is False

        (tmp_path / "run").mkdir()
        (tmp_path / "run" / ".containerenv").write_text("")
        assert detector.is_inside_container() is True

    def test_inside_container_env(self, tmp_path, monkeypatch):
        """Test the distrobox environment marks a container"""
        monkeypatch.setenv("DISTROBOX_ENTER_PATH", "/usr/bin/distrobox-enter")
        assert PlatformDetector(root=tmp_path).is_inside_container() is True

    def test_no_sockets(self, tmp_path):
        """Test nothing is mounted when no engine sockets exist"""
        assert PlatformDetector(root=tmp_path, uid=1000).container_socket_mounts() == {}

    def test_docker_and_user_podman_sockets(self, tmp_path):
        """Test socket discovery falls back to the rootless Podman socket"""
        docker = tmp_path / "var" / "run" / "docker.sock"
        docker.parent.mkdir(parents=True)
        docker.write_text("")
        podman = tmp_path / "run" / "user" / "1000" / "podman" / "podman.sock"
        podman.parent.mkdir(parents=True)
        podman.write_text("")

        mounts = PlatformDetector(root=tmp_path, uid=1000).container_socket_mounts()

        assert mounts == {str(docker): str(DOCKER_SOCKET), str(podman): str(PODMAN_SOCKET)}

    def test_system_podman_socket_symlink_is_resolved(self, tmp_path):
        """Test a symlinked system socket is mounted from its target"""
        target = tmp_path / "srv" / "podman.sock"
        target.parent.mkdir(parents=True)
        target.write_text("")
        link = tmp_path / "run" / "podman" / "podman.sock"
        link.parent.mkdir(parents=True)
        link.symlink_to(target)

        mounts = PlatformDetector(root=tmp_path, uid=1000).container_socket_mounts()

        assert mounts == {str(target.resolve()): str(PODMAN_SOCKET)}
