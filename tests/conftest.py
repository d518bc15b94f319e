"""
Shared fixtures for devtoolbox tests
"""

import io
import subprocess

import pytest
from rich.console import Console

from devtoolbox.config import ActivationConfig, ToolboxConfig


class FakeContainerManager:
    """In-memory stand-in for ContainerManager that records every call"""

    def __init__(self, installed=(), existing=False, build_code=0, create_code=0, failing_exports=()):
        self.installed = set(installed)
        self.existing = existing
        self.build_code = build_code
        self.create_code = create_code
        self.failing_exports = set(failing_exports)
        self.missing = []
        self.accessible = True
        self.calls = []
        self.exports = []

    def missing_tools(self):
        return list(self.missing)

    def build_image(self, context_dir, image, selection, language_servers=None, quiet=True):
        self.calls.append(("build", selection, language_servers, quiet))
        return self.build_code

    def list_containers(self):
        if not self.existing:
            return []
        return [{"id": "abc123", "name": "devtoolbox", "status": "Up", "image": "localhost/devtoolbox"}]

    def container_exists(self, name):
        return self.existing

    def create_container(self, name, image, volumes=None, additional_flags=None):
        self.calls.append(("create", name, image, list(volumes or [])))
        if self.create_code == 0:
            self.existing = True
        return self.create_code

    def remove_container(self, name):
        self.calls.append(("remove", name))
        self.existing = False
        return True

    def enter(self, name, command, capture=True):
        found = command[0] == "which" and command[1] in self.installed
        return subprocess.CompletedProcess(
            ["distrobox", "enter", name, "--"] + command,
            0 if found else 1,
            stdout=f"/usr/bin/{command[1]}\n" if found else "",
            stderr="",
        )

    def is_accessible(self, name):
        return self.existing and self.accessible

    def has_command(self, name, command):
        return command in self.installed

    def export_app(self, name, app):
        self.exports.append(("app", app))
        return app not in self.failing_exports

    def export_bin(self, name, binary, export_path):
        self.exports.append(("bin", binary))
        return binary not in self.failing_exports

    def run_script(self, name, script, capture=False):
        self.calls.append(("script", name))
        return 0


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def context_dir(tmp_path):
    context = tmp_path / "toolbox"
    context.mkdir()
    (context / "Containerfile").write_text("FROM fedora:latest\n")
    return context


@pytest.fixture
def toolbox_config(context_dir):
    return ToolboxConfig(context_dir=context_dir, settle_delay=0.0)


@pytest.fixture
def activation_config(tmp_path):
    return ActivationConfig(
        wrapper_dir=tmp_path / "wrappers",
        registry_file=tmp_path / "share" / "wrappers.yaml",
        log_dir=tmp_path / "logs",
        settle_interval=0.0,
    )


@pytest.fixture
def fake_binary(tmp_path):
    """An executable standing in for an installed IDE"""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    binary = bin_dir / "code"
    binary.write_text("#!/bin/sh\necho real\n")
    binary.chmod(0o755)
    return binary


@pytest.fixture
def no_env_flags(monkeypatch):
    monkeypatch.delenv("DISABLE_IDE_AUTO_EXTENSIONS", raising=False)
    monkeypatch.delenv("DEVTOOLBOX_CONFIG", raising=False)
    monkeypatch.delenv("DEVTOOLBOX_LOG_LEVEL", raising=False)
