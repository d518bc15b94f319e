"""
Tests for extension reconciliation
"""

import logging
import subprocess

import pytest

from devtoolbox.catalog import REQUIRED_EXTENSIONS
from devtoolbox.errors import ExtensionInstallFailed
from devtoolbox.reconciler import ExtensionReconciler, InstallStatus
from devtoolbox.wrapper import Registrar


class FakeIdeCli:
    """Answers --list-extensions and --install-extension like a VS Code CLI"""

    def __init__(self, installed=(), failing=(), already=()):
        self.installed = set(installed)
        self.failing = set(failing)
        self.already = set(already)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if cmd[1] == "--list-extensions":
            return subprocess.CompletedProcess(cmd, 0, stdout="\n".join(sorted(self.installed)) + "\n", stderr="")
        extension_id = cmd[2]
        if extension_id in self.failing:
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="network unreachable")
        if extension_id in self.already:
            return subprocess.CompletedProcess(
                cmd, 0, stdout=f"Extension '{extension_id}' is already installed.", stderr=""
            )
        self.installed.add(extension_id)
        return subprocess.CompletedProcess(cmd, 0, stdout="Installed", stderr="")

    @property
    def installs(self):
        return [cmd[2] for cmd, _ in self.calls if cmd[1] == "--install-extension"]


def which_code(path):
    return lambda name: str(path) if name == "code" else None


@pytest.fixture
def log():
    return logging.getLogger("devtoolbox.tests.reconcile")


class TestExtensionReconciler:
    """Test listing, diffing and installing extensions"""

    def test_nothing_missing_installs_nothing(self, activation_config, fake_binary, monkeypatch, caplog, log):
        cli = FakeIdeCli(installed=[e.lower() for e in REQUIRED_EXTENSIONS])
        monkeypatch.setattr(subprocess, "run", cli)
        reconciler = ExtensionReconciler(activation_config, which=which_code(fake_binary))

        with caplog.at_level(logging.INFO, logger=log.name):
            reports = reconciler.reconcile_all(log)

        assert [r.ide_id for r in reports] == ["vscode"]
        assert reports[0].missing == []
        assert cli.installs == []
        assert "vscode: 0 missing" in caplog.text

    def test_second_run_is_noop(self, activation_config, fake_binary, monkeypatch, log):
        cli = FakeIdeCli()
        monkeypatch.setattr(subprocess, "run", cli)
        reconciler = ExtensionReconciler(activation_config, which=which_code(fake_binary))

        reconciler.reconcile_all(log)
        first = list(cli.installs)
        reconciler.reconcile_all(log)

        assert first == list(REQUIRED_EXTENSIONS)
        assert cli.installs == first

    def test_failures_are_tolerated(self, activation_config, fake_binary, monkeypatch, caplog, log):
        cli = FakeIdeCli(failing={"ms-vscode-remote.remote-ssh"}, already={"DankLinux.dms-theme"})
        monkeypatch.setattr(subprocess, "run", cli)
        reconciler = ExtensionReconciler(activation_config, which=which_code(fake_binary))

        with caplog.at_level(logging.INFO, logger=log.name):
            report = reconciler.reconcile_all(log)[0]

        assert report.results["ms-vscode-remote.remote-ssh"] is InstallStatus.FAILED
        assert report.results["DankLinux.dms-theme"] is InstallStatus.ALREADY_INSTALLED
        assert report.results["ms-vscode-remote.remote-containers"] is InstallStatus.INSTALLED
        assert report.failed == ["ms-vscode-remote.remote-ssh"]
        assert "will retry on next launch" in caplog.text

    def test_case_insensitive_comparison(self, activation_config):
        reconciler = ExtensionReconciler(activation_config)
        assert "DankLinux.dms-theme" not in reconciler.missing_extensions({"danklinux.dms-theme"})

    def test_cli_runs_with_activation_disabled(self, activation_config, fake_binary, monkeypatch, log):
        cli = FakeIdeCli()
        monkeypatch.setattr(subprocess, "run", cli)
        ExtensionReconciler(activation_config, which=which_code(fake_binary)).reconcile_all(log)
        assert all(kwargs["env"]["DISABLE_IDE_AUTO_EXTENSIONS"] == "1" for _, kwargs in cli.calls)
        install = next(cmd for cmd, _ in cli.calls if cmd[1] == "--install-extension")
        assert install[-1] == "--force"

    def test_prefers_registered_real_binary(self, activation_config, fake_binary):
        Registrar(activation_config).register("vscode", fake_binary)
        reconciler = ExtensionReconciler(activation_config, which=which_code(fake_binary))
        assert reconciler.resolve_binary("vscode") == fake_binary.with_name("code.real")
        assert reconciler.resolve_binary("cursor") is None

    def test_list_failure_recorded(self, activation_config, fake_binary, monkeypatch, log):
        def failing(cmd, **kwargs):
            raise subprocess.CalledProcessError(1, cmd)

        monkeypatch.setattr(subprocess, "run", failing)
        report = ExtensionReconciler(activation_config, which=which_code(fake_binary)).reconcile_all(log)[0]
        assert report.error is not None
        assert report.results == {}

    def test_install_timeout_raises(self, activation_config, fake_binary, monkeypatch):
        def slow(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, 1)

        monkeypatch.setattr(subprocess, "run", slow)
        with pytest.raises(ExtensionInstallFailed):
            ExtensionReconciler(activation_config).install_extension("vscode", fake_binary, "x.y")

    def test_no_ides(self, activation_config, log):
        assert ExtensionReconciler(activation_config, which=lambda name: None).reconcile_all(log) == []
