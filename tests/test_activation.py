"""
Tests for the wrapped IDE runtime and the background extension cycle
"""

from datetime import datetime

import pytest

from devtoolbox import activation
from devtoolbox.activation import (
    background_main,
    locate_real_binary,
    log_path_for,
    prune_logs,
    run_background_cycle,
    run_wrapper,
)
from devtoolbox.errors import RealBinaryMissing
from devtoolbox.reconciler import IdeReconciliation
from devtoolbox.wrapper import Registrar, WrapperRegistration, WrapperRegistry


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)


class StubReconciler:
    def __init__(self, reports=(), error=None):
        self.reports = list(reports)
        self.error = error
        self.logs = []

    def reconcile_all(self, log=None):
        self.logs.append(log)
        if self.error:
            raise self.error
        log.info("vscode: 0 missing")
        return self.reports


@pytest.fixture
def registered(activation_config, fake_binary):
    Registrar(activation_config).register("vscode", fake_binary)
    return fake_binary.with_name("code.real")


class TestRunWrapper:
    """Test the wrapper entry point"""

    def test_execs_real_binary_with_arguments(self, activation_config, registered):
        execv, spawn = Recorder(), Recorder()

        code = run_wrapper(
            "vscode", ["--new-window", "/src"], activation_config, {}, execv=execv, spawn=spawn
        )

        assert code == 0
        assert spawn.calls == [("vscode", activation_config.registry_file)]
        assert execv.calls == [(str(registered), [str(registered), "--new-window", "/src"])]

    @pytest.mark.parametrize("value", ["1", "true"])
    def test_disabled_skips_background(self, activation_config, registered, value):
        execv, spawn = Recorder(), Recorder()
        run_wrapper(
            "vscode", [], activation_config, {"DISABLE_IDE_AUTO_EXTENSIONS": value}, execv=execv, spawn=spawn
        )
        assert spawn.calls == []
        assert len(execv.calls) == 1

    def test_missing_registration(self, activation_config, capsys):
        execv, spawn = Recorder(), Recorder()

        code = run_wrapper("cursor", [], activation_config, {}, execv=execv, spawn=spawn)

        assert code == 127
        assert execv.calls == []
        assert spawn.calls == []
        assert "Real binary for 'cursor' not found" in capsys.readouterr().err

    def test_missing_sidecar(self, activation_config, registered):
        registered.unlink()
        execv = Recorder()
        assert run_wrapper("vscode", [], activation_config, {}, execv=execv, spawn=Recorder()) == 127
        assert execv.calls == []

    def test_spawn_failure_still_launches(self, activation_config, registered, capsys):
        def broken_spawn(ide_id, registry_file):
            raise OSError("fork failed")

        execv = Recorder()
        assert run_wrapper("vscode", [], activation_config, {}, execv=execv, spawn=broken_spawn) == 0
        assert len(execv.calls) == 1
        assert "fork failed" in capsys.readouterr().err

    def test_baked_registry_overrides_default_config(
        self, activation_config, registered, tmp_path, monkeypatch
    ):
        monkeypatch.setenv("DEVTOOLBOX_CONFIG", str(tmp_path / "absent.yaml"))
        execv, spawn = Recorder(), Recorder()

        code = run_wrapper(
            "vscode",
            ["--wait"],
            environ={},
            execv=execv,
            spawn=spawn,
            registry_file=str(activation_config.registry_file),
        )

        assert code == 0
        assert execv.calls == [(str(registered), [str(registered), "--wait"])]
        assert spawn.calls == [("vscode", activation_config.registry_file)]

    def test_locate_empty_path(self, activation_config, tmp_path):
        WrapperRegistry(activation_config.registry_file).save(
            WrapperRegistration("vscode", tmp_path / "code", tmp_path / "missing.real", tmp_path / "w")
        )
        with pytest.raises(RealBinaryMissing) as excinfo:
            locate_real_binary("vscode", activation_config)
        assert excinfo.value.path == str(tmp_path / "missing.real")


class TestBackgroundCycle:
    """Test the detached extension setup cycle"""

    def test_disabled_writes_nothing(self, activation_config):
        sleeps = []
        reconciler = StubReconciler()

        result = run_background_cycle(
            "vscode",
            activation_config,
            environ={"DISABLE_IDE_AUTO_EXTENSIONS": "1"},
            sleep=sleeps.append,
            reconciler=reconciler,
        )

        assert result is None
        assert sleeps == []
        assert reconciler.logs == []
        assert not activation_config.log_dir.exists()

    def test_cycle_writes_log(self, activation_config, tmp_path):
        sleeps = []
        report = IdeReconciliation("vscode", tmp_path / "code")
        now = datetime(2024, 5, 1, 12, 30, 0, 123456)

        log_path = run_background_cycle(
            "vscode",
            activation_config,
            environ={},
            sleep=sleeps.append,
            reconciler=StubReconciler([report]),
            now=now,
        )

        assert sleeps == [activation_config.settle_interval]
        assert log_path.name == "ide-extension-setup-vscode-20240501-123000-123456.log"
        text = log_path.read_text()
        assert "vscode: 0 missing" in text
        assert "1 IDE(s), 0 failure(s)" in text

    def test_cycle_logs_and_reraises(self, activation_config):
        with pytest.raises(RuntimeError):
            run_background_cycle(
                "vscode",
                activation_config,
                environ={},
                sleep=lambda s: None,
                reconciler=StubReconciler(error=RuntimeError("boom")),
            )
        logs = list(activation_config.log_dir.glob("*.log"))
        assert len(logs) == 1
        assert "Extension setup aborted" in logs[0].read_text()

    def test_prune_keeps_newest(self, activation_config):
        activation_config.log_dir.mkdir()
        for day in range(1, 9):
            log_path_for(activation_config, "vscode", datetime(2024, 5, day)).write_text("")
        other = log_path_for(activation_config, "cursor", datetime(2024, 4, 1))
        other.write_text("")

        removed = prune_logs(activation_config, "vscode")

        remaining = sorted(p.name for p in activation_config.log_dir.glob("*vscode*.log"))
        assert len(removed) == 3
        assert len(remaining) == 5
        assert remaining[0] == "ide-extension-setup-vscode-20240504-000000-000000.log"
        assert other.exists()

    def test_background_main_usage(self, capsys):
        assert background_main([]) == 2
        assert "usage" in capsys.readouterr().err

    def test_background_main_uses_given_registry(self, tmp_path, monkeypatch):
        seen = []
        monkeypatch.setenv("DEVTOOLBOX_CONFIG", str(tmp_path / "absent.yaml"))
        monkeypatch.setattr(
            activation,
            "run_background_cycle",
            lambda ide_id, config: seen.append((ide_id, config.registry_file)),
        )

        assert background_main(["vscode", str(tmp_path / "wrappers.yaml")]) == 0
        assert seen == [("vscode", tmp_path / "wrappers.yaml")]
