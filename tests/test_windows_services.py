from __future__ import annotations

import subprocess

import pytest

from nvtelemetry import windows_services
from nvtelemetry.errors import AccessDenied, ArtifactNotFound, OsApiFailure
from nvtelemetry.windows_services import WindowsServiceManager


def fake_run_command(monkeypatch, returncode: int, stdout: str = ""):
    commands = []

    def run(command, **kwargs):
        commands.append(command)
        return subprocess.CompletedProcess(command, returncode, stdout, "")

    monkeypatch.setattr(windows_services, "run_command", run)
    return commands


def test_disable_maps_to_sc_config(monkeypatch) -> None:
    commands = fake_run_command(monkeypatch, 0, "[SC] ChangeServiceConfig SUCCESS")

    WindowsServiceManager().set_start_mode("NvTelemetryContainer", "disabled")

    assert commands == [["sc.exe", "config", "NvTelemetryContainer", "start=", "disabled"]]


def test_manual_start_mode_is_demand(monkeypatch) -> None:
    commands = fake_run_command(monkeypatch, 0)

    WindowsServiceManager().set_start_mode("NvTelemetryContainer", "manual")

    assert commands[0][-1] == "demand"


def test_unknown_start_mode_is_rejected(monkeypatch) -> None:
    commands = fake_run_command(monkeypatch, 0)

    with pytest.raises(ValueError):
        WindowsServiceManager().set_start_mode("NvTelemetryContainer", "boot")
    assert commands == []


def test_stopping_a_stopped_service_succeeds(monkeypatch) -> None:
    fake_run_command(monkeypatch, 1062, "[SC] ControlService FAILED 1062")

    WindowsServiceManager().stop_service("NvTelemetryContainer")


def test_starting_a_running_service_succeeds(monkeypatch) -> None:
    fake_run_command(monkeypatch, 1056, "[SC] StartService FAILED 1056")

    WindowsServiceManager().start_service("NvTelemetryContainer")


@pytest.mark.parametrize(
    "returncode, error",
    [(1060, ArtifactNotFound), (5, AccessDenied), (1053, OsApiFailure)],
)
def test_sc_exit_codes_are_classified(monkeypatch, returncode, error) -> None:
    fake_run_command(monkeypatch, returncode, f"[SC] OpenService FAILED {returncode}")

    with pytest.raises(error) as excinfo:
        WindowsServiceManager().stop_service("NvTelemetryContainer")
    assert excinfo.value.returncode == returncode
    assert excinfo.value.identifier == "NvTelemetryContainer"
