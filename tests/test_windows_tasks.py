from __future__ import annotations

import json
import subprocess

import pytest

from nvtelemetry import windows_tasks
from nvtelemetry.errors import AccessDenied, ArtifactNotFound, OsApiFailure
from nvtelemetry.models import SelfTaskTrigger
from nvtelemetry.windows_tasks import (
    WindowsTaskScheduler,
    enabled_from_task_xml,
    parse_task_xml,
    trigger_from_task_xml,
)

TASK_XML = """\ufeff<?xml version="1.0" encoding="UTF-16"?>
<Task version="1.2" xmlns="http://schemas.microsoft.com/windows/2004/02/mit/task">
  <RegistrationInfo><URI>\\DisableNvidiaTelemetry</URI></RegistrationInfo>
  <Triggers>{triggers}</Triggers>
  <Settings>{settings}</Settings>
  <Actions Context="Author"><Exec><Command>nvtelemetry.exe</Command></Exec></Actions>
</Task>
"""

LOGON = "<LogonTrigger><Enabled>true</Enabled></LogonTrigger>"
IDLE = "<IdleTrigger><Enabled>true</Enabled></IdleTrigger>"
DAILY = (
    "<CalendarTrigger><StartBoundary>2026-10-19T12:00:00</StartBoundary>"
    "<ScheduleByDay><DaysInterval>1</DaysInterval></ScheduleByDay></CalendarTrigger>"
)
HOURLY = (
    "<TimeTrigger><Repetition><Interval>PT1H</Interval><StopAtDurationEnd>false</StopAtDurationEnd>"
    "</Repetition><StartBoundary>2026-10-19T10:00:00</StartBoundary></TimeTrigger>"
)


def task_xml(triggers: str = LOGON, settings: str = "<Enabled>true</Enabled>") -> str:
    return TASK_XML.format(triggers=triggers, settings=settings)


class FakeRunner:
    """Replaces run_command and records the argument vectors it receives."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.commands = []

    def __call__(self, command, **kwargs):
        self.commands.append(command)
        return subprocess.CompletedProcess(command, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(windows_tasks, "run_command", fake)
    return fake


@pytest.mark.parametrize(
    "triggers, expected",
    [
        (LOGON, SelfTaskTrigger.AT_LOGON),
        (IDLE, SelfTaskTrigger.ON_IDLE),
        (DAILY, SelfTaskTrigger.DAILY),
        (HOURLY, SelfTaskTrigger.HOURLY),
        ("", None),
        (LOGON + IDLE, None),
        ("<BootTrigger><Enabled>true</Enabled></BootTrigger>", None),
    ],
)
def test_trigger_from_task_xml(triggers, expected) -> None:
    assert trigger_from_task_xml(parse_task_xml(task_xml(triggers))) is expected


@pytest.mark.parametrize(
    "settings, expected",
    [
        ("<Enabled>true</Enabled>", True),
        ("<Enabled>false</Enabled>", False),
        ("<Hidden>true</Hidden>", True),
    ],
)
def test_enabled_from_task_xml(settings, expected) -> None:
    assert enabled_from_task_xml(parse_task_xml(task_xml(settings=settings))) is expected


def test_unparseable_xml_is_an_os_failure() -> None:
    with pytest.raises(OsApiFailure):
        parse_task_xml("ERROR: something went wrong")


def test_list_tasks_parses_powershell_json(runner) -> None:
    runner.stdout = json.dumps(
        [
            {"Path": "\\NvTmMon_{GUID}", "State": "Ready"},
            {"Path": "\\NvTmRep_CrashReport1_{GUID}", "State": "Disabled"},
            {"Path": "\\Microsoft\\Windows\\Defrag\\ScheduledDefrag", "State": "Unknown"},
            {"State": "Ready"},
        ]
    )

    records = WindowsTaskScheduler().list_tasks()

    assert [(r.path, r.enabled) for r in records] == [
        ("\\NvTmMon_{GUID}", True),
        ("\\NvTmRep_CrashReport1_{GUID}", False),
        ("\\Microsoft\\Windows\\Defrag\\ScheduledDefrag", None),
    ]
    assert runner.commands[0][0] == "powershell"


def test_list_tasks_accepts_single_object_and_empty_output(runner) -> None:
    runner.stdout = json.dumps({"Path": "\\NvTmMon_{GUID}", "State": "Running"})
    assert [r.name for r in WindowsTaskScheduler().list_tasks()] == ["NvTmMon_{GUID}"]

    runner.stdout = ""
    assert WindowsTaskScheduler().list_tasks() == []


def test_list_tasks_failure_raises(runner) -> None:
    runner.returncode = 1
    runner.stderr = "Get-ScheduledTask : The service cannot be started"

    with pytest.raises(OsApiFailure):
        WindowsTaskScheduler().list_tasks()


def test_set_enabled_uses_change(runner) -> None:
    WindowsTaskScheduler().set_enabled("\\NvTmMon_{GUID}", False)

    assert runner.commands == [["schtasks", "/Change", "/TN", "\\NvTmMon_{GUID}", "/DISABLE"]]


def test_create_task_overwrites_in_one_call(runner) -> None:
    WindowsTaskScheduler().create_task("DisableNvidiaTelemetry", SelfTaskTrigger.HOURLY, "app.exe --silent")

    (command,) = runner.commands
    assert command[:3] == ["schtasks", "/Create", "/F"]
    assert command[-4:] == ["/SC", "HOURLY", "/MO", "1"]
    assert "app.exe --silent" in command


def test_missing_task_is_not_found(runner) -> None:
    runner.returncode = 1
    runner.stderr = "ERROR: The system cannot find the file specified."

    with pytest.raises(ArtifactNotFound):
        WindowsTaskScheduler().delete_task("DisableNvidiaTelemetry")


def test_localized_access_denied(runner) -> None:
    runner.returncode = 1
    runner.stderr = "FEHLER: Zugriff verweigert"

    with pytest.raises(AccessDenied):
        WindowsTaskScheduler().set_enabled("\\NvTmMon_{GUID}", True)


def test_get_task_trigger_reads_back_xml(runner) -> None:
    runner.stdout = task_xml(DAILY)

    assert WindowsTaskScheduler().get_task_trigger("DisableNvidiaTelemetry") is SelfTaskTrigger.DAILY
    assert runner.commands[0][-1] == "/XML"
