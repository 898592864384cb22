from __future__ import annotations

import dataclasses
from typing import Dict, List, Optional, Tuple

import pytest

from log_sink import LogSink
from settings_store import SettingsStore

from nvtelemetry.context import TelemetryContext
from nvtelemetry.errors import AccessDenied, ArtifactNotFound, TelemetryError
from nvtelemetry.models import SelfTaskTrigger, ServiceRecord, TaskRecord

GUID = "{B2FE1952-0186-46C3-BAEC-A80AA35AC5B8}"


class FakeServiceManager:
    """In-memory service database with injectable per-operation failures."""

    def __init__(self, records=()):
        self.records: Dict[str, ServiceRecord] = {r.name.lower(): r for r in records}
        self.failures: Dict[Tuple[str, str], TelemetryError] = {}
        self.unreadable = set()
        self.calls: List[Tuple[str, str]] = []

    def fail(self, name: str, operation: str, error: TelemetryError) -> None:
        self.failures[(name.lower(), operation)] = error

    def vanish(self, name: str) -> None:
        del self.records[name.lower()]

    def _lookup(self, name: str, operation: str) -> ServiceRecord:
        self.calls.append((operation, name))
        error = self.failures.get((name.lower(), operation))
        if error is not None:
            raise error
        record = self.records.get(name.lower())
        if record is None:
            raise ArtifactNotFound(f"Service {name} does not exist", identifier=name, action=operation)
        return record

    def _replace(self, record: ServiceRecord, **changes) -> None:
        self.records[record.name.lower()] = dataclasses.replace(record, **changes)

    def list_services(self) -> List[ServiceRecord]:
        return [
            ServiceRecord(r.name, r.display_name) if r.name.lower() in self.unreadable else r
            for r in self.records.values()
        ]

    def get_service(self, name: str) -> ServiceRecord:
        record = self._lookup(name, "query")
        if name.lower() in self.unreadable:
            raise AccessDenied("Access denied", identifier=name, action="query")
        return record

    def set_start_mode(self, name: str, start_mode: str) -> None:
        self._replace(self._lookup(name, "set_start_mode"), start_mode=start_mode)

    def stop_service(self, name: str) -> None:
        self._replace(self._lookup(name, "stop"), run_state="stopped")

    def start_service(self, name: str) -> None:
        self._replace(self._lookup(name, "start"), run_state="running")


class FakeTaskScheduler:
    """In-memory Task Scheduler; application tasks live beside vendor tasks."""

    def __init__(self, records=()):
        self.records: Dict[str, TaskRecord] = {r.path.lower(): r for r in records}
        self.created: Dict[str, Tuple[SelfTaskTrigger, str]] = {}
        self.failures: Dict[Tuple[str, str], TelemetryError] = {}
        self.calls: List[Tuple[str, str]] = []

    def fail(self, path: str, operation: str, error: TelemetryError) -> None:
        self.failures[(path.lower(), operation)] = error

    def vanish(self, path: str) -> None:
        del self.records[path.lower()]

    def _check(self, path: str, operation: str) -> None:
        self.calls.append((operation, path))
        error = self.failures.get((path.lower(), operation))
        if error is not None:
            raise error

    def _lookup(self, path: str, operation: str) -> TaskRecord:
        self._check(path, operation)
        record = self.records.get(path.lower())
        if record is None:
            raise ArtifactNotFound(f"Task {path} does not exist", identifier=path, action=operation)
        return record

    def list_tasks(self) -> List[TaskRecord]:
        own = [TaskRecord("\\" + name, True) for name in self.created]
        return list(self.records.values()) + own

    def get_task(self, path: str) -> TaskRecord:
        return self._lookup(path, "query")

    def set_enabled(self, path: str, enabled: bool) -> None:
        record = self._lookup(path, "set_enabled")
        self.records[path.lower()] = dataclasses.replace(record, enabled=enabled)

    def create_task(self, name: str, trigger: SelfTaskTrigger, command: str) -> None:
        self._check(name, "create")
        self.created[name] = (trigger, command)

    def delete_task(self, name: str) -> None:
        self._check(name, "delete")
        if name not in self.created:
            raise ArtifactNotFound(f"Task {name} does not exist", identifier=name, action="delete")
        del self.created[name]

    def get_task_trigger(self, name: str) -> Optional[SelfTaskTrigger]:
        self._check(name, "query")
        if name not in self.created:
            raise ArtifactNotFound(f"Task {name} does not exist", identifier=name, action="query")
        return self.created[name][0]


TELEMETRY_SERVICE = "NvTelemetryContainer"
CRASH_REPORT_TASK = f"\\NvTmRep_CrashReport1_{GUID}"
MONITOR_TASK = f"\\NvTmMon_{GUID}"
LOGON_REPORT_TASK = f"\\NvTmRepOnLogon_{GUID}"


@pytest.fixture
def service_manager():
    return FakeServiceManager(
        [
            ServiceRecord(TELEMETRY_SERVICE, "NVIDIA Telemetry Container", "automatic", "running"),
            ServiceRecord("NVDisplay.ContainerLocalSystem", "NVIDIA Display Container LS", "automatic", "running"),
            ServiceRecord("Spooler", "Print Spooler", "automatic", "running"),
        ]
    )


@pytest.fixture
def task_scheduler():
    return FakeTaskScheduler(
        [
            TaskRecord(CRASH_REPORT_TASK, True),
            TaskRecord(MONITOR_TASK, True),
            TaskRecord(LOGON_REPORT_TASK, True),
            TaskRecord(f"\\NvDriverUpdateCheckDaily_{GUID}", True),
            TaskRecord("\\Microsoft\\Windows\\Defrag\\ScheduledDefrag", True),
        ]
    )


@pytest.fixture
def log_sink():
    sink = LogSink()
    entries = []
    sink.subscribe(lambda level, message: entries.append((level, message)))
    sink.entries = entries
    return sink


@pytest.fixture
def settings_store(tmp_path):
    return SettingsStore(str(tmp_path / "settings.json"))


@pytest.fixture
def context(service_manager, task_scheduler, log_sink, settings_store):
    return TelemetryContext(
        service_manager=service_manager,
        task_scheduler=task_scheduler,
        log_sink=log_sink,
        settings_store=settings_store,
        self_task_command='"C:\\Program Files\\nvtelemetry\\runner.exe" --silent',
    )
