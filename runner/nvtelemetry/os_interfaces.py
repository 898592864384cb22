"""Contracts for the OS collaborators used by the telemetry engine.

The Windows backends in ``windows_services`` and ``windows_tasks`` implement
these; tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from .models import SelfTaskTrigger, ServiceRecord, TaskRecord

# Start modes understood by ServiceManager.set_start_mode
START_MODE_AUTOMATIC = "automatic"
START_MODE_MANUAL = "manual"
START_MODE_DISABLED = "disabled"
START_MODES = (START_MODE_AUTOMATIC, START_MODE_MANUAL, START_MODE_DISABLED)


class ServiceManager(Protocol):
    """Service control manager.

    Every per-service method raises ``ArtifactNotFound`` for an unknown name and
    ``AccessDenied`` when privileges are insufficient.
    """

    def list_services(self) -> List[ServiceRecord]: ...

    def get_service(self, name: str) -> ServiceRecord: ...

    def set_start_mode(self, name: str, start_mode: str) -> None: ...

    def stop_service(self, name: str) -> None: ...

    def start_service(self, name: str) -> None: ...


class TaskScheduler(Protocol):
    """Task Scheduler, addressed by full task path (``\\Folder\\Name``)."""

    def list_tasks(self) -> List[TaskRecord]: ...

    def get_task(self, path: str) -> TaskRecord: ...

    def set_enabled(self, path: str, enabled: bool) -> None: ...

    def create_task(self, name: str, trigger: SelfTaskTrigger, command: str) -> None:
        """Create the task, replacing any task of the same name in one call."""
        ...

    def delete_task(self, name: str) -> None: ...

    def get_task_trigger(self, name: str) -> Optional[SelfTaskTrigger]: ...
