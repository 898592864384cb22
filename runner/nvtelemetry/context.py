"""Wire the engine components together from explicit configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence

from .inspector import StateInspector
from .matcher import ArtifactMatcher
from .models import SignaturePattern
from .os_interfaces import START_MODE_MANUAL, ServiceManager, TaskScheduler
from .self_task import SELF_TASK_NAME, SelfTaskManager
from .signatures import DEFAULT_SIGNATURES
from .transitions import TransitionEngine


@dataclass
class TelemetryContext:
    """Everything a handler needs to discover and change telemetry artifacts."""

    service_manager: ServiceManager
    task_scheduler: TaskScheduler
    log_sink: object
    settings_store: object
    signatures: Sequence[SignaturePattern] = DEFAULT_SIGNATURES
    enable_start_mode: str = START_MODE_MANUAL
    self_task_name: str = SELF_TASK_NAME
    self_task_command: Optional[str] = None
    matcher: ArtifactMatcher = field(init=False)
    inspector: StateInspector = field(init=False)
    engine: TransitionEngine = field(init=False)
    self_tasks: SelfTaskManager = field(init=False)

    def __post_init__(self) -> None:
        self.signatures = tuple(self.signatures)
        self.matcher = ArtifactMatcher(self.service_manager, self.task_scheduler, self.signatures)
        self.inspector = StateInspector(self.service_manager, self.task_scheduler)
        self.engine = TransitionEngine(
            self.service_manager,
            self.task_scheduler,
            log_sink=self.log_sink,
            enable_start_mode=self.enable_start_mode,
        )
        self.self_tasks = SelfTaskManager(
            self.task_scheduler, task_name=self.self_task_name, command=self.self_task_command
        )

    @classmethod
    def for_windows(cls, log_sink, settings_store, signatures=DEFAULT_SIGNATURES, **kwargs):
        """Context backed by the local service database and Task Scheduler."""
        from .windows_services import WindowsServiceManager
        from .windows_tasks import WindowsTaskScheduler

        return cls(
            service_manager=WindowsServiceManager(),
            task_scheduler=WindowsTaskScheduler(),
            log_sink=log_sink,
            settings_store=settings_store,
            signatures=signatures,
            **kwargs,
        )
