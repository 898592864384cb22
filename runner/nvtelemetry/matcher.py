"""Find telemetry services and scheduled tasks by signature.

Every call re-enumerates the OS, so vendor reinstalls or driver updates between
refreshes are always picked up.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional, Sequence

from .inspector import state_of_service, state_of_task
from .models import (
    ArtifactKind,
    MatchMode,
    ServiceRecord,
    SignaturePattern,
    TaskRecord,
    TelemetryArtifact,
)
from .os_interfaces import ServiceManager, TaskScheduler
from .signatures import DEFAULT_SIGNATURES, patterns_for

logger = logging.getLogger(__name__)


def _first_match(name: str, patterns: Sequence[SignaturePattern]) -> Optional[SignaturePattern]:
    for pattern in patterns:
        if pattern.matches(name):
            return pattern
    return None


def match_services(
    records: Iterable[ServiceRecord], signatures: Iterable[SignaturePattern]
) -> Iterator[TelemetryArtifact]:
    """Yield each service record matching a service signature, once."""
    patterns = patterns_for(ArtifactKind.SERVICE, signatures)
    seen = set()
    for record in records:
        key = record.name.lower()
        if key in seen:
            continue
        pattern = _first_match(record.name, patterns)
        if pattern is None:
            continue
        seen.add(key)
        logger.debug(f"Service {record.name} matched {pattern.match_mode.value}:{pattern.value}")
        yield TelemetryArtifact(
            kind=ArtifactKind.SERVICE,
            identifier=record.name,
            display_name=record.display_name or record.name,
            state=state_of_service(record),
        )


def match_tasks(
    records: Iterable[TaskRecord], signatures: Iterable[SignaturePattern]
) -> Iterator[TelemetryArtifact]:
    """Yield each task record matching a task signature, once.

    Exact and contains rules are tested against the task name, path-prefix
    rules against the full path.
    """
    patterns = patterns_for(ArtifactKind.SCHEDULED_TASK, signatures)
    seen = set()
    for record in records:
        key = record.path.lower()
        if key in seen:
            continue
        matched = None
        for pattern in patterns:
            subject = record.path if pattern.match_mode is MatchMode.PATH_PREFIX else record.name
            if pattern.matches(subject):
                matched = pattern
                break
        if matched is None:
            continue
        seen.add(key)
        logger.debug(f"Task {record.path} matched {matched.match_mode.value}:{matched.value}")
        yield TelemetryArtifact(
            kind=ArtifactKind.SCHEDULED_TASK,
            identifier=record.path,
            display_name=record.name,
            state=state_of_task(record),
        )


class ArtifactMatcher:
    """Enumerates live services/tasks and filters them by the signature table."""

    def __init__(
        self,
        service_manager: ServiceManager,
        task_scheduler: TaskScheduler,
        signatures: Sequence[SignaturePattern] = DEFAULT_SIGNATURES,
    ):
        self.service_manager = service_manager
        self.task_scheduler = task_scheduler
        self.signatures = tuple(signatures)

    def find_telemetry_services(self) -> Iterator[TelemetryArtifact]:
        yield from match_services(self.service_manager.list_services(), self.signatures)

    def find_telemetry_tasks(self) -> Iterator[TelemetryArtifact]:
        yield from match_tasks(self.task_scheduler.list_tasks(), self.signatures)

    def find(self, kind: ArtifactKind) -> Iterator[TelemetryArtifact]:
        if kind is ArtifactKind.SERVICE:
            return self.find_telemetry_services()
        return self.find_telemetry_tasks()
