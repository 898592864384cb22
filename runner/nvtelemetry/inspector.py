"""Derive logical enabled/disabled state from OS attributes."""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import TelemetryError
from .models import ArtifactKind, LogicalState, ServiceRecord, TaskRecord, TelemetryArtifact
from .os_interfaces import START_MODE_DISABLED, ServiceManager, TaskScheduler

logger = logging.getLogger(__name__)


def state_of_service(record: ServiceRecord) -> LogicalState:
    """A service counts as enabled whenever it may start, running or not."""
    if not record.start_mode:
        return LogicalState.UNKNOWN
    if record.start_mode.lower() == START_MODE_DISABLED:
        return LogicalState.DISABLED
    return LogicalState.ENABLED


def state_of_task(record: TaskRecord) -> LogicalState:
    if record.enabled is None:
        return LogicalState.UNKNOWN
    return LogicalState.ENABLED if record.enabled else LogicalState.DISABLED


def aggregate_state(states: Iterable[LogicalState]) -> LogicalState:
    """Collapse per-artifact states into one value for a whole group."""
    known = set()
    seen_any = False
    for state in states:
        seen_any = True
        if state is not LogicalState.UNKNOWN:
            known.add(state)
    if not seen_any or not known:
        return LogicalState.UNKNOWN
    if known == {LogicalState.ENABLED}:
        return LogicalState.ENABLED
    if known == {LogicalState.DISABLED}:
        return LogicalState.DISABLED
    return LogicalState.MIXED


class StateInspector:
    def __init__(self, service_manager: ServiceManager, task_scheduler: TaskScheduler):
        self.service_manager = service_manager
        self.task_scheduler = task_scheduler

    def inspect(self, artifact: TelemetryArtifact) -> LogicalState:
        """Re-read an artifact from the OS; unreadable objects are UNKNOWN."""
        try:
            if artifact.kind is ArtifactKind.SERVICE:
                return state_of_service(self.service_manager.get_service(artifact.identifier))
            return state_of_task(self.task_scheduler.get_task(artifact.identifier))
        except TelemetryError as e:
            logger.debug(f"Could not inspect {artifact.kind.value} {artifact.identifier}: {e}")
            return LogicalState.UNKNOWN
