"""Data model for telemetry artifact discovery and state transitions.

Artifacts are plain, immutable snapshots: they are rebuilt on every
enumeration and carry no identity beyond the OS-native key (service name or
scheduled task path).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ErrorKind


class ArtifactKind(Enum):
    """Kinds of OS objects that can carry vendor telemetry."""

    SERVICE = "service"
    SCHEDULED_TASK = "scheduled_task"


class LogicalState(Enum):
    """Enabled/disabled state derived from OS attributes.

    MIXED only appears as an aggregate over several artifacts.
    """

    ENABLED = "enabled"
    DISABLED = "disabled"
    MIXED = "mixed"
    UNKNOWN = "unknown"


class MatchMode(Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    PATH_PREFIX = "path_prefix"


def _normalize_task_path(value: str) -> str:
    value = value.replace("/", "\\")
    return value if value.startswith("\\") else "\\" + value


@dataclass(frozen=True)
class SignaturePattern:
    """One identification rule for a telemetry artifact."""

    kind: ArtifactKind
    match_mode: MatchMode
    value: str

    def matches(self, name: str) -> bool:
        if not name:
            return False
        candidate = name.lower()
        needle = self.value.lower()
        if self.match_mode is MatchMode.EXACT:
            return candidate == needle
        if self.match_mode is MatchMode.CONTAINS:
            return needle in candidate
        return _normalize_task_path(candidate).startswith(_normalize_task_path(needle))


@dataclass(frozen=True)
class ServiceRecord:
    """A Windows service as enumerated from the service control manager.

    ``start_mode`` and ``run_state`` are None when the service could not be read.
    """

    name: str
    display_name: str
    start_mode: Optional[str] = None
    run_state: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return (self.run_state or "").lower() == "running"


@dataclass(frozen=True)
class TaskRecord:
    """A scheduled task as enumerated from Task Scheduler."""

    path: str
    enabled: Optional[bool] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("\\", 1)[-1]


@dataclass(frozen=True)
class TelemetryArtifact:
    kind: ArtifactKind
    identifier: str
    display_name: str
    state: LogicalState = LogicalState.UNKNOWN

    @property
    def label(self) -> str:
        if self.kind is ArtifactKind.SERVICE:
            return f"Service: {self.display_name}"
        return f"Task: {self.identifier}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "identifier": self.identifier,
            "display_name": self.display_name,
            "state": self.state.value,
        }


TARGET_STATES = (LogicalState.ENABLED, LogicalState.DISABLED)


@dataclass
class TransitionRequest:
    """A target state for an ordered batch of artifacts."""

    target_state: LogicalState
    artifacts: Iterable[TelemetryArtifact]
    stop_running_instance: bool = False
    emit_log: bool = False

    def __post_init__(self) -> None:
        if self.artifacts is None:
            raise TypeError("artifacts must be a sequence, not None")
        self.artifacts = list(self.artifacts)
        if self.target_state not in TARGET_STATES:
            raise ValueError(
                f"target_state must be ENABLED or DISABLED, got {self.target_state}"
            )


@dataclass
class TransitionResult:
    """Outcome of one artifact's transition within a batch."""

    artifact: TelemetryArtifact
    action: str
    succeeded: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    steps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.artifact.kind.value,
            "identifier": self.artifact.identifier,
            "action": self.action,
            "succeeded": self.succeeded,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "steps": list(self.steps),
        }


class SelfTaskTrigger(IntEnum):
    """Recurrence policies for the application's own scheduled task.

    The integer value is what gets persisted in settings.
    """

    AT_LOGON = 0
    DAILY = 1
    HOURLY = 2
    ON_IDLE = 3

    @classmethod
    def parse(cls, value: Union["SelfTaskTrigger", int, str]) -> "SelfTaskTrigger":
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid self-task trigger: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            aliases = {"ATLOGON": "AT_LOGON", "LOGON": "AT_LOGON", "ONIDLE": "ON_IDLE", "IDLE": "ON_IDLE"}
            key = aliases.get(key, key)
            if key.isdigit():
                return cls(int(key))
            try:
                return cls[key]
            except KeyError:
                pass
        raise ValueError(f"Invalid self-task trigger: {value!r}")


DEFAULT_SELF_TASK_TRIGGER = SelfTaskTrigger.AT_LOGON


@dataclass(frozen=True)
class SelfTaskHandle:
    """The application's scheduled task, when it exists."""

    name: str
    trigger: Optional[SelfTaskTrigger]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "trigger": self.trigger.name.lower() if self.trigger is not None else None,
        }
