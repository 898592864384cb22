"""Discovery and enable/disable control of NVIDIA telemetry services and tasks."""

from .errors import AccessDenied, ArtifactNotFound, ErrorKind, OsApiFailure, TelemetryError
from .inspector import StateInspector, aggregate_state
from .matcher import ArtifactMatcher
from .models import (
    ArtifactKind,
    LogicalState,
    MatchMode,
    SelfTaskHandle,
    SelfTaskTrigger,
    ServiceRecord,
    SignaturePattern,
    TaskRecord,
    TelemetryArtifact,
    TransitionRequest,
    TransitionResult,
)
from .selection import ArtifactSelection, CheckState, commit_available
from .self_task import SELF_TASK_NAME, SelfTaskManager
from .signatures import DEFAULT_SIGNATURES, SIGNATURE_VERSION, load_signatures
from .transitions import TransitionEngine

__all__ = [
    "AccessDenied",
    "ArtifactKind",
    "ArtifactMatcher",
    "ArtifactNotFound",
    "ArtifactSelection",
    "CheckState",
    "DEFAULT_SIGNATURES",
    "ErrorKind",
    "LogicalState",
    "MatchMode",
    "OsApiFailure",
    "SELF_TASK_NAME",
    "SIGNATURE_VERSION",
    "SelfTaskHandle",
    "SelfTaskManager",
    "SelfTaskTrigger",
    "ServiceRecord",
    "SignaturePattern",
    "StateInspector",
    "TaskRecord",
    "TelemetryArtifact",
    "TelemetryError",
    "TransitionEngine",
    "TransitionRequest",
    "TransitionResult",
    "aggregate_state",
    "commit_available",
    "load_signatures",
]
