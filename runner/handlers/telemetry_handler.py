"""Telemetry discovery and enable/disable handlers.

Task schemas (dict expected):
  type: "telemetry_refresh"
    log: bool (optional, default False) - write each discovered artifact to the event log
  type: "telemetry_disable"
    kinds: ["services", "tasks"] (optional, default both)
    identifiers: [str] (optional, default every discovered artifact)
    stop_running: bool (optional, default True) - stop running services first
    log: bool (optional, default True)
  type: "telemetry_enable"
    kinds, identifiers, log: as above
    start_services: bool (optional, default False) - start services after enabling

Return dict structure:
  {
    task_type: str,
    status: "success" | "failure" | "error",
    summary: {
      human_readable: {message: str, warnings: [str]},
      results: {
        services: [artifact], tasks: [artifact],
        aggregate: {services: state, tasks: state},
        transitions: [transition result] (enable/disable only),
        requires_elevation: bool (enable/disable only)
      }
    }
  }
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sentry_config import add_breadcrumb

from nvtelemetry.context import TelemetryContext
from nvtelemetry.errors import ErrorKind, TelemetryError
from nvtelemetry.inspector import aggregate_state
from nvtelemetry.models import ArtifactKind, LogicalState, TelemetryArtifact, TransitionResult
from nvtelemetry.selection import ArtifactSelection, commit_available

logger = logging.getLogger(__name__)

KIND_KEYS = {
    ArtifactKind.SERVICE: "services",
    ArtifactKind.SCHEDULED_TASK: "tasks",
}
_KIND_NAMES = {
    "services": ArtifactKind.SERVICE,
    "service": ArtifactKind.SERVICE,
    "tasks": ArtifactKind.SCHEDULED_TASK,
    "task": ArtifactKind.SCHEDULED_TASK,
    "scheduled_tasks": ArtifactKind.SCHEDULED_TASK,
}


def parse_kinds(value: Optional[Iterable[str]]) -> List[ArtifactKind]:
    """Resolve a task's ``kinds`` list; None means services then tasks."""
    if value is None:
        return [ArtifactKind.SERVICE, ArtifactKind.SCHEDULED_TASK]
    if isinstance(value, str):
        value = [value]
    kinds: List[ArtifactKind] = []
    for name in value:
        kind = _KIND_NAMES.get(str(name).lower())
        if kind is None:
            raise ValueError(f"Unknown artifact kind: {name!r}")
        if kind not in kinds:
            kinds.append(kind)
    return kinds


def discover(
    context: TelemetryContext, kinds: List[ArtifactKind], log: bool = False
) -> Tuple[Dict[ArtifactKind, List[TelemetryArtifact]], List[str]]:
    """Enumerate each kind, collecting enumeration failures instead of raising."""
    found: Dict[ArtifactKind, List[TelemetryArtifact]] = {}
    errors: List[str] = []
    for kind in kinds:
        try:
            artifacts = list(context.matcher.find(kind))
        except TelemetryError as e:
            logger.error(f"Failed to enumerate {KIND_KEYS[kind]}: {e}")
            errors.append(f"Failed to enumerate {KIND_KEYS[kind]}: {e}")
            found[kind] = []
            continue
        found[kind] = artifacts
        if log:
            for artifact in artifacts:
                context.log_sink.info(f"Found telemetry {artifact.label}")
        logger.info(f"Found {len(artifacts)} telemetry {KIND_KEYS[kind]}")
    return found, errors


def _describe(found: Dict[ArtifactKind, List[TelemetryArtifact]]) -> Dict[str, Any]:
    results: Dict[str, Any] = {"aggregate": {}}
    selections = []
    for kind, artifacts in found.items():
        key = KIND_KEYS[kind]
        results[key] = [a.to_dict() for a in artifacts]
        results["aggregate"][key] = aggregate_state(a.state for a in artifacts).value
        selection = ArtifactSelection(artifacts)
        selections.append(selection)
        results.setdefault("selection", {})[key] = selection.current_aggregate_state().value
    results["commit_available"] = commit_available(*selections)
    return results


def run_telemetry_refresh(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    """Discover telemetry artifacts and report their current state."""
    add_breadcrumb("Starting telemetry refresh", category="task", level="info")
    try:
        kinds = parse_kinds(task.get("kinds"))
    except ValueError as e:
        return _error_result("telemetry_refresh", str(e))

    found, errors = discover(context, kinds, log=bool(task.get("log", False)))
    results = _describe(found)
    counts = ", ".join(f"{len(v)} {KIND_KEYS[k]}" for k, v in found.items())
    return {
        "task_type": "telemetry_refresh",
        "status": "failure" if errors else "success",
        "summary": {
            "human_readable": {
                "message": (
                    f"Found {counts}" if any(found.values()) else "No telemetry artifacts found"
                ),
                "warnings": errors,
            },
            "results": results,
        },
    }


def _select(
    found: Dict[ArtifactKind, List[TelemetryArtifact]], identifiers: Optional[List[str]]
) -> Tuple[Dict[ArtifactKind, List[TelemetryArtifact]], List[str]]:
    batches = {}
    known = set()
    for kind, artifacts in found.items():
        selection = ArtifactSelection(artifacts)
        known.update(a.identifier.lower() for a in artifacts)
        if identifiers is None:
            selection.select_all()
        else:
            selection.select_only(identifiers)
        batches[kind] = selection.selected()
    missing = [i for i in (identifiers or []) if i.lower() not in known]
    return batches, missing


def _run_transition(
    task: Dict[str, Any], context: TelemetryContext, target: LogicalState
) -> Dict[str, Any]:
    action = "enable" if target is LogicalState.ENABLED else "disable"
    task_type = task.get("type") or f"telemetry_{action}"
    add_breadcrumb(f"Starting {task_type}", category="task", level="info")

    identifiers = task.get("identifiers")
    if identifiers is not None and (
        not isinstance(identifiers, list) or not all(isinstance(i, str) for i in identifiers)
    ):
        return _error_result(task_type, "'identifiers' must be a list of names")
    try:
        kinds = parse_kinds(task.get("kinds"))
    except ValueError as e:
        return _error_result(task_type, str(e))

    emit_log = bool(task.get("log", True))
    found, errors = discover(context, kinds)
    batches, missing = _select(found, identifiers)
    warnings = list(errors)
    warnings.extend(f"No telemetry artifact named {name}" for name in missing)

    transitions: List[TransitionResult] = []
    for kind, batch in batches.items():
        if kind is ArtifactKind.SERVICE:
            transitions.extend(
                context.engine.apply_services(
                    batch,
                    target,
                    stop_running_instance=bool(task.get("stop_running", True)),
                    emit_log=emit_log,
                    start_after_enable=bool(task.get("start_services", False)),
                )
            )
        else:
            transitions.extend(context.engine.apply_tasks(batch, target, emit_log=emit_log))

    # Re-read OS truth after applying
    reconciled, refresh_errors = discover(context, kinds)
    warnings.extend(refresh_errors)

    failed = [r for r in transitions if not r.succeeded]
    verb = "Enabled" if target is LogicalState.ENABLED else "Disabled"
    results = _describe(reconciled)
    results["transitions"] = [r.to_dict() for r in transitions]
    results["requires_elevation"] = any(r.error_kind is ErrorKind.ACCESS_DENIED for r in failed)

    if not transitions and not errors:
        message = "No telemetry artifacts found"
    else:
        message = f"{verb} {len(transitions) - len(failed)} of {len(transitions)} telemetry artifacts"
    if failed:
        warnings.extend(f"{r.artifact.identifier}: {r.error}" for r in failed)

    return {
        "task_type": task_type,
        "status": "failure" if failed or errors else "success",
        "summary": {
            "human_readable": {"message": message, "warnings": warnings},
            "results": results,
        },
    }


def run_telemetry_disable(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    """Disable telemetry services and tasks, then report the reconciled state."""
    return _run_transition(task, context, LogicalState.DISABLED)


def run_telemetry_enable(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    """Restore telemetry services and tasks to enabled."""
    return _run_transition(task, context, LogicalState.ENABLED)


def _error_result(task_type: str, message: str) -> Dict[str, Any]:
    logger.error(message)
    return {
        "task_type": task_type,
        "status": "error",
        "summary": {"human_readable": {"error": message}, "results": {}},
    }
