"""Handlers for the application's own scheduled task.

Task schemas (dict expected):
  type: "self_task_status"
  type: "self_task_create"
    trigger: int | str (optional) - "at_logon", "daily", "hourly", "on_idle" or
             the stored integer; defaults to the persisted setting
  type: "self_task_remove"

The chosen trigger is persisted so the next create (and the settings view)
uses it.
"""

import logging
from typing import Any, Dict

from sentry_config import add_breadcrumb

from nvtelemetry.context import TelemetryContext
from nvtelemetry.errors import ErrorKind, TelemetryError
from nvtelemetry.models import SelfTaskTrigger

logger = logging.getLogger(__name__)


def _status_results(context: TelemetryContext) -> Dict[str, Any]:
    handle = context.self_tasks.get_self_task()
    return {
        "exists": handle is not None,
        "task": handle.to_dict() if handle else None,
    }


def _failure(task_type: str, error: TelemetryError) -> Dict[str, Any]:
    logger.error(f"{task_type} failed: {error}")
    return {
        "task_type": task_type,
        "status": "error",
        "summary": {
            "human_readable": {"error": str(error)},
            "results": {
                "error_kind": error.kind.value,
                "requires_elevation": error.kind is ErrorKind.ACCESS_DENIED,
            },
        },
    }


def run_self_task_status(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    try:
        results = _status_results(context)
    except TelemetryError as e:
        return _failure("self_task_status", e)
    task_info = results["task"]
    message = (
        f"Scheduled task present (trigger: {task_info['trigger'] or 'unrecognized'})"
        if task_info
        else "Scheduled task not installed"
    )
    return {
        "task_type": "self_task_status",
        "status": "success",
        "summary": {"human_readable": {"message": message}, "results": results},
    }


def run_self_task_create(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    """Create (or replace) the scheduled task and persist its trigger."""
    store = context.settings_store
    settings = store.load()
    raw_trigger = task.get("trigger", settings.self_task_trigger)
    try:
        trigger = SelfTaskTrigger.parse(raw_trigger)
    except ValueError as e:
        logger.error(str(e))
        return {
            "task_type": "self_task_create",
            "status": "error",
            "summary": {"human_readable": {"error": str(e)}, "results": {}},
        }

    add_breadcrumb(
        "Creating scheduled task", category="task", level="info", trigger=trigger.name
    )
    try:
        handle = context.self_tasks.create(trigger)
    except TelemetryError as e:
        return _failure("self_task_create", e)

    if settings.background_task_trigger != int(trigger):
        settings.background_task_trigger = int(trigger)
        store.save(settings)

    context.log_sink.info(f"Scheduled task {handle.name} created ({trigger.name.lower()})")
    return {
        "task_type": "self_task_create",
        "status": "success",
        "summary": {
            "human_readable": {"message": f"Scheduled task created: {trigger.name.lower()}"},
            "results": {"exists": True, "task": handle.to_dict()},
        },
    }


def run_self_task_remove(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    try:
        removed = context.self_tasks.remove()
    except TelemetryError as e:
        return _failure("self_task_remove", e)

    if removed:
        context.log_sink.info(f"Scheduled task {context.self_tasks.task_name} removed")
    return {
        "task_type": "self_task_remove",
        "status": "success",
        "summary": {
            "human_readable": {
                "message": "Scheduled task removed" if removed else "Scheduled task was not installed"
            },
            "results": {"exists": False, "removed": removed},
        },
    }
