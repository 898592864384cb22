"""Sentry configuration and utilities for error tracking.

All Sentry-related logic for the telemetry runner lives here. Reporting is
off unless a DSN is supplied through ``NVTELEMETRY_SENTRY_DSN`` (for example in
the ``.env`` file next to the runner); every helper is a no-op until
``init_sentry`` succeeds.

To disable Sentry entirely, set SENTRY_ENABLED = False at the module level.
"""

import os
import sys
import platform
import logging
from contextlib import contextmanager
from typing import Dict, Any, Optional

import psutil
import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

# Simple toggle to enable/disable Sentry - change this to False to disable all tracking
SENTRY_ENABLED = True

logger = logging.getLogger(__name__)

# Global flag to track if Sentry has been initialized
_sentry_initialized = False


def detect_environment() -> str:
    """Detect whether we're running in development or production.

    Detection logic:
    1. NVTELEMETRY_ENV environment variable (highest priority)
    2. A frozen executable or one under 'dist'/'release' → production
    3. Default to 'development'
    """
    env_var = os.environ.get("NVTELEMETRY_ENV", "").lower()
    if env_var in ("development", "dev"):
        return "development"
    elif env_var in ("production", "prod"):
        return "production"

    if getattr(sys, "frozen", False):
        return "production"
    exe_path = sys.executable.lower()
    if "dist" in exe_path or "release" in exe_path:
        return "production"

    return "development"


def get_system_context() -> Dict[str, Any]:
    """Collect OS, runtime and process information for error reports."""
    context: Dict[str, Any] = {
        "os": {
            "name": platform.system(),
            "version": platform.version(),
            "release": platform.release(),
            "architecture": platform.machine(),
        },
        "python": {
            "version": platform.python_version(),
            "implementation": platform.python_implementation(),
        },
        "environment": {
            "detected": detect_environment(),
            "frozen": getattr(sys, "frozen", False),
            "executable_path": sys.executable,
        },
    }

    try:
        process = psutil.Process()
        context["process"] = {
            "pid": process.pid,
            "parent_pid": process.ppid(),
            "cmdline": " ".join(process.cmdline()) if process.cmdline() else None,
            "memory_mb": round(process.memory_info().rss / (1024**2), 2),
        }
    except (psutil.Error, OSError) as e:
        logger.debug(f"Failed to collect process info: {e}")
        context["process"] = {"pid": os.getpid(), "error": str(e)}

    return context


def init_sentry(
    enabled: bool = True,
    dsn: Optional[str] = None,
    send_pii: bool = False,
    traces_sample_rate: float = 0.0,
    environment: Optional[str] = None,
) -> bool:
    """Initialize the Sentry SDK. Safe to call multiple times.

    Args:
        enabled: Runtime switch in addition to SENTRY_ENABLED.
        dsn: Project DSN; defaults to NVTELEMETRY_SENTRY_DSN.
        send_pii: Whether to include hostname/username.
        traces_sample_rate: Performance monitoring sample rate, 0.0-1.0.
        environment: Overrides detect_environment().

    Returns:
        bool: True if Sentry is initialized after the call.
    """
    global _sentry_initialized

    if not SENTRY_ENABLED or not enabled:
        logger.debug("Sentry is disabled")
        return False

    if _sentry_initialized:
        logger.debug("Sentry already initialized, skipping")
        return True

    dsn = dsn or os.environ.get("NVTELEMETRY_SENTRY_DSN")
    if not dsn:
        logger.debug("No Sentry DSN configured, error reporting disabled")
        return False

    environment = environment or detect_environment()
    system_context = get_system_context()

    def before_send(event, hint):
        """Attach system context and environment tags to every event."""
        event.setdefault("contexts", {})["system_info"] = system_context
        tags = event.setdefault("tags", {})
        tags["environment_detected"] = environment
        tags["os_name"] = system_context["os"]["name"]
        return event

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
            send_default_pii=send_pii,
            before_send=before_send,
            integrations=[
                LoggingIntegration(
                    level=logging.INFO,  # breadcrumbs only
                    event_level=None,
                ),
            ],
            release=f"disable-nvidia-telemetry@{os.environ.get('NVTELEMETRY_VERSION', 'dev')}",
        )
    except Exception as e:  # noqa: BLE001
        logger.error(f"Failed to initialize Sentry: {e}")
        return False

    _sentry_initialized = True
    logger.info(f"Sentry initialized in {environment} environment")
    return True


def capture_task_exception(
    exception: Exception,
    task_type: str,
    task_data: Optional[Dict[str, Any]] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Capture an exception raised by a runner task handler."""
    if not SENTRY_ENABLED or not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        scope.fingerprint = [task_type, exception.__class__.__name__]
        if task_data:
            scope.set_context("task", {"type": task_type, "data": task_data})
        for key, value in (extra_context or {}).items():
            scope.set_context(key, value if isinstance(value, dict) else {"value": value})
        scope.set_tag("task_type", task_type)
        scope.set_tag("error_type", exception.__class__.__name__)
        return sentry_sdk.capture_exception(exception)


def capture_task_failure(
    task_type: str,
    failure_reason: str,
    task_data: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Capture a task that finished with an error status but raised nothing."""
    if not SENTRY_ENABLED or not _sentry_initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        scope.fingerprint = [task_type, "task_failure"]
        if task_data:
            scope.set_context("task", {"type": task_type, "data": task_data})
        scope.set_tag("task_type", task_type)
        return sentry_sdk.capture_message(f"{task_type}: {failure_reason}", level="error")


def capture_transition_failure(
    kind: str,
    identifier: str,
    action: str,
    error: str,
    error_kind: Optional[str] = None,
) -> Optional[str]:
    """Capture one artifact's failed enable/disable.

    Access-denied failures are expected when running unelevated and are only
    kept as breadcrumbs.
    """
    if not SENTRY_ENABLED or not _sentry_initialized:
        return None

    if error_kind == "access_denied":
        add_breadcrumb(
            f"Access denied: {action} {kind} {identifier}",
            category="transition",
            level="warning",
        )
        return None

    with sentry_sdk.new_scope() as scope:
        scope.fingerprint = ["transition", kind, action, error_kind or "unknown"]
        scope.set_context(
            "artifact",
            {"kind": kind, "identifier": identifier, "action": action, "error_kind": error_kind},
        )
        scope.set_tag("artifact_kind", kind)
        scope.set_tag("transition_action", action)
        return sentry_sdk.capture_message(
            f"Failed to {action} {kind} {identifier}: {error}", level="error"
        )


@contextmanager
def create_task_span(
    task_type: str,
    task_index: int,
    total_tasks: int,
):
    """Context manager wrapping one runner task in a Sentry transaction.

    Yields the transaction, or None when Sentry is disabled.
    """
    if not SENTRY_ENABLED or not _sentry_initialized:
        yield None
        return

    with sentry_sdk.start_transaction(
        op="task",
        name=f"task.{task_type}",
    ) as transaction:
        transaction.set_tag("task_type", task_type)
        transaction.set_tag("task_index", task_index)
        transaction.set_tag("total_tasks", total_tasks)
        yield transaction


def add_breadcrumb(message: str, category: str = "info", level: str = "info", **data):
    """Add a breadcrumb to the current Sentry scope.

    Args:
        message: Human-readable message describing the event
        category: Category of the breadcrumb (e.g., 'task', 'transition', 'self_task')
        level: Severity level ('debug', 'info', 'warning', 'error', 'critical')
        **data: Additional key-value data to attach to the breadcrumb
    """
    if not SENTRY_ENABLED or not _sentry_initialized:
        return

    sentry_sdk.add_breadcrumb(category=category, message=message, level=level, data=data)
