"""Apply enable/disable transitions to batches of telemetry artifacts.

Artifacts are processed one at a time in the order given. A failure on one
artifact is recorded in its TransitionResult and never stops the batch, and
nothing is rolled back; a later refresh is what reconciles displayed state
with the OS.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Sequence

from sentry_config import add_breadcrumb, capture_transition_failure

from .errors import ErrorKind, TelemetryError
from .models import (
    TARGET_STATES,
    ArtifactKind,
    LogicalState,
    TelemetryArtifact,
    TransitionRequest,
    TransitionResult,
)
from .os_interfaces import (
    START_MODE_AUTOMATIC,
    START_MODE_DISABLED,
    START_MODE_MANUAL,
    ServiceManager,
    TaskScheduler,
)

logger = logging.getLogger(__name__)

KIND_LABELS = {
    ArtifactKind.SERVICE: "service",
    ArtifactKind.SCHEDULED_TASK: "task",
}


def _as_list(
    artifacts: Optional[Iterable[TelemetryArtifact]],
) -> Optional[List[TelemetryArtifact]]:
    """Materialize a batch once; matcher results arrive as generators."""
    return None if artifacts is None else list(artifacts)


def _validate_batch(
    artifacts: Optional[Sequence[TelemetryArtifact]],
    target_state: LogicalState,
    kind: Optional[ArtifactKind] = None,
) -> None:
    if artifacts is None:
        raise TypeError("artifacts must be a sequence, not None")
    if target_state not in TARGET_STATES:
        raise ValueError(f"target_state must be ENABLED or DISABLED, got {target_state}")
    if kind is None:
        return
    for artifact in artifacts:
        if artifact.kind is not kind:
            raise ValueError(
                f"Expected only {kind.value} artifacts, got {artifact.kind.value} {artifact.identifier}"
            )


class TransitionEngine:
    """Moves services and scheduled tasks between enabled and disabled.

    Args:
        service_manager: OS service backend.
        task_scheduler: OS task scheduler backend.
        log_sink: Receives one entry per artifact action when ``emit_log`` is set.
        enable_start_mode: Start mode restored when enabling a service
            ("manual" or "automatic").
    """

    def __init__(
        self,
        service_manager: ServiceManager,
        task_scheduler: TaskScheduler,
        log_sink=None,
        enable_start_mode: str = START_MODE_MANUAL,
    ):
        if enable_start_mode not in (START_MODE_MANUAL, START_MODE_AUTOMATIC):
            raise ValueError(f"Unsupported start mode for enabling: {enable_start_mode!r}")
        self.service_manager = service_manager
        self.task_scheduler = task_scheduler
        self.log_sink = log_sink
        self.enable_start_mode = enable_start_mode

    # --- public entry points -------------------------------------------

    def apply_services(
        self,
        artifacts: Iterable[TelemetryArtifact],
        target_state: LogicalState,
        stop_running_instance: bool = False,
        emit_log: bool = False,
        start_after_enable: bool = False,
    ) -> List[TransitionResult]:
        artifacts = _as_list(artifacts)
        _validate_batch(artifacts, target_state, ArtifactKind.SERVICE)
        return self._run_batch(
            artifacts,
            lambda a: self._transition_service(
                a, target_state, stop_running_instance, start_after_enable
            ),
            emit_log,
        )

    def apply_tasks(
        self,
        artifacts: Iterable[TelemetryArtifact],
        target_state: LogicalState,
        emit_log: bool = False,
    ) -> List[TransitionResult]:
        artifacts = _as_list(artifacts)
        _validate_batch(artifacts, target_state, ArtifactKind.SCHEDULED_TASK)
        return self._run_batch(
            artifacts, lambda a: self._transition_task(a, target_state), emit_log
        )

    def apply(self, request: TransitionRequest) -> List[TransitionResult]:
        """Apply a request whose batch may mix services and tasks."""
        _validate_batch(request.artifacts, request.target_state)

        def transition(artifact: TelemetryArtifact) -> TransitionResult:
            if artifact.kind is ArtifactKind.SERVICE:
                return self._transition_service(
                    artifact, request.target_state, request.stop_running_instance, False
                )
            return self._transition_task(artifact, request.target_state)

        return self._run_batch(request.artifacts, transition, request.emit_log)

    # --- batch loop ----------------------------------------------------

    def _run_batch(
        self,
        artifacts: Sequence[TelemetryArtifact],
        transition: Callable[[TelemetryArtifact], TransitionResult],
        emit_log: bool,
    ) -> List[TransitionResult]:
        results: List[TransitionResult] = []
        for index, artifact in enumerate(artifacts):
            add_breadcrumb(
                f"Transition {index + 1}/{len(artifacts)}: {artifact.identifier}",
                category="transition",
                level="info",
                kind=artifact.kind.value,
            )
            result = transition(artifact)
            results.append(result)
            self._report(result, emit_log)
        return results

    def _report(self, result: TransitionResult, emit_log: bool) -> None:
        artifact = result.artifact
        label = KIND_LABELS[artifact.kind]
        if result.succeeded:
            message = f"{result.action.capitalize()}d telemetry {label}: {artifact.display_name}"
            logger.debug(message)
            if emit_log and self.log_sink is not None:
                self.log_sink.info(message)
            return

        message = (
            f"Failed to {result.action} telemetry {label} {artifact.identifier}: {result.error}"
        )
        logger.warning(message)
        capture_transition_failure(
            kind=artifact.kind.value,
            identifier=artifact.identifier,
            action=result.action,
            error=result.error or "",
            error_kind=result.error_kind.value if result.error_kind else None,
        )
        if emit_log and self.log_sink is not None:
            self.log_sink.error(message)

    # --- per-kind transitions -------------------------------------------

    def _transition_service(
        self,
        artifact: TelemetryArtifact,
        target_state: LogicalState,
        stop_running_instance: bool,
        start_after_enable: bool,
    ) -> TransitionResult:
        name = artifact.identifier
        if target_state is LogicalState.DISABLED:
            result = TransitionResult(artifact=artifact, action="disable", succeeded=True)
            if stop_running_instance:
                self._stop_if_running(name, result)
                if result.error_kind is ErrorKind.NOT_FOUND:
                    return result
            self._step(
                result,
                f"set start mode {START_MODE_DISABLED}",
                lambda: self.service_manager.set_start_mode(name, START_MODE_DISABLED),
            )
            return result

        result = TransitionResult(artifact=artifact, action="enable", succeeded=True)
        self._step(
            result,
            f"set start mode {self.enable_start_mode}",
            lambda: self.service_manager.set_start_mode(name, self.enable_start_mode),
        )
        if start_after_enable and result.succeeded:
            self._step(result, "start", lambda: self.service_manager.start_service(name))
        return result

    def _stop_if_running(self, name: str, result: TransitionResult) -> None:
        def stop() -> None:
            if self.service_manager.get_service(name).is_running:
                self.service_manager.stop_service(name)
                result.steps.append("stop")

        self._step(result, None, stop)

    def _transition_task(
        self, artifact: TelemetryArtifact, target_state: LogicalState
    ) -> TransitionResult:
        enabled = target_state is LogicalState.ENABLED
        result = TransitionResult(
            artifact=artifact, action="enable" if enabled else "disable", succeeded=True
        )
        self._step(
            result,
            "set enabled flag" if enabled else "clear enabled flag",
            lambda: self.task_scheduler.set_enabled(artifact.identifier, enabled),
        )
        return result

    @staticmethod
    def _step(
        result: TransitionResult, label: Optional[str], operation: Callable[[], None]
    ) -> None:
        """Run one OS call, folding a failure into the result.

        The first failure's kind is kept; later failures extend the message.
        """
        try:
            operation()
        except TelemetryError as e:
            result.succeeded = False
            result.error = f"{result.error}; {e}" if result.error else str(e)
            if result.error_kind is None:
                result.error_kind = e.kind
            return
        if label:
            result.steps.append(label)
