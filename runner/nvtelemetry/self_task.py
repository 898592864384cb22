"""Lifecycle of the application's own recurring scheduled task.

There is at most one such task, addressed by a reserved name. Creating while
it exists replaces it in a single scheduler call; removing while it is absent
does nothing.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import Optional, Union

from sentry_config import add_breadcrumb

from .errors import ArtifactNotFound, OsApiFailure
from .models import SelfTaskHandle, SelfTaskTrigger
from .os_interfaces import TaskScheduler

logger = logging.getLogger(__name__)

SELF_TASK_NAME = "DisableNvidiaTelemetry"
SILENT_FLAG = "--silent"
# schtasks /TR rejects longer commands
MAX_TASK_COMMAND_LENGTH = 261


def default_task_command() -> str:
    """Command line that re-runs this application unattended.

    Frozen builds launch the executable itself; otherwise the current
    interpreter runs the runner script.
    """
    if getattr(sys, "frozen", False):
        argv = [sys.executable, SILENT_FLAG]
    else:
        runner_script = os.path.join(
            os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "telemetry_runner.py"
        )
        argv = [sys.executable, runner_script, SILENT_FLAG]
    return subprocess.list2cmdline(argv)


class SelfTaskManager:
    def __init__(
        self,
        task_scheduler: TaskScheduler,
        task_name: str = SELF_TASK_NAME,
        command: Optional[str] = None,
    ):
        self.task_scheduler = task_scheduler
        self.task_name = task_name
        self.command = command or default_task_command()

    def get_self_task(self) -> Optional[SelfTaskHandle]:
        """Return the task if it exists, else None."""
        try:
            trigger = self.task_scheduler.get_task_trigger(self.task_name)
        except ArtifactNotFound:
            return None
        return SelfTaskHandle(name=self.task_name, trigger=trigger)

    def create(self, trigger: Union[SelfTaskTrigger, int, str]) -> SelfTaskHandle:
        """Create or replace the task with the given recurrence.

        Raises:
            ValueError: If ``trigger`` is not a known policy.
            AccessDenied, OsApiFailure: If the command is too long for the
                scheduler or the scheduler rejects the task.
        """
        trigger = SelfTaskTrigger.parse(trigger)
        if len(self.command) > MAX_TASK_COMMAND_LENGTH:
            raise OsApiFailure(
                f"Task command is {len(self.command)} characters, the scheduler accepts at most "
                f"{MAX_TASK_COMMAND_LENGTH}; install the application to a shorter path",
                identifier=self.task_name,
                action="create",
            )
        logger.info(f"Creating scheduled task {self.task_name} ({trigger.name.lower()})")
        add_breadcrumb(
            "Creating self task",
            category="self_task",
            level="info",
            task_name=self.task_name,
            trigger=trigger.name,
        )
        self.task_scheduler.create_task(self.task_name, trigger, self.command)
        return SelfTaskHandle(name=self.task_name, trigger=trigger)

    def remove(self) -> bool:
        """Delete the task. Returns False if there was nothing to delete."""
        try:
            self.task_scheduler.delete_task(self.task_name)
        except ArtifactNotFound:
            logger.debug(f"Scheduled task {self.task_name} does not exist, nothing to remove")
            return False
        logger.info(f"Removed scheduled task {self.task_name}")
        add_breadcrumb("Removed self task", category="self_task", level="info")
        return True
