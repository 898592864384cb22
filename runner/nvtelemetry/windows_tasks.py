"""Windows Task Scheduler backend.

Enumeration uses PowerShell's ``Get-ScheduledTask`` (JSON output is not
localized, unlike ``schtasks /Query /FO CSV``). Single-task queries and all
changes go through ``schtasks.exe``; task definitions are read back as Task
Scheduler XML.
"""

from __future__ import annotations

import json
import logging
import re
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from subprocess_utils import output_text, raise_for_failure, run_command

from .errors import OsApiFailure
from .models import SelfTaskTrigger, TaskRecord

logger = logging.getLogger(__name__)

LIST_TASKS_SCRIPT = r"""
$ErrorActionPreference = 'Stop'
[Console]::OutputEncoding = [System.Text.Encoding]::UTF8
$tasks = @(Get-ScheduledTask | ForEach-Object {
  [pscustomobject]@{ Path = $_.TaskPath + $_.TaskName; State = [string]$_.State }
})
ConvertTo-Json -InputObject $tasks -Compress
"""

# schtasks /Create schedule arguments, one OS trigger per policy
TRIGGER_SCHEDULES: Dict[SelfTaskTrigger, List[str]] = {
    SelfTaskTrigger.AT_LOGON: ["/SC", "ONLOGON"],
    SelfTaskTrigger.DAILY: ["/SC", "DAILY", "/ST", "12:00"],
    SelfTaskTrigger.HOURLY: ["/SC", "HOURLY", "/MO", "1"],
    SelfTaskTrigger.ON_IDLE: ["/SC", "ONIDLE", "/I", "10"],
}

_XML_DECLARATION = re.compile(r"^\s*<\?xml[^>]*\?>", re.IGNORECASE)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, name: str) -> Optional[ET.Element]:
    for child in element:
        if _local_name(child.tag) == name:
            return child
    return None


def parse_task_xml(xml_text: str) -> ET.Element:
    """Parse a Task Scheduler XML document.

    The UTF-16 declaration emitted by schtasks is dropped since the text has
    already been decoded.
    """
    cleaned = _XML_DECLARATION.sub("", xml_text.lstrip("\ufeff"), count=1)
    try:
        return ET.fromstring(cleaned)
    except ET.ParseError as e:
        raise OsApiFailure(f"Unreadable task definition: {e}", action="parse") from e


def enabled_from_task_xml(root: ET.Element) -> bool:
    """Task Scheduler treats a missing Settings/Enabled element as enabled."""
    settings = _child(root, "Settings")
    if settings is None:
        return True
    enabled = _child(settings, "Enabled")
    if enabled is None or enabled.text is None:
        return True
    return enabled.text.strip().lower() != "false"


def trigger_from_task_xml(root: ET.Element) -> Optional[SelfTaskTrigger]:
    """Map a task's single trigger back to a SelfTaskTrigger.

    Returns None when the task has no trigger, several triggers, or one this
    application would not have created.
    """
    triggers = _child(root, "Triggers")
    if triggers is None or len(triggers) != 1:
        return None
    trigger = triggers[0]
    name = _local_name(trigger.tag)

    repetition = _child(trigger, "Repetition")
    interval = _child(repetition, "Interval") if repetition is not None else None
    if interval is not None and (interval.text or "").strip().upper() == "PT1H":
        return SelfTaskTrigger.HOURLY

    if name == "LogonTrigger":
        return SelfTaskTrigger.AT_LOGON
    if name == "IdleTrigger":
        return SelfTaskTrigger.ON_IDLE
    if name == "CalendarTrigger" and _child(trigger, "ScheduleByDay") is not None:
        return SelfTaskTrigger.DAILY
    return None


def _record_from_json(entry: dict) -> Optional[TaskRecord]:
    path = entry.get("Path")
    if not path:
        return None
    state = str(entry.get("State") or "").lower()
    if state == "disabled":
        enabled: Optional[bool] = False
    elif state in ("ready", "running", "queued"):
        enabled = True
    else:
        enabled = None
    return TaskRecord(path=path, enabled=enabled)


class WindowsTaskScheduler:
    """TaskScheduler implementation for the local Task Scheduler service."""

    def list_tasks(self) -> List[TaskRecord]:
        result = run_command(
            ["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", LIST_TASKS_SCRIPT]
        )
        if result.returncode != 0:
            raise OsApiFailure(
                f"Failed to enumerate scheduled tasks: {output_text(result) or 'no output'}",
                action="enumerate",
                returncode=result.returncode,
            )
        text = (result.stdout or "").strip()
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise OsApiFailure(f"Unexpected task enumeration output: {e}", action="enumerate") from e
        if isinstance(data, dict):
            data = [data]

        records = []
        for entry in data:
            if not isinstance(entry, dict):
                continue
            record = _record_from_json(entry)
            if record is not None:
                records.append(record)
        logger.debug(f"Enumerated {len(records)} scheduled tasks")
        return records

    def query_task_xml(self, path: str) -> ET.Element:
        result = run_command(["schtasks", "/Query", "/TN", path, "/XML"])
        raise_for_failure(result, identifier=path, action="query")
        return parse_task_xml(result.stdout or "")

    def get_task(self, path: str) -> TaskRecord:
        root = self.query_task_xml(path)
        return TaskRecord(path=path, enabled=enabled_from_task_xml(root))

    def set_enabled(self, path: str, enabled: bool) -> None:
        flag = "/ENABLE" if enabled else "/DISABLE"
        result = run_command(["schtasks", "/Change", "/TN", path, flag])
        raise_for_failure(result, identifier=path, action="enable" if enabled else "disable")

    def create_task(self, name: str, trigger: SelfTaskTrigger, command: str) -> None:
        # /F overwrites an existing task of the same name in a single call
        args = ["schtasks", "/Create", "/F", "/TN", name, "/TR", command, "/RL", "HIGHEST"]
        args.extend(TRIGGER_SCHEDULES[trigger])
        result = run_command(args)
        raise_for_failure(result, identifier=name, action="create")

    def delete_task(self, name: str) -> None:
        result = run_command(["schtasks", "/Delete", "/F", "/TN", name])
        raise_for_failure(result, identifier=name, action="delete")

    def get_task_trigger(self, name: str) -> Optional[SelfTaskTrigger]:
        return trigger_from_task_xml(self.query_task_xml(name))
