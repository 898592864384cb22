"""Read or update persisted settings.

Task schema (dict expected):
  type: "settings"
  file_logging: bool (optional)
  startup_update: bool (optional)
  background_task_trigger: int | str (optional)

With no keys the current settings are returned unchanged.
"""

import logging
from typing import Any, Dict

from nvtelemetry.context import TelemetryContext

from settings_store import SETTING_KEYS, default_log_path

logger = logging.getLogger(__name__)


def run_settings_update(task: Dict[str, Any], context: TelemetryContext) -> Dict[str, Any]:
    store = context.settings_store
    settings = store.load()
    changes = {k: task[k] for k in SETTING_KEYS if k in task}

    if changes:
        try:
            settings.update(changes)
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid settings: {e}")
            return {
                "task_type": "settings",
                "status": "error",
                "summary": {"human_readable": {"error": str(e)}, "results": {}},
            }
        store.save(settings)
        logger.info(f"Updated settings: {', '.join(sorted(changes))}")

    if "file_logging" in changes:
        if settings.file_logging:
            context.log_sink.enable_file_logging(default_log_path())
        else:
            context.log_sink.disable_file_logging()

    return {
        "task_type": "settings",
        "status": "success",
        "summary": {
            "human_readable": {
                "message": "Settings updated" if changes else "Settings unchanged"
            },
            "results": {"settings": settings.to_dict(), "path": store.path},
        },
    }
