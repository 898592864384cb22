"""Persisted user settings.

A flat JSON document that survives restarts. The default location is
``%APPDATA%\\DisableNvidiaTelemetry\\settings.json``; ``NVTELEMETRY_SETTINGS_FILE``
or an explicit path overrides it.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from nvtelemetry.models import DEFAULT_SELF_TASK_TRIGGER, SelfTaskTrigger

logger = logging.getLogger(__name__)

APP_DIR_NAME = "DisableNvidiaTelemetry"
SETTINGS_FILE_NAME = "settings.json"
LOG_FILE_NAME = "telemetry.log"
SETTING_KEYS = ("file_logging", "startup_update", "background_task_trigger")


def app_data_dir() -> str:
    base = os.environ.get("APPDATA") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, APP_DIR_NAME)


def default_settings_path() -> str:
    return os.environ.get("NVTELEMETRY_SETTINGS_FILE") or os.path.join(
        app_data_dir(), SETTINGS_FILE_NAME
    )


def default_log_path() -> str:
    return os.path.join(app_data_dir(), "logs", LOG_FILE_NAME)


@dataclass
class AppSettings:
    file_logging: bool = True
    startup_update: bool = True
    background_task_trigger: int = int(DEFAULT_SELF_TASK_TRIGGER)

    @property
    def self_task_trigger(self) -> SelfTaskTrigger:
        """The persisted trigger; unknown values fall back to the default."""
        try:
            return SelfTaskTrigger.parse(self.background_task_trigger)
        except ValueError:
            logger.warning(
                "Invalid stored task trigger %r, using %s",
                self.background_task_trigger,
                DEFAULT_SELF_TASK_TRIGGER.name,
            )
            return DEFAULT_SELF_TASK_TRIGGER

    def update(self, values: Dict[str, Any]) -> None:
        """Apply known keys from ``values``; unknown keys are ignored."""
        if "file_logging" in values:
            self.file_logging = bool(values["file_logging"])
        if "startup_update" in values:
            self.startup_update = bool(values["startup_update"])
        if "background_task_trigger" in values:
            self.background_task_trigger = int(
                SelfTaskTrigger.parse(values["background_task_trigger"])
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SettingsStore:
    def __init__(self, path: Optional[str] = None):
        self.path = path or default_settings_path()

    def load(self) -> AppSettings:
        """Read settings; a missing or corrupt file yields defaults.

        An invalid value falls back to its own default only.
        """
        settings = AppSettings()
        if not os.path.exists(self.path):
            return settings
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to read settings from %s: %s", self.path, e)
            return settings
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed settings file %s", self.path)
            return settings
        # Keys are applied one by one so a bad value only resets itself
        for key in SETTING_KEYS:
            if key not in data:
                continue
            try:
                settings.update({key: data[key]})
            except (TypeError, ValueError) as e:
                logger.warning("Ignoring invalid %s in %s: %s", key, self.path, e)
        return settings

    def save(self, settings: AppSettings) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug("Settings saved to %s", self.path)
