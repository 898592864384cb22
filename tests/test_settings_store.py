from __future__ import annotations

import json

import pytest

from nvtelemetry.models import SelfTaskTrigger
from settings_store import AppSettings, SettingsStore, default_settings_path


def test_missing_file_yields_defaults(settings_store) -> None:
    settings = settings_store.load()

    assert settings == AppSettings()
    assert settings.self_task_trigger is SelfTaskTrigger.AT_LOGON


def test_save_then_load(settings_store) -> None:
    settings = AppSettings(file_logging=False, background_task_trigger=int(SelfTaskTrigger.HOURLY))

    settings_store.save(settings)

    assert settings_store.load() == settings
    assert settings_store.load().self_task_trigger is SelfTaskTrigger.HOURLY


def test_corrupt_file_yields_defaults(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(str(path)).load() == AppSettings()


def test_invalid_trigger_in_file_keeps_other_settings(tmp_path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"file_logging": False, "startup_update": False, "background_task_trigger": 9}),
        encoding="utf-8",
    )

    settings = SettingsStore(str(path)).load()

    assert settings == AppSettings(file_logging=False, startup_update=False, background_task_trigger=0)
    assert settings.self_task_trigger is SelfTaskTrigger.AT_LOGON


def test_out_of_range_trigger_falls_back() -> None:
    assert AppSettings(background_task_trigger=42).self_task_trigger is SelfTaskTrigger.AT_LOGON


def test_update_ignores_unknown_keys() -> None:
    settings = AppSettings()

    settings.update({"background_task_trigger": "daily", "theme": "dark"})

    assert settings.background_task_trigger == 1
    assert "theme" not in settings.to_dict()


def test_update_rejects_unknown_trigger() -> None:
    with pytest.raises(ValueError):
        AppSettings().update({"background_task_trigger": "weekly"})


def test_settings_path_from_environment(monkeypatch, tmp_path) -> None:
    target = str(tmp_path / "custom.json")
    monkeypatch.setenv("NVTELEMETRY_SETTINGS_FILE", target)

    assert default_settings_path() == target
    assert SettingsStore().path == target
