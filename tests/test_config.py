import logging

from knotboard.config import (
    AppSettings,
    load_settings,
    log_level_from_env,
    save_settings,
    skip_preflight,
)


def test_defaults():
    settings = AppSettings()
    assert settings.history_capacity == 50
    assert settings.autosave_delay_ms == 1500
    assert settings.show_grid and settings.show_minimap
    assert settings.last_canvas_id is None


def test_values_are_clamped():
    settings = AppSettings(history_capacity=0, autosave_delay_ms=-5, default_font_size="giant")
    assert settings.history_capacity == 2
    assert settings.autosave_delay_ms == 0
    assert settings.default_font_size is None


def test_from_dict_ignores_unknown_keys():
    settings = AppSettings.from_dict({"show_grid": False, "theme": "dark"})
    assert settings.show_grid is False


def test_from_dict_rejects_bad_values():
    assert AppSettings.from_dict({"history_capacity": "lots"}) == AppSettings()
    assert AppSettings.from_dict(["not", "a", "dict"]) == AppSettings()


def test_json_round_trip():
    settings = AppSettings(invert_wheel_zoom=True, last_canvas_id=3)
    assert AppSettings.from_json(settings.to_json()) == settings
    assert AppSettings.from_json("{broken") == AppSettings()
    assert AppSettings.from_json(None) == AppSettings()


def test_database_round_trip(db):
    assert load_settings(db) == AppSettings()
    settings = AppSettings(show_minimap=False, default_font_size="large")
    save_settings(db, settings)
    assert load_settings(db) == settings


def test_log_level_from_env(monkeypatch):
    monkeypatch.delenv("KNOTBOARD_LOG_LEVEL", raising=False)
    assert log_level_from_env() == logging.WARNING
    monkeypatch.setenv("KNOTBOARD_LOG_LEVEL", "debug")
    assert log_level_from_env() == logging.DEBUG
    monkeypatch.setenv("KNOTBOARD_LOG_LEVEL", "chatty")
    assert log_level_from_env() == logging.WARNING


def test_skip_preflight(monkeypatch):
    monkeypatch.delenv("KNOTBOARD_SKIP_PREFLIGHT", raising=False)
    assert not skip_preflight()
    monkeypatch.setenv("KNOTBOARD_SKIP_PREFLIGHT", "1")
    assert skip_preflight()
