"""Application settings and environment overrides."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional

from knotboard.constants import AUTOSAVE_DELAY_MS, FONT_SIZES, MAX_HISTORY

logger = logging.getLogger(__name__)

SETTINGS_KEY = "app_settings"


@dataclass
class AppSettings:
    """User preferences shared by every canvas."""
    history_capacity: int = MAX_HISTORY
    autosave_delay_ms: int = AUTOSAVE_DELAY_MS
    show_grid: bool = True
    show_minimap: bool = True
    invert_wheel_zoom: bool = False
    default_font_size: Optional[str] = None
    last_canvas_id: Optional[int] = None

    def __post_init__(self):
        self.history_capacity = max(2, int(self.history_capacity))
        self.autosave_delay_ms = max(0, int(self.autosave_delay_ms))
        if self.default_font_size not in FONT_SIZES:
            self.default_font_size = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, data: Optional[str]) -> "AppSettings":
        if not data:
            return cls()
        try:
            return cls.from_dict(json.loads(data))
        except json.JSONDecodeError:
            return cls()

    @classmethod
    def from_dict(cls, data) -> "AppSettings":
        if not isinstance(data, dict):
            return cls()
        # Filter to only known fields to handle schema evolution
        known = {f.name for f in cls.__dataclass_fields__.values()}
        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except (TypeError, ValueError) as e:
            logger.warning("Ignoring bad settings: %s", e)
            return cls()


def load_settings(db) -> AppSettings:
    """Read settings from the database settings table."""
    return AppSettings.from_dict(db.get_setting(SETTINGS_KEY, {}))


def save_settings(db, settings: AppSettings):
    db.set_setting(SETTINGS_KEY, asdict(settings))


def log_level_from_env(default: str = "WARNING") -> int:
    """Logging level named by KNOTBOARD_LOG_LEVEL."""
    name = os.environ.get("KNOTBOARD_LOG_LEVEL", default).upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def skip_preflight() -> bool:
    return os.environ.get("KNOTBOARD_SKIP_PREFLIGHT", "") == "1"
