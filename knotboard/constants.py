"""Shared limits, palette and timing constants."""

from typing import Dict, Optional, Tuple

# Color tags, in palette order
COLORS: Tuple[str, ...] = ("red", "orange", "yellow", "green", "blue", "purple", "pink")

COLOR_MAP: Dict[str, str] = {
    "red": "#ef4444",
    "orange": "#f97316",
    "yellow": "#eab308",
    "green": "#22c55e",
    "blue": "#3b82f6",
    "purple": "#8b5cf6",
    "pink": "#ec4899",
}

NEUTRAL_COLOR = "#8b8b8b"

FONT_SIZES = (None, "medium", "large", "xlarge")

# Item geometry
MIN_ITEM_WIDTH = 140.0
MIN_ITEM_HEIGHT = 80.0

DEFAULT_SIZES: Dict[str, Tuple[float, float]] = {
    "note": (260.0, 180.0),
    "memo": (220.0, 140.0),
    "link": (260.0, 116.0),
    "image": (300.0, 220.0),
    "video": (320.0, 240.0),
}

CHILD_GAP = 100.0

# Viewport
MIN_SCALE = 0.1
MAX_SCALE = 5.0
WHEEL_ZOOM_STEP = 1.1
BUTTON_ZOOM_STEP = 1.2

FIT_PAD_X = 60.0
FIT_PAD_Y = 80.0
FIT_MAX_SCALE = 2.0
FIT_MARGIN = 0.92

# Animation durations, seconds
ZOOM_DURATION = 0.15
FIT_DURATION = 0.25
PAN_DURATION = 0.3
MINIMAP_PAN_DURATION = 0.2

# Connection curves
CURVE_RATIO = 0.3
CURVE_MAX_OFFSET = 80.0

# Hit-testing, screen pixels
ANCHOR_RADIUS = 9.0
RESIZE_GRIP = 16.0
CONNECTION_HIT_DISTANCE = 6.0
BOX_SELECT_EPSILON = 2.0

# Minimap
MINIMAP_WIDTH = 160.0
MINIMAP_HEIGHT = 100.0
MINIMAP_PADDING = 80.0
MINIMAP_MARGIN = 16.0

# History and persistence
MAX_HISTORY = 50
AUTOSAVE_DELAY_MS = 1500

# Z-order renumbering
Z_INDEX_THRESHOLD = 10000
Z_INDEX_STEP = 10

SCHEMA_VERSION = 1

# Memo height multiplier per font size
FONT_HEIGHT_FACTORS: Dict[Optional[str], float] = {
    None: 1.0,
    "medium": 1.15,
    "large": 1.4,
    "xlarge": 1.7,
}

DUPLICATE_OFFSET = 24.0
