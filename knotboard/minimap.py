"""Scaled overview of the scene with the viewport indicator."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Mapping, Optional, Tuple

from knotboard.constants import (
    COLOR_MAP,
    MINIMAP_HEIGHT,
    MINIMAP_MARGIN,
    MINIMAP_PADDING,
    MINIMAP_PAN_DURATION,
    MINIMAP_WIDTH,
    NEUTRAL_COLOR,
)
from knotboard.events import SCENE_EVENTS, Event, MessageBus
from knotboard.geometry import Rect
from knotboard.scheduler import CallbackTask, FrameScheduler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MinimapRect:
    item_id: str
    rect: Rect
    color: str


@dataclass
class MinimapProjection:
    """Everything the overview draws, in overview-local pixels."""
    min_x: float = 0.0
    min_y: float = 0.0
    scale: float = 0.0
    items: List[MinimapRect] = field(default_factory=list)
    lines: List[Tuple[float, float, float, float]] = field(default_factory=list)
    viewport: Optional[Rect] = None

    @property
    def empty(self) -> bool:
        return not self.items

    def to_minimap(self, wx: float, wy: float) -> Tuple[float, float]:
        return ((wx - self.min_x) * self.scale, (wy - self.min_y) * self.scale)

    def world_point(self, mx: float, my: float) -> Optional[Tuple[float, float]]:
        """Invert the projection; None when there is nothing to project."""
        if self.scale <= 0:
            return None
        return (mx / self.scale + self.min_x, my / self.scale + self.min_y)


def project(items: Iterable, connections: Iterable, items_by_id: Mapping,
            viewport_bounds: Rect,
            is_visible: Optional[Callable] = None,
            width: float = MINIMAP_WIDTH, height: float = MINIMAP_HEIGHT) -> MinimapProjection:
    """Map visible items, connections and the viewport into the overview."""
    visible = [i for i in items if is_visible is None or is_visible(i)]
    if not visible:
        return MinimapProjection()

    bounds = Rect.bounding(i.rect for i in visible).padded(MINIMAP_PADDING)
    scale = min(width / bounds.w, height / bounds.h)
    projection = MinimapProjection(min_x=bounds.x, min_y=bounds.y, scale=scale)

    visible_ids = {i.id for i in visible}
    for conn in connections:
        if conn.from_id not in visible_ids or conn.to_id not in visible_ids:
            continue
        fx, fy = projection.to_minimap(*items_by_id[conn.from_id].center)
        tx, ty = projection.to_minimap(*items_by_id[conn.to_id].center)
        projection.lines.append((fx, fy, tx, ty))

    for item in visible:
        x, y = projection.to_minimap(item.x, item.y)
        color = COLOR_MAP.get(item.color, NEUTRAL_COLOR)
        projection.items.append(MinimapRect(
            item.id, Rect(x, y, max(3.0, item.w * scale), max(2.0, item.h * scale)), color))

    vx, vy = projection.to_minimap(viewport_bounds.x, viewport_bounds.y)
    projection.viewport = Rect(vx, vy, viewport_bounds.w * scale, viewport_bounds.h * scale)
    return projection


class MinimapProjector:
    """Keeps a projection current, recomputing at most once per frame."""

    def __init__(self, scene, viewport, color_filter, scheduler: FrameScheduler, bus: MessageBus):
        self.scene = scene
        self.viewport = viewport
        self.color_filter = color_filter
        self.scheduler = scheduler
        self.projection = MinimapProjection()
        self.updates = 0
        self._pending: Optional[CallbackTask] = None

        # Callbacks
        self.on_updated: Optional[Callable[[MinimapProjection], None]] = None

        watched = set(SCENE_EVENTS) | {Event.VIEWPORT_CHANGED, Event.FILTER_CHANGED}
        self._token = bus.subscribe(lambda _message: self.request_update(), watched)
        self._bus = bus

    def request_update(self):
        """Ask for a recompute on the next frame; bursts coalesce."""
        if self._pending is not None and not self._pending.cancelled:
            return
        self._pending = self.scheduler.add(CallbackTask(self._run))

    def _run(self):
        self._pending = None
        self.update_now()

    def update_now(self) -> MinimapProjection:
        self.projection = project(
            self.scene.items.values(),
            self.scene.connections.values(),
            self.scene.items,
            self.viewport.visible_world_rect(),
            self.color_filter.accepts,
        )
        self.updates += 1
        if self.on_updated:
            self.on_updated(self.projection)
        return self.projection

    def click(self, mx: float, my: float, animator) -> bool:
        """Pan the view to the world point under an overview click."""
        point = self.projection.world_point(mx, my)
        if point is None:
            return False
        animator.pan_to(point[0], point[1], duration=MINIMAP_PAN_DURATION)
        return True

    def detach(self):
        self._bus.unsubscribe(self._token)
        if self._pending is not None:
            self.scheduler.cancel(self._pending)
            self._pending = None


def minimap_frame(view_width: float, view_height: float) -> Rect:
    """Screen rectangle of the overview, anchored to the bottom-right corner."""
    return Rect(
        view_width - MINIMAP_WIDTH - MINIMAP_MARGIN,
        view_height - MINIMAP_HEIGHT - MINIMAP_MARGIN,
        MINIMAP_WIDTH,
        MINIMAP_HEIGHT,
    )
