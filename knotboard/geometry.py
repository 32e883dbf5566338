"""Geometry helpers: rectangles, handle anchors, connection curves, hit tests."""

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Iterable, List, Optional, Sequence, Tuple

from knotboard.constants import (
    ANCHOR_RADIUS,
    CONNECTION_HIT_DISTANCE,
    CURVE_MAX_OFFSET,
    CURVE_RATIO,
    RESIZE_GRIP,
)

if TYPE_CHECKING:
    from knotboard.scene import Item, SceneModel
    from knotboard.viewport import Viewport

Point = Tuple[float, float]


class Handle(Enum):
    """Connection anchor on an item's bounding box."""
    TOP = "top"
    BOTTOM = "bottom"
    LEFT = "left"
    RIGHT = "right"


# Outward unit normal of each handle
HANDLE_DIRS = {
    Handle.TOP: (0.0, -1.0),
    Handle.BOTTOM: (0.0, 1.0),
    Handle.LEFT: (-1.0, 0.0),
    Handle.RIGHT: (1.0, 0.0),
}

# Handle on the opposite side, used when spawning children
OPPOSITE_HANDLE = {
    Handle.TOP: Handle.BOTTOM,
    Handle.BOTTOM: Handle.TOP,
    Handle.LEFT: Handle.RIGHT,
    Handle.RIGHT: Handle.LEFT,
}


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle."""
    x: float
    y: float
    w: float
    h: float

    @property
    def right(self) -> float:
        return self.x + self.w

    @property
    def bottom(self) -> float:
        return self.y + self.h

    @property
    def center(self) -> Point:
        return (self.x + self.w / 2, self.y + self.h / 2)

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point is inside this rectangle (edges included)."""
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def intersects(self, other: "Rect") -> bool:
        return rect_intersects(self, other)

    def padded(self, dx: float, dy: Optional[float] = None) -> "Rect":
        """Grow the rectangle by dx/dy on every side."""
        if dy is None:
            dy = dx
        return Rect(self.x - dx, self.y - dy, self.w + dx * 2, self.h + dy * 2)

    @classmethod
    def from_points(cls, x1: float, y1: float, x2: float, y2: float) -> "Rect":
        """Build a normalized rectangle from two opposite corners."""
        return cls(min(x1, x2), min(y1, y2), abs(x2 - x1), abs(y2 - y1))

    @classmethod
    def bounding(cls, rects: Iterable["Rect"]) -> Optional["Rect"]:
        """Smallest rectangle covering all given rectangles, or None."""
        rects = list(rects)
        if not rects:
            return None
        min_x = min(r.x for r in rects)
        min_y = min(r.y for r in rects)
        max_x = max(r.right for r in rects)
        max_y = max(r.bottom for r in rects)
        return cls(min_x, min_y, max_x - min_x, max_y - min_y)


def rect_intersects(a: Rect, b: Rect) -> bool:
    """AABB overlap test. Partial overlap counts; touching edges do not."""
    return a.x < b.right and b.x < a.right and a.y < b.bottom and b.y < a.bottom


def handle_anchor(rect: Rect, handle: Handle) -> Point:
    """World-space position of the named anchor (edge mid-point)."""
    if handle == Handle.TOP:
        return (rect.x + rect.w / 2, rect.y)
    if handle == Handle.BOTTOM:
        return (rect.x + rect.w / 2, rect.bottom)
    if handle == Handle.LEFT:
        return (rect.x, rect.y + rect.h / 2)
    return (rect.right, rect.y + rect.h / 2)


def nearest_handle(rect: Rect, px: float, py: float) -> Handle:
    """Handle whose anchor is closest to the given point."""
    def dist(handle: Handle) -> float:
        ax, ay = handle_anchor(rect, handle)
        return math.hypot(ax - px, ay - py)
    return min(Handle, key=dist)


@dataclass(frozen=True)
class CubicCurve:
    """Cubic Bezier segment: start, two control points, end."""
    start: Point
    c1: Point
    c2: Point
    end: Point

    def point_at(self, t: float) -> Point:
        mt = 1 - t
        a = mt * mt * mt
        b = 3 * mt * mt * t
        c = 3 * mt * t * t
        d = t * t * t
        return (
            a * self.start[0] + b * self.c1[0] + c * self.c2[0] + d * self.end[0],
            a * self.start[1] + b * self.c1[1] + c * self.c2[1] + d * self.end[1],
        )

    def tangent_angle(self, t: float) -> float:
        """Angle of the curve's derivative at t, in radians."""
        mt = 1 - t
        dx = (3 * mt * mt * (self.c1[0] - self.start[0])
              + 6 * mt * t * (self.c2[0] - self.c1[0])
              + 3 * t * t * (self.end[0] - self.c2[0]))
        dy = (3 * mt * mt * (self.c1[1] - self.start[1])
              + 6 * mt * t * (self.c2[1] - self.c1[1])
              + 3 * t * t * (self.end[1] - self.c2[1]))
        if dx == 0 and dy == 0:
            return math.atan2(self.end[1] - self.start[1], self.end[0] - self.start[0])
        return math.atan2(dy, dx)

    @property
    def midpoint(self) -> Point:
        return self.point_at(0.5)

    def sample(self, segments: int = 24) -> List[Point]:
        """Polyline approximation with segments + 1 points."""
        return [self.point_at(i / segments) for i in range(segments + 1)]


def curve_path(p1: Point, p2: Point,
               from_handle: Optional[Handle] = None,
               to_handle: Optional[Handle] = None) -> CubicCurve:
    """Control description for the S-curve between two points.

    The control offset is min(distance * 0.3, 80). Control points follow the
    handle normals when handles are known and the dominant horizontal
    direction otherwise.
    """
    x1, y1 = p1
    x2, y2 = p2
    dx = x2 - x1
    dist = math.hypot(dx, y2 - y1)
    offset = min(dist * CURVE_RATIO, CURVE_MAX_OFFSET)
    sign = 1.0 if dx >= 0 else -1.0

    from_dir = HANDLE_DIRS[from_handle] if from_handle else (sign, 0.0)
    to_dir = HANDLE_DIRS[to_handle] if to_handle else (-sign, 0.0)

    c1 = (x1 + from_dir[0] * offset, y1 + from_dir[1] * offset)
    c2 = (x2 + to_dir[0] * offset, y2 + to_dir[1] * offset)
    return CubicCurve(start=(x1, y1), c1=c1, c2=c2, end=(x2, y2))


def connection_curve(from_rect: Rect, from_handle: Handle,
                     to_rect: Rect, to_handle: Handle) -> CubicCurve:
    """Curve between two items' anchors."""
    return curve_path(
        handle_anchor(from_rect, from_handle),
        handle_anchor(to_rect, to_handle),
        from_handle,
        to_handle,
    )


def arrow_head(curve: CubicCurve, at_end: bool = True, size: float = 10.0) -> Tuple[Point, Point, Point]:
    """Triangle for an arrowhead at either end of a curve."""
    if at_end:
        tip = curve.end
        angle = curve.tangent_angle(1.0)
    else:
        tip = curve.start
        angle = curve.tangent_angle(0.0) + math.pi
    spread = math.pi / 7
    left = (tip[0] - size * math.cos(angle - spread), tip[1] - size * math.sin(angle - spread))
    right = (tip[0] - size * math.cos(angle + spread), tip[1] - size * math.sin(angle + spread))
    return (tip, left, right)


def _segment_distance(p: Point, a: Point, b: Point) -> float:
    abx = b[0] - a[0]
    aby = b[1] - a[1]
    length_sq = abx * abx + aby * aby
    if length_sq == 0:
        return math.hypot(p[0] - a[0], p[1] - a[1])
    t = ((p[0] - a[0]) * abx + (p[1] - a[1]) * aby) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(p[0] - (a[0] + abx * t), p[1] - (a[1] + aby * t))


def point_near_curve(curve: CubicCurve, px: float, py: float, tolerance: float) -> bool:
    """Check if a point lies within tolerance of the curve."""
    points = curve.sample()
    return any(
        _segment_distance((px, py), points[i], points[i + 1]) <= tolerance
        for i in range(len(points) - 1)
    )


def find_free_position(x: float, y: float, occupied: Sequence[Point]) -> Point:
    """Nudge a new item's position until no existing item sits on top of it."""
    tries = 0
    while tries < 50 and any(abs(x - ox) < 10 and abs(y - oy) < 10 for ox, oy in occupied):
        x += 6
        y += 6
        tries += 1
    return (x, y)


# ==================== Hit Testing ====================

class HitKind(Enum):
    """What a screen point landed on."""
    BACKGROUND = "background"
    ITEM = "item"
    RESIZE = "resize"
    ANCHOR = "anchor"
    CONNECTION = "connection"


@dataclass(frozen=True)
class HitResult:
    kind: HitKind
    item_id: Optional[str] = None
    handle: Optional[Handle] = None
    connection_id: Optional[str] = None


BACKGROUND_HIT = HitResult(HitKind.BACKGROUND)


def hit_test(scene: "SceneModel", viewport: "Viewport", sx: float, sy: float,
             is_visible: Optional[Callable[["Item"], bool]] = None) -> HitResult:
    """Find what lies under a screen point.

    Items are checked topmost first; for each item anchors win over the
    resize grip, which wins over the body. Connections are checked after
    every item.
    """
    wx, wy = viewport.screen_to_world(sx, sy)
    scale = viewport.scale
    anchor_radius = ANCHOR_RADIUS / scale
    grip = RESIZE_GRIP / scale

    for item in reversed(scene.items_in_paint_order()):
        if is_visible is not None and not is_visible(item):
            continue
        rect = item.rect
        if not rect.padded(anchor_radius).contains_point(wx, wy):
            continue
        for handle in Handle:
            ax, ay = handle_anchor(rect, handle)
            if math.hypot(ax - wx, ay - wy) <= anchor_radius:
                return HitResult(HitKind.ANCHOR, item_id=item.id, handle=handle)
        if not rect.contains_point(wx, wy):
            continue
        if not item.locked and wx >= rect.right - grip and wy >= rect.bottom - grip:
            return HitResult(HitKind.RESIZE, item_id=item.id)
        return HitResult(HitKind.ITEM, item_id=item.id)

    tolerance = CONNECTION_HIT_DISTANCE / scale
    for conn in scene.connections.values():
        source = scene.items.get(conn.from_id)
        target = scene.items.get(conn.to_id)
        if source is None or target is None:
            continue
        if is_visible is not None and not (is_visible(source) and is_visible(target)):
            continue
        curve = connection_curve(source.rect, conn.from_handle, target.rect, conn.to_handle)
        if point_near_curve(curve, wx, wy, tolerance):
            return HitResult(HitKind.CONNECTION, connection_id=conn.id)

    return BACKGROUND_HIT
