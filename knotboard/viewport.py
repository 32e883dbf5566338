"""Viewport transform between world and screen space, plus its animations."""

import logging
from typing import Iterable, Optional, Tuple

from knotboard.constants import (
    FIT_DURATION,
    FIT_MARGIN,
    FIT_MAX_SCALE,
    FIT_PAD_X,
    FIT_PAD_Y,
    MAX_SCALE,
    MIN_SCALE,
    PAN_DURATION,
    ZOOM_DURATION,
)
from knotboard.events import Event, MessageBus
from knotboard.geometry import Rect
from knotboard.scheduler import FrameScheduler, Transition

logger = logging.getLogger(__name__)


def clamp_scale(scale: float) -> float:
    return max(MIN_SCALE, min(MAX_SCALE, scale))


class Viewport:
    """Affine map ``screen = world * scale + offset`` applied per axis."""

    def __init__(self, bus: Optional[MessageBus] = None, width: float = 800.0, height: float = 600.0):
        self.bus = bus
        self.scale = 1.0
        self.offset_x = 0.0
        self.offset_y = 0.0
        self.width = width
        self.height = height

    def _changed(self):
        if self.bus is not None:
            self.bus.publish(Event.VIEWPORT_CHANGED)

    def world_to_screen(self, x: float, y: float) -> Tuple[float, float]:
        return (x * self.scale + self.offset_x, y * self.scale + self.offset_y)

    def screen_to_world(self, x: float, y: float) -> Tuple[float, float]:
        return ((x - self.offset_x) / self.scale, (y - self.offset_y) / self.scale)

    def set_transform(self, scale: float, offset_x: float, offset_y: float):
        """Replace the whole transform; scale is clamped."""
        self.scale = clamp_scale(scale)
        self.offset_x = offset_x
        self.offset_y = offset_y
        self._changed()

    def reset(self):
        """Identity transform."""
        self.set_transform(1.0, 0.0, 0.0)

    def zoom_offset(self, target: float, pivot_x: float, pivot_y: float) -> Tuple[float, float, float]:
        """Clamped scale and the offset that keeps the pivot's world point in place."""
        target = clamp_scale(target)
        ratio = target / self.scale
        return (
            target,
            pivot_x - (pivot_x - self.offset_x) * ratio,
            pivot_y - (pivot_y - self.offset_y) * ratio,
        )

    def set_zoom(self, target: float, pivot_x: float, pivot_y: float):
        """Zoom to a scale, anchoring the world point under the pivot."""
        self.set_transform(*self.zoom_offset(target, pivot_x, pivot_y))

    def pan_by(self, dx: float, dy: float):
        """Shift the view by a screen-space delta."""
        if dx == 0 and dy == 0:
            return
        self.offset_x += dx
        self.offset_y += dy
        self._changed()

    def resize(self, width: float, height: float):
        if width == self.width and height == self.height:
            return
        self.width = width
        self.height = height
        self._changed()

    @property
    def center(self) -> Tuple[float, float]:
        """Screen-space centre of the viewport."""
        return (self.width / 2, self.height / 2)

    def visible_world_rect(self) -> Rect:
        """World-space extent currently on screen."""
        x, y = self.screen_to_world(0, 0)
        return Rect(x, y, self.width / self.scale, self.height / self.scale)

    def fit_transform(self, rects: Iterable[Rect]) -> Tuple[float, float, float]:
        """Transform that centres the padded bounds of rects in the view."""
        bounds = Rect.bounding(rects)
        if bounds is None:
            return (1.0, 0.0, 0.0)
        padded = bounds.padded(FIT_PAD_X, FIT_PAD_Y)
        fit = min(self.width / padded.w, self.height / padded.h)
        scale = clamp_scale(min(fit, FIT_MAX_SCALE) * FIT_MARGIN)
        cx, cy = bounds.center
        return (scale, self.width / 2 - cx * scale, self.height / 2 - cy * scale)

    def center_on_transform(self, world_x: float, world_y: float) -> Tuple[float, float, float]:
        """Transform that keeps the scale and centres the world point."""
        return (
            self.scale,
            self.width / 2 - world_x * self.scale,
            self.height / 2 - world_y * self.scale,
        )

    def state(self) -> Tuple[float, float, float]:
        return (self.scale, self.offset_x, self.offset_y)


class ViewportAnimator:
    """Eased viewport transitions run as frame tasks.

    Only one transition is in flight; starting another cancels it.
    """

    def __init__(self, viewport: Viewport, scheduler: FrameScheduler):
        self.viewport = viewport
        self.scheduler = scheduler
        self._current: Optional[Transition] = None

    @property
    def animating(self) -> bool:
        return self._current is not None and not self._current.finished

    def cancel(self):
        if self._current is not None:
            self.scheduler.cancel(self._current)
            self._current = None

    def _start(self, transition: Transition) -> Transition:
        self.cancel()
        self._current = transition
        return self.scheduler.add(transition)

    def zoom_to(self, target: float, pivot_x: Optional[float] = None,
                pivot_y: Optional[float] = None, duration: float = ZOOM_DURATION) -> Transition:
        """Animate to a scale; every frame keeps the pivot anchored."""
        vp = self.viewport
        if pivot_x is None or pivot_y is None:
            pivot_x, pivot_y = vp.center
        target = clamp_scale(target)
        start_scale = vp.scale
        start_x = vp.offset_x
        start_y = vp.offset_y

        def update(values):
            scale = values[0]
            ratio = scale / start_scale
            vp.set_transform(
                scale,
                pivot_x - (pivot_x - start_x) * ratio,
                pivot_y - (pivot_y - start_y) * ratio,
            )

        return self._start(Transition((start_scale,), (target,), duration, update))

    def zoom_by(self, factor: float, pivot_x: Optional[float] = None,
                pivot_y: Optional[float] = None) -> Transition:
        """Animate a relative zoom from the current (or in-flight target) scale."""
        base = self.viewport.scale
        if self.animating and len(self._current.end) == 1:
            base = self._current.end[0]
        return self.zoom_to(base * factor, pivot_x, pivot_y)

    def animate_to(self, scale: float, offset_x: float, offset_y: float,
                   duration: float) -> Transition:
        vp = self.viewport
        return self._start(Transition(
            vp.state(),
            (clamp_scale(scale), offset_x, offset_y),
            duration,
            lambda values: vp.set_transform(*values),
        ))

    def fit_to_content(self, rects: Iterable[Rect]) -> Transition:
        """Animate so that every given rect is visible."""
        return self.animate_to(*self.viewport.fit_transform(rects), duration=FIT_DURATION)

    def pan_to(self, world_x: float, world_y: float, duration: float = PAN_DURATION) -> Transition:
        """Animate the world point to the centre of the view."""
        return self.animate_to(*self.viewport.center_on_transform(world_x, world_y), duration=duration)
