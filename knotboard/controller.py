"""Pointer gesture state machine: selection, drag, resize, box-select, connect."""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Callable, Dict, Optional, Tuple

from knotboard.constants import BOX_SELECT_EPSILON, DEFAULT_SIZES, WHEEL_ZOOM_STEP
from knotboard.geometry import (
    OPPOSITE_HANDLE,
    Handle,
    HitKind,
    HitResult,
    Rect,
    handle_anchor,
    hit_test,
    nearest_handle,
)
from knotboard.scene import ColorFilter, ItemKind, SceneModel, Selection
from knotboard.undo import HistoryManager
from knotboard.viewport import Viewport

logger = logging.getLogger(__name__)


class Gesture(Enum):
    """Mutually exclusive interaction states."""
    IDLE = "idle"
    PANNING = "panning"
    BOX_SELECTING = "box_selecting"
    DRAGGING_ITEMS = "dragging_items"
    RESIZING = "resizing"
    CONNECTING = "connecting"


class Phase(Enum):
    PRESS = "press"
    MOVE = "move"
    RELEASE = "release"


class Button(IntEnum):
    """Pointer buttons, numbered like GDK."""
    NONE = 0
    PRIMARY = 1
    MIDDLE = 2
    SECONDARY = 3


class Intent(Enum):
    """Keyboard-level commands."""
    UNDO = "undo"
    REDO = "redo"
    DELETE_SELECTION = "delete_selection"
    CANCEL = "cancel"


@dataclass(frozen=True)
class PointerEvent:
    """A normalized pointer event in widget (screen) coordinates."""
    phase: Phase
    x: float
    y: float
    button: int = Button.PRIMARY
    additive: bool = False
    pan_modifier: bool = False
    in_text_field: bool = False


class Controller:
    """Turns pointer events and intents into scene and viewport changes.

    Only the positions and sizes of the items under an active drag or
    resize change mid-gesture; ``cancel()`` puts them back. Everything
    else is applied on commit.
    """

    def __init__(self, scene: SceneModel, viewport: Viewport, selection: Selection,
                 color_filter: ColorFilter, history: HistoryManager):
        self.scene = scene
        self.viewport = viewport
        self.selection = selection
        self.color_filter = color_filter
        self.history = history
        self.invert_wheel_zoom = False

        self.gesture = Gesture.IDLE
        self._last_screen: Tuple[float, float] = (0.0, 0.0)
        self._moved = False

        # Dragging
        self._drag_item_id: Optional[str] = None
        self._grab_offset: Tuple[float, float] = (0.0, 0.0)
        self._drag_origins: Dict[str, Tuple[float, float]] = {}

        # Resizing
        self._resize_item_id: Optional[str] = None
        self._resize_origin: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)
        self._resize_manual = False
        self._resize_start: Tuple[float, float] = (0.0, 0.0)

        # Box selection, screen space
        self._box_start: Optional[Tuple[float, float]] = None
        self._box_end: Optional[Tuple[float, float]] = None

        # Connecting
        self.connect_from: Optional[Tuple[str, Handle]] = None
        self.connect_pointer: Optional[Tuple[float, float]] = None

        # Callbacks
        self.on_commit: Optional[Callable[[], None]] = None
        self.on_view_changed: Optional[Callable[[], None]] = None
        self.on_overlay_changed: Optional[Callable[[], None]] = None

    # ==================== Queries ====================

    @property
    def selection_box(self) -> Optional[Rect]:
        """Screen-space rubber band while box selecting."""
        if self.gesture != Gesture.BOX_SELECTING or self._box_start is None or self._box_end is None:
            return None
        return Rect.from_points(*self._box_start, *self._box_end)

    def temp_connection(self) -> Optional[Tuple[Tuple[float, float], Handle, Tuple[float, float]]]:
        """World-space start, start handle and pointer of an unfinished connection."""
        if self.gesture != Gesture.CONNECTING or self.connect_from is None:
            return None
        item = self.scene.get_item(self.connect_from[0])
        if item is None or self.connect_pointer is None:
            return None
        handle = self.connect_from[1]
        return (handle_anchor(item.rect, handle), handle, self.connect_pointer)

    def hit(self, x: float, y: float) -> HitResult:
        return hit_test(self.scene, self.viewport, x, y, self.color_filter.accepts)

    # ==================== Dispatch ====================

    def handle_pointer(self, event: PointerEvent) -> bool:
        """Feed one pointer event. Returns True if it was consumed."""
        if event.in_text_field:
            return False
        if event.phase == Phase.PRESS:
            return self._on_press(event)
        if event.phase == Phase.MOVE:
            return self._on_move(event)
        return self._on_release(event)

    def handle_intent(self, intent: Intent) -> bool:
        if intent == Intent.CANCEL:
            return self.cancel()
        if intent == Intent.DELETE_SELECTION:
            if self.gesture != Gesture.IDLE:
                return False
            return self.delete_selection()
        # Undo/redo abandon whatever gesture is running first
        self.cancel()
        if intent == Intent.UNDO:
            return self.history.undo()
        return self.history.redo()

    def handle_wheel(self, dx: float, dy: float, x: float, y: float,
                     pan_modifier: bool = False, in_text_field: bool = False) -> bool:
        """Zoom under the cursor, or pan with the pan modifier held."""
        if in_text_field:
            return False
        if pan_modifier:
            self.viewport.pan_by(-dx * 40, -dy * 40)
            self._view_changed()
            return True
        if dy == 0:
            return False
        factor = WHEEL_ZOOM_STEP if dy < 0 else 1 / WHEEL_ZOOM_STEP
        if self.invert_wheel_zoom:
            factor = 1 / factor
        self.viewport.set_zoom(self.viewport.scale * factor, x, y)
        self._view_changed()
        return True

    # ==================== Press ====================

    def _on_press(self, event: PointerEvent) -> bool:
        self._last_screen = (event.x, event.y)
        self._moved = False

        if self.gesture == Gesture.CONNECTING:
            if event.button == Button.SECONDARY:
                return self.cancel()
            if event.button == Button.PRIMARY:
                return self._finish_connection(event.x, event.y, create_on_background=True)
            return False

        if self.gesture != Gesture.IDLE:
            return False

        hit = self.hit(event.x, event.y)

        if event.button in (Button.MIDDLE, Button.SECONDARY) or event.pan_modifier:
            if hit.kind == HitKind.BACKGROUND or event.button == Button.MIDDLE or event.pan_modifier:
                self.gesture = Gesture.PANNING
                return True
            return False

        if event.button != Button.PRIMARY:
            return False

        if hit.kind == HitKind.ANCHOR:
            return self._begin_connection(hit.item_id, hit.handle, event)
        if hit.kind == HitKind.RESIZE:
            return self._begin_resize(hit.item_id, event)
        if hit.kind == HitKind.ITEM:
            return self._press_item(hit.item_id, event)
        if hit.kind == HitKind.CONNECTION:
            self.selection.select_connection(hit.connection_id)
            return True

        if not event.additive:
            self.selection.clear()
        self.gesture = Gesture.BOX_SELECTING
        self._box_start = (event.x, event.y)
        self._box_end = (event.x, event.y)
        self._overlay_changed()
        return True

    def _press_item(self, item_id: str, event: PointerEvent) -> bool:
        item = self.scene.get_item(item_id)
        if event.additive:
            self.selection.toggle_item(item_id)
        elif not self.selection.is_selected(item_id):
            self.selection.select_item(item_id)

        if item.locked or not self.selection.is_selected(item_id):
            return True

        self.scene.bring_to_front(item_id)
        wx, wy = self.viewport.screen_to_world(event.x, event.y)
        self._drag_item_id = item_id
        self._grab_offset = (wx - item.x, wy - item.y)
        self._drag_origins = {}
        for selected_id in self.selection.item_ids:
            selected = self.scene.get_item(selected_id)
            if selected is not None and not selected.locked:
                self._drag_origins[selected_id] = (selected.x, selected.y)
        self.gesture = Gesture.DRAGGING_ITEMS
        return True

    def _begin_resize(self, item_id: str, event: PointerEvent) -> bool:
        item = self.scene.get_item(item_id)
        self.selection.select_item(item_id)
        self.scene.bring_to_front(item_id)
        self._resize_item_id = item_id
        self._resize_origin = (item.x, item.y, item.w, item.h)
        self._resize_manual = item.manually_resized
        self._resize_start = self.viewport.screen_to_world(event.x, event.y)
        self.gesture = Gesture.RESIZING
        return True

    def _begin_connection(self, item_id: str, handle: Handle, event: PointerEvent) -> bool:
        self.connect_from = (item_id, handle)
        self.connect_pointer = self.viewport.screen_to_world(event.x, event.y)
        self.gesture = Gesture.CONNECTING
        self._overlay_changed()
        return True

    # ==================== Move ====================

    def _on_move(self, event: PointerEvent) -> bool:
        if self.gesture == Gesture.IDLE:
            return False

        last_x, last_y = self._last_screen
        self._last_screen = (event.x, event.y)
        if (event.x, event.y) != (last_x, last_y):
            self._moved = True

        if self.gesture == Gesture.PANNING:
            self.viewport.pan_by(event.x - last_x, event.y - last_y)
        elif self.gesture == Gesture.BOX_SELECTING:
            self._box_end = (event.x, event.y)
            self._overlay_changed()
        elif self.gesture == Gesture.DRAGGING_ITEMS:
            self._drag_to(event.x, event.y)
        elif self.gesture == Gesture.RESIZING:
            self._resize_to(event.x, event.y)
        elif self.gesture == Gesture.CONNECTING:
            self.connect_pointer = self.viewport.screen_to_world(event.x, event.y)
            self._overlay_changed()
        return True

    def _drag_to(self, sx: float, sy: float):
        pressed = self._drag_origins.get(self._drag_item_id)
        if pressed is None:
            return
        wx, wy = self.viewport.screen_to_world(sx, sy)
        dx = wx - self._grab_offset[0] - pressed[0]
        dy = wy - self._grab_offset[1] - pressed[1]
        for item_id, (ox, oy) in self._drag_origins.items():
            self.scene.mutate_item(item_id, x=ox + dx, y=oy + dy)

    def _resize_to(self, sx: float, sy: float):
        wx, wy = self.viewport.screen_to_world(sx, sy)
        _x, _y, w, h = self._resize_origin
        self.scene.mutate_item(
            self._resize_item_id,
            w=w + wx - self._resize_start[0],
            h=h + wy - self._resize_start[1],
            manually_resized=True,
        )

    # ==================== Release ====================

    def _on_release(self, event: PointerEvent) -> bool:
        gesture = self.gesture
        if gesture == Gesture.IDLE:
            return False

        if gesture == Gesture.CONNECTING:
            # Releasing over another item's anchor completes a dragged connection
            hit = self.hit(event.x, event.y)
            if (self._moved and hit.kind == HitKind.ANCHOR
                    and hit.item_id != self.connect_from[0]):
                return self._finish_connection(event.x, event.y, create_on_background=False)
            return True

        if gesture == Gesture.BOX_SELECTING:
            self._commit_box_selection()
            self._reset_gesture()
            self._view_changed()
        elif gesture == Gesture.PANNING:
            self._reset_gesture()
            if self._moved:
                self._view_changed()
        else:
            changed = self._moved
            self._reset_gesture()
            if changed:
                self.commit()
        return True

    def _commit_box_selection(self):
        box = self.selection_box
        if box is None or box.w <= BOX_SELECT_EPSILON or box.h <= BOX_SELECT_EPSILON:
            return
        x1, y1 = self.viewport.screen_to_world(box.x, box.y)
        x2, y2 = self.viewport.screen_to_world(box.right, box.bottom)
        world_box = Rect.from_points(x1, y1, x2, y2)
        hits = [
            item.id for item in self.scene.items.values()
            if self.color_filter.accepts(item) and item.rect.intersects(world_box)
        ]
        if hits:
            self.selection.add_items(hits)

    def _finish_connection(self, sx: float, sy: float, create_on_background: bool) -> bool:
        source_id, source_handle = self.connect_from
        source = self.scene.get_item(source_id)
        hit = self.hit(sx, sy)
        target_id = None
        target_handle = None

        if hit.kind == HitKind.ANCHOR:
            target_id, target_handle = hit.item_id, hit.handle
        elif hit.kind in (HitKind.ITEM, HitKind.RESIZE):
            target_id = hit.item_id
            wx, wy = self.viewport.screen_to_world(sx, sy)
            target_handle = nearest_handle(self.scene.items[target_id].rect, wx, wy)
        elif hit.kind == HitKind.BACKGROUND and create_on_background and source is not None:
            wx, wy = self.viewport.screen_to_world(sx, sy)
            w, h = DEFAULT_SIZES[ItemKind.MEMO.value]
            memo = self.scene.create_item(ItemKind.MEMO, wx - w / 2, wy - h / 2, color=source.color)
            target_id = memo.id
            target_handle = OPPOSITE_HANDLE[source_handle]

        if target_id is None or target_id == source_id or source is None:
            self.cancel()
            return True

        conn = self.scene.create_connection(source_id, source_handle, target_id, target_handle)
        self._reset_gesture()
        if conn is not None:
            self.commit()
        return True

    # ==================== Commands ====================

    def cancel(self) -> bool:
        """Abandon the active gesture, undoing any live geometry changes."""
        gesture = self.gesture
        if gesture == Gesture.IDLE:
            return False
        if gesture == Gesture.DRAGGING_ITEMS:
            for item_id, (ox, oy) in self._drag_origins.items():
                self.scene.mutate_item(item_id, x=ox, y=oy)
        elif gesture == Gesture.RESIZING and self._resize_item_id is not None:
            x, y, w, h = self._resize_origin
            self.scene.mutate_item(self._resize_item_id, x=x, y=y, w=w, h=h,
                                   manually_resized=self._resize_manual)
        logger.debug("Cancelled %s gesture", gesture.value)
        self._reset_gesture()
        return True

    def delete_selection(self) -> bool:
        """Delete the selected items, or the selected connection."""
        if self.selection.connection_id is not None:
            deleted = self.scene.delete_connection(self.selection.connection_id)
        else:
            deleted = False
            for item_id in list(self.selection.item_ids):
                deleted = self.scene.delete_item(item_id) or deleted
        self.selection.clear()
        if deleted:
            self.commit()
        return deleted

    def commit(self):
        """Mark a mutation boundary: snapshot history and notify the host."""
        self.history.snapshot()
        if self.on_commit:
            self.on_commit()

    def _reset_gesture(self):
        had_overlay = self.gesture in (Gesture.BOX_SELECTING, Gesture.CONNECTING)
        self.gesture = Gesture.IDLE
        self._drag_item_id = None
        self._drag_origins = {}
        self._resize_item_id = None
        self._box_start = None
        self._box_end = None
        self.connect_from = None
        self.connect_pointer = None
        if had_overlay:
            self._overlay_changed()

    def _view_changed(self):
        if self.on_view_changed:
            self.on_view_changed()

    def _overlay_changed(self):
        if self.on_overlay_changed:
            self.on_overlay_changed()
