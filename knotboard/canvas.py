"""GTK4 drawing area that hosts a workspace."""

import io
import logging
from typing import Callable, Optional

import cairo
import gi
gi.require_version('Gtk', '4.0')
gi.require_version('Gdk', '4.0')
from gi.repository import Gtk, Gdk, GLib

from knotboard.controller import Button, Gesture, Intent, Phase, PointerEvent
from knotboard.events import Event
from knotboard.geometry import HitKind
from knotboard.minimap import minimap_frame
from knotboard.painter import ScenePainter
from knotboard.workspace import Workspace

logger = logging.getLogger(__name__)


class GLibTimer:
    """One-shot timers on the GLib main loop."""

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> int:
        def fire():
            callback()
            return GLib.SOURCE_REMOVE
        return GLib.timeout_add(delay_ms, fire)

    def cancel(self, handle: int):
        GLib.source_remove(handle)


def decode_image(mime_type: str, data: bytes) -> Optional[cairo.ImageSurface]:
    """Decode a stored PNG into a cairo surface. Other formats draw as placeholders."""
    if mime_type != "image/png":
        return None
    try:
        return cairo.ImageSurface.create_from_png(io.BytesIO(data))
    except (cairo.Error, MemoryError) as e:
        logger.warning("Could not decode image: %s", e)
        return None


class CanvasWidget(Gtk.DrawingArea):
    """Draws the scene and feeds pointer and key input to the workspace."""

    def __init__(self, workspace: Workspace, painter: Optional[ScenePainter] = None):
        super().__init__()

        self.workspace = workspace
        self.painter = painter or ScenePainter(workspace.settings.show_grid,
                                               workspace.settings.show_minimap)

        # Pointer state
        self.last_mouse_x = 0.0
        self.last_mouse_y = 0.0
        self._drag_start = (0.0, 0.0)
        self._drag_button = Button.NONE
        self._minimap_press = False
        self._space_held = False
        self._tick_id: Optional[int] = None

        # Callbacks
        self.on_item_activated: Optional[Callable[[str], None]] = None
        self.on_connection_activated: Optional[Callable[[str], None]] = None

        workspace.render.invalidate = self.queue_draw
        workspace.controller.on_overlay_changed = self.queue_draw
        workspace.minimap.on_updated = lambda _projection: self.queue_draw()
        workspace.scheduler.on_wake = self._start_ticking
        self._token = workspace.bus.subscribe(
            lambda _message: self.queue_draw(), (Event.VIEWPORT_CHANGED,))

        # Setup widget
        self.set_draw_func(self._on_draw)
        self.set_focusable(True)
        self.set_can_focus(True)
        self.set_hexpand(True)
        self.set_vexpand(True)
        self.connect("resize", self._on_resize)

        self._setup_event_controllers()

    def _setup_event_controllers(self):
        """Setup mouse and keyboard event controllers."""
        # Press, move and release for every button
        drag_ctrl = Gtk.GestureDrag()
        drag_ctrl.set_button(0)
        drag_ctrl.connect("drag-begin", self._on_drag_begin)
        drag_ctrl.connect("drag-update", self._on_drag_update)
        drag_ctrl.connect("drag-end", self._on_drag_end)
        self.add_controller(drag_ctrl)

        # Double click opens the editor
        click_ctrl = Gtk.GestureClick()
        click_ctrl.set_button(1)
        click_ctrl.connect("pressed", self._on_click)
        self.add_controller(click_ctrl)

        motion_ctrl = Gtk.EventControllerMotion()
        motion_ctrl.connect("motion", self._on_motion)
        self.add_controller(motion_ctrl)

        scroll_ctrl = Gtk.EventControllerScroll()
        scroll_ctrl.set_flags(Gtk.EventControllerScrollFlags.BOTH_AXES)
        scroll_ctrl.connect("scroll", self._on_scroll)
        self.add_controller(scroll_ctrl)

        key_ctrl = Gtk.EventControllerKey()
        key_ctrl.connect("key-pressed", self._on_key_pressed)
        key_ctrl.connect("key-released", self._on_key_released)
        self.add_controller(key_ctrl)

    def detach(self):
        """Stop listening to the workspace, e.g. before the window closes."""
        self.workspace.bus.unsubscribe(self._token)
        self.workspace.scheduler.on_wake = None
        if self._tick_id is not None:
            self.remove_tick_callback(self._tick_id)
            self._tick_id = None

    # ==================== Settings ====================

    def set_show_grid(self, show: bool):
        self.painter.show_grid = show
        self.queue_draw()

    def set_show_minimap(self, show: bool):
        self.painter.show_minimap = show
        self.queue_draw()

    # ==================== Frame clock ====================

    def _start_ticking(self):
        if self._tick_id is None:
            self._tick_id = self.add_tick_callback(self._on_tick)

    def _on_tick(self, widget, frame_clock) -> bool:
        self.workspace.tick(frame_clock.get_frame_time() / 1_000_000)
        self.queue_draw()
        if not self.workspace.scheduler.active:
            self._tick_id = None
            return GLib.SOURCE_REMOVE
        return GLib.SOURCE_CONTINUE

    # ==================== Drawing ====================

    def _on_draw(self, area, cr, width, height):
        """Main drawing function."""
        ws = self.workspace
        self.painter.paint(
            cr, width, height, ws.render, ws.viewport,
            selection_box=ws.controller.selection_box,
            temp_connection=ws.controller.temp_connection(),
            minimap=ws.minimap.projection,
        )

    def _on_resize(self, area, width, height):
        self.workspace.resize(width, height)

    # ==================== Pointer ====================

    def _modifiers(self, controller):
        state = controller.get_current_event_state()
        additive = bool(state & (Gdk.ModifierType.SHIFT_MASK | Gdk.ModifierType.CONTROL_MASK))
        pan = self._space_held or bool(state & Gdk.ModifierType.ALT_MASK)
        return additive, pan

    def _pointer(self, phase: Phase, x: float, y: float, controller) -> PointerEvent:
        additive, pan = self._modifiers(controller)
        return PointerEvent(phase, x, y, button=self._drag_button,
                            additive=additive, pan_modifier=pan)

    def _in_minimap(self, x: float, y: float):
        if not self.painter.show_minimap or self.workspace.minimap.projection.empty:
            return None
        frame = minimap_frame(self.get_width(), self.get_height())
        return frame if frame.contains_point(x, y) else None

    def _on_drag_begin(self, gesture, start_x, start_y):
        self.grab_focus()
        self._drag_start = (start_x, start_y)
        self._drag_button = gesture.get_current_button() or Button.PRIMARY

        frame = self._in_minimap(start_x, start_y)
        if frame is not None and self._drag_button == Button.PRIMARY:
            self._minimap_press = True
            self.workspace.minimap_click(start_x - frame.x, start_y - frame.y)
            return

        self._minimap_press = False
        self.workspace.handle_pointer(self._pointer(Phase.PRESS, start_x, start_y, gesture))
        self.queue_draw()

    def _on_drag_update(self, gesture, offset_x, offset_y):
        x = self._drag_start[0] + offset_x
        y = self._drag_start[1] + offset_y
        self.last_mouse_x, self.last_mouse_y = x, y
        if self._minimap_press:
            return
        self.workspace.handle_pointer(self._pointer(Phase.MOVE, x, y, gesture))
        self.queue_draw()

    def _on_drag_end(self, gesture, offset_x, offset_y):
        if self._minimap_press:
            self._minimap_press = False
            return
        x = self._drag_start[0] + offset_x
        y = self._drag_start[1] + offset_y
        self.workspace.handle_pointer(self._pointer(Phase.RELEASE, x, y, gesture))
        self._drag_button = Button.NONE
        self.queue_draw()

    def _on_click(self, gesture, n_press, x, y):
        if n_press != 2:
            return
        hit = self.workspace.controller.hit(x, y)
        if hit.kind in (HitKind.ITEM, HitKind.RESIZE) and self.on_item_activated:
            self.on_item_activated(hit.item_id)
        elif hit.kind == HitKind.CONNECTION and self.on_connection_activated:
            self.on_connection_activated(hit.connection_id)

    def _on_motion(self, controller, x, y):
        self.last_mouse_x = x
        self.last_mouse_y = y
        # Click-to-connect follows the hover pointer; drags arrive via drag-update.
        if (self._drag_button == Button.NONE
                and self.workspace.controller.gesture == Gesture.CONNECTING):
            self.workspace.handle_pointer(PointerEvent(Phase.MOVE, x, y, button=Button.NONE))
            self.queue_draw()

    def _on_scroll(self, controller, dx, dy):
        """Zoom under the cursor; pan when the pan modifier is held."""
        _additive, pan = self._modifiers(controller)
        return self.workspace.handle_wheel(dx, dy, self.last_mouse_x, self.last_mouse_y,
                                           pan_modifier=pan)

    # ==================== Keyboard ====================

    def _on_key_pressed(self, controller, keyval, keycode, state):
        """Handle keyboard input."""
        ws = self.workspace
        if keyval == Gdk.KEY_space:
            self._space_held = True
            return True
        if keyval == Gdk.KEY_Escape:
            return ws.handle_intent(Intent.CANCEL)
        if keyval in (Gdk.KEY_Delete, Gdk.KEY_BackSpace):
            return ws.handle_intent(Intent.DELETE_SELECTION)
        if keyval == Gdk.KEY_Return and ws.controller.gesture == Gesture.IDLE:
            if len(ws.selection.item_ids) == 1 and self.on_item_activated:
                self.on_item_activated(next(iter(ws.selection.item_ids)))
                return True
        return False

    def _on_key_released(self, controller, keyval, keycode, state):
        if keyval == Gdk.KEY_space:
            self._space_held = False
