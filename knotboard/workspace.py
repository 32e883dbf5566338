"""The open-canvas session: wires the scene, controller, history and storage."""

import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional

from knotboard.config import AppSettings
from knotboard.constants import (
    BUTTON_ZOOM_STEP,
    CHILD_GAP,
    DEFAULT_SIZES,
    DUPLICATE_OFFSET,
    FONT_HEIGHT_FACTORS,
)
from knotboard.controller import Controller, Intent, PointerEvent
from knotboard.database import CanvasInfo, Database
from knotboard.events import Event, Message, MessageBus
from knotboard.geometry import OPPOSITE_HANDLE, Handle, find_free_position
from knotboard.media import Decoder, MediaStore
from knotboard.minimap import MinimapProjector
from knotboard.render import RenderSync
from knotboard.scene import ColorFilter, Direction, Item, ItemKind, SceneModel, Selection
from knotboard.scheduler import Debouncer, FrameScheduler, ManualTimer, Timer
from knotboard.serialization import LoadResult, deserialize_scene, serialize_scene
from knotboard.undo import HistoryManager
from knotboard.viewport import Viewport, ViewportAnimator

logger = logging.getLogger(__name__)


class Workspace:
    """One live canvas at a time, with debounced persistence.

    Every command that changes the scene ends with ``commit()``: a history
    snapshot followed by a scheduled autosave.
    """

    def __init__(self, db: Database, settings: Optional[AppSettings] = None,
                 timer: Optional[Timer] = None, decoder: Optional[Decoder] = None):
        self.db = db
        self.settings = settings or AppSettings()
        self.timer = timer or ManualTimer()

        self.bus = MessageBus()
        self.scene = SceneModel(self.bus)
        self.viewport = Viewport(self.bus)
        self.selection = Selection(self.bus)
        self.color_filter = ColorFilter(self.bus)
        self.scheduler = FrameScheduler()
        self.animator = ViewportAnimator(self.viewport, self.scheduler)
        self.media = MediaStore(db, decoder=decoder)
        self.history = HistoryManager(self.scene, self.settings.history_capacity,
                                      is_resident=self.media.ensure)
        self.controller = Controller(self.scene, self.viewport, self.selection,
                                     self.color_filter, self.history)
        self.controller.invert_wheel_zoom = self.settings.invert_wheel_zoom
        self.controller.on_commit = self.schedule_save
        self.controller.on_view_changed = self.schedule_save
        self.render = RenderSync(self.scene, self.selection, self.color_filter,
                                 self.bus, resolve_media=self.media.resolve)
        self.minimap = MinimapProjector(self.scene, self.viewport, self.color_filter,
                                        self.scheduler, self.bus)
        self.autosave = Debouncer(self.timer, self.settings.autosave_delay_ms, self.save)

        self.canvas: Optional[CanvasInfo] = None
        self.last_load: Optional[LoadResult] = None
        self.search_results: List[str] = []
        self.search_index = -1

        # Callbacks
        self.on_save_failed: Optional[Callable[[Exception], None]] = None
        self.on_saved: Optional[Callable[[CanvasInfo], None]] = None
        self.on_canvas_changed: Optional[Callable[[CanvasInfo], None]] = None

        self.bus.subscribe(self._on_media_released, (Event.MEDIA_RELEASED,))
        self.bus.subscribe(self._on_scene_reset, (Event.SCENE_RESET,))

    def _on_media_released(self, message: Message):
        self.media.release(message.target_id)

    def _on_scene_reset(self, message: Message):
        self.media.retain(item.media_id for item in self.scene.items.values() if item.media_id)

    # ==================== Canvas lifecycle ====================

    def new_canvas(self, name: str = "Untitled Canvas", icon: Optional[str] = None) -> CanvasInfo:
        """Create an empty canvas and make it the open one."""
        canvas = self.db.create_canvas(name, icon)
        return self.open_canvas(canvas.id)

    def open_canvas(self, canvas_id: int) -> CanvasInfo:
        """Tear down the current canvas and load another.

        An active gesture is abandoned before the pending autosave for the
        old canvas is written, and in-flight animations are cancelled. Raises LookupError for an unknown id.
        """
        canvas = self.db.get_canvas(canvas_id)
        if canvas is None:
            raise LookupError(f"canvas {canvas_id} does not exist")

        self.controller.cancel()
        if self.canvas is not None:
            self.autosave.flush()
        self.autosave.cancel()
        self.animator.cancel()
        self.scheduler.cancel_all()

        self.selection.clear()
        self.color_filter.set(ColorFilter.ALL)
        self.clear_search()
        self.media.clear()
        self.media.canvas_id = canvas.id
        self.scene.clear(reset_counters=True)
        self.viewport.reset()

        document = self.db.load_document(canvas.id)
        if document:
            media_ids = [
                item.get("content") for item in document.get("items", [])
                if isinstance(item, dict) and item.get("kind") in ("image", "video") and item.get("content")
            ]
            self.media.load_all(media_ids)
            self.last_load = deserialize_scene(document, self.scene, self.viewport,
                                               is_resident=self.media.is_resident)
            logger.info("Opened canvas %d: %d items, %d connections",
                        canvas.id, self.last_load.items, self.last_load.connections)
        else:
            self.last_load = LoadResult()
            logger.info("Opened empty canvas %d", canvas.id)

        self.canvas = canvas
        self.history.reset()
        self.minimap.request_update()
        if self.on_canvas_changed:
            self.on_canvas_changed(canvas)
        return canvas

    def rename_canvas(self, name: str):
        if self.canvas is None:
            return
        self.canvas.name = name.strip() or self.canvas.name
        self.db.update_canvas(self.canvas)

    def save(self) -> bool:
        """Write the scene to storage now. Failures leave memory untouched."""
        if self.canvas is None:
            return False
        document = serialize_scene(self.scene, self.viewport)
        referenced = [item.media_id for item in self.scene.items.values() if item.media_id]
        try:
            self.db.save_document(self.canvas.id, document, len(self.scene))
            self.media.purge_unreferenced(referenced)
        except (sqlite3.Error, OSError) as e:
            logger.error("Saving canvas %d failed: %s", self.canvas.id, e)
            if self.on_save_failed:
                self.on_save_failed(e)
            return False
        self.canvas.item_count = len(self.scene)
        logger.debug("Saved canvas %d", self.canvas.id)
        if self.on_saved:
            self.on_saved(self.canvas)
        return True

    def schedule_save(self):
        """Debounced save; bursts of edits become one write."""
        if self.canvas is not None:
            self.autosave.trigger()

    def flush(self):
        """Write any pending autosave immediately."""
        self.autosave.flush()

    def close(self):
        """Flush pending work and detach observers."""
        self.controller.cancel()
        self.flush()
        self.scheduler.cancel_all()
        self.render.detach()
        self.minimap.detach()
        self.canvas = None

    def commit(self):
        self.controller.commit()

    # ==================== Input ====================

    def handle_pointer(self, event: PointerEvent) -> bool:
        return self.controller.handle_pointer(event)

    def handle_wheel(self, dx: float, dy: float, x: float, y: float,
                     pan_modifier: bool = False, in_text_field: bool = False) -> bool:
        return self.controller.handle_wheel(dx, dy, x, y, pan_modifier, in_text_field)

    def handle_intent(self, intent: Intent) -> bool:
        handled = self.controller.handle_intent(intent)
        if handled and intent in (Intent.UNDO, Intent.REDO):
            self.schedule_save()
        return handled

    def undo(self) -> bool:
        return self.handle_intent(Intent.UNDO)

    def redo(self) -> bool:
        return self.handle_intent(Intent.REDO)

    def delete_selection(self) -> bool:
        return self.handle_intent(Intent.DELETE_SELECTION)

    def tick(self, now: float):
        """Advance animations and coalesced work; called once per frame."""
        self.scheduler.tick(now)

    # ==================== Item commands ====================

    def _occupied(self):
        return [(item.x, item.y) for item in self.scene.items.values()]

    def _place(self, kind: ItemKind, x: float, y: float, **kwargs) -> Item:
        x, y = find_free_position(x, y, self._occupied())
        item = self.scene.create_item(kind, x, y, **kwargs)
        self.selection.select_item(item.id)
        return item

    def view_center(self, kind: ItemKind):
        """World position that centres a new item of the given kind."""
        w, h = DEFAULT_SIZES[kind.value]
        cx, cy = self.viewport.screen_to_world(*self.viewport.center)
        return (cx - w / 2, cy - h / 2)

    def create_note(self, x: float, y: float, title: str = "", body: str = "",
                    color: Optional[str] = None) -> Item:
        item = self._place(ItemKind.NOTE, x, y, content={"title": title, "body": body}, color=color)
        self.commit()
        return item

    def create_memo(self, x: float, y: float, text: str = "", color: Optional[str] = None) -> Item:
        font_size = self.settings.default_font_size
        w, h = DEFAULT_SIZES[ItemKind.MEMO.value]
        item = self._place(ItemKind.MEMO, x, y, w=w, h=round(h * FONT_HEIGHT_FACTORS[font_size]),
                           content=text, color=color, font_size=font_size)
        self.commit()
        return item

    def create_link(self, x: float, y: float, url: str, title: str = "",
                    color: Optional[str] = None) -> Item:
        content = {"url": url, "title": title, "display_text": url}
        item = self._place(ItemKind.LINK, x, y, content=content, color=color)
        self.commit()
        return item

    def create_media(self, kind, x: float, y: float, data: bytes, mime_type: str) -> Item:
        """Store a blob and place an image or video item showing it."""
        kind = ItemKind(kind)
        if kind not in (ItemKind.IMAGE, ItemKind.VIDEO):
            raise ValueError(f"{kind.value} items do not hold media")
        media_id = self.media.put(data, mime_type)
        item = self._place(kind, x, y, content=media_id)
        self.commit()
        return item

    def add_child(self, parent_id: str, direction: Handle) -> Optional[Item]:
        """Spawn a connected memo beside an item on the given side."""
        parent = self.scene.get_item(parent_id)
        if parent is None:
            return None
        direction = Handle(direction)
        cw, ch = DEFAULT_SIZES[ItemKind.MEMO.value]
        if direction == Handle.TOP:
            x, y = parent.x + parent.w / 2 - cw / 2, parent.y - ch - CHILD_GAP
        elif direction == Handle.BOTTOM:
            x, y = parent.x + parent.w / 2 - cw / 2, parent.y + parent.h + CHILD_GAP
        elif direction == Handle.LEFT:
            x, y = parent.x - cw - CHILD_GAP, parent.y + (parent.h - ch) / 2
        else:
            x, y = parent.x + parent.w + CHILD_GAP, parent.y + (parent.h - ch) / 2
        child = self._place(ItemKind.MEMO, x, y, w=cw, h=ch, color=parent.color,
                            font_size=self.settings.default_font_size)
        self.scene.create_connection(parent.id, direction, child.id, OPPOSITE_HANDLE[direction])
        self.commit()
        return child

    def duplicate_selection(self) -> List[Item]:
        """Copy the selected items next to the originals."""
        copies = []
        for item_id in list(self.selection.item_ids):
            source = self.scene.get_item(item_id)
            if source is None or source.media_id:
                continue
            x, y = find_free_position(source.x + DUPLICATE_OFFSET, source.y + DUPLICATE_OFFSET,
                                      self._occupied())
            copies.append(self.scene.create_item(
                source.kind, x, y, w=source.w, h=source.h, content=source.content,
                color=source.color, font_size=source.font_size))
        if copies:
            self.selection.clear()
            self.selection.add_items(c.id for c in copies)
            self.commit()
        return copies

    def edit_content(self, item_id: str, content: Any) -> bool:
        """Replace an item's text payload after an editor commits."""
        item = self.scene.get_item(item_id)
        if item is None or item.media_id:
            return False
        self.scene.mutate_item(item_id, content=content)
        self.commit()
        return True

    def set_color(self, color: Optional[str]):
        """Tag every selected item with a palette color (None clears)."""
        for item_id in self.selection.item_ids:
            self.scene.mutate_item(item_id, color=color)
        if self.selection.item_ids:
            self.commit()

    def set_font_size(self, font_size: Optional[str]):
        changed = False
        for item_id in self.selection.item_ids:
            item = self.scene.get_item(item_id)
            if item is not None and item.kind == ItemKind.MEMO:
                self.scene.mutate_item(item_id, font_size=font_size)
                changed = True
        if changed:
            self.commit()

    def toggle_lock(self):
        """Lock the selection, or unlock it if everything is locked."""
        items = [self.scene.items[i] for i in self.selection.item_ids if i in self.scene.items]
        if not items:
            return
        locked = not all(item.locked for item in items)
        for item in items:
            self.scene.mutate_item(item.id, locked=locked)
        self.commit()

    def bring_to_front(self):
        for item_id in self.selection.item_ids:
            self.scene.bring_to_front(item_id)
        if self.selection.item_ids:
            self.commit()

    # ==================== Connection commands ====================

    def _target_connection(self, conn_id: Optional[str]) -> Optional[str]:
        return conn_id or self.selection.connection_id

    def set_connection_direction(self, direction, conn_id: Optional[str] = None) -> bool:
        conn_id = self._target_connection(conn_id)
        if conn_id is None or self.scene.set_connection_direction(conn_id, direction) is None:
            return False
        self.commit()
        return True

    def cycle_connection_direction(self, conn_id: Optional[str] = None) -> bool:
        conn = self.scene.get_connection(self._target_connection(conn_id) or "")
        if conn is None:
            return False
        return self.set_connection_direction(conn.direction.cycled(), conn.id)

    def set_connection_label(self, label: str, conn_id: Optional[str] = None) -> bool:
        conn_id = self._target_connection(conn_id)
        if conn_id is None or self.scene.set_connection_label(conn_id, label) is None:
            return False
        self.commit()
        return True

    def connect(self, from_id: str, from_handle, to_id: str, to_handle,
                direction=Direction.NONE) -> bool:
        """Programmatic connection between two items."""
        conn = self.scene.create_connection(from_id, from_handle, to_id, to_handle, direction)
        if conn is None:
            return False
        self.commit()
        return True

    # ==================== Search ====================

    def search(self, query: str) -> List[str]:
        """Ids of visible items whose text contains ``query``, in reading order.

        Matching is case-insensitive over note titles and bodies, memo text
        and link titles and URLs. The cursor restarts before the first match.
        """
        needle = query.strip().casefold()
        self.search_index = -1
        if not needle:
            self.search_results = []
            return []
        matches = [item for item in self.color_filter.visible_items(self.scene)
                   if needle in _searchable_text(item).casefold()]
        matches.sort(key=lambda item: (item.y, item.x))
        self.search_results = [item.id for item in matches]
        logger.debug("Search %r matched %d items", query, len(self.search_results))
        return list(self.search_results)

    def search_next(self) -> Optional[str]:
        return self._step_search(1)

    def search_prev(self) -> Optional[str]:
        return self._step_search(-1)

    def _step_search(self, step: int) -> Optional[str]:
        """Select the next live match, wrapping, and centre the view on it."""
        results, index = self.search_results, self.search_index
        live = [i for i in results if i in self.scene.items]
        if 0 <= index < len(results):
            # Keep the cursor in place when earlier matches were deleted.
            before = sum(1 for i in results[:index] if i in self.scene.items)
            if results[index] in self.scene.items or step < 0:
                index = before
            else:
                index = before - 1
        self.search_results = live
        if not live:
            self.search_index = -1
            return None
        if index < 0 and step < 0:
            index = len(live) - 1
        else:
            index = (index + step) % len(live)
        self.search_index = index
        item = self.scene.items[live[index]]
        self.selection.select_item(item.id)
        self.pan_to(*item.center)
        return item.id

    def clear_search(self):
        self.search_results = []
        self.search_index = -1

    # ==================== View commands ====================

    def set_filter(self, value: str):
        """Show all items, only uncolored ones or one color."""
        self.color_filter.set(value)
        hidden = [i for i in self.selection.item_ids
                  if i in self.scene.items and not self.color_filter.accepts(self.scene.items[i])]
        if hidden:
            remaining = self.selection.item_ids - set(hidden)
            self.selection.clear()
            self.selection.add_items(remaining)

    def fit(self):
        rects = [item.rect for item in self.color_filter.visible_items(self.scene)]
        self.animator.fit_to_content(rects)
        self.schedule_save()

    def zoom_in(self):
        self.animator.zoom_by(BUTTON_ZOOM_STEP)
        self.schedule_save()

    def zoom_out(self):
        self.animator.zoom_by(1 / BUTTON_ZOOM_STEP)
        self.schedule_save()

    def reset_zoom(self):
        self.animator.zoom_to(1.0)
        self.schedule_save()

    def pan_to(self, world_x: float, world_y: float):
        self.animator.pan_to(world_x, world_y)
        self.schedule_save()

    def minimap_click(self, mx: float, my: float) -> bool:
        moved = self.minimap.click(mx, my, self.animator)
        if moved:
            self.schedule_save()
        return moved

    def resize(self, width: float, height: float):
        self.viewport.resize(width, height)

    def snapshot_document(self) -> Dict[str, Any]:
        return serialize_scene(self.scene, self.viewport)


def _searchable_text(item: Item) -> str:
    content = item.content
    if item.kind == ItemKind.NOTE:
        return "\n".join((content.get("title", ""), content.get("body", "")))
    if item.kind == ItemKind.MEMO:
        return content or ""
    if item.kind == ItemKind.LINK:
        return "\n".join(content.get(key) or "" for key in ("title", "display_text", "url"))
    return ""
