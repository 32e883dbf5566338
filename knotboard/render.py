"""One-way reflection of the scene into drawable visuals."""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from knotboard.constants import COLOR_MAP, NEUTRAL_COLOR
from knotboard.events import Event, Message, MessageBus
from knotboard.geometry import CubicCurve, Rect, connection_curve
from knotboard.scene import ColorFilter, Connection, Direction, Item, ItemKind, SceneModel, Selection

logger = logging.getLogger(__name__)


def hex_to_rgb(hex_color: str) -> tuple:
    """Convert '#rrggbb' to an (r, g, b) tuple of floats."""
    value = hex_color.lstrip("#")
    return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))


def item_text(item: Item) -> tuple:
    """Title and body lines to draw for an item."""
    content = item.content
    if item.kind == ItemKind.NOTE:
        return (content.get("title", ""), content.get("body", ""))
    if item.kind == ItemKind.LINK:
        return (content.get("title") or content.get("display_text", ""), content.get("url", ""))
    if item.kind == ItemKind.MEMO:
        return ("", content)
    return (item.kind.value.capitalize(), "")


@dataclass
class ItemVisual:
    item_id: str
    kind: ItemKind
    rect: Rect
    accent: str
    title: str
    body: str
    locked: bool
    z: int
    font_size: Optional[str] = None
    selected: bool = False
    visible: bool = True
    media: Any = None


@dataclass
class ConnectionVisual:
    conn_id: str
    curve: CubicCurve
    tint: str
    arrow_start: bool
    arrow_end: bool
    label: str
    selected: bool = False
    visible: bool = True


class RenderSync:
    """Maintains id -> visual tables from bus messages only.

    The scene model never sees these objects. ``invalidate`` is called
    whenever something drawn has changed.
    """

    def __init__(self, scene: SceneModel, selection: Selection, color_filter: ColorFilter,
                 bus: MessageBus, resolve_media: Optional[Callable[[str], Any]] = None):
        self.scene = scene
        self.selection = selection
        self.color_filter = color_filter
        self.resolve_media = resolve_media
        self.item_visuals: Dict[str, ItemVisual] = {}
        self.connection_visuals: Dict[str, ConnectionVisual] = {}

        # Callbacks
        self.invalidate: Optional[Callable[[], None]] = None

        self._bus = bus
        self._token = bus.subscribe(self._on_message)
        self.rebuild()

    def detach(self):
        self._bus.unsubscribe(self._token)

    # ==================== Building ====================

    def _build_item(self, item: Item) -> ItemVisual:
        title, body = item_text(item)
        media = None
        if item.media_id and self.resolve_media:
            media = self.resolve_media(item.media_id)
        return ItemVisual(
            item_id=item.id,
            kind=item.kind,
            rect=item.rect,
            accent=COLOR_MAP.get(item.color, NEUTRAL_COLOR),
            title=title,
            body=body,
            locked=item.locked,
            z=item.z,
            font_size=item.font_size,
            selected=self.selection.is_selected(item.id),
            visible=self.color_filter.accepts(item),
            media=media,
        )

    def _build_connection(self, conn: Connection) -> Optional[ConnectionVisual]:
        source = self.scene.get_item(conn.from_id)
        target = self.scene.get_item(conn.to_id)
        if source is None or target is None:
            return None
        return ConnectionVisual(
            conn_id=conn.id,
            curve=connection_curve(source.rect, conn.from_handle, target.rect, conn.to_handle),
            tint=COLOR_MAP.get(source.color, NEUTRAL_COLOR),
            arrow_start=conn.direction in (Direction.BACKWARD, Direction.BOTH),
            arrow_end=conn.direction in (Direction.FORWARD, Direction.BOTH),
            label=conn.label,
            selected=self.selection.connection_id == conn.id,
            visible=self.color_filter.accepts(source) and self.color_filter.accepts(target),
        )

    def _sync_item(self, item_id: str):
        item = self.scene.get_item(item_id)
        if item is None:
            self.item_visuals.pop(item_id, None)
            return
        self.item_visuals[item_id] = self._build_item(item)
        for conn in self.scene.connections_for(item_id):
            self._sync_connection(conn.id)

    def _sync_connection(self, conn_id: str):
        conn = self.scene.get_connection(conn_id)
        visual = self._build_connection(conn) if conn is not None else None
        if visual is None:
            self.connection_visuals.pop(conn_id, None)
        else:
            self.connection_visuals[conn_id] = visual

    def rebuild(self):
        """Recreate every visual from the scene."""
        self.item_visuals = {item.id: self._build_item(item) for item in self.scene.items.values()}
        self.connection_visuals = {}
        for conn in self.scene.connections.values():
            visual = self._build_connection(conn)
            if visual is not None:
                self.connection_visuals[conn.id] = visual

    def _refresh_flags(self):
        for visual in self.item_visuals.values():
            item = self.scene.get_item(visual.item_id)
            visual.selected = self.selection.is_selected(visual.item_id)
            visual.visible = item is not None and self.color_filter.accepts(item)
        for visual in self.connection_visuals.values():
            conn = self.scene.get_connection(visual.conn_id)
            visual.selected = self.selection.connection_id == visual.conn_id
            visual.visible = conn is not None and self.color_filter.connection_visible(self.scene, conn)

    # ==================== Messages ====================

    def _on_message(self, message: Message):
        event = message.event
        if event in (Event.ITEM_ADDED, Event.ITEM_CHANGED):
            self._sync_item(message.target_id)
        elif event == Event.ITEM_REMOVED:
            self.item_visuals.pop(message.target_id, None)
        elif event in (Event.CONNECTION_ADDED, Event.CONNECTION_CHANGED, Event.CONNECTION_REMOVED):
            self._sync_connection(message.target_id)
        elif event == Event.SCENE_RESET:
            self.rebuild()
        elif event in (Event.SELECTION_CHANGED, Event.FILTER_CHANGED):
            self._refresh_flags()
        elif event == Event.MEDIA_RELEASED:
            return
        if self.invalidate:
            self.invalidate()

    # ==================== Queries ====================

    def items_in_paint_order(self) -> List[ItemVisual]:
        """Visible item visuals, bottom to top."""
        visuals = [v for v in self.item_visuals.values() if v.visible]
        return sorted(visuals, key=lambda v: (not v.locked, v.z))

    def visible_connections(self) -> List[ConnectionVisual]:
        return [v for v in self.connection_visuals.values() if v.visible]
