"""Scene model: items, connections, selection and the color filter."""

import copy
import logging
import uuid
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set

from knotboard.constants import (
    COLORS,
    DEFAULT_SIZES,
    FONT_SIZES,
    MIN_ITEM_HEIGHT,
    MIN_ITEM_WIDTH,
    Z_INDEX_STEP,
    Z_INDEX_THRESHOLD,
)
from knotboard.events import Event, MessageBus
from knotboard.geometry import Handle, Rect

logger = logging.getLogger(__name__)


class ItemKind(Enum):
    NOTE = "note"
    MEMO = "memo"
    LINK = "link"
    IMAGE = "image"
    VIDEO = "video"


MEDIA_KINDS = frozenset({ItemKind.IMAGE, ItemKind.VIDEO})


class Direction(Enum):
    """Arrowheads drawn on a connection."""
    NONE = "none"
    FORWARD = "forward"
    BACKWARD = "backward"
    BOTH = "both"

    def cycled(self) -> "Direction":
        """Next direction in none -> forward -> backward -> both order."""
        order = list(Direction)
        return order[(order.index(self) + 1) % len(order)]


def normalize_color(color: Optional[str]) -> Optional[str]:
    """Return the color tag if it is in the palette, otherwise None."""
    if color is None or color in COLORS:
        return color
    logger.debug("Dropping unknown color tag %r", color)
    return None


def default_content(kind: ItemKind) -> Any:
    """Empty payload for a freshly created item of the given kind."""
    if kind == ItemKind.NOTE:
        return {"title": "", "body": ""}
    if kind == ItemKind.LINK:
        return {"url": "", "title": "", "display_text": ""}
    return ""


def normalize_content(kind: ItemKind, content: Any) -> Any:
    """Coerce a payload into the shape the item kind expects."""
    if content is None:
        return default_content(kind)
    if kind == ItemKind.NOTE:
        if isinstance(content, str):
            return {"title": "", "body": content}
        return {
            "title": str(content.get("title", "")),
            "body": str(content.get("body", "")),
        }
    if kind == ItemKind.LINK:
        if isinstance(content, str):
            return {"url": content, "title": "", "display_text": content}
        url = str(content.get("url", ""))
        return {
            "url": url,
            "title": str(content.get("title", "")),
            "display_text": str(content.get("display_text", content.get("displayText", url))),
        }
    return str(content)


@dataclass
class Item:
    """A placed visual node."""
    id: str
    kind: ItemKind
    x: float
    y: float
    w: float
    h: float
    content: Any = None
    color: Optional[str] = None
    locked: bool = False
    z: int = 0
    font_size: Optional[str] = None
    manually_resized: bool = False

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.w, self.h)

    @property
    def center(self):
        return self.rect.center

    @property
    def media_id(self) -> Optional[str]:
        """Referenced media id for image/video items."""
        if self.kind in MEDIA_KINDS and self.content:
            return self.content
        return None

    def clone(self) -> "Item":
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "x": self.x,
            "y": self.y,
            "w": self.w,
            "h": self.h,
            "content": copy.deepcopy(self.content),
            "color": self.color,
            "locked": self.locked,
            "z": self.z,
            "font_size": self.font_size,
            "manually_resized": self.manually_resized,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        """Build an item from stored data, correcting bad fields.

        Raises ValueError for an unknown kind or a missing id.
        """
        kind = ItemKind(data["kind"])
        item_id = data.get("id")
        if not item_id:
            raise ValueError("item without id")
        default_w, default_h = DEFAULT_SIZES[kind.value]
        font_size = data.get("font_size")
        return cls(
            id=str(item_id),
            kind=kind,
            x=float(data.get("x", 0.0)),
            y=float(data.get("y", 0.0)),
            w=max(MIN_ITEM_WIDTH, float(data.get("w", default_w))),
            h=max(MIN_ITEM_HEIGHT, float(data.get("h", default_h))),
            content=normalize_content(kind, data.get("content")),
            color=normalize_color(data.get("color")),
            locked=bool(data.get("locked", False)),
            z=int(data.get("z", 0)),
            font_size=font_size if font_size in FONT_SIZES else None,
            manually_resized=bool(data.get("manually_resized", False)),
        )


@dataclass
class Connection:
    """An edge between two items' anchors."""
    id: str
    from_id: str
    to_id: str
    from_handle: Handle
    to_handle: Handle
    direction: Direction = Direction.NONE
    label: str = ""

    def joins(self, a: str, b: str) -> bool:
        """Check if this connection links the unordered pair (a, b)."""
        return {self.from_id, self.to_id} == {a, b}

    def touches(self, item_id: str) -> bool:
        return self.from_id == item_id or self.to_id == item_id

    def clone(self) -> "Connection":
        return copy.copy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "from_handle": self.from_handle.value,
            "to_handle": self.to_handle.value,
            "direction": self.direction.value,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Connection":
        """Build a connection from stored data. Raises ValueError/KeyError on bad data."""
        direction = data.get("direction") or Direction.NONE.value
        return cls(
            id=str(data["id"]),
            from_id=str(data["from"]),
            to_id=str(data["to"]),
            from_handle=Handle(data.get("from_handle", Handle.RIGHT.value)),
            to_handle=Handle(data.get("to_handle", Handle.LEFT.value)),
            direction=Direction(direction),
            label=str(data.get("label") or ""),
        )


class IdGenerator:
    """Counter-plus-salt id source, e.g. ``i12-3fa9c1``.

    The salt is unique per instance so ids minted after a reload never
    collide with ids from an earlier session.
    """

    def __init__(self, prefix: str):
        self.prefix = prefix
        self.counter = 0
        self.salt = uuid.uuid4().hex[:6]

    def next_id(self) -> str:
        self.counter += 1
        return f"{self.prefix}{self.counter}-{self.salt}"

    def observe(self, existing_id: str):
        """Advance the counter past a loaded id."""
        head = existing_id.split("-", 1)[0]
        if head.startswith(self.prefix):
            head = head[len(self.prefix):]
        if head.isdigit():
            self.counter = max(self.counter, int(head))


_ITEM_PATCH_FIELDS = {f.name for f in fields(Item)} - {"id", "kind", "z"}


class SceneModel:
    """Owns the items and connections of the open canvas.

    Every mutation validates first and then applies in full, announcing the
    change on the message bus. The model never references visuals.
    """

    def __init__(self, bus: Optional[MessageBus] = None):
        self.bus = bus or MessageBus()
        self.items: Dict[str, Item] = {}
        self.connections: Dict[str, Connection] = {}
        self.item_ids = IdGenerator("i")
        self.connection_ids = IdGenerator("c")
        self.highest_z = 0

    # ==================== Items ====================

    def get_item(self, item_id: str) -> Optional[Item]:
        return self.items.get(item_id)

    def create_item(self, kind, x: float, y: float, w: Optional[float] = None,
                    h: Optional[float] = None, content: Any = None,
                    color: Optional[str] = None, locked: bool = False,
                    font_size: Optional[str] = None) -> Item:
        """Create an item, place it on top and return it."""
        kind = ItemKind(kind)
        default_w, default_h = DEFAULT_SIZES[kind.value]
        item = Item(
            id=self.item_ids.next_id(),
            kind=kind,
            x=float(x),
            y=float(y),
            w=max(MIN_ITEM_WIDTH, float(w if w is not None else default_w)),
            h=max(MIN_ITEM_HEIGHT, float(h if h is not None else default_h)),
            content=normalize_content(kind, content),
            color=normalize_color(color),
            locked=locked,
            z=self._next_z(),
            font_size=font_size if kind == ItemKind.MEMO and font_size in FONT_SIZES else None,
        )
        self.items[item.id] = item
        self.bus.publish(Event.ITEM_ADDED, item.id)
        return item

    def delete_item(self, item_id: str) -> bool:
        """Delete an item, its incident connections and its media reference."""
        item = self.items.get(item_id)
        if item is None:
            return False
        for conn in self.connections_for(item_id):
            self.delete_connection(conn.id)
        del self.items[item_id]
        self.bus.publish(Event.ITEM_REMOVED, item_id)
        if item.media_id:
            self.bus.publish(Event.MEDIA_RELEASED, item.media_id)
        return True

    def mutate_item(self, item_id: str, **patch) -> Optional[Item]:
        """Apply a field patch to an item.

        Sizes are clamped to the minimum, unknown colors dropped. Unknown
        fields raise ValueError before anything changes.
        """
        item = self.items.get(item_id)
        if item is None:
            return None
        unknown = set(patch) - _ITEM_PATCH_FIELDS
        if unknown:
            raise ValueError(f"cannot patch item fields: {', '.join(sorted(unknown))}")

        values = dict(patch)
        if "w" in values:
            values["w"] = max(MIN_ITEM_WIDTH, float(values["w"]))
        if "h" in values:
            values["h"] = max(MIN_ITEM_HEIGHT, float(values["h"]))
        for key in ("x", "y"):
            if key in values:
                values[key] = float(values[key])
        if "color" in values:
            values["color"] = normalize_color(values["color"])
        if "content" in values:
            values["content"] = normalize_content(item.kind, values["content"])
        if "font_size" in values and values["font_size"] not in FONT_SIZES:
            values["font_size"] = None
        if "locked" in values:
            values["locked"] = bool(values["locked"])

        changed = False
        for key, value in values.items():
            if getattr(item, key) != value:
                setattr(item, key, value)
                changed = True
        if changed:
            self.bus.publish(Event.ITEM_CHANGED, item_id)
        return item

    def bring_to_front(self, item_id: str):
        """Give an item the next value of the shared z counter."""
        item = self.items.get(item_id)
        if item is None:
            return
        item.z = self._next_z()
        self.bus.publish(Event.ITEM_CHANGED, item_id)
        if self.highest_z > Z_INDEX_THRESHOLD:
            self.normalize_z()

    def _next_z(self) -> int:
        self.highest_z += 1
        return self.highest_z

    def normalize_z(self):
        """Renumber stacking values in steps, keeping the relative order."""
        unlocked = sorted((i for i in self.items.values() if not i.locked), key=lambda i: i.z)
        for item in self.items.values():
            if item.locked:
                item.z = 1
        for index, item in enumerate(unlocked):
            item.z = (index + 1) * Z_INDEX_STEP
        self.highest_z = len(unlocked) * Z_INDEX_STEP
        logger.debug("Renumbered z-order of %d items", len(self.items))
        for item_id in list(self.items):
            self.bus.publish(Event.ITEM_CHANGED, item_id)

    def items_in_paint_order(self) -> List[Item]:
        """Items bottom to top: locked items first, then by z."""
        return sorted(self.items.values(), key=lambda i: (not i.locked, i.z))

    # ==================== Connections ====================

    def get_connection(self, conn_id: str) -> Optional[Connection]:
        return self.connections.get(conn_id)

    def connection_between(self, a: str, b: str) -> Optional[Connection]:
        for conn in self.connections.values():
            if conn.joins(a, b):
                return conn
        return None

    def connections_for(self, item_id: str) -> List[Connection]:
        return [c for c in self.connections.values() if c.touches(item_id)]

    def create_connection(self, from_id: str, from_handle, to_id: str, to_handle,
                          direction=Direction.NONE, label: str = "") -> Optional[Connection]:
        """Connect two items, replacing any connection between the same pair.

        Self loops and unknown endpoints are ignored and return None.
        """
        if from_id == to_id:
            logger.debug("Ignoring self-loop connection on %s", from_id)
            return None
        if from_id not in self.items or to_id not in self.items:
            logger.debug("Ignoring connection to unknown item %s -> %s", from_id, to_id)
            return None
        from_handle = Handle(from_handle)
        to_handle = Handle(to_handle)
        direction = Direction(direction)

        existing = self.connection_between(from_id, to_id)
        if existing is not None:
            self.delete_connection(existing.id)

        conn = Connection(
            id=self.connection_ids.next_id(),
            from_id=from_id,
            to_id=to_id,
            from_handle=from_handle,
            to_handle=to_handle,
            direction=direction,
            label=label,
        )
        self.connections[conn.id] = conn
        self.bus.publish(Event.CONNECTION_ADDED, conn.id)
        return conn

    def delete_connection(self, conn_id: str) -> bool:
        if self.connections.pop(conn_id, None) is None:
            return False
        self.bus.publish(Event.CONNECTION_REMOVED, conn_id)
        return True

    def set_connection_direction(self, conn_id: str, direction) -> Optional[Connection]:
        conn = self.connections.get(conn_id)
        if conn is None:
            return None
        direction = Direction(direction)
        if conn.direction != direction:
            conn.direction = direction
            self.bus.publish(Event.CONNECTION_CHANGED, conn_id)
        return conn

    def set_connection_label(self, conn_id: str, label: str) -> Optional[Connection]:
        conn = self.connections.get(conn_id)
        if conn is None:
            return None
        label = (label or "").strip()
        if conn.label != label:
            conn.label = label
            self.bus.publish(Event.CONNECTION_CHANGED, conn_id)
        return conn

    # ==================== Bulk operations ====================

    def insert_item(self, item: Item):
        """Add an already-built item, keeping its id and z value."""
        self.items[item.id] = item
        self.item_ids.observe(item.id)
        self.highest_z = max(self.highest_z, item.z)
        self.bus.publish(Event.ITEM_ADDED, item.id)

    def insert_connection(self, conn: Connection) -> bool:
        """Add an already-built connection if both endpoints exist."""
        if conn.from_id == conn.to_id or conn.from_id not in self.items or conn.to_id not in self.items:
            logger.debug("Dropping dangling connection %s", conn.id)
            return False
        existing = self.connection_between(conn.from_id, conn.to_id)
        if existing is not None:
            del self.connections[existing.id]
        self.connections[conn.id] = conn
        self.connection_ids.observe(conn.id)
        self.bus.publish(Event.CONNECTION_ADDED, conn.id)
        return True

    def replace_contents(self, items: Iterable[Item], connections: Iterable[Connection]):
        """Swap the whole scene for new items and connections.

        Observers receive a single SCENE_RESET instead of per-element messages.
        Counters only move forward.
        """
        self.bus.mute()
        try:
            self.items.clear()
            self.connections.clear()
            for item in items:
                self.insert_item(item)
            for conn in connections:
                self.insert_connection(conn)
        finally:
            self.bus.unmute()
        self.bus.publish(Event.SCENE_RESET)

    def clear(self, reset_counters: bool = False):
        """Remove everything. Counters are kept unless asked otherwise."""
        self.items.clear()
        self.connections.clear()
        if reset_counters:
            self.item_ids = IdGenerator("i")
            self.connection_ids = IdGenerator("c")
            self.highest_z = 0
        self.bus.publish(Event.SCENE_RESET)

    def __len__(self):
        return len(self.items)


class Selection:
    """Selected item ids plus at most one selected connection.

    Selecting a connection clears item selection and vice versa. Removed
    elements drop out of the selection automatically.
    """

    def __init__(self, bus: MessageBus):
        self.bus = bus
        self.item_ids: Set[str] = set()
        self.connection_id: Optional[str] = None
        bus.subscribe(self._on_scene_message,
                      (Event.ITEM_REMOVED, Event.CONNECTION_REMOVED, Event.SCENE_RESET))

    def _on_scene_message(self, message):
        if message.event == Event.ITEM_REMOVED:
            if message.target_id in self.item_ids:
                self.item_ids.discard(message.target_id)
                self._changed()
        elif message.event == Event.CONNECTION_REMOVED:
            if message.target_id == self.connection_id:
                self.connection_id = None
                self._changed()
        elif self.item_ids or self.connection_id:
            self.item_ids.clear()
            self.connection_id = None
            self._changed()

    def _changed(self):
        self.bus.publish(Event.SELECTION_CHANGED)

    def is_selected(self, item_id: str) -> bool:
        return item_id in self.item_ids

    def select_item(self, item_id: str):
        """Collapse the selection to one item."""
        if self.item_ids == {item_id} and self.connection_id is None:
            return
        self.item_ids = {item_id}
        self.connection_id = None
        self._changed()

    def toggle_item(self, item_id: str):
        self.connection_id = None
        if item_id in self.item_ids:
            self.item_ids.discard(item_id)
        else:
            self.item_ids.add(item_id)
        self._changed()

    def add_items(self, item_ids: Iterable[str]):
        new_ids = set(item_ids) - self.item_ids
        if not new_ids and self.connection_id is None:
            return
        self.item_ids |= new_ids
        self.connection_id = None
        self._changed()

    def select_connection(self, conn_id: str):
        self.item_ids.clear()
        self.connection_id = conn_id
        self._changed()

    def clear(self):
        if not self.item_ids and self.connection_id is None:
            return
        self.item_ids.clear()
        self.connection_id = None
        self._changed()

    def __bool__(self):
        return bool(self.item_ids) or self.connection_id is not None


class ColorFilter:
    """Show every item, only uncolored ones, or one color tag."""

    ALL = "all"
    NONE = "none"

    def __init__(self, bus: MessageBus):
        self.bus = bus
        self.value = self.ALL

    def set(self, value: str):
        if value not in (self.ALL, self.NONE) and value not in COLORS:
            logger.warning("Unknown color filter %r, showing all items", value)
            value = self.ALL
        if value != self.value:
            self.value = value
            self.bus.publish(Event.FILTER_CHANGED)

    @property
    def active(self) -> bool:
        return self.value != self.ALL

    def accepts(self, item: Item) -> bool:
        if self.value == self.ALL:
            return True
        if self.value == self.NONE:
            return item.color is None
        return item.color == self.value

    def visible_items(self, scene: SceneModel) -> List[Item]:
        return [i for i in scene.items.values() if self.accepts(i)]

    def connection_visible(self, scene: SceneModel, conn: Connection) -> bool:
        source = scene.items.get(conn.from_id)
        target = scene.items.get(conn.to_id)
        return source is not None and target is not None and self.accepts(source) and self.accepts(target)
