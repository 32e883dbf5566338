"""Plain-data form of a scene, shared by storage, history and export."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from knotboard.constants import SCHEMA_VERSION
from knotboard.scene import Connection, Item, SceneModel
from knotboard.viewport import Viewport

logger = logging.getLogger(__name__)


@dataclass
class LoadResult:
    """What a deserialize call kept and dropped."""
    items: int = 0
    connections: int = 0
    skipped_items: int = 0
    dropped_connections: int = 0


def serialize_scene(scene: SceneModel, viewport: Optional[Viewport] = None) -> Dict[str, Any]:
    """Convert the scene (and optionally the viewport) to JSON-safe data."""
    data: Dict[str, Any] = {
        "version": SCHEMA_VERSION,
        "items": [item.to_dict() for item in scene.items.values()],
        "connections": [conn.to_dict() for conn in scene.connections.values()],
        "counters": {
            "item_id": scene.item_ids.counter,
            "connection_id": scene.connection_ids.counter,
            "highest_z": scene.highest_z,
        },
    }
    if viewport is not None:
        data["viewport"] = {
            "scale": viewport.scale,
            "offset_x": viewport.offset_x,
            "offset_y": viewport.offset_y,
        }
    return data


def deserialize_scene(data: Dict[str, Any], scene: SceneModel,
                      viewport: Optional[Viewport] = None,
                      is_resident: Optional[Callable[[str], bool]] = None) -> LoadResult:
    """Replace the scene's contents with serialized data.

    Items of unknown kind or with unavailable media are skipped; connections
    whose endpoints are missing are dropped. Nothing here raises for bad
    entries, so a partly damaged document still loads.
    """
    result = LoadResult()
    items = []
    for raw in data.get("items") or []:
        try:
            item = Item.from_dict(raw)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Skipping unreadable item %r: %s", raw.get("id") if isinstance(raw, dict) else raw, e)
            result.skipped_items += 1
            continue
        if item.media_id and is_resident is not None and not is_resident(item.media_id):
            logger.warning("Skipping %s %s: media %s is not available", item.kind.value, item.id, item.media_id)
            result.skipped_items += 1
            continue
        items.append(item)

    item_ids = {item.id for item in items}
    connections = []
    for raw in data.get("connections") or []:
        try:
            conn = Connection.from_dict(raw)
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            logger.warning("Dropping unreadable connection: %s", e)
            result.dropped_connections += 1
            continue
        if conn.from_id not in item_ids or conn.to_id not in item_ids or conn.from_id == conn.to_id:
            logger.debug("Dropping connection %s with missing endpoint", conn.id)
            result.dropped_connections += 1
            continue
        connections.append(conn)

    scene.replace_contents(items, connections)
    result.items = len(scene.items)
    result.connections = len(scene.connections)
    result.dropped_connections += len(connections) - result.connections

    counters = data.get("counters") or {}
    try:
        item_counter = int(counters.get("item_id", 0))
        connection_counter = int(counters.get("connection_id", 0))
        highest_z = int(counters.get("highest_z", 0))
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Ignoring unreadable counters: %s", e)
    else:
        scene.item_ids.counter = max(scene.item_ids.counter, item_counter)
        scene.connection_ids.counter = max(scene.connection_ids.counter, connection_counter)
        scene.highest_z = max(scene.highest_z, highest_z)

    if viewport is not None:
        _restore_viewport(data.get("viewport"), viewport)
    return result


def _restore_viewport(view: Any, viewport: Viewport):
    if not view:
        viewport.reset()
        return
    try:
        transform = (float(view.get("scale", 1.0)),
                     float(view.get("offset_x", 0.0)),
                     float(view.get("offset_y", 0.0)))
    except (ValueError, TypeError, AttributeError) as e:
        logger.warning("Resetting unreadable viewport: %s", e)
        viewport.reset()
        return
    if not all(math.isfinite(value) for value in transform):
        logger.warning("Resetting non-finite viewport %r", transform)
        viewport.reset()
        return
    viewport.set_transform(*transform)
