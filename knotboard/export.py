"""Export and import of canvases as JSON documents and PNG images."""

import base64
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import cairo

from knotboard.database import get_data_dir
from knotboard.geometry import Rect
from knotboard.painter import ScenePainter
from knotboard.render import RenderSync
from knotboard.serialization import LoadResult, deserialize_scene, serialize_scene

logger = logging.getLogger(__name__)

EXPORT_FORMAT = "knotboard"


class CanvasExporter:
    """Handles exporting a workspace's canvas to files."""

    PADDING = 50

    def __init__(self, workspace, painter: Optional[ScenePainter] = None):
        self.workspace = workspace
        self.painter = painter or ScenePainter(show_grid=False, show_minimap=False)

    def to_document(self, include_media: bool = True) -> Dict[str, Any]:
        """Serialized scene, optionally with media blobs embedded as base64."""
        ws = self.workspace
        document = serialize_scene(ws.scene, ws.viewport)
        document["format"] = EXPORT_FORMAT
        if ws.canvas is not None:
            document["name"] = ws.canvas.name
        if include_media:
            media = {}
            for item in ws.scene.items.values():
                if not item.media_id:
                    continue
                stored = ws.db.get_media(item.media_id)
                if stored is None:
                    continue
                mime_type, data = stored
                media[item.media_id] = {
                    "mime_type": mime_type,
                    "data": base64.b64encode(data).decode("ascii"),
                }
            document["media"] = media
        return document

    def export_json(self, filepath, include_media: bool = True) -> bool:
        """Write the canvas to a JSON file."""
        document = self.to_document(include_media)
        Path(filepath).write_text(json.dumps(document, indent=2), encoding="utf-8")
        logger.info("Exported %d items to %s", len(document["items"]), filepath)
        return True

    def export_png(self, filepath, scale: float = 2.0, transparent: bool = False) -> bool:
        """Render the visible items to a PNG image. False if there is nothing to draw."""
        render: RenderSync = self.workspace.render
        visuals = render.items_in_paint_order()
        bounds = Rect.bounding(v.rect for v in visuals)
        if bounds is None:
            return False

        padding = self.PADDING
        width = int((bounds.w + padding * 2) * scale)
        height = int((bounds.h + padding * 2) * scale)

        # Create surface
        surface = cairo.ImageSurface(cairo.FORMAT_ARGB32, width, height)
        cr = cairo.Context(surface)

        # Background
        if not transparent:
            cr.set_source_rgb(*self.painter.COLORS['bg_primary'])
            cr.paint()

        # Scale and translate
        cr.scale(scale, scale)
        cr.translate(-bounds.x + padding, -bounds.y + padding)
        self.painter.paint_scene(cr, render)

        surface.write_to_png(str(filepath))
        logger.info("Exported PNG %dx%d to %s", width, height, filepath)
        return True


def read_document(filepath) -> Dict[str, Any]:
    """Load an exported JSON document.

    Raises ValueError if the file is not a canvas document.
    """
    try:
        data = json.loads(Path(filepath).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"not a JSON file: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise ValueError("file does not contain a canvas")
    return data


def import_document(workspace, data: Dict[str, Any]) -> LoadResult:
    """Replace the open canvas's contents with an imported document.

    Embedded media is stored under fresh ids. Connections to missing items
    are dropped. The import is one undoable step.
    """
    if workspace.canvas is None:
        raise ValueError("no canvas is open")
    data = dict(data)
    remap = {}
    for old_id, blob in (data.get("media") or {}).items():
        try:
            raw = base64.b64decode(blob["data"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping unreadable media %s: %s", old_id, e)
            continue
        remap[old_id] = workspace.media.put(raw, blob.get("mime_type", "application/octet-stream"))

    items = []
    for raw in data.get("items", []):
        if isinstance(raw, dict) and isinstance(raw.get("content"), str) and raw["content"] in remap:
            raw = dict(raw, content=remap[raw["content"]])
        items.append(raw)
    data["items"] = items

    workspace.controller.cancel()
    result = deserialize_scene(data, workspace.scene, workspace.viewport,
                               is_resident=workspace.media.ensure)
    workspace.commit()
    logger.info("Imported %d items, %d connections (%d dropped)",
                result.items, result.connections, result.dropped_connections)
    return result


def get_export_dir() -> Path:
    """Get the default export directory."""
    export_dir = get_data_dir() / "exports"
    export_dir.mkdir(exist_ok=True)
    return export_dir
