"""SQLite storage for canvases, their documents, media blobs and settings."""

import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


def get_data_dir() -> Path:
    """Get the application data directory."""
    override = os.environ.get("KNOTBOARD_DATA_DIR")
    data_dir = Path(override).expanduser() if override else Path.home() / ".local" / "share" / "knotboard"
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get the database file path."""
    return get_data_dir() / "knotboard.db"


@dataclass
class CanvasInfo:
    """List metadata for a canvas."""
    id: int = 0
    name: str = "Untitled Canvas"
    created_at: str = ""
    updated_at: str = ""
    item_count: int = 0
    icon: Optional[str] = None


class Database:
    """Database manager for Knotboard."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or get_db_path()
        self._conn: Optional[sqlite3.Connection] = None
        self._init_db()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _init_db(self):
        """Initialize the database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS canvases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                icon TEXT,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                item_count INTEGER DEFAULT 0,
                document JSON
            );

            CREATE TABLE IF NOT EXISTS media (
                id TEXT PRIMARY KEY,
                canvas_id INTEGER NOT NULL,
                mime_type TEXT NOT NULL,
                data BLOB NOT NULL,
                created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (canvas_id) REFERENCES canvases(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value JSON
            );

            CREATE INDEX IF NOT EXISTS idx_media_canvas_id ON media(canvas_id);
        """)
        self.conn.commit()

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    # ==================== Canvas Operations ====================

    @staticmethod
    def _row_to_canvas(row: sqlite3.Row) -> CanvasInfo:
        return CanvasInfo(
            id=row["id"],
            name=row["name"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            item_count=row["item_count"] or 0,
            icon=row["icon"],
        )

    def create_canvas(self, name: str = "Untitled Canvas", icon: Optional[str] = None) -> CanvasInfo:
        """Create an empty canvas."""
        now = datetime.now().isoformat()
        cursor = self.conn.execute(
            "INSERT INTO canvases (name, icon, created_at, updated_at, item_count) VALUES (?, ?, ?, ?, 0)",
            (name, icon, now, now)
        )
        self.conn.commit()
        logger.info("Created canvas %d (%s)", cursor.lastrowid, name)
        return CanvasInfo(id=cursor.lastrowid, name=name, created_at=now, updated_at=now, icon=icon)

    def get_canvas(self, canvas_id: int) -> Optional[CanvasInfo]:
        """Get canvas metadata by ID."""
        row = self.conn.execute("SELECT * FROM canvases WHERE id = ?", (canvas_id,)).fetchone()
        return self._row_to_canvas(row) if row else None

    def list_canvases(self) -> List[CanvasInfo]:
        """All canvases, most recently updated first."""
        rows = self.conn.execute("SELECT * FROM canvases ORDER BY updated_at DESC, id DESC").fetchall()
        return [self._row_to_canvas(row) for row in rows]

    def update_canvas(self, canvas: CanvasInfo):
        """Store a canvas's name and icon."""
        canvas.updated_at = datetime.now().isoformat()
        self.conn.execute(
            "UPDATE canvases SET name = ?, icon = ?, updated_at = ? WHERE id = ?",
            (canvas.name, canvas.icon, canvas.updated_at, canvas.id)
        )
        self.conn.commit()

    def delete_canvas(self, canvas_id: int):
        """Delete a canvas together with its media."""
        self.conn.execute("DELETE FROM canvases WHERE id = ?", (canvas_id,))
        self.conn.commit()
        logger.info("Deleted canvas %d", canvas_id)

    def duplicate_canvas(self, canvas_id: int, new_name: str) -> Optional[CanvasInfo]:
        """Copy a canvas, its document and its media under a new name."""
        source = self.get_canvas(canvas_id)
        if source is None:
            return None
        copy = self.create_canvas(new_name, source.icon)
        # Media ids are globally unique, so copied blobs get a per-canvas suffix
        self.conn.execute(
            "INSERT INTO media (id, canvas_id, mime_type, data, created_at) "
            "SELECT id || '-' || ?, ?, mime_type, data, created_at FROM media WHERE canvas_id = ?",
            (copy.id, copy.id, canvas_id)
        )
        self.conn.commit()
        document = self.load_document(canvas_id)
        if document is not None:
            for item in document.get("items", []):
                if item.get("kind") in ("image", "video") and item.get("content"):
                    item["content"] = f"{item['content']}-{copy.id}"
            self.save_document(copy.id, document, source.item_count)
        return self.get_canvas(copy.id)

    # ==================== Document Operations ====================

    def load_document(self, canvas_id: int) -> Optional[Dict[str, Any]]:
        """Serialized scene of a canvas, or None if never saved."""
        row = self.conn.execute("SELECT document FROM canvases WHERE id = ?", (canvas_id,)).fetchone()
        if not row or not row["document"]:
            return None
        try:
            return json.loads(row["document"])
        except json.JSONDecodeError:
            logger.warning("Canvas %d has an unreadable document", canvas_id)
            return None

    def save_document(self, canvas_id: int, document: Dict[str, Any], item_count: int):
        """Store the serialized scene of a canvas."""
        now = datetime.now().isoformat()
        self.conn.execute(
            "UPDATE canvases SET document = ?, item_count = ?, updated_at = ? WHERE id = ?",
            (json.dumps(document), item_count, now, canvas_id)
        )
        self.conn.commit()

    # ==================== Media Operations ====================

    def put_media(self, media_id: str, canvas_id: int, mime_type: str, data: bytes):
        self.conn.execute(
            "INSERT OR REPLACE INTO media (id, canvas_id, mime_type, data) VALUES (?, ?, ?, ?)",
            (media_id, canvas_id, mime_type, sqlite3.Binary(data))
        )
        self.conn.commit()

    def get_media(self, media_id: str) -> Optional[Tuple[str, bytes]]:
        """MIME type and bytes of a media blob."""
        row = self.conn.execute("SELECT mime_type, data FROM media WHERE id = ?", (media_id,)).fetchone()
        if not row:
            return None
        return (row["mime_type"], bytes(row["data"]))

    def delete_media(self, media_id: str):
        self.conn.execute("DELETE FROM media WHERE id = ?", (media_id,))
        self.conn.commit()

    def media_ids(self, canvas_id: int) -> List[str]:
        rows = self.conn.execute("SELECT id FROM media WHERE canvas_id = ?", (canvas_id,)).fetchall()
        return [row["id"] for row in rows]

    # ==================== Settings ====================

    def get_setting(self, key: str, default: Any = None) -> Any:
        """Get an application setting."""
        row = self.conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError:
            return default

    def set_setting(self, key: str, value: Any):
        """Set an application setting."""
        self.conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, json.dumps(value))
        )
        self.conn.commit()
