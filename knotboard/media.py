"""Media store: blobs live in the database, decoded handles stay in memory."""

import logging
import sqlite3
import uuid
from typing import Any, Callable, Dict, Iterable, Optional

from knotboard.database import Database

logger = logging.getLogger(__name__)

Decoder = Callable[[str, bytes], Any]


class MediaStore:
    """Maps media ids to resident, displayable handles.

    The scene only ever holds ids. ``decoder`` turns stored bytes into
    whatever the painter draws; without one the raw bytes are the handle.
    """

    LOAD_ATTEMPTS = 3

    def __init__(self, db: Database, canvas_id: Optional[int] = None,
                 decoder: Optional[Decoder] = None):
        self.db = db
        self.canvas_id = canvas_id
        self.decoder = decoder
        self._resident: Dict[str, Any] = {}

    def _decode(self, mime_type: str, data: bytes) -> Any:
        if self.decoder is None:
            return data
        return self.decoder(mime_type, data)

    def put(self, data: bytes, mime_type: str) -> str:
        """Store a new blob for the current canvas and return its id."""
        if self.canvas_id is None:
            raise ValueError("no canvas is open")
        media_id = f"m-{uuid.uuid4().hex[:12]}"
        self.db.put_media(media_id, self.canvas_id, mime_type, data)
        self._resident[media_id] = self._decode(mime_type, data)
        return media_id

    def load(self, media_id: str) -> bool:
        """Bring a stored blob into memory. Returns False if unavailable."""
        if media_id in self._resident:
            return True
        for attempt in range(1, self.LOAD_ATTEMPTS + 1):
            try:
                stored = self.db.get_media(media_id)
                break
            except sqlite3.Error as e:
                logger.warning("Loading media %s failed (attempt %d): %s", media_id, attempt, e)
        else:
            return False
        if stored is None:
            logger.warning("Media %s not found", media_id)
            return False
        mime_type, data = stored
        self._resident[media_id] = self._decode(mime_type, data)
        return True

    def load_all(self, media_ids: Iterable[str]) -> int:
        """Load several blobs; returns how many are resident afterwards."""
        return sum(1 for media_id in media_ids if self.load(media_id))

    def is_resident(self, media_id: str) -> bool:
        return media_id in self._resident

    def ensure(self, media_id: str) -> bool:
        """Resident check that falls back to loading from storage."""
        return self.is_resident(media_id) or self.load(media_id)

    def resolve(self, media_id: str) -> Optional[Any]:
        """Displayable handle for a media id, if resident."""
        return self._resident.get(media_id)

    def release(self, media_id: str):
        """Drop the in-memory handle; the blob stays until purged."""
        if self._resident.pop(media_id, None) is not None:
            logger.debug("Released media %s", media_id)

    def retain(self, referenced: Iterable[str]) -> int:
        """Release every resident handle not in ``referenced``."""
        keep = set(referenced)
        stale = [media_id for media_id in self._resident if media_id not in keep]
        for media_id in stale:
            self.release(media_id)
        return len(stale)

    def purge_unreferenced(self, referenced: Iterable[str]) -> int:
        """Delete this canvas's blobs that no item points at any more."""
        if self.canvas_id is None:
            return 0
        keep = set(referenced)
        removed = 0
        for media_id in self.db.media_ids(self.canvas_id):
            if media_id not in keep:
                self.db.delete_media(media_id)
                self._resident.pop(media_id, None)
                removed += 1
        if removed:
            logger.info("Purged %d unreferenced media blobs", removed)
        return removed

    def clear(self):
        """Forget every resident handle, e.g. on canvas switch."""
        self._resident.clear()
