"""Snapshot undo/redo for the scene model."""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from knotboard.constants import MAX_HISTORY
from knotboard.scene import Connection, Item, SceneModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable copy of every item and connection at one point in time."""
    items: Tuple[dict, ...]
    connections: Tuple[dict, ...]

    @classmethod
    def capture(cls, scene: SceneModel) -> "HistoryEntry":
        return cls(
            items=tuple(item.to_dict() for item in scene.items.values()),
            connections=tuple(conn.to_dict() for conn in scene.connections.values()),
        )


class HistoryManager:
    """Manages the undo and redo stacks.

    The top of the undo stack always mirrors the live scene; the entry
    below it is what undo restores. The first entry is the baseline.
    """

    def __init__(self, scene: SceneModel, capacity: int = MAX_HISTORY,
                 is_resident: Optional[Callable[[str], bool]] = None):
        self.scene = scene
        self.capacity = max(2, capacity)
        self.is_resident = is_resident
        self._undo_stack: List[HistoryEntry] = []
        self._redo_stack: List[HistoryEntry] = []

        # Callbacks
        self.on_state_changed: Optional[Callable[[], None]] = None

    @property
    def can_undo(self) -> bool:
        return len(self._undo_stack) > 1

    @property
    def can_redo(self) -> bool:
        return len(self._redo_stack) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    def snapshot(self) -> bool:
        """Record the live scene. Returns False if nothing changed."""
        entry = HistoryEntry.capture(self.scene)
        if self._undo_stack and self._undo_stack[-1] == entry:
            return False

        self._undo_stack.append(entry)
        self._redo_stack.clear()

        # Trim history if needed
        while len(self._undo_stack) > self.capacity:
            self._undo_stack.pop(0)

        self._notify_changed()
        return True

    def undo(self) -> bool:
        """Step back one entry; the baseline is never undone."""
        if len(self._undo_stack) < 2:
            return False
        self._redo_stack.append(self._undo_stack.pop())
        self.restore(self._undo_stack[-1])
        self._notify_changed()
        return True

    def redo(self) -> bool:
        """Re-apply the last undone entry."""
        if not self._redo_stack:
            return False
        entry = self._redo_stack.pop()
        self._undo_stack.append(entry)
        while len(self._undo_stack) > self.capacity:
            self._undo_stack.pop(0)
        self.restore(entry)
        self._notify_changed()
        return True

    def restore(self, entry: HistoryEntry):
        """Replace the live scene with the contents of an entry."""
        items: List[Item] = []
        for data in entry.items:
            item = Item.from_dict(data)
            if item.media_id and self.is_resident and not self.is_resident(item.media_id):
                logger.warning("Skipping %s %s: media %s is not available",
                               item.kind.value, item.id, item.media_id)
                continue
            items.append(item)
        connections = [Connection.from_dict(data) for data in entry.connections]
        self.scene.replace_contents(items, connections)

    def reset(self):
        """Forget all history and take a fresh baseline."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._undo_stack.append(HistoryEntry.capture(self.scene))
        self._notify_changed()

    def clear(self):
        """Clear all history."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._notify_changed()

    def _notify_changed(self):
        """Notify that undo/redo state changed."""
        if self.on_state_changed:
            self.on_state_changed()
