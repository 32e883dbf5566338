"""Typed message passing between the scene, controller and render sync."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, Optional

logger = logging.getLogger(__name__)


class Event(Enum):
    """Kinds of messages published on the bus."""
    ITEM_ADDED = "item_added"
    ITEM_CHANGED = "item_changed"
    ITEM_REMOVED = "item_removed"
    CONNECTION_ADDED = "connection_added"
    CONNECTION_CHANGED = "connection_changed"
    CONNECTION_REMOVED = "connection_removed"
    SCENE_RESET = "scene_reset"
    MEDIA_RELEASED = "media_released"
    VIEWPORT_CHANGED = "viewport_changed"
    SELECTION_CHANGED = "selection_changed"
    FILTER_CHANGED = "filter_changed"


# Messages that change what is drawn for the scene graph itself
SCENE_EVENTS: FrozenSet[Event] = frozenset({
    Event.ITEM_ADDED,
    Event.ITEM_CHANGED,
    Event.ITEM_REMOVED,
    Event.CONNECTION_ADDED,
    Event.CONNECTION_CHANGED,
    Event.CONNECTION_REMOVED,
    Event.SCENE_RESET,
})


@dataclass(frozen=True)
class Message:
    """A single published message."""
    event: Event
    target_id: Optional[str] = None


Handler = Callable[[Message], None]


class MessageBus:
    """Synchronous observer registry.

    Handlers run in subscription order on the publishing thread. A handler
    that raises is logged and skipped so one broken observer cannot stop the
    others from seeing the message.
    """

    def __init__(self):
        self._handlers: Dict[int, tuple] = {}
        self._next_token = 0
        self._muted = 0

    def subscribe(self, handler: Handler, events: Optional[Iterable[Event]] = None) -> int:
        """Register a handler, optionally for a subset of events."""
        token = self._next_token
        self._next_token += 1
        wanted = frozenset(events) if events is not None else None
        self._handlers[token] = (handler, wanted)
        return token

    def unsubscribe(self, token: int):
        """Remove a previously registered handler."""
        self._handlers.pop(token, None)

    def publish(self, event: Event, target_id: Optional[str] = None):
        """Deliver a message to every interested handler."""
        if self._muted:
            return
        message = Message(event, target_id)
        for handler, wanted in list(self._handlers.values()):
            if wanted is not None and event not in wanted:
                continue
            try:
                handler(message)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Handler failed for %s", event.value)

    def mute(self):
        """Suppress delivery until a matching unmute()."""
        self._muted += 1

    def unmute(self):
        """Resume delivery."""
        if self._muted:
            self._muted -= 1

    @property
    def muted(self) -> bool:
        return self._muted > 0
