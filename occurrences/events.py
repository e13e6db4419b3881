"""
Typed events.

Two closed event families:
- VaultEvent: file lifecycle notifications delivered by a vault
- StoreEvent: change notifications published by the store, carrying
  enough data for a consumer to reconcile a displayed list without
  re-querying
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar, Union

from .types import Occurrence

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Vault events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FileCreated:
    path: str


@dataclass(frozen=True)
class FileDeleted:
    path: str


@dataclass(frozen=True)
class FileRenamed:
    path: str
    old_path: str


@dataclass(frozen=True)
class MetadataChanged:
    """The header of a file was (re)parsed by the metadata cache."""
    path: str


VaultEvent = Union[FileCreated, FileDeleted, FileRenamed, MetadataChanged]


# ---------------------------------------------------------------------------
# Store events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoreEvent:
    """Base class; subscribe to it to receive every store event."""


@dataclass(frozen=True)
class StoreLoaded(StoreEvent):
    count: int


@dataclass(frozen=True)
class OccurrenceAdded(StoreEvent):
    occurrence: Occurrence


@dataclass(frozen=True)
class OccurrenceUpdated(StoreEvent):
    occurrence: Occurrence
    previous: Optional[Occurrence] = None


@dataclass(frozen=True)
class OccurrenceRemoved(StoreEvent):
    path: str
    occurrence: Optional[Occurrence] = None


E = TypeVar("E", bound=StoreEvent)


class EventBus:
    """
    Publish/subscribe keyed by event type.

    A callback registered for a type also receives its subclasses, so a
    StoreEvent subscriber sees everything. Callbacks run synchronously in
    registration order; an exception in one is logged and does not stop
    delivery to the others.
    """

    def __init__(self):
        self._subscribers: dict[type, list[Callable]] = {}

    def on(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Subscribe. Returns a function that removes the subscription."""
        self._subscribers.setdefault(event_type, []).append(callback)
        return lambda: self.off(event_type, callback)

    def off(self, event_type: type[E], callback: Callable[[E], None]) -> None:
        """Unsubscribe. Unknown callbacks are ignored."""
        callbacks = self._subscribers.get(event_type)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            return
        if not callbacks:
            del self._subscribers[event_type]

    def trigger(self, event: StoreEvent) -> None:
        """Deliver an event to every subscriber of its type or a base type."""
        for event_type in type(event).__mro__:
            for callback in list(self._subscribers.get(event_type, ())):
                try:
                    callback(event)
                except Exception:
                    logger.exception("Event subscriber failed for %s", type(event).__name__)

    def clear(self) -> None:
        self._subscribers.clear()
