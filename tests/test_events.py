"""Tests for EventBus dispatch."""

from unittest.mock import MagicMock

from occurrences.events import (
    EventBus,
    OccurrenceAdded,
    OccurrenceRemoved,
    StoreEvent,
    StoreLoaded,
)


def test_exact_type_dispatch():
    bus = EventBus()
    loaded, removed = MagicMock(), MagicMock()
    bus.on(StoreLoaded, loaded)
    bus.on(OccurrenceRemoved, removed)

    bus.trigger(StoreLoaded(count=2))
    loaded.assert_called_once_with(StoreLoaded(count=2))
    removed.assert_not_called()


def test_base_class_receives_everything():
    bus = EventBus()
    seen = []
    bus.on(StoreEvent, seen.append)
    bus.trigger(StoreLoaded(count=0))
    bus.trigger(OccurrenceRemoved(path="a.md"))
    assert seen == [StoreLoaded(count=0), OccurrenceRemoved(path="a.md")]


def test_specific_before_general():
    bus = EventBus()
    order = []
    bus.on(StoreEvent, lambda e: order.append("any"))
    bus.on(StoreLoaded, lambda e: order.append("loaded"))
    bus.trigger(StoreLoaded(count=0))
    assert order == ["loaded", "any"]


def test_off_and_unsubscribe():
    bus = EventBus()
    callback = MagicMock()
    unsubscribe = bus.on(StoreLoaded, callback)
    unsubscribe()
    bus.off(StoreLoaded, callback)  # second removal is a no-op
    bus.off(OccurrenceAdded, callback)
    bus.trigger(StoreLoaded(count=1))
    callback.assert_not_called()


def test_subscriber_can_unsubscribe_during_delivery():
    bus = EventBus()
    calls = []

    def once(event):
        calls.append(event)
        unsubscribe()

    unsubscribe = bus.on(StoreLoaded, once)
    bus.trigger(StoreLoaded(count=1))
    bus.trigger(StoreLoaded(count=2))
    assert calls == [StoreLoaded(count=1)]


def test_clear():
    bus = EventBus()
    callback = MagicMock()
    bus.on(StoreEvent, callback)
    bus.clear()
    bus.trigger(StoreLoaded(count=0))
    callback.assert_not_called()
