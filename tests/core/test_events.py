# tests/core/test_events.py
import asyncio
import logging

from booking_progress.core.events import EntityChangedEvent, EventBus, ProgressStateCache


def make_event(entity_id=1, version=1, booking_id=10, updated_at="2024-06-01T12:00:00", **new_value):
    return EntityChangedEvent(
        entity_type="task",
        entity_id=entity_id,
        booking_id=booking_id,
        changed_fields=sorted(new_value),
        new_value={"id": entity_id, "version": version, **new_value},
        version=version,
        updated_at=updated_at,
    )


# --- EventBus ---

def test_events_only_reach_subscribers_of_their_booking():
    bus = EventBus()
    first, second = [], []
    bus.subscribe(10, first.append)
    bus.subscribe(20, second.append)

    bus.publish(make_event(booking_id=10))

    assert len(first) == 1
    assert second == []


def test_handler_errors_are_logged_not_raised(caplog):
    bus = EventBus()
    received = []

    def broken(event):
        raise RuntimeError("boom")

    bus.subscribe(10, broken)
    bus.subscribe(10, received.append)

    with caplog.at_level(logging.ERROR, logger="booking_progress.core.events"):
        bus.publish(make_event())

    assert len(received) == 1
    assert "boom" in caplog.text


def test_unsubscribe_is_idempotent_and_drops_empty_channels():
    bus = EventBus()
    subscription = bus.subscribe(10, lambda event: None)
    assert subscription.channel == "booking:10"
    assert bus.subscriber_count(10) == 1

    assert bus.unsubscribe(subscription) is True
    assert bus.unsubscribe(subscription) is False
    assert bus.subscriber_count() == 0
    assert "booking:10" not in bus.subscribers


def test_unsubscribed_handler_receives_nothing():
    bus = EventBus()
    received = []
    subscription = bus.subscribe(10, received.append)
    bus.unsubscribe(subscription)

    bus.publish(make_event())

    assert received == []


def test_publish_async_runs_sync_and_async_handlers():
    bus = EventBus()
    sync_received, async_received = [], []

    async def async_handler(event):
        async_received.append(event)

    bus.subscribe(10, sync_received.append)
    bus.subscribe(10, async_handler)

    asyncio.run(bus.publish_async(make_event()))

    assert len(sync_received) == 1
    assert len(async_received) == 1


def test_event_to_dict_is_json_ready():
    data = make_event(status="completed").to_dict()
    assert data["event_type"] == "EntityChangedEvent"
    assert isinstance(data["timestamp"], str)
    assert data["new_value"]["status"] == "completed"


# --- ProgressStateCache ---

def test_duplicate_delivery_leaves_state_unchanged():
    cache = ProgressStateCache()
    event = make_event(status="completed", progress_percentage=100)

    assert cache.apply(event) is True
    state_after_first = cache.snapshot()

    assert cache.apply(event) is False
    assert cache.snapshot() == state_after_first


def test_stale_delivery_is_ignored():
    cache = ProgressStateCache()
    cache.apply(make_event(version=3, status="completed"))

    assert cache.apply(make_event(version=2, status="pending")) is False
    assert cache.get("task", 1)["status"] == "completed"
    assert cache.version_of("task", 1) == 3


def test_newer_version_replaces_state():
    cache = ProgressStateCache()
    cache.apply(make_event(version=1, status="pending"))

    assert cache.apply(make_event(version=2, status="in_progress")) is True
    assert cache.get("task", 1)["status"] == "in_progress"


def test_same_version_ties_broken_by_updated_at():
    cache = ProgressStateCache()
    cache.apply(make_event(version=2, updated_at="2024-06-01T12:00:00", status="pending"))

    assert cache.apply(make_event(version=2, updated_at="2024-06-01T11:00:00", status="on_hold")) is False
    assert cache.apply(make_event(version=2, updated_at="2024-06-01T13:00:00", status="in_progress")) is True
    assert cache.get("task", 1)["status"] == "in_progress"


def test_cache_can_be_subscribed_directly():
    bus = EventBus()
    cache = ProgressStateCache()
    bus.subscribe(10, cache)

    bus.publish(make_event(status="completed"))
    bus.publish(make_event(status="completed"))

    assert cache.get("task", 1)["status"] == "completed"
    assert cache.get("task", 2) is None
