# File: booking_progress/core/events.py

from typing import (
    Dict,
    Any,
    Callable,
    List,
    Optional,
    Tuple,
)
from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import datetime, date, timezone
import uuid
import asyncio
import logging
import threading

from fastapi import FastAPI

logger = logging.getLogger(__name__)

# Type definitions
EventHandler = Callable[["EntityChangedEvent"], Any]


# --- Base DomainEvent ---
@dataclass(eq=False)
class DomainEvent:
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["event_type"] = self.__class__.__name__
        for key, value in result.items():
            if isinstance(value, (datetime, date)):
                result[key] = value.isoformat()
        return result


# --- Change Event Definitions ---
@dataclass(eq=False)
class EntityChangedEvent(DomainEvent):
    """
    A task, milestone or booking changed.

    ``new_value`` is the full serialized state after the change (or the last
    known state with ``deleted`` set), so a subscriber can replace what it
    holds without another read.
    """
    entity_type: str = ""
    entity_id: Any = None
    booking_id: Any = None
    changed_fields: List[str] = field(default_factory=list)
    new_value: Dict[str, Any] = field(default_factory=dict)
    version: int = 0
    updated_at: Optional[str] = None
    deleted: bool = False
    user_id: Optional[str] = None

    @property
    def entity_key(self) -> Tuple[str, Any]:
        return self.entity_type, self.entity_id


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``EventBus.subscribe``; pass it back to unsubscribe."""
    booking_id: Any
    handler: EventHandler
    subscription_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def channel(self) -> str:
        return EventBus.channel_for(self.booking_id)


# --- Event Bus Class ---
class EventBus:
    """
    Booking-scoped publish/subscribe bus for change events.

    Every event is routed to the channel of the booking it belongs to, so a
    subscriber only ever sees entities of the bookings it subscribed to.
    Delivery is at-least-once from the subscriber's point of view: handlers
    must tolerate duplicates (see ``ProgressStateCache``).

    Usage:
        subscription = global_event_bus.subscribe(booking_id, handle_change)
        global_event_bus.publish(EntityChangedEvent(booking_id=booking_id, ...))
        global_event_bus.unsubscribe(subscription)
    """

    def __init__(self):
        self.subscribers: Dict[str, List[Subscription]] = defaultdict(list)
        self._lock = threading.RLock()

    @staticmethod
    def channel_for(booking_id: Any) -> str:
        return f"booking:{booking_id}"

    def _snapshot(self, booking_id: Any) -> List[Subscription]:
        with self._lock:
            return list(self.subscribers.get(self.channel_for(booking_id), []))

    def publish(self, event: EntityChangedEvent) -> None:
        """
        Publish an event synchronously to all subscribers of its booking.

        Note:
            - Async handlers are scheduled on the running loop if there is one,
              otherwise logged and skipped; use publish_async from async code
            - All handler exceptions are caught and logged
        """
        subscriptions = self._snapshot(event.booking_id)
        logger.debug(
            f"Publishing {event.entity_type} {event.entity_id} v{event.version} "
            f"to {len(subscriptions)} subscriber(s) of booking {event.booking_id}"
        )
        for subscription in subscriptions:
            self._call_handler_sync(subscription.handler, event)

    def _call_handler_sync(self, handler: Callable, event: EntityChangedEvent):
        """Handle synchronous event handler execution with error management."""
        handler_name = getattr(handler, "__name__", repr(handler))
        try:
            if asyncio.iscoroutinefunction(handler):
                try:
                    loop = asyncio.get_running_loop()
                except RuntimeError:
                    logger.warning(f"Sync publish to async handler {handler_name} outside an event loop. Use publish_async.")
                    return
                loop.create_task(handler(event))
            else:
                handler(event)
        except Exception as e:
            logger.error(f"Error in handler {handler_name} for {event.entity_type} {event.entity_id}: {e}",
                         exc_info=True)

    async def publish_async(self, event: EntityChangedEvent) -> None:
        """
        Publish an event asynchronously to all subscribers of its booking.

        Note:
            - Sync handlers are automatically wrapped in asyncio.to_thread()
            - All tasks are gathered with exception handling
        """
        subscriptions = self._snapshot(event.booking_id)
        handlers = [s.handler for s in subscriptions]
        tasks = [
            asyncio.create_task(handler(event)) if asyncio.iscoroutinefunction(handler)
            else asyncio.create_task(asyncio.to_thread(handler, event))
            for handler in handlers
        ]
        if tasks:
            results = await asyncio.gather(*tasks, return_exceptions=True)
            self._log_handler_errors(results, handlers, event)

    def _log_handler_errors(self, results: List[Any], handlers: List[Callable], event: EntityChangedEvent):
        """Log any errors that occurred during async handler execution."""
        for i, result in enumerate(results):
            if isinstance(result, Exception):
                handler_name = getattr(handlers[i], "__name__", repr(handlers[i]))
                logger.error(f"Error in handler '{handler_name}' for {event.entity_type} {event.entity_id}: {result}",
                             exc_info=result)

    def subscribe(self, booking_id: Any, handler: EventHandler) -> Subscription:
        """
        Subscribe a handler to every change under a booking.

        Returns:
            Subscription handle for unsubscribe
        """
        subscription = Subscription(booking_id=booking_id, handler=handler)
        with self._lock:
            self.subscribers[subscription.channel].append(subscription)
        logger.debug(
            f"Subscribed {getattr(handler, '__name__', repr(handler))} to {subscription.channel} "
            f"({subscription.subscription_id})"
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """
        Remove a subscription. Safe to call more than once.

        Returns:
            True if the subscription was found and removed, False otherwise
        """
        with self._lock:
            channel = subscription.channel
            subscriptions = self.subscribers.get(channel)
            if not subscriptions or subscription not in subscriptions:
                return False
            subscriptions.remove(subscription)
            if not subscriptions:
                # Drop empty channels so long-lived buses don't accumulate keys
                del self.subscribers[channel]
        logger.debug(f"Unsubscribed {subscription.subscription_id} from {channel}")
        return True

    def subscriber_count(self, booking_id: Any = None) -> int:
        with self._lock:
            if booking_id is not None:
                return len(self.subscribers.get(self.channel_for(booking_id), []))
            return sum(len(subs) for subs in self.subscribers.values())

    def clear_subscriptions(self) -> None:
        """Clear all event subscriptions."""
        with self._lock:
            self.subscribers.clear()
        logger.debug("Cleared all event subscriptions")


# Global event bus instance - use this throughout the application
global_event_bus = EventBus()


class ProgressStateCache:
    """
    Subscriber-side copy of the entities of one or more bookings.

    Deliveries are compared against the held version: a duplicate or an
    older version is skipped, a newer one replaces the held state (last
    write wins). Instances are callable so they can be subscribed directly.
    """

    def __init__(self):
        self._entities: Dict[Tuple[str, Any], Dict[str, Any]] = {}
        self._versions: Dict[Tuple[str, Any], Tuple[int, str]] = {}
        self._lock = threading.Lock()

    def __call__(self, event: EntityChangedEvent) -> None:
        self.apply(event)

    def apply(self, event: EntityChangedEvent) -> bool:
        """
        Apply a delivered event.

        Returns:
            True if held state changed, False if the delivery was a no-op
        """
        key = event.entity_key
        incoming = (event.version, event.updated_at or "")
        with self._lock:
            held = self._versions.get(key)
            if held is not None:
                if incoming < held:
                    return False
                if incoming == held and self._entities.get(key) == self._payload(event):
                    return False
            self._versions[key] = incoming
            self._entities[key] = self._payload(event)
        return True

    @staticmethod
    def _payload(event: EntityChangedEvent) -> Dict[str, Any]:
        return {**event.new_value, "deleted": event.deleted}

    def get(self, entity_type: str, entity_id: Any) -> Optional[Dict[str, Any]]:
        with self._lock:
            state = self._entities.get((entity_type, entity_id))
            return dict(state) if state is not None else None

    def version_of(self, entity_type: str, entity_id: Any) -> Optional[int]:
        with self._lock:
            held = self._versions.get((entity_type, entity_id))
            return held[0] if held else None

    def snapshot(self) -> Dict[Tuple[str, Any], Dict[str, Any]]:
        with self._lock:
            return {key: dict(value) for key, value in self._entities.items()}


# --- FastAPI Event Handlers Setup ---
def setup_event_handlers(app: FastAPI, event_bus: EventBus = global_event_bus) -> None:
    """
    Set up FastAPI lifecycle event handlers.

    Args:
        app: FastAPI application instance
        event_bus: Bus whose subscriptions are dropped on shutdown
    """

    @app.on_event("startup")
    async def startup_event():
        logger.info("Application starting up")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Application shutting down")
        event_bus.clear_subscriptions()
