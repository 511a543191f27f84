"""
Event fanout for AG-UI runs.

Every published event is appended to an append-only EventLog and delivered,
in publication order and exactly once, to each attached consumer. Each
subscription keeps a monotonic cursor (index into the log), which serves both
push consumers (callbacks) and polling consumers that read the buffered log.
"""
import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Iterator, Optional

from agui_runtime.infrastructure.observability.logging import get_logger
from agui_runtime.protocols.agui.events import BaseEvent

logger = get_logger(__name__)

EventConsumer = Callable[[BaseEvent], Any]


@dataclass(frozen=True)
class SubscriptionHandle:
    """Opaque token returned by attach(); pass it back to detach()."""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


class ListenerSet:
    """
    Named set of push callbacks with isolated failures.

    A callback that raises is logged and skipped; the remaining callbacks
    still run.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: dict[SubscriptionHandle, Callable[..., Any]] = {}

    def attach(self, callback: Callable[..., Any]) -> SubscriptionHandle:
        handle = SubscriptionHandle()
        self._listeners[handle] = callback
        return handle

    def detach(self, handle: SubscriptionHandle) -> bool:
        return self._listeners.pop(handle, None) is not None

    def notify(self, *args: Any, **kwargs: Any) -> None:
        for handle, callback in list(self._listeners.items()):
            try:
                callback(*args, **kwargs)
            except Exception:
                logger.error("listener failed", listener_set=self.name, subscription=handle.id, exc_info=True)

    def clear(self) -> None:
        self._listeners.clear()

    def __contains__(self, handle: object) -> bool:
        return handle in self._listeners

    def __len__(self) -> int:
        return len(self._listeners)


class EventLog:
    """Append-only event arena addressed by position."""

    def __init__(self):
        self._events: list[BaseEvent] = []

    def append(self, event: BaseEvent) -> int:
        """Append an event and return its index."""
        self._events.append(event)
        return len(self._events) - 1

    def get(self, index: int) -> BaseEvent:
        return self._events[index]

    def slice(self, start: int, stop: Optional[int] = None) -> list[BaseEvent]:
        return self._events[start:stop]

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[BaseEvent]:
        return iter(list(self._events))


@dataclass
class _Subscription:
    handle: SubscriptionHandle
    consumer: Optional[EventConsumer]
    cursor: int
    ready: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def polling(self) -> bool:
        return self.consumer is None


class EventDispatcher:
    """
    Delivers each published event exactly once to every attached consumer.

    Features:
    - Push consumers: callback invoked synchronously on publish
    - Polling consumers: read buffered events with poll() or iter_events()
    - Late attachment starts at the end of the log (no replay unless requested)
    - A failing consumer is logged and does not affect the others
    """

    def __init__(self, name: str = "dispatcher", log: Optional[EventLog] = None):
        self.name = name
        self._log = log if log is not None else EventLog()
        self._subscriptions: dict[SubscriptionHandle, _Subscription] = {}
        self._closed = False

    @property
    def log(self) -> EventLog:
        return self._log

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def attach(
        self,
        consumer: Optional[EventConsumer] = None,
        *,
        replay: bool = False,
    ) -> SubscriptionHandle:
        """
        Attach a consumer.

        Args:
            consumer: Callback receiving each event; None creates a polling subscription
            replay: Start from the first logged event instead of the current end

        Returns:
            Subscription handle
        """
        sub = _Subscription(
            handle=SubscriptionHandle(),
            consumer=consumer,
            cursor=0 if replay else len(self._log),
        )

        if self._closed and not sub.polling:
            # Released already; only the requested backlog is delivered.
            self._deliver(sub)
            logger.debug("consumer attached after close", dispatcher=self.name, subscription=sub.handle.id)
            return sub.handle

        self._subscriptions[sub.handle] = sub
        if replay and not sub.polling:
            self._deliver(sub)

        logger.debug(
            "consumer attached",
            dispatcher=self.name,
            subscription=sub.handle.id,
            polling=sub.polling,
            cursor=sub.cursor,
        )
        return sub.handle

    def detach(self, handle: SubscriptionHandle) -> bool:
        """
        Detach a consumer.

        Returns:
            True if the handle was attached
        """
        sub = self._subscriptions.pop(handle, None)
        if sub is None:
            return False
        sub.ready.set()
        return True

    def is_attached(self, handle: SubscriptionHandle) -> bool:
        return handle in self._subscriptions

    def cursor(self, handle: SubscriptionHandle) -> int:
        """Index of the next event the subscription will receive."""
        return self._require(handle).cursor

    def publish(self, event: BaseEvent) -> Optional[int]:
        """
        Append an event to the log and deliver it.

        Returns:
            The event's index, or None if the dispatcher is closed
        """
        if self._closed:
            logger.warning("publish after close dropped", dispatcher=self.name, event_type=event.type.value)
            return None

        index = self._log.append(event)

        for sub in list(self._subscriptions.values()):
            if sub.polling:
                sub.ready.set()
            else:
                self._deliver(sub)

        return index

    def poll(self, handle: SubscriptionHandle) -> list[BaseEvent]:
        """
        Return events published since the subscription's cursor and advance it.
        """
        sub = self._require(handle)
        events = self._log.slice(sub.cursor)
        sub.cursor += len(events)
        return events

    async def iter_events(self, handle: SubscriptionHandle) -> AsyncIterator[BaseEvent]:
        """
        Yield events for a polling subscription as they are published.

        Finishes once the dispatcher is closed and the subscription has
        drained the log, or when the subscription is detached.
        """
        sub = self._require(handle)
        while handle in self._subscriptions:
            sub.ready.clear()
            for event in self.poll(handle):
                yield event
            if sub.cursor >= len(self._log):
                if self._closed:
                    break
                await sub.ready.wait()

    def close(self) -> None:
        """
        Stop accepting events and release push consumers.

        Polling consumers stay attached so they can drain what is buffered.
        """
        if self._closed:
            return
        self._closed = True

        for handle, sub in list(self._subscriptions.items()):
            if sub.polling:
                sub.ready.set()
            else:
                del self._subscriptions[handle]

        logger.debug("dispatcher closed", dispatcher=self.name, events=len(self._log))

    def _deliver(self, sub: _Subscription) -> None:
        # Cursor advances before the callback, so a raising consumer never sees
        # the same event twice.
        while sub.cursor < len(self._log):
            if not self._closed and sub.handle not in self._subscriptions:
                return
            event = self._log.get(sub.cursor)
            sub.cursor += 1
            try:
                sub.consumer(event)
            except Exception:
                logger.error(
                    "event consumer failed",
                    dispatcher=self.name,
                    subscription=sub.handle.id,
                    event_type=event.type.value,
                    exc_info=True,
                )

    def _require(self, handle: SubscriptionHandle) -> _Subscription:
        sub = self._subscriptions.get(handle)
        if sub is None:
            raise KeyError(f"Unknown subscription: {handle.id}")
        return sub
