"""Event bus for decoupled lifecycle notifications.

The connection manager publishes events; routers, CLIs and loggers subscribe
to the event types they care about. Subscribing to a base class (``Event``
itself, for instance) receives every subclass published.

Event Handler Contract:
    Handlers MUST be synchronous. They run inline inside ``publish`` while
    the manager is in the middle of a state transition, so they should only
    record or forward the event. Async work belongs in a task scheduled with
    ``asyncio.create_task()``.
"""

import inspect
from typing import Callable, Type, TypeVar

from mcplink.logger import get_logger

from .types import Event

logger = get_logger("events.bus")

T = TypeVar("T", bound=Event)

EventHandler = Callable[[Event], None]


class EventBus:
    """Publish/subscribe hub keyed by event type.

    Thread safety:
        Not thread-safe. All calls are expected from the event loop thread
        that owns the connection manager.
    """

    def __init__(self) -> None:
        self._handlers: dict[Type[Event], list[Callable[[Event], None]]] = {}

    def subscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        """
        Register a handler for an event type and its subclasses.

        Args:
            event_type: Event class to listen for
            handler: Synchronous callable receiving the event

        Raises:
            TypeError: If handler is a coroutine function
        """
        if inspect.iscoroutinefunction(handler):
            raise TypeError(
                f"Event handlers must be synchronous functions. "
                f"Handler {getattr(handler, '__name__', handler)!r} is a coroutine function; "
                f"schedule async work with asyncio.create_task() instead."
            )

        handlers = self._handlers.setdefault(event_type, [])
        if handler in handlers:
            logger.debug(f"Handler already subscribed for {event_type.__name__}, skipping")
            return
        handlers.append(handler)  # type: ignore[arg-type]
        logger.debug(f"Subscribed handler for {event_type.__name__}")

    def unsubscribe(self, event_type: Type[T], handler: Callable[[T], None]) -> None:
        """Remove a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)  # type: ignore[arg-type]
            logger.debug(f"Unsubscribed handler for {event_type.__name__}")

    def publish(self, event: Event) -> None:
        """
        Deliver an event to every handler subscribed to its type or a base type.

        Handlers run in subscription order, most specific type first. A
        failing handler is logged and does not stop delivery to the others.
        """
        event_type = type(event)
        handlers: list[Callable[[Event], None]] = []
        for klass in event_type.__mro__:
            handlers.extend(self._handlers.get(klass, ()))

        if not handlers:
            return

        logger.debug(f"Publishing {event_type.__name__} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.opt(exception=True).error(f"Error in event handler for {event_type.__name__}: {e}")

    def clear(self) -> None:
        """Drop all subscriptions."""
        self._handlers.clear()
        logger.debug("Event bus cleared")

    def has_subscribers(self, event_type: Type[Event]) -> bool:
        """Return True if a publish of this type would reach at least one handler."""
        return any(self._handlers.get(klass) for klass in event_type.__mro__)
