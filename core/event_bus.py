"""
Event Bus System for CubeArena

Synchronous pub/sub used in two places: peer-state notifications inside one
client (StateManager -> SceneService) and as the broker of the in-process
channel transport, where each channel name is an event type.
"""

import logging
import asyncio
import itertools
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List, Callable, Union
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger('arena.core.event_bus')

_event_ids = itertools.count(1)

class EventPriority(Enum):
    """Event handler priority levels"""
    CRITICAL = 0    # State bookkeeping that others rely on
    HIGH = 10
    NORMAL = 50     # Standard application events
    LOW = 100       # Rendering and diagnostics

@dataclass
class Event:
    """A published event; source identifies the publisher"""

    event_type: str
    source: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    event_id: int = field(default_factory=lambda: next(_event_ids))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def get_event_data(self, key: str, default: Any = None) -> Any:
        """Get event data with fallback"""
        return self.data.get(key, default)

class PeerStateEvent(Event):
    """Event fired when the local view of a peer changes"""

    def __init__(self, event_type: str, peer: Any, **data):
        super().__init__(event_type=event_type, source='state_manager')
        self.data.update(peer_id=peer.peer_id, peer=peer, **data)

class PeerJoinedEvent(PeerStateEvent):
    """A peer became known"""

    def __init__(self, peer: Any):
        super().__init__('peer_joined', peer)

class PeerMovedEvent(PeerStateEvent):
    """A known peer's position was overwritten"""

    def __init__(self, peer: Any, old_position: Any):
        super().__init__('peer_moved', peer, old_position=old_position)

class PeerLeftEvent(PeerStateEvent):
    """A peer was forgotten"""

    def __init__(self, peer: Any):
        super().__init__('peer_left', peer)

@dataclass
class EventHandler:
    """Event handler registration information"""

    handler_id: str
    handler_func: Callable
    event_types: List[str]
    priority: EventPriority = EventPriority.NORMAL
    filter_func: Optional[Callable[[Event], bool]] = None
    is_async: bool = field(init=False)

    def __post_init__(self):
        self.is_async = asyncio.iscoroutinefunction(self.handler_func)

    def can_handle(self, event: Event) -> bool:
        if event.event_type not in self.event_types and '*' not in self.event_types:
            return False
        return self.filter_func is None or bool(self.filter_func(event))

class EventBus:
    """
    Pub/sub with priorities, filters and handler error isolation.

    Sync handlers run inline during publish(), so a publisher observes every
    side effect of its event once publish() returns. Async handlers are
    scheduled on the running loop.
    """

    def __init__(self, max_history: int = 1000):
        self._handlers: Dict[str, EventHandler] = {}
        self._event_history: List[Event] = []
        self._max_history = max_history
        self._error_handlers: List[Callable] = []
        self._middleware: List[Callable] = []
        self._stats = {
            'events_published': 0,
            'events_handled': 0,
            'handler_errors': 0
        }

        logger.info("EventBus initialized")

    def subscribe(
        self,
        event_types: Union[str, List[str]],
        handler: Callable,
        handler_id: Optional[str] = None,
        priority: EventPriority = EventPriority.NORMAL,
        filter_func: Optional[Callable[[Event], bool]] = None
    ) -> str:
        """
        Subscribe a handler to one or more event types ('*' for all).

        Subscribing again with the same handler_id replaces the handler.

        Returns:
            Handler ID for later unsubscription
        """
        if isinstance(event_types, str):
            event_types = [event_types]

        if handler_id is None:
            handler_id = f"{getattr(handler, '__name__', 'handler')}_{id(handler)}"

        self._handlers[handler_id] = EventHandler(
            handler_id=handler_id,
            handler_func=handler,
            event_types=event_types,
            priority=priority,
            filter_func=filter_func
        )

        logger.debug(f"Subscribed handler {handler_id} to events: {event_types}")
        return handler_id

    def unsubscribe(self, handler_id: str) -> bool:
        """
        Returns:
            True if handler was found and removed
        """
        if self._handlers.pop(handler_id, None) is None:
            return False
        logger.debug(f"Unsubscribed handler {handler_id}")
        return True

    def publish(self, event: Event) -> int:
        """
        Publish an event to all applicable handlers in priority order.

        Returns:
            Number of handlers that processed the event
        """
        self._stats['events_published'] += 1
        self._add_to_history(event)

        event = self._apply_middleware(event)
        if event is None:
            return 0

        handlers = sorted(
            (h for h in self._handlers.values() if h.can_handle(event)),
            key=lambda h: h.priority.value
        )

        handled_count = 0
        for handler in handlers:
            try:
                if handler.is_async:
                    asyncio.create_task(self._handle_async(handler, event))
                else:
                    handler.handler_func(event)
            except Exception as e:
                self._stats['handler_errors'] += 1
                logger.error(f"Error in handler {handler.handler_id}: {e}")
                self._handle_error(handler, event, e)
                continue

            handled_count += 1
            self._stats['events_handled'] += 1

        logger.debug(f"Published event {event.event_type} to {handled_count} handlers")
        return handled_count

    def emit(self, event_type: str, source: Optional[str] = None, **data) -> int:
        """Create and publish an event"""
        return self.publish(Event(event_type=event_type, source=source, data=data))

    def add_middleware(self, middleware: Callable[[Event], Optional[Event]]):
        """Middleware may replace an event, or return None to stop it"""
        self._middleware.append(middleware)

    def add_error_handler(self, error_handler: Callable):
        """error_handler(handler, event, error) is called for handler exceptions"""
        self._error_handlers.append(error_handler)

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self._stats,
            'active_handlers': len(self._handlers),
            'history_size': len(self._event_history)
        }

    def get_event_history(self, limit: Optional[int] = None) -> List[Event]:
        """Get recent event history, newest last."""
        if limit:
            return self._event_history[-limit:]
        return self._event_history.copy()

    def _apply_middleware(self, event: Event) -> Optional[Event]:
        for middleware in self._middleware:
            try:
                event = middleware(event)
            except Exception as e:
                logger.error(f"Error in middleware: {e}")
                continue
            if event is None:
                logger.debug("Event stopped by middleware")
                return None
        return event

    async def _handle_async(self, handler: EventHandler, event: Event):
        try:
            await handler.handler_func(event)
        except Exception as e:
            self._stats['handler_errors'] += 1
            logger.error(f"Error in async handler {handler.handler_id}: {e}")
            self._handle_error(handler, event, e)

    def _handle_error(self, handler: EventHandler, event: Event, error: Exception):
        for error_handler in self._error_handlers:
            try:
                error_handler(handler, event, error)
            except Exception as e:
                logger.error(f"Error in error handler: {e}")

    def _add_to_history(self, event: Event):
        if self._max_history <= 0:
            return

        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            del self._event_history[:-self._max_history]
