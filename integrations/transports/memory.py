"""
In-process Channel Transport

Clients running in the same process share one EventBus as their broker.
Each channel is an event type; the publishing client is recorded as the
event source and filtered out of its own subscriptions.
"""

import logging
import uuid
from typing import Dict, Optional

from core.event_bus import Event, EventBus
from integrations.protocol import ChannelEvent, ProtocolError, decode_client_event, encode_client_event
from .base import ChannelListener, ChannelTransport, TransportError

logger = logging.getLogger('arena.transports.memory')


class InMemoryBroker:
    """Shared pub/sub scope for in-process clients"""

    def __init__(self, event_bus: Optional[EventBus] = None):
        # No history: the broker carries every update of every client
        self.event_bus = event_bus or EventBus(max_history=0)

    def deliver(self, channel: str, sender_id: str, frame: Dict) -> int:
        return self.event_bus.publish(Event(event_type=channel, source=sender_id, data=frame))


class InMemoryTransport(ChannelTransport):
    """Channel transport backed by an InMemoryBroker"""

    name = "memory"

    def __init__(self, broker: InMemoryBroker, client_id: Optional[str] = None):
        self.broker = broker
        self.client_id = client_id or uuid.uuid4().hex
        self._handler_ids: Dict[str, str] = {}
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True
        logger.debug(f"Memory transport {self.client_id} connected")

    async def close(self) -> None:
        for channel in list(self._handler_ids):
            await self.unsubscribe(channel)
        self._connected = False

    async def subscribe(self, channel: str, room_id: str, listener: ChannelListener) -> None:
        if channel in self._handler_ids:
            await self.unsubscribe(channel)

        def on_frame(event: Event):
            try:
                channel_event = decode_client_event(event.data['event'], event.data['data'])
            except (KeyError, ProtocolError) as e:
                logger.debug(f"Dropping malformed frame on {channel}: {e}")
                return
            listener(channel_event)

        handler_id = self.broker.event_bus.subscribe(
            channel,
            on_frame,
            handler_id=f"{self.client_id}:{channel}",
            filter_func=lambda event: event.source != self.client_id
        )
        self._handler_ids[channel] = handler_id
        logger.debug(f"{self.client_id} subscribed to {channel}")

    async def unsubscribe(self, channel: str) -> None:
        handler_id = self._handler_ids.pop(channel, None)
        if handler_id is not None:
            self.broker.event_bus.unsubscribe(handler_id)
            logger.debug(f"{self.client_id} unsubscribed from {channel}")

    async def publish(self, channel: str, event: ChannelEvent) -> None:
        if not self._connected:
            raise TransportError("Memory transport is not connected")
        self.broker.deliver(channel, self.client_id, encode_client_event(event))
