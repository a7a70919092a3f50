"""
Raw Socket Channel Transport

Talks to the relay over one websocket. Every message is an envelope with a
``type`` and a ``gameCode``; the relay does not isolate rooms, so inbound
envelopes are filtered here against each subscription's room id.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Tuple, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from integrations.protocol import ChannelEvent, ProtocolError, decode_envelope, encode_envelope, envelope_events
from .base import ChannelListener, ChannelTransport, TransportError

logger = logging.getLogger('arena.transports.socket')


class SocketChannelTransport(ChannelTransport):
    """Channel transport over a websocket to the relay server"""

    name = "socket"

    def __init__(self, url: str, connect: Callable[..., Any] = websockets.connect):
        self.url = url
        self._connect = connect
        self._subscriptions: Dict[str, Tuple[str, ChannelListener]] = {}  # channel -> (room_id, listener)
        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def connect(self) -> None:
        if self._websocket is not None:
            return

        try:
            self._websocket = await self._connect(self.url)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Could not connect to {self.url}: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"Connected to relay {self.url}")

    async def close(self) -> None:
        websocket, self._websocket = self._websocket, None

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if websocket is not None:
            await websocket.close()

        self._subscriptions.clear()
        logger.info(f"Disconnected from relay {self.url}")

    async def subscribe(self, channel: str, room_id: str, listener: ChannelListener) -> None:
        # The relay has no subscriptions; filtering happens on receipt
        self._subscriptions[channel] = (room_id, listener)

    async def unsubscribe(self, channel: str) -> None:
        self._subscriptions.pop(channel, None)

    async def publish(self, channel: str, event: ChannelEvent) -> None:
        if channel not in self._subscriptions:
            raise TransportError(f"Not subscribed to {channel}")
        if self._websocket is None:
            raise TransportError("Socket transport is not connected")

        room_id, _ = self._subscriptions[channel]
        try:
            await self._websocket.send(encode_envelope(event, room_id))
        except ConnectionClosed as e:
            raise TransportError(f"Relay connection closed: {e}") from e

    def handle_message(self, raw: Union[str, bytes]) -> int:
        """
        Deliver one relay message to the matching subscriptions.

        Returns:
            Number of channel events delivered
        """
        try:
            envelope = decode_envelope(raw)
        except ProtocolError as e:
            logger.debug(f"Dropping malformed envelope: {e}")
            return 0

        delivered = 0
        for channel, (room_id, listener) in list(self._subscriptions.items()):
            try:
                events = envelope_events(envelope, room_id)
            except ProtocolError as e:
                logger.debug(f"Dropping {envelope.type} envelope for {channel}: {e}")
                continue
            for event in events:
                listener(event)
                delivered += 1

        return delivered

    async def _read_loop(self) -> None:
        try:
            async for raw in self._websocket:
                self.handle_message(raw)
        except ConnectionClosed as e:
            logger.warning(f"Relay connection closed: {e}")
