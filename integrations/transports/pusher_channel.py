"""
Hosted pub/sub Channel Transport (Pusher Channels)

Speaks the Pusher Channels websocket protocol directly: subscribe and
unsubscribe with ``pusher:*`` commands, broadcast with client events
(``client-join``, ``client-update``, ``client-leave``), and answer the
service's keep-alive pings. Client events are rate limited by the service,
which is why the reconciler throttles updates.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Union

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from integrations.protocol import (
    ChannelEvent,
    ProtocolError,
    decode_client_event,
    decode_pusher_frame,
    encode_pusher_command,
    encode_pusher_event,
)
from .base import ChannelListener, ChannelTransport, TransportError

logger = logging.getLogger('arena.transports.pusher')

PUSHER_PROTOCOL_VERSION = 7
CLIENT_NAME = "cubearena"
CLIENT_VERSION = "1.0.0"


class PusherChannelTransport(ChannelTransport):
    """Channel transport over a Pusher Channels websocket"""

    name = "pusher"

    def __init__(
        self,
        app_key: str,
        cluster: str = "eu",
        host: Optional[str] = None,
        connect: Callable[..., Any] = websockets.connect
    ):
        if not app_key:
            raise ValueError("A Pusher app key is required")

        self.app_key = app_key
        self.cluster = cluster
        self.host = host or f"ws-{cluster}.pusher.com"
        self._connect = connect

        self.socket_id: Optional[str] = None
        self.activity_timeout: Optional[int] = None
        self.subscribed: Dict[str, bool] = {}  # channel -> subscription confirmed
        self._listeners: Dict[str, ChannelListener] = {}
        self._websocket = None
        self._reader_task: Optional[asyncio.Task] = None

        logger.info(f"Pusher transport configured for {self.host}")

    @property
    def url(self) -> str:
        return (
            f"wss://{self.host}/app/{self.app_key}"
            f"?protocol={PUSHER_PROTOCOL_VERSION}&client={CLIENT_NAME}&version={CLIENT_VERSION}"
        )

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    async def connect(self) -> None:
        if self._websocket is not None:
            return

        try:
            self._websocket = await self._connect(self.url)
        except (OSError, WebSocketException) as e:
            raise TransportError(f"Could not connect to {self.host}: {e}") from e

        self._reader_task = asyncio.create_task(self._read_loop())
        logger.info(f"Connected to {self.host}")

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

        self._listeners.clear()
        self.subscribed.clear()
        self.socket_id = None
        logger.info(f"Disconnected from {self.host}")

    async def subscribe(self, channel: str, room_id: str, listener: ChannelListener) -> None:
        self._listeners[channel] = listener
        self.subscribed[channel] = False
        await self._send(encode_pusher_command('pusher:subscribe', {'channel': channel}))
        logger.debug(f"Subscribing to {channel}")

    async def unsubscribe(self, channel: str) -> None:
        self._listeners.pop(channel, None)
        self.subscribed.pop(channel, None)
        if self._websocket is not None:
            await self._send(encode_pusher_command('pusher:unsubscribe', {'channel': channel}))
        logger.debug(f"Unsubscribed from {channel}")

    async def publish(self, channel: str, event: ChannelEvent) -> None:
        await self._send(encode_pusher_event(channel, event))

    async def handle_frame(self, raw: Union[str, bytes]) -> None:
        """Process one frame received from the service"""
        try:
            frame = decode_pusher_frame(raw)
        except ProtocolError as e:
            logger.debug(f"Dropping malformed frame: {e}")
            return

        name = frame.event

        if name.startswith('client-'):
            listener = self._listeners.get(frame.channel)
            if listener is None:
                return
            try:
                event = decode_client_event(name, frame.data)
            except ProtocolError as e:
                logger.debug(f"Dropping {name} on {frame.channel}: {e}")
                return
            listener(event)

        elif name == 'pusher:connection_established':
            try:
                data = frame.data_dict()
            except ProtocolError as e:
                logger.warning(f"Malformed connection_established frame: {e}")
                return
            self.socket_id = data.get('socket_id')
            self.activity_timeout = data.get('activity_timeout')
            logger.info(f"Pusher connection established (socket {self.socket_id})")

        elif name == 'pusher_internal:subscription_succeeded':
            if frame.channel in self.subscribed:
                self.subscribed[frame.channel] = True
            logger.info(f"Subscribed to {frame.channel}")

        elif name == 'pusher:ping':
            await self._send(encode_pusher_command('pusher:pong'))

        elif name == 'pusher:error':
            logger.error(f"Pusher error: {frame.data}")

        else:
            logger.debug(f"Ignoring pusher event {name}")

    async def _send(self, message: str) -> None:
        if self._websocket is None:
            raise TransportError("Pusher transport is not connected")
        try:
            await self._websocket.send(message)
        except ConnectionClosed as e:
            raise TransportError(f"Pusher connection closed: {e}") from e

    async def _read_loop(self) -> None:
        try:
            async for raw in self._websocket:
                await self.handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning(f"Pusher connection closed: {e}")
