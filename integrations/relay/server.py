"""
FastAPI Relay Server for the Socket Transport

A plain websocket relay for clients that do not use a hosted pub/sub
service. Every valid envelope is rebroadcast to every other connection;
rooms are separated by the clients themselves through ``gameCode``.

The relay remembers the last join/update of each connection so that it can
greet a newcomer with an ``init`` snapshot of its room and announce a
``remove`` when a connection drops without leaving.
"""

import itertools
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from core.config_manager import ArenaConfiguration
from core.state_manager import Position
from integrations.protocol import (
    ChannelEvent,
    Envelope,
    ProtocolError,
    decode_envelope,
    encode_envelope,
    encode_init,
)

logger = logging.getLogger('arena.relay.server')


@dataclass
class CachedPlayer:
    """Last known state of the player behind one connection"""
    game_code: str
    peer_id: str
    position: Position
    color: int

    def to_event(self) -> ChannelEvent:
        return ChannelEvent.join(self.peer_id, self.position, self.color)


class RelayServer:
    """
    Websocket relay for the socket transport.

    The FastAPI app is built on construction so it can be mounted or tested
    without starting uvicorn.
    """

    def __init__(self, config: Optional[ArenaConfiguration] = None):
        config = config or ArenaConfiguration()
        self.host = config.relay_host
        self.port = config.relay_port

        self.active_connections: Dict[str, WebSocket] = {}
        self.players: Dict[str, CachedPlayer] = {}
        self._connection_ids = itertools.count(1)

        self.is_running = False
        self.start_time: Optional[datetime] = None
        self._stats = {
            'messages_received': 0,
            'messages_relayed': 0,
            'messages_dropped': 0
        }

        self.app = self._create_app()
        logger.info("Relay server initialized")

    def _create_app(self) -> FastAPI:
        app = FastAPI(
            title="CubeArena Relay",
            description="Websocket relay for CubeArena peer state",
            version="1.0.0"
        )

        @app.get("/health")
        async def health_check():
            return {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "connections": len(self.active_connections),
                "players": len(self.players)
            }

        app.websocket("/ws")(self.websocket_endpoint)
        return app

    async def websocket_endpoint(self, websocket: WebSocket):
        """Relay envelopes for one client until it disconnects"""
        await websocket.accept()
        connection_id = f"ws_{next(self._connection_ids)}"
        self.active_connections[connection_id] = websocket
        logger.info(f"Relay connection established: {connection_id}")

        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle_message(connection_id, raw)
        except WebSocketDisconnect:
            logger.info(f"Relay connection disconnected: {connection_id}")
        finally:
            self.active_connections.pop(connection_id, None)
            await self._drop_player(connection_id)

    async def handle_message(self, connection_id: str, raw: str) -> None:
        """Validate, cache and rebroadcast one envelope"""
        self._stats['messages_received'] += 1
        try:
            envelope = decode_envelope(raw)
        except ProtocolError as e:
            self._stats['messages_dropped'] += 1
            logger.debug(f"Dropping invalid envelope from {connection_id}: {e}")
            return

        self._update_cache(connection_id, envelope)
        await self.broadcast(raw, exclude=connection_id)

        if envelope.type == 'join':
            await self._send_init(connection_id, envelope.game_code)

    def _update_cache(self, connection_id: str, envelope: Envelope):
        if envelope.type == 'join' and envelope.id and envelope.position:
            self.players[connection_id] = CachedPlayer(
                game_code=envelope.game_code,
                peer_id=envelope.id,
                position=envelope.position.to_position(),
                color=envelope.color or 0
            )
        elif envelope.type == 'update' and envelope.position:
            player = self.players.get(connection_id)
            if player is not None:
                player.position = envelope.position.to_position()
                player.game_code = envelope.game_code
        elif envelope.type == 'leave':
            self.players.pop(connection_id, None)

    async def _send_init(self, connection_id: str, game_code: str):
        snapshot = self.get_room_players(game_code, exclude=connection_id)
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return
        await websocket.send_text(encode_init(game_code, snapshot))
        logger.debug(f"Sent init with {len(snapshot)} players to {connection_id}")

    async def _drop_player(self, connection_id: str):
        player = self.players.pop(connection_id, None)
        if player is None:
            return
        message = encode_envelope(ChannelEvent.leave(player.peer_id), player.game_code, message_type='remove')
        await self.broadcast(message)
        logger.info(f"Announced removal of {player.peer_id} from '{player.game_code}'")

    async def broadcast(self, message: str, exclude: Optional[str] = None) -> int:
        """
        Send a message to every connection except exclude.

        Returns:
            Number of connections the message was sent to
        """
        sent = 0
        for connection_id, websocket in list(self.active_connections.items()):
            if connection_id == exclude:
                continue
            try:
                await websocket.send_text(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Error relaying to {connection_id}: {e}")

        self._stats['messages_relayed'] += sent
        return sent

    def get_room_players(self, game_code: str, exclude: Optional[str] = None) -> List[ChannelEvent]:
        return [
            player.to_event()
            for connection_id, player in self.players.items()
            if player.game_code == game_code and connection_id != exclude
        ]

    def get_stats(self):
        return {
            **self._stats,
            'connections': len(self.active_connections),
            'players': len(self.players),
            'is_running': self.is_running,
            'started_at': self.start_time.isoformat() if self.start_time else None
        }

    async def serve_forever(self) -> None:
        """Run uvicorn on the current task until it exits"""
        config = uvicorn.Config(app=self.app, host=self.host, port=self.port, log_level="info")
        self.is_running = True
        self.start_time = datetime.now(timezone.utc)
        logger.info(f"Relay server listening on {self.host}:{self.port}")
        try:
            await uvicorn.Server(config).serve()
        finally:
            self.is_running = False
