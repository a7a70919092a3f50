"""
Wire Protocol for Peer State Synchronization

Two mutually exclusive wire surfaces carry the same three events:

- Hosted pub/sub (Pusher Channels): client events ``client-join``,
  ``client-update`` and ``client-leave`` on a channel named after the room.
- Raw socket relay: one JSON envelope with a ``type`` discriminator
  (init/update/remove/join/leave) and a ``gameCode`` used for client-side
  room filtering.

Both are decoded into ChannelEvent, the only shape the reconciler sees.
"""

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from core.state_manager import Position


class ProtocolError(Exception):
    """Raised when a frame cannot be decoded"""
    pass


class EventKind(Enum):
    """Peer events understood by the reconciler"""
    JOIN = "join"
    UPDATE = "update"
    LEAVE = "leave"


PUSHER_EVENT_NAMES = {
    EventKind.JOIN: "client-join",
    EventKind.UPDATE: "client-update",
    EventKind.LEAVE: "client-leave",
}
PUSHER_EVENT_KINDS = {name: kind for kind, name in PUSHER_EVENT_NAMES.items()}


@dataclass(frozen=True)
class ChannelEvent:
    """A join, update or leave for one peer"""
    kind: EventKind
    peer_id: str
    position: Optional[Position] = None
    color: Optional[int] = None

    @classmethod
    def join(cls, peer_id: str, position: Position, color: int) -> 'ChannelEvent':
        return cls(EventKind.JOIN, peer_id, position, color)

    @classmethod
    def update(cls, peer_id: str, position: Position) -> 'ChannelEvent':
        return cls(EventKind.UPDATE, peer_id, position)

    @classmethod
    def leave(cls, peer_id: str) -> 'ChannelEvent':
        return cls(EventKind.LEAVE, peer_id)

    def to_payload(self) -> Dict[str, Any]:
        """Fields shared by both wire formats"""
        payload: Dict[str, Any] = {'id': self.peer_id}
        if self.kind in (EventKind.JOIN, EventKind.UPDATE):
            payload['position'] = self.position.to_dict()
        if self.kind is EventKind.JOIN:
            payload['color'] = self.color
        return payload


class PositionModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    z: float

    def to_position(self) -> Position:
        return Position(self.x, self.y, self.z)


class LeavePayload(BaseModel):
    """Request body of a leave; also the base of the other payloads"""
    id: str = Field(..., min_length=1)


class UpdatePayload(LeavePayload):
    position: PositionModel


def _coerce_color(v):
    # Browser clients send Math.random() * 0xffffff, a float
    if isinstance(v, float):
        if not math.isfinite(v):
            raise ValueError('color must be a finite number')
        v = int(v)
    if isinstance(v, int) and not 0 <= v <= 0xFFFFFF:
        raise ValueError('color must be between 0 and 0xFFFFFF')
    return v


class JoinPayload(UpdatePayload):
    color: int

    @field_validator('color', mode='before')
    @classmethod
    def coerce_color(cls, v):
        return _coerce_color(v)


class PusherFrame(BaseModel):
    """A frame on the Pusher Channels websocket"""
    model_config = ConfigDict(extra='ignore')

    event: str
    channel: Optional[str] = None
    data: Any = None

    def data_dict(self) -> Dict[str, Any]:
        """Server-delivered data is a JSON string; client-sent data is an object"""
        if self.data is None:
            return {}
        if isinstance(self.data, str):
            try:
                data = json.loads(self.data)
            except json.JSONDecodeError as e:
                raise ProtocolError(f"Undecodable data in {self.event}: {e}") from e
        else:
            data = self.data
        if not isinstance(data, dict):
            raise ProtocolError(f"Data of {self.event} is not an object")
        return data


class Envelope(BaseModel):
    """The single message type of the socket relay"""
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    type: Literal['init', 'update', 'remove', 'join', 'leave']
    game_code: str = Field(..., alias='gameCode')
    id: Optional[str] = None
    position: Optional[PositionModel] = None
    color: Optional[int] = None
    players: List[JoinPayload] = Field(default_factory=list)

    @field_validator('color', mode='before')
    @classmethod
    def coerce_color(cls, v):
        return v if v is None else _coerce_color(v)


def _payload_to_event(kind: EventKind, data: Dict[str, Any]) -> ChannelEvent:
    try:
        if kind is EventKind.JOIN:
            payload = JoinPayload.model_validate(data)
            return ChannelEvent.join(payload.id, payload.position.to_position(), payload.color)
        if kind is EventKind.UPDATE:
            payload = UpdatePayload.model_validate(data)
            return ChannelEvent.update(payload.id, payload.position.to_position())
        payload = LeavePayload.model_validate(data)
        return ChannelEvent.leave(payload.id)
    except ValidationError as e:
        raise ProtocolError(f"Invalid {kind.value} payload: {e}") from e


# Hosted pub/sub

def encode_client_event(event: ChannelEvent) -> Dict[str, Any]:
    """Return the Pusher event name and payload as a dict"""
    return {'event': PUSHER_EVENT_NAMES[event.kind], 'data': event.to_payload()}


def decode_client_event(event_name: str, data: Union[str, Dict[str, Any]]) -> ChannelEvent:
    """Decode the data of a client-* event"""
    kind = PUSHER_EVENT_KINDS.get(event_name)
    if kind is None:
        raise ProtocolError(f"Unknown client event {event_name}")
    if isinstance(data, str):
        data = PusherFrame(event=event_name, data=data).data_dict()
    return _payload_to_event(kind, data)


def encode_pusher_event(channel: str, event: ChannelEvent) -> str:
    frame = encode_client_event(event)
    frame['channel'] = channel
    return json.dumps(frame)


def encode_pusher_command(event_name: str, data: Optional[Dict[str, Any]] = None) -> str:
    """Protocol-level frames such as pusher:subscribe and pusher:pong"""
    return json.dumps({'event': event_name, 'data': data or {}})


def decode_pusher_frame(raw: Union[str, bytes]) -> PusherFrame:
    try:
        return PusherFrame.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid pusher frame: {e}") from e


# Socket relay

def encode_envelope(event: ChannelEvent, game_code: str, message_type: Optional[str] = None) -> str:
    """message_type overrides the type derived from the event, e.g. remove"""
    envelope = {'type': message_type or event.kind.value, 'gameCode': game_code}
    envelope.update(event.to_payload())
    return json.dumps(envelope)


def encode_init(game_code: str, players: List[ChannelEvent]) -> str:
    """Snapshot of known players, sent by the relay to a newcomer"""
    return json.dumps({
        'type': 'init',
        'gameCode': game_code,
        'players': [player.to_payload() for player in players],
    })


def decode_envelope(raw: Union[str, bytes]) -> Envelope:
    try:
        return Envelope.model_validate_json(raw)
    except ValidationError as e:
        raise ProtocolError(f"Invalid envelope: {e}") from e


def envelope_events(envelope: Envelope, game_code: str) -> List[ChannelEvent]:
    """
    Convert an envelope into channel events for one room.

    Envelopes for other rooms yield nothing, init expands into one join per
    listed player and remove is treated as leave.
    """
    if envelope.game_code != game_code:
        return []

    if envelope.type == 'init':
        return [
            ChannelEvent.join(player.id, player.position.to_position(), player.color)
            for player in envelope.players
        ]

    kind = EventKind.LEAVE if envelope.type == 'remove' else EventKind(envelope.type)
    data = envelope.model_dump(include={'id', 'position', 'color'}, exclude_none=True)
    return [_payload_to_event(kind, data)]
