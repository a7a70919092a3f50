"""
Wire Protocol Tests
"""

import json

import pytest

from core import Position
from integrations.protocol import (
    ChannelEvent,
    EventKind,
    ProtocolError,
    decode_client_event,
    decode_envelope,
    decode_pusher_frame,
    encode_client_event,
    encode_envelope,
    encode_init,
    encode_pusher_command,
    encode_pusher_event,
    envelope_events,
)


class TestPusherCodec:

    def test_client_event_names_and_payloads(self):
        join = encode_client_event(ChannelEvent.join("a", Position(0, 0.5, 0), 255))
        update = encode_client_event(ChannelEvent.update("a", Position(1, 0.5, 2)))
        leave = encode_client_event(ChannelEvent.leave("a"))

        assert join == {
            'event': 'client-join',
            'data': {'id': 'a', 'position': {'x': 0, 'y': 0.5, 'z': 0}, 'color': 255}
        }
        assert update == {'event': 'client-update', 'data': {'id': 'a', 'position': {'x': 1, 'y': 0.5, 'z': 2}}}
        assert leave == {'event': 'client-leave', 'data': {'id': 'a'}}

    def test_decode_accepts_string_data(self):
        data = json.dumps({'id': 'b', 'position': {'x': 1.5, 'y': 0.5, 'z': -2}})

        event = decode_client_event('client-update', data)

        assert event == ChannelEvent.update('b', Position(1.5, 0.5, -2))

    def test_browser_float_colour_is_truncated(self):
        event = decode_client_event('client-join', {
            'id': 'b', 'position': {'x': 0, 'y': 0.5, 'z': 0}, 'color': 8421504.73
        })

        assert event.color == 8421504

    def test_malformed_payloads_raise(self):
        with pytest.raises(ProtocolError):
            decode_client_event('client-update', {'id': 'b'})
        with pytest.raises(ProtocolError):
            decode_client_event('client-join', {'id': 'b', 'position': {'x': 0, 'y': 0, 'z': 0}, 'color': -1})
        with pytest.raises(ProtocolError):
            decode_client_event('client-leave', {'id': ''})
        with pytest.raises(ProtocolError):
            decode_client_event('client-dance', {'id': 'b'})
        with pytest.raises(ProtocolError):
            decode_client_event('client-leave', '[1, 2]')

    def test_non_finite_colour_raises(self):
        position = '{"x": 0, "y": 0.5, "z": 0}'
        with pytest.raises(ProtocolError):
            decode_client_event('client-join', '{"id": "b", "position": %s, "color": Infinity}' % position)
        with pytest.raises(ProtocolError):
            decode_client_event('client-join', '{"id": "b", "position": %s, "color": NaN}' % position)
        with pytest.raises(ProtocolError):
            decode_client_event('client-update', '{"id": "b", "position": {"x": Infinity, "y": 0.5, "z": 0}}')

    def test_pusher_event_frame_includes_channel(self):
        frame = json.loads(encode_pusher_event('game-x', ChannelEvent.leave('a')))

        assert frame == {'event': 'client-leave', 'channel': 'game-x', 'data': {'id': 'a'}}

    def test_pusher_command(self):
        assert json.loads(encode_pusher_command('pusher:pong')) == {'event': 'pusher:pong', 'data': {}}

    def test_decode_pusher_frame(self):
        frame = decode_pusher_frame('{"event": "pusher:connection_established", "data": "{\\"socket_id\\": \\"1.2\\"}"}')

        assert frame.event == 'pusher:connection_established'
        assert frame.data_dict() == {'socket_id': '1.2'}

        with pytest.raises(ProtocolError):
            decode_pusher_frame('not json')


class TestEnvelopeCodec:

    def test_encode_envelope_carries_game_code(self):
        envelope = json.loads(encode_envelope(ChannelEvent.update('a', Position(1, 0.5, 0)), 'x'))

        assert envelope == {'type': 'update', 'gameCode': 'x', 'id': 'a', 'position': {'x': 1, 'y': 0.5, 'z': 0}}

    def test_remove_type_override(self):
        envelope = json.loads(encode_envelope(ChannelEvent.leave('a'), 'x', message_type='remove'))
        assert envelope == {'type': 'remove', 'gameCode': 'x', 'id': 'a'}

    def test_other_rooms_are_filtered(self):
        envelope = decode_envelope(encode_envelope(ChannelEvent.leave('a'), 'y'))
        assert envelope_events(envelope, 'x') == []

    def test_init_expands_to_joins(self):
        players = [
            ChannelEvent.join('a', Position(0, 0.5, 0), 1),
            ChannelEvent.join('b', Position(2, 0.5, 2), 2),
        ]
        envelope = decode_envelope(encode_init('x', players))

        assert envelope_events(envelope, 'x') == players

    def test_remove_is_leave(self):
        envelope = decode_envelope('{"type": "remove", "gameCode": "x", "id": "a"}')
        [event] = envelope_events(envelope, 'x')

        assert event.kind is EventKind.LEAVE
        assert event.peer_id == 'a'

    def test_join_envelope(self):
        envelope = decode_envelope(encode_envelope(ChannelEvent.join('a', Position(0, 0.5, 0), 99), 'x'))
        assert envelope_events(envelope, 'x') == [ChannelEvent.join('a', Position(0, 0.5, 0), 99)]

    def test_invalid_envelopes(self):
        with pytest.raises(ProtocolError):
            decode_envelope('{"type": "explode", "gameCode": "x"}')
        with pytest.raises(ProtocolError):
            decode_envelope('{"type": "update", "id": "a"}')

        # Valid envelope, invalid event payload
        envelope = decode_envelope('{"type": "update", "gameCode": "x", "id": "a"}')
        with pytest.raises(ProtocolError):
            envelope_events(envelope, 'x')

    def test_non_finite_colour_envelope_raises(self):
        with pytest.raises(ProtocolError):
            decode_envelope(
                '{"type": "join", "gameCode": "x", "id": "a", "position": {"x": 0, "y": 0.5, "z": 0}, "color": 1e999}'
            )

    def test_float_colour_envelope_is_truncated(self):
        envelope = decode_envelope(
            '{"type": "join", "gameCode": "x", "id": "a", "position": {"x": 0, "y": 0.5, "z": 0}, "color": 12.9}'
        )

        assert envelope.color == 12
        assert envelope_events(envelope, 'x') == [ChannelEvent.join('a', Position(0, 0.5, 0), 12)]
