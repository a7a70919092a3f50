"""
Core Infrastructure Tests

ServiceRegistry, EventBus and StateManager.
"""

import asyncio
from abc import ABC, abstractmethod

import pytest

from core import (
    CircularDependencyError,
    ConfigurationManager,
    Event,
    EventBus,
    EventPriority,
    Peer,
    Position,
    ServiceConfigurationError,
    ServiceLifetime,
    ServiceNotFound,
    ServiceRegistry,
    StateManager,
)


class Greeter(ABC):
    @abstractmethod
    def greet(self) -> str:
        pass


class EnglishGreeter(Greeter):
    def greet(self) -> str:
        return "hello"


class NeedsA:
    pass


class NeedsB:
    pass


def make_a(b: NeedsB) -> NeedsA:
    return NeedsA()


def make_b(a: NeedsA) -> NeedsB:
    return NeedsB()


class TestServiceRegistry:

    def test_singleton_registration(self):
        registry = ServiceRegistry()
        registry.register(EventBus, lifetime=ServiceLifetime.SINGLETON)
        registry.register(StateManager, lifetime=ServiceLifetime.SINGLETON)

        state_manager = registry.get(StateManager)

        assert state_manager is registry.get(StateManager)
        assert isinstance(state_manager, StateManager)

    def test_transient_registration(self):
        registry = ServiceRegistry()
        registry.register(EventBus, lifetime=ServiceLifetime.TRANSIENT)

        assert registry.get(EventBus) is not registry.get(EventBus)

    def test_unregistered_service_raises(self):
        registry = ServiceRegistry()
        assert not registry.is_registered(StateManager)

        with pytest.raises(ServiceNotFound):
            registry.get(StateManager)

    def test_abstract_needs_implementation(self):
        registry = ServiceRegistry()

        with pytest.raises(ServiceConfigurationError):
            registry.register(Greeter)

        registry.register(Greeter, EnglishGreeter)
        assert registry.get(Greeter).greet() == "hello"

    def test_factory_resolves_dependencies(self):
        registry = ServiceRegistry()
        registry.register(EventBus)

        def create_greeter(event_bus: EventBus):
            assert isinstance(event_bus, EventBus)
            return EnglishGreeter()

        registry.register(Greeter, factory=create_greeter)
        assert isinstance(registry.get(Greeter), EnglishGreeter)

    def test_defaults_used_for_unregistered_parameters(self):
        registry = ServiceRegistry()
        registry.register(ConfigurationManager)

        manager = registry.get(ConfigurationManager)
        assert manager.base_path is not None

    def test_circular_dependency(self):
        registry = ServiceRegistry()
        registry.register(NeedsA, factory=make_a)
        registry.register(NeedsB, factory=make_b)

        with pytest.raises(CircularDependencyError):
            registry.get(NeedsA)

    def test_register_instance(self):
        registry = ServiceRegistry()
        bus = EventBus()
        registry.register_instance(EventBus, bus)

        assert registry.get(EventBus) is bus
        assert registry.is_registered(EventBus)


class TestEventBus:

    def test_priority_order(self, event_bus):
        calls = []
        event_bus.subscribe('tick', lambda e: calls.append('low'), handler_id='low', priority=EventPriority.LOW)
        event_bus.subscribe('tick', lambda e: calls.append('high'), handler_id='high', priority=EventPriority.HIGH)

        assert event_bus.emit('tick') == 2
        assert calls == ['high', 'low']

    def test_filter_and_unsubscribe(self, event_bus):
        calls = []
        handler_id = event_bus.subscribe(
            'frame', lambda e: calls.append(e.source), filter_func=lambda e: e.source != 'me'
        )

        event_bus.publish(Event(event_type='frame', source='me'))
        event_bus.publish(Event(event_type='frame', source='you'))
        assert calls == ['you']

        assert event_bus.unsubscribe(handler_id) is True
        event_bus.publish(Event(event_type='frame', source='you'))
        assert calls == ['you']

    def test_wildcard_handler(self, event_bus):
        seen = []
        event_bus.subscribe('*', lambda e: seen.append(e.event_type))

        event_bus.emit('a')
        event_bus.emit('b')

        assert seen == ['a', 'b']

    def test_handler_errors_are_isolated(self, event_bus):
        calls = []
        errors = []

        def broken(event):
            raise RuntimeError("boom")

        event_bus.subscribe('x', broken, handler_id='broken', priority=EventPriority.HIGH)
        event_bus.subscribe('x', lambda e: calls.append(e), handler_id='ok')
        event_bus.add_error_handler(lambda handler, event, error: errors.append(handler.handler_id))

        event_bus.emit('x')

        assert len(calls) == 1
        assert errors == ['broken']
        assert event_bus.get_stats()['handler_errors'] == 1

    def test_middleware_can_drop_events(self, event_bus):
        calls = []
        event_bus.subscribe('x', calls.append)
        event_bus.add_middleware(lambda event: None if event.data.get('drop') else event)

        event_bus.emit('x', drop=True)
        event_bus.emit('x', drop=False)

        assert len(calls) == 1

    def test_history_is_bounded(self):
        bus = EventBus(max_history=2)
        for name in ('a', 'b', 'c'):
            bus.emit(name)

        assert [e.event_type for e in bus.get_event_history()] == ['b', 'c']
        assert EventBus(max_history=0).get_event_history() == []

    @pytest.mark.asyncio
    async def test_async_handlers(self, event_bus):
        seen = []

        async def handler(event):
            seen.append(event.event_type)

        event_bus.subscribe('async', handler)
        assert event_bus.publish(Event(event_type='async')) == 1

        await asyncio.sleep(0)
        assert seen == ['async']


class TestStateManager:

    def test_peer_lifecycle_publishes_events(self, event_bus, state_manager):
        seen = []
        event_bus.subscribe(['peer_joined', 'peer_moved', 'peer_left'], lambda e: seen.append(
            (e.event_type, e.get_event_data('peer_id'))
        ))

        state_manager.add_peer(Peer('b', 'x', Position(0, 0.5, 0), 7))
        state_manager.move_peer('b', Position(1, 0.5, 0))
        state_manager.remove_peer('b')

        assert seen == [('peer_joined', 'b'), ('peer_moved', 'b'), ('peer_left', 'b')]

    def test_move_records_old_position(self, event_bus, state_manager):
        old_positions = []
        event_bus.subscribe('peer_moved', lambda e: old_positions.append(e.get_event_data('old_position')))

        state_manager.add_peer(Peer('b', 'x', Position(0, 0.5, 0), 7))
        peer = state_manager.move_peer('b', Position(1, 0.5, 0))

        assert old_positions == [Position(0, 0.5, 0)]
        assert peer.updates_applied == 1

    def test_duplicate_add_raises(self, state_manager):
        state_manager.add_peer(Peer('b', 'x'))

        with pytest.raises(ValueError):
            state_manager.add_peer(Peer('b', 'x'))

    def test_unknown_ids(self, state_manager):
        assert state_manager.move_peer('nobody', Position()) is None
        assert state_manager.remove_peer('nobody') is None
        assert state_manager.get_peer('nobody') is None

    def test_summary_and_clear(self, state_manager):
        state_manager.add_peer(Peer('me', 'x', is_local=True))
        state_manager.add_peer(Peer('b', 'x'))

        summary = state_manager.get_state_summary()
        assert summary['total_peers'] == 2
        assert summary['remote_peers'] == 1
        assert [peer.peer_id for peer in state_manager.get_remote_peers()] == ['b']

        assert state_manager.clear() == 2
        assert len(state_manager) == 0
