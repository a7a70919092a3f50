"""
Core Infrastructure for CubeArena

Provides foundational services including dependency injection, configuration
management, peer state storage, and event-driven communication.

Key Components:
- ServiceRegistry: Dependency injection container for all services
- ConfigurationManager: Centralized configuration with environment support
- StateManager: Peer mapping replacing module-level player dictionaries
- EventBus: Internal event system for component communication
"""

from .service_registry import (
    ServiceRegistry,
    ServiceLifetime,
    ServiceNotFound,
    CircularDependencyError,
    ServiceConfigurationError,
)
from .config_manager import ConfigurationManager, ConfigurationError, ArenaConfiguration
from .state_manager import StateManager, Peer, Position
from .event_bus import EventBus, Event, EventPriority, PeerStateEvent

__all__ = [
    'ServiceRegistry',
    'ServiceLifetime',
    'ServiceNotFound',
    'CircularDependencyError',
    'ServiceConfigurationError',
    'ConfigurationManager',
    'ConfigurationError',
    'ArenaConfiguration',
    'StateManager',
    'Peer',
    'Position',
    'EventBus',
    'Event',
    'EventPriority',
    'PeerStateEvent'
]
