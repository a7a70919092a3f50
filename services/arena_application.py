"""
CubeArena Application
"""

import asyncio
import logging
import logging.handlers
from pathlib import Path
from typing import Any, Dict, Optional

from core import (
    ArenaConfiguration,
    ConfigurationManager,
    EventBus,
    ServiceLifetime,
    ServiceRegistry,
    StateManager,
)
from integrations.relay import RelayServer
from integrations.sync import ArenaSession, ScriptedInput
from integrations.transports import (
    ChannelTransport,
    InMemoryBroker,
    InMemoryTransport,
    PusherChannelTransport,
    SocketChannelTransport,
)
from .scene_service import SceneService

logger = logging.getLogger('arena.services.application')


def create_transport(config: ArenaConfiguration, broker: Optional[InMemoryBroker] = None) -> ChannelTransport:
    """Build the transport selected by config.transport"""
    if config.transport == 'pusher':
        return PusherChannelTransport(config.pusher_key, cluster=config.pusher_cluster)
    if config.transport == 'socket':
        return SocketChannelTransport(config.relay_url)
    return InMemoryTransport(broker or InMemoryBroker())


class ArenaApplication:
    """
    Wires configuration, peer state, the scene and one arena session.

    The frame loop stands in for a browser's animation frames: every frame
    applies scripted input, submits a tick and renders the scene.
    """

    def __init__(self, service_registry: Optional[ServiceRegistry] = None, base_path: Optional[Path] = None):
        self.service_registry = service_registry or ServiceRegistry()
        self.base_path = base_path
        self.session: Optional[ArenaSession] = None
        self.scene: Optional[SceneService] = None
        self.config: Optional[ArenaConfiguration] = None
        self._dispatcher_task: Optional[asyncio.Task] = None
        self._startup_complete = False

        logger.info("ArenaApplication initialized")

    def initialize(self, **overrides: Any) -> ArenaConfiguration:
        """
        Register all services.

        Args:
            overrides: Configuration values taking precedence over every
                other source, e.g. command line flags

        Raises:
            ConfigurationError: If configuration is invalid
        """
        logger.info("Initializing ArenaApplication services...")

        self._register_core_services()

        config_manager = self.service_registry.get(ConfigurationManager)
        config_manager.set_overrides(**overrides)
        config = config_manager.get_configuration()

        self._setup_logging(config)
        self._register_arena_services()
        self.config = config

        logger.info(f"ArenaApplication services initialized (transport: {config.transport})")
        return config

    def _register_core_services(self) -> None:
        self.service_registry.register_instance(ServiceRegistry, self.service_registry)

        if self.base_path is not None:
            self.service_registry.register_instance(ConfigurationManager, ConfigurationManager(self.base_path))
        elif not self.service_registry.is_registered(ConfigurationManager):
            self.service_registry.register(ConfigurationManager, lifetime=ServiceLifetime.SINGLETON)

        self.service_registry.register(EventBus, lifetime=ServiceLifetime.SINGLETON)
        self.service_registry.register(StateManager, lifetime=ServiceLifetime.SINGLETON)

        logger.debug("Core services registered")

    def _register_arena_services(self) -> None:
        self.service_registry.register(SceneService, lifetime=ServiceLifetime.SINGLETON)

        if not self.service_registry.is_registered(InMemoryBroker):
            self.service_registry.register(InMemoryBroker, lifetime=ServiceLifetime.SINGLETON)

        def create_channel_transport(config_manager: ConfigurationManager, broker: InMemoryBroker):
            return create_transport(config_manager.get_configuration(), broker)

        def create_session(transport: ChannelTransport, state_manager: StateManager,
                           config_manager: ConfigurationManager):
            return ArenaSession(transport, state_manager, config_manager.get_configuration())

        self.service_registry.register(
            ChannelTransport,
            factory=create_channel_transport,
            lifetime=ServiceLifetime.SINGLETON
        )
        self.service_registry.register(
            ArenaSession,
            factory=create_session,
            lifetime=ServiceLifetime.SINGLETON
        )

        logger.debug("Arena services registered")

    async def start(self, room: Optional[str]) -> ArenaSession:
        """Connect, start the dispatcher and join a room"""
        # The scene subscribes before any peer exists
        self.scene = self.service_registry.get(SceneService)
        self.session = self.service_registry.get(ArenaSession)

        await self.session.transport.connect()
        self._dispatcher_task = asyncio.create_task(self.session.run())
        await self.session.join(room)

        self._startup_complete = True
        logger.info(f"Playing as {self.session.local_peer_id} in room '{self.session.room_id}'")
        return self.session

    async def play(self, room: Optional[str], script: Optional[str] = None,
                   duration: Optional[float] = None) -> None:
        """
        Run the frame loop.

        Stops when duration seconds have elapsed, or when the script runs
        out if no duration is given. Without either it runs until cancelled.
        """
        config = self.config or self.initialize()
        scripted = ScriptedInput.parse(script, config.frame_rate) if script else None
        await self.start(room)

        frame_interval = 1.0 / config.frame_rate
        loop = asyncio.get_running_loop()
        deadline = loop.time() + duration if duration is not None else None

        try:
            while True:
                if scripted is not None:
                    running = scripted.advance(self.session.input_state)
                    if not running and deadline is None:
                        break
                if deadline is not None and loop.time() >= deadline:
                    break

                self.session.frame()
                await asyncio.sleep(frame_interval)
                self.scene.render()
        finally:
            await self.shutdown()

    def run_sync(self, room: Optional[str], script: Optional[str] = None,
                 duration: Optional[float] = None) -> None:
        """Run the frame loop synchronously (for main entry point)"""
        try:
            asyncio.run(self.play(room, script, duration))
        except KeyboardInterrupt:
            logger.info("Shutdown requested")

    async def shutdown(self) -> None:
        """Leave the room and close the transport"""
        logger.info("Shutting down ArenaApplication...")

        if self.session is not None:
            await self.session.leave()
            self.session.stop()
            if self._dispatcher_task is not None:
                await self._dispatcher_task
                self._dispatcher_task = None
            await self.session.transport.close()

        if self.scene is not None:
            self.scene.close()

        self._startup_complete = False
        logger.info("ArenaApplication shutdown complete")

    def run_relay(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Serve the websocket relay until interrupted"""
        config = self.initialize(relay_host=host, relay_port=port)
        relay = RelayServer(config)
        try:
            asyncio.run(relay.serve_forever())
        except KeyboardInterrupt:
            logger.info("Relay shutdown requested")

    def _setup_logging(self, config: ArenaConfiguration) -> None:
        """Apply the configured level and the rotating log file"""
        arena_logger = logging.getLogger('arena')
        arena_logger.setLevel(config.log_level)

        if not config.log_file_path:
            return

        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                filename=Path(config.log_file_path),
                encoding='utf-8',
                maxBytes=config.log_max_bytes,
                backupCount=config.log_backup_count
            )
        except OSError as e:
            # Console logging keeps working without the file
            logger.error(f"Failed to open log file {config.log_file_path}: {e}")
            return

        file_handler.setFormatter(formatter)
        arena_logger.addHandler(file_handler)
        logger.debug("File logging configured")

    def get_service_stats(self) -> Dict[str, Any]:
        """Get statistics about all registered services"""
        registered_services = self.service_registry.get_registered_services()

        service_stats = {}
        for service_type, service_def in registered_services.items():
            service_stats[service_type.__name__] = {
                'lifetime': service_def.lifetime.value,
                'has_instance': service_def.instance is not None
            }

        return {
            'total_services': len(registered_services),
            'startup_complete': self._startup_complete,
            'session': self.session.get_status() if self.session else None,
            'services': service_stats
        }


def create_application(base_path: Optional[Path] = None) -> ArenaApplication:
    """Create and configure a new ArenaApplication instance"""
    service_registry = ServiceRegistry()
    return ArenaApplication(service_registry, base_path)
