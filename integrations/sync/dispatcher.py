"""
Sync Dispatcher

Transport callbacks and the frame clock only enqueue; one loop drains both
queues and is the only code that touches peer state. Nothing is reordered
or deduplicated on the way through.
"""

import asyncio
import logging
from typing import Optional

from integrations.transports.base import TransportError
from .input_state import InputState
from integrations.protocol import ChannelEvent
from .reconciler import PeerStateReconciler

logger = logging.getLogger('arena.sync.dispatcher')


class SyncDispatcher:
    """Single-threaded dispatch of peer events and local ticks"""

    def __init__(self, reconciler: PeerStateReconciler, input_state: InputState):
        self.reconciler = reconciler
        self.input_state = input_state
        self._peer_events: asyncio.Queue = asyncio.Queue()
        self._ticks: asyncio.Queue = asyncio.Queue()
        self._wakeup = asyncio.Event()
        self._running = False
        self._stats = {
            'peer_events': 0,
            'ticks': 0,
            'transport_errors': 0
        }

    @property
    def pending(self) -> int:
        return self._peer_events.qsize() + self._ticks.qsize()

    @property
    def is_running(self) -> bool:
        return self._running

    def submit_peer_event(self, event: ChannelEvent):
        """Listener for inbound channel events"""
        self._peer_events.put_nowait(event)
        self._wakeup.set()

    def submit_tick(self):
        """Request one local tick, normally once per frame"""
        self._ticks.put_nowait(None)
        self._wakeup.set()

    async def drain(self) -> int:
        """
        Process everything currently queued, peer events first.

        Returns:
            Number of items processed
        """
        processed = 0

        while not self._peer_events.empty():
            event = self._peer_events.get_nowait()
            try:
                await self.reconciler.apply(event)
            except TransportError as e:
                self._stats['transport_errors'] += 1
                logger.warning(f"Could not answer {event.kind.value} from {event.peer_id}: {e}")
            self._stats['peer_events'] += 1
            processed += 1

        while not self._ticks.empty():
            self._ticks.get_nowait()
            try:
                await self.reconciler.tick(self.input_state)
            except TransportError as e:
                self._stats['transport_errors'] += 1
                logger.warning(f"Could not send local update: {e}")
            self._stats['ticks'] += 1
            processed += 1

        return processed

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        """Drain whenever something is submitted, until stop() or stop is set"""
        self._running = True
        logger.debug("Dispatcher started")
        try:
            while self._running and not (stop and stop.is_set()):
                await self._wakeup.wait()
                self._wakeup.clear()
                await self.drain()
        finally:
            self._running = False
            logger.debug("Dispatcher stopped")

    def stop(self):
        self._running = False
        self._wakeup.set()

    def get_stats(self):
        return {**self._stats, 'pending': self.pending}
