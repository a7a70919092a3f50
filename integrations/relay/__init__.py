"""
Websocket Relay for the CubeArena socket transport
"""

from .server import RelayServer, CachedPlayer

__all__ = ['RelayServer', 'CachedPlayer']
