"""
Network Integrations for CubeArena

Sub-packages:
- sync: Room binding, peer state reconciliation and the arena session
- transports: Broadcast backends (in-memory, Pusher Channels, socket relay)
- relay: FastAPI websocket relay used by the socket transport

The wire codec shared by all of them lives in integrations.protocol.
"""
