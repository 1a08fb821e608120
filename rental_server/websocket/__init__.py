"""WebSocket module for real-time communication.

This module provides:
- The realtime gateway (connection lifecycle, dispatch, fan-out)
- Connection registry, typing presence and conversation rooms
- The Socket.IO event emitter
"""

from rental_server.websocket.event_emitter import EventEmitter
from rental_server.websocket.hub import RealtimeGateway, get_gateway, init_gateway
from rental_server.websocket.presence import PresenceTracker
from rental_server.websocket.registry import ConnectionRegistry
from rental_server.websocket.rooms import RoomMembership

__all__ = [
    'EventEmitter', 'RealtimeGateway', 'get_gateway', 'init_gateway',
    'PresenceTracker', 'ConnectionRegistry', 'RoomMembership',
]
