"""Socket.IO transport used by the realtime gateway.

Wraps a Flask-SocketIO instance so the gateway, the room table and the REST
routes emit through one object. Emits are fire-and-forget: a failed emit is
logged as a TransportError and never raised to the caller.

Usage:
    emitter = EventEmitter(socketio)

    # Emit to one connection
    emitter.emit_to_connection(sid, 'booking_accepted', data, namespace='/')

    # Emit to a conversation room
    emitter.emit_to_room('conv:CONV-1', 'new_message', data, namespace='/chat')
"""
import logging
from typing import Any, Dict

from rental_server.exception.ChatError import TransportError

logger = logging.getLogger(__name__)


class EventEmitter:
    """Emit and room primitives over a Flask-SocketIO server."""

    def __init__(self, socketio):
        self.socketio = socketio
        logger.debug("EventEmitter initialized with Socket.IO instance")

    # =========================================================================
    # Emit Methods
    # =========================================================================

    def emit_to_connection(self, connection_id: str, event: str, data: Dict[str, Any], namespace: str = '/') -> bool:
        """Emit event to a single connection.

        Returns:
            True if the server accepted the emit
        """
        try:
            self.socketio.emit(event, data, to=connection_id, namespace=namespace)
            logger.debug(f"EVENT_EMITTER: Emitted '{event}' to socket {connection_id} on {namespace}")
            return True
        except Exception as e:
            err = TransportError(f"emit {event} to {connection_id} failed: {e}")
            logger.error(f"EVENT_EMITTER: {err.message}")
            return False

    def emit_to_room(self, room_id: str, event: str, data: Dict[str, Any], namespace: str = '/chat') -> bool:
        """Emit event to every connection in a room (e.g. a conversation)."""
        try:
            self.socketio.emit(event, data, to=room_id, namespace=namespace)
            logger.debug(f"EVENT_EMITTER: Emitted '{event}' to room {room_id}")
            return True
        except Exception as e:
            err = TransportError(f"emit {event} to room {room_id} failed: {e}")
            logger.error(f"EVENT_EMITTER: {err.message}")
            return False

    # =========================================================================
    # Room Methods
    # =========================================================================

    def enter_room(self, connection_id: str, room_id: str, namespace: str = '/chat') -> None:
        self.socketio.server.enter_room(connection_id, room_id, namespace=namespace)

    def leave_room(self, connection_id: str, room_id: str, namespace: str = '/chat') -> None:
        self.socketio.server.leave_room(connection_id, room_id, namespace=namespace)
