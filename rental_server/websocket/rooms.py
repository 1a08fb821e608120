"""Conversation room membership.

Each conversation has a Socket.IO room `conv:<conversation_id>` in the chat
namespace. The subscription tables here mirror what the Socket.IO server
holds, so disconnect cleanup and membership checks don't need the server.
"""
import logging
import threading
from typing import Any, Dict, FrozenSet, List, Set

logger = logging.getLogger(__name__)

ROOM_PREFIX = 'conv:'


def room_for(conversation_id: str) -> str:
    return f"{ROOM_PREFIX}{conversation_id}"


class RoomMembership:

    def __init__(self, transport, conversation_ids_for, namespace: str = '/chat'):
        """
        Args:
            transport: EventEmitter (or anything with enter_room/leave_room/emit_to_room)
            conversation_ids_for: callable returning a user's conversation ids
            namespace: Socket.IO namespace the rooms live in
        """
        self.transport = transport
        self.conversation_ids_for = conversation_ids_for
        self.namespace = namespace
        self._lock = threading.Lock()
        self._rooms_by_connection: Dict[str, Set[str]] = {}
        self._connections_by_room: Dict[str, Set[str]] = {}

    def join_all_conversations(self, connection_id: str, user_id: str) -> List[str]:
        """Subscribe the connection to every conversation the user is in."""
        conversation_ids = self.conversation_ids_for(user_id)
        for conversation_id in conversation_ids:
            self.join_conversation(connection_id, conversation_id)
        logger.debug(f"{connection_id} joined {len(conversation_ids)} conversation room(s) for {user_id}")
        return list(conversation_ids)

    def join_conversation(self, connection_id: str, conversation_id: str) -> bool:
        """Returns False when the connection was already subscribed."""
        with self._lock:
            rooms = self._rooms_by_connection.setdefault(connection_id, set())
            if conversation_id in rooms:
                return False
            rooms.add(conversation_id)
            self._connections_by_room.setdefault(conversation_id, set()).add(connection_id)
        self.transport.enter_room(connection_id, room_for(conversation_id), namespace=self.namespace)
        return True

    def leave_conversation(self, connection_id: str, conversation_id: str) -> bool:
        with self._lock:
            if not self._forget(connection_id, conversation_id):
                return False
        self.transport.leave_room(connection_id, room_for(conversation_id), namespace=self.namespace)
        return True

    def _forget(self, connection_id: str, conversation_id: str) -> bool:
        rooms = self._rooms_by_connection.get(connection_id)
        if not rooms or conversation_id not in rooms:
            return False
        rooms.discard(conversation_id)
        if not rooms:
            del self._rooms_by_connection[connection_id]
        members = self._connections_by_room.get(conversation_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._connections_by_room[conversation_id]
        return True

    def drop_connection(self, connection_id: str) -> List[str]:
        """Forget a disconnected connection. The Socket.IO server drops its rooms itself."""
        with self._lock:
            conversation_ids = list(self._rooms_by_connection.get(connection_id, ()))
            for conversation_id in conversation_ids:
                self._forget(connection_id, conversation_id)
        return conversation_ids

    def broadcast_to_conversation(self, conversation_id: str, event: str, payload: Dict[str, Any]) -> bool:
        return self.transport.emit_to_room(room_for(conversation_id), event, payload, namespace=self.namespace)

    def members_of(self, conversation_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._connections_by_room.get(conversation_id, ()))

    def rooms_of(self, connection_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._rooms_by_connection.get(connection_id, ()))
