"""Live connection registry.

Maps each registered user to the Socket.IO connections (sids) they hold open,
with a reverse sid -> user index so disconnect cleanup never scans users.
State is process-local and rebuilt as clients reconnect.
"""
import logging
import threading
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from rental_server.utils.time_utils import now_std

logger = logging.getLogger(__name__)


class ConnectionInfo:
    __slots__ = ('user_id', 'namespace', 'registered_at')

    def __init__(self, user_id: str, namespace: str, registered_at: Optional[datetime] = None):
        self.user_id = user_id
        self.namespace = namespace
        self.registered_at = registered_at or now_std()


class ConnectionRegistry:
    """Thread-safe user <-> connection map."""

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[str, ConnectionInfo] = {}
        self._user_connections: Dict[str, Set[str]] = {}

    def register(self, user_id: str, connection_id: str, namespace: str = '/chat') -> None:
        """Attach connection_id to user_id. Re-registering moves it to the new user."""
        with self._lock:
            previous = self._connections.get(connection_id)
            if previous is not None and previous.user_id != user_id:
                self._discard(previous.user_id, connection_id)
                logger.info(f"Connection {connection_id} moved from {previous.user_id} to {user_id}")
            if previous is None or previous.user_id != user_id:
                self._connections[connection_id] = ConnectionInfo(user_id, namespace)
            self._user_connections.setdefault(user_id, set()).add(connection_id)
        logger.debug(f"Registered {connection_id} for {user_id} on {namespace}")

    def unregister(self, connection_id: str) -> Tuple[Optional[str], bool]:
        """Forget a connection.

        Returns (owning user id or None, whether that user has no connections left).
        """
        with self._lock:
            info = self._connections.pop(connection_id, None)
            if info is None:
                return None, False
            went_offline = self._discard(info.user_id, connection_id)
        logger.debug(f"Unregistered {connection_id} for {info.user_id} (offline={went_offline})")
        return info.user_id, went_offline

    def _discard(self, user_id: str, connection_id: str) -> bool:
        sids = self._user_connections.get(user_id)
        if sids is None:
            return True
        sids.discard(connection_id)
        if not sids:
            del self._user_connections[user_id]
            return True
        return False

    def connections_for(self, user_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._user_connections.get(user_id, ()))

    def is_online(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._user_connections

    def owner_of(self, connection_id: str) -> Optional[str]:
        with self._lock:
            info = self._connections.get(connection_id)
            return info.user_id if info else None

    def namespace_of(self, connection_id: str) -> Optional[str]:
        with self._lock:
            info = self._connections.get(connection_id)
            return info.namespace if info else None

    def online_users(self) -> List[str]:
        with self._lock:
            return list(self._user_connections.keys())

    def connection_count(self) -> int:
        """Total number of registered connections."""
        with self._lock:
            return len(self._connections)

    def user_count(self) -> int:
        """Number of distinct online users."""
        with self._lock:
            return len(self._user_connections)
