"""Realtime gateway.

Owns the connection registry, typing presence and conversation rooms for one
Socket.IO server and is the only code that mutates them. Other subsystems
reach the realtime layer through `send_notification_to_user` and
`broadcast_to_conversation`.

Namespaces:
- chat (`/chat` by default): register, rooms, messages, typing, read receipts
- notifications (`/` by default): register and receive booking events
"""
import logging
import threading
from typing import Any, Callable, Dict, Iterable, Optional, Set

from flask import Flask, current_app, has_app_context, request
from flask_socketio import SocketIO

from config import config
from rental_server.exception.ChatError import ChatError, ForbiddenError
from rental_server.exception.UnauthorizedError import UnauthorizedError
from rental_server.messaging.events import OutboundEvent, RegisterPayload, typing_status_payload
from rental_server.messaging.service import MessagingService
from rental_server.repository.mongo_helper import get_db
from rental_server.security.authentication import AuthSecurity, extract_bearer_token, user_id_from_payload
from rental_server.websocket.event_emitter import EventEmitter
from rental_server.websocket.handlers.chat_handler import ChatHandler
from rental_server.websocket.presence import PresenceTracker
from rental_server.websocket.registry import ConnectionRegistry
from rental_server.websocket.rooms import RoomMembership

logger = logging.getLogger(__name__)

CONVERSATION_LOCK_STRIPES = 64


class RealtimeGateway:
    """Connection lifecycle, event dispatch and fan-out."""

    def __init__(
        self,
        transport,
        messaging: MessagingService,
        registry: Optional[ConnectionRegistry] = None,
        presence: Optional[PresenceTracker] = None,
        chat_namespace: Optional[str] = None,
        notification_namespace: Optional[str] = None,
        require_auth: Optional[bool] = None
    ):
        self.transport = transport
        self.messaging = messaging
        self.chat_namespace = chat_namespace or config.CHAT_NAMESPACE
        self.notification_namespace = notification_namespace or config.NOTIFICATION_NAMESPACE
        self.require_auth = config.SOCKET_REQUIRE_AUTH if require_auth is None else require_auth
        self.registry = registry or ConnectionRegistry()
        self.presence = presence or PresenceTracker()
        self.rooms = RoomMembership(transport, messaging.conversation_ids_for, namespace=self.chat_namespace)
        self.chat = ChatHandler(self)

        self._auth_lock = threading.Lock()
        self._authenticated: Dict[str, str] = {}
        self._live: Set[str] = set()
        self._conversation_locks = [threading.Lock() for _ in range(CONVERSATION_LOCK_STRIPES)]

    # =========================================================================
    # Connection Lifecycle
    # =========================================================================

    def on_connect(self, connection_id: str, namespace: str, auth=None, headers=None, args=None) -> bool:
        """Accept or refuse a new connection.

        A valid bearer token registers the connection right away. Without one the
        connection stays anonymous until it sends `register`, unless the server
        requires authentication.
        """
        token = extract_bearer_token(auth, headers, args)
        if not token:
            if self.require_auth:
                logger.warning(f"WS refused: sid={connection_id}, no token")
                return False
            with self._auth_lock:
                self._live.add(connection_id)
            logger.debug(f"WS connect (anonymous): sid={connection_id}, ns={namespace}")
            return True

        try:
            user_id = user_id_from_payload(AuthSecurity.decode_token(token))
        except UnauthorizedError as e:
            logger.warning(f"WS auth failed: sid={connection_id}: {e}")
            return False

        with self._auth_lock:
            self._live.add(connection_id)
            self._authenticated[connection_id] = user_id
        if not self._register(connection_id, user_id, namespace):
            return False
        logger.info(f"WS connected: user={user_id}, sid={connection_id}, ns={namespace}")
        return True

    def on_register(self, connection_id: str, namespace: str, data: Any) -> Dict[str, Any]:
        payload = RegisterPayload.from_payload(data)
        with self._auth_lock:
            token_user = self._authenticated.get(connection_id)
        if token_user is not None and token_user != payload.user_id:
            raise ForbiddenError('userId does not match the authenticated user')
        if token_user is None and self.require_auth:
            raise UnauthorizedError('Authentication required')
        current = self.registry.owner_of(connection_id)
        if current is not None and current != payload.user_id:
            raise ForbiddenError('Connection is already registered to another user')
        if not self._register(connection_id, payload.user_id, namespace):
            raise UnauthorizedError('Connection closed before registration completed')
        return {'status': 'registered', 'userId': payload.user_id}

    def _is_live(self, connection_id: str) -> bool:
        with self._auth_lock:
            return connection_id in self._live

    def _register(self, connection_id: str, user_id: str, namespace: str) -> bool:
        """Register and subscribe a live connection.

        Disconnect runs on another thread and can land while the room lookup is
        in flight. Liveness is checked again afterwards and anything added for a
        connection that died meanwhile is rolled back. Returns False in that case.
        """
        if not self._is_live(connection_id):
            return False
        self.registry.register(user_id, connection_id, namespace)
        if namespace == self.chat_namespace:
            self.rooms.join_all_conversations(connection_id, user_id)
        if not self._is_live(connection_id):
            logger.info(f"WS sid={connection_id} closed during registration, rolling back")
            self._forget(connection_id)
            return False
        return True

    def on_disconnect(self, connection_id: str) -> None:
        """Forget the connection; clear typing once the user's last chat connection is gone."""
        with self._auth_lock:
            self._live.discard(connection_id)
            self._authenticated.pop(connection_id, None)
        self._forget(connection_id)

    def _forget(self, connection_id: str) -> None:
        user_id, went_offline = self.registry.unregister(connection_id)
        self.rooms.drop_connection(connection_id)
        if user_id is None:
            return
        logger.debug(f"WS disconnect: user={user_id}, sid={connection_id}, offline={went_offline}")
        if not self.has_chat_connection(user_id):
            for conversation_id in self.presence.clear_user(user_id):
                self.broadcast_typing_status(conversation_id)

    def has_chat_connection(self, user_id: str) -> bool:
        return any(
            self.registry.namespace_of(connection_id) == self.chat_namespace
            for connection_id in self.registry.connections_for(user_id)
        )

    def identity_of(self, connection_id: str, claimed_user_id: Optional[str] = None) -> str:
        """The registered user of a connection; a claimed userId must match it."""
        user_id = self.registry.owner_of(connection_id)
        if user_id is None:
            raise UnauthorizedError('Register before sending events')
        if claimed_user_id is not None and claimed_user_id != user_id:
            raise ForbiddenError('userId does not match the registered user')
        return user_id

    # =========================================================================
    # Error Boundary
    # =========================================================================

    def dispatch(self, event: str, handler: Callable[..., Dict[str, Any]], *args) -> Dict[str, Any]:
        """Run an inbound handler and turn any failure into an error ack."""
        try:
            return handler(*args)
        except ChatError as e:
            logger.info(f"WS {event} rejected: {e.code}: {e.message}")
            return e.to_ack()
        except UnauthorizedError as e:
            logger.info(f"WS {event} unauthorized: {e}")
            return {'status': 'error', 'code': 'UNAUTHORIZED', 'message': str(e)}
        except Exception:
            logger.exception(f"WS {event} failed")
            return {'status': 'error', 'code': 'SERVER_ERROR', 'message': 'Internal server error'}

    # =========================================================================
    # Fan-out
    # =========================================================================

    def send_notification_to_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Emit to every live connection of the user. Offline users get nothing."""
        event = _event_name(event)
        delivered = 0
        for connection_id in self.registry.connections_for(user_id):
            namespace = self.registry.namespace_of(connection_id) or self.notification_namespace
            if self.transport.emit_to_connection(connection_id, event, payload, namespace=namespace):
                delivered += 1
        if not delivered:
            logger.debug(f"User {user_id} not connected, {event} not delivered")
        return delivered

    def send_notification_to_users(self, user_ids: Iterable[str], event: str, payload: Dict[str, Any]) -> int:
        return sum(self.send_notification_to_user(user_id, event, payload) for user_id in set(user_ids))

    def broadcast_to_conversation(self, conversation_id: str, event: str, payload: Dict[str, Any]) -> bool:
        return self.rooms.broadcast_to_conversation(conversation_id, _event_name(event), payload)

    def broadcast_typing_status(self, conversation_id: str) -> bool:
        typing_users = self.presence.typing_users_in(conversation_id)
        return self.broadcast_to_conversation(
            conversation_id,
            OutboundEvent.TYPING_STATUS,
            typing_status_payload(conversation_id, typing_users)
        )

    def subscribe_participants(self, conversation_id: str, participants: Iterable[str]) -> None:
        """Put every live chat connection of the participants into the conversation room."""
        for user_id in participants:
            for connection_id in self.registry.connections_for(user_id):
                if self.registry.namespace_of(connection_id) == self.chat_namespace:
                    self.rooms.join_conversation(connection_id, conversation_id)

    def conversation_lock(self, conversation_id: str) -> threading.Lock:
        """Striped lock serializing persistence and broadcast within a conversation."""
        return self._conversation_locks[hash(conversation_id) % CONVERSATION_LOCK_STRIPES]

    # =========================================================================
    # Socket.IO Binding
    # =========================================================================

    def register_handlers(self, socketio: SocketIO) -> None:
        for namespace in {self.chat_namespace, self.notification_namespace}:
            self._register_lifecycle_handlers(socketio, namespace)
        self.chat.register_handlers(socketio, self.chat_namespace)

    def _register_lifecycle_handlers(self, socketio: SocketIO, namespace: str) -> None:

        @socketio.on('connect', namespace=namespace)
        def handle_connect(auth=None):
            return self.on_connect(request.sid, namespace, auth, request.headers, request.args)

        @socketio.on('disconnect', namespace=namespace)
        def handle_disconnect(*args):
            try:
                self.on_disconnect(request.sid)
            except Exception:
                logger.exception(f"WS disconnect cleanup failed: sid={request.sid}")

        @socketio.on('register', namespace=namespace)
        def handle_register(data=None):
            return self.dispatch('register', self.on_register, request.sid, namespace, data)

        @socketio.on_error(namespace)
        def handle_error(e):
            logger.error(f"WS error on {namespace}: {e}")


def _event_name(event) -> str:
    return event.value if isinstance(event, OutboundEvent) else str(event)


# =========================================================================
# Process-wide accessor
# =========================================================================

_gateway_instance: Optional[RealtimeGateway] = None

EXTENSION_KEY = 'realtime_gateway'


def get_gateway() -> Optional[RealtimeGateway]:
    """Gateway of the current Flask app, falling back to the last one initialized."""
    if has_app_context():
        gateway = current_app.extensions.get(EXTENSION_KEY)
        if gateway is not None:
            return gateway
    return _gateway_instance


def init_gateway(app: Flask, socketio: SocketIO, db=None) -> RealtimeGateway:
    """Build the gateway over a Flask-SocketIO server and bind its handlers."""
    global _gateway_instance
    logger.debug(f"WS_HUB: init app={app.name}, mode={getattr(socketio, 'async_mode', '?')}")
    messaging = MessagingService(db if db is not None else get_db())
    gateway = RealtimeGateway(EventEmitter(socketio), messaging)
    gateway.register_handlers(socketio)
    app.extensions[EXTENSION_KEY] = gateway
    _gateway_instance = gateway
    logger.debug("WS_HUB: initialized")
    return gateway
