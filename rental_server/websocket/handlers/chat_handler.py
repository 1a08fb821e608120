"""WebSocket Chat Handler.

Handles the chat namespace events. REST is used for history loading and
conversation listing; sends, typing indicators and read receipts can go
through either path and end up in the same methods here.

Data Consistency:
- Messages are stored in MongoDB before being broadcast
- A conversation's broadcasts happen in the order its messages were stored
- The sender gets the stored message (server id and timestamp) in the ack
- Failed sends are reported to the sender only
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from flask import request

from rental_server.messaging.events import (
    InboundEvent, OutboundEvent, ConversationPayload, ConversationActionPayload,
    SendMessagePayload, message_read_payload
)
from rental_server.messaging.models import Message
from rental_server.utils.time_utils import to_iso

logger = logging.getLogger(__name__)


class ChatHandler:
    """Handler for WebSocket chat events."""

    def __init__(self, gateway):
        self.gateway = gateway

    @property
    def messaging(self):
        return self.gateway.messaging

    # =========================================================================
    # Chat Operations (shared by socket events and REST routes)
    # =========================================================================

    def send_message(
        self,
        sender_id: str,
        conversation_id: str,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> Message:
        """Store a message and broadcast it to the conversation room.

        The sender stops typing as a side effect.
        """
        with self.gateway.conversation_lock(conversation_id):
            message = self.messaging.append_message(
                conversation_id, sender_id, content=content, image_url=image_url, listing_id=listing_id
            )
            conversation = self.messaging.get_by_id(conversation_id, sender_id)
            self.gateway.subscribe_participants(conversation_id, conversation.participants)
            self.gateway.broadcast_to_conversation(conversation_id, OutboundEvent.NEW_MESSAGE, message.to_dict())
        if self.gateway.presence.stop_typing(conversation_id, sender_id):
            self.gateway.broadcast_typing_status(conversation_id)
        logger.debug(f"Message {message.message_id} sent by {sender_id} in {conversation_id}")
        return message

    def set_typing(self, user_id: str, conversation_id: str, typing: bool) -> bool:
        """Start or stop typing; broadcasts the full typing set when it changed."""
        self.messaging.get_by_id(conversation_id, user_id)
        if typing:
            changed = self.gateway.presence.start_typing(conversation_id, user_id)
        else:
            changed = self.gateway.presence.stop_typing(conversation_id, user_id)
        if changed:
            self.gateway.broadcast_typing_status(conversation_id)
        return changed

    def mark_read(self, user_id: str, conversation_id: str) -> datetime:
        read_at = self.messaging.mark_read(conversation_id, user_id)
        self.gateway.broadcast_to_conversation(
            conversation_id,
            OutboundEvent.MESSAGE_READ,
            message_read_payload(conversation_id, user_id, to_iso(read_at))
        )
        return read_at

    # =========================================================================
    # Socket Events
    # =========================================================================

    def on_join_conversation(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = ConversationPayload.from_payload(data)
        user_id = self.gateway.identity_of(connection_id)
        self.messaging.get_by_id(payload.conversation_id, user_id)
        self.gateway.rooms.join_conversation(connection_id, payload.conversation_id)
        return {'status': 'joined', 'conversationId': payload.conversation_id}

    def on_leave_conversation(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = ConversationPayload.from_payload(data)
        self.gateway.rooms.leave_conversation(connection_id, payload.conversation_id)
        return {'status': 'left', 'conversationId': payload.conversation_id}

    def on_send_message(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = SendMessagePayload.from_payload(data)
        user_id = self.gateway.identity_of(connection_id, payload.user_id)
        message = self.send_message(
            user_id,
            payload.conversation_id,
            content=payload.content,
            image_url=payload.image_url,
            listing_id=payload.listing_id
        )
        return {'status': 'sent', 'message': message.to_dict()}

    def on_typing_start(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = ConversationActionPayload.from_payload(data)
        user_id = self.gateway.identity_of(connection_id, payload.user_id)
        self.set_typing(user_id, payload.conversation_id, True)
        return {'status': 'typing_started'}

    def on_typing_stop(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = ConversationActionPayload.from_payload(data)
        user_id = self.gateway.identity_of(connection_id, payload.user_id)
        self.set_typing(user_id, payload.conversation_id, False)
        return {'status': 'typing_stopped'}

    def on_mark_read(self, connection_id: str, data: Any) -> Dict[str, Any]:
        payload = ConversationActionPayload.from_payload(data)
        user_id = self.gateway.identity_of(connection_id, payload.user_id)
        read_at = self.mark_read(user_id, payload.conversation_id)
        return {'status': 'marked_read', 'readAt': to_iso(read_at)}

    def register_handlers(self, socketio, namespace: str):
        """Register all chat WebSocket event handlers."""
        events = {
            InboundEvent.JOIN_CONVERSATION: self.on_join_conversation,
            InboundEvent.LEAVE_CONVERSATION: self.on_leave_conversation,
            InboundEvent.SEND_MESSAGE: self.on_send_message,
            InboundEvent.TYPING_START: self.on_typing_start,
            InboundEvent.TYPING_STOP: self.on_typing_stop,
            InboundEvent.MARK_READ: self.on_mark_read,
        }
        for event, handler in events.items():
            socketio.on_event(event.value, self._bind(event.value, handler), namespace=namespace)

    def _bind(self, event: str, handler):
        def socket_handler(data=None):
            return self.gateway.dispatch(event, handler, request.sid, data)
        socket_handler.__name__ = f"handle_{event}"
        return socket_handler
