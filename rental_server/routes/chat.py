"""Chat REST API routes.

REST API Endpoints:
- POST /api/chat/conversations - Open (or find) the conversation with another user
- GET /api/chat/conversations - List conversations, most recent first
- GET /api/chat/conversations/{id} - Get conversation details
- GET /api/chat/conversations/{id}/messages - Message history (limit, before)
- POST /api/chat/conversations/{id}/messages - Send a message
- PATCH /api/chat/conversations/{id}/read - Mark the conversation as read

Sends and read receipts made here are broadcast to the conversation room just
like the socket events (new_message, message_read).
"""
import logging

from flask import Blueprint, request

from rental_server.exception.ChatError import InvalidArgumentError, TransportError
from rental_server.messaging.service import clamp_limit
from rental_server.security.authentication import user_id_from_payload
from rental_server.utils.decorators import handle_errors, require_auth
from rental_server.utils.helpers import respond_success, get_json_body
from rental_server.utils.time_utils import to_iso
from rental_server.websocket.hub import get_gateway

logger = logging.getLogger(__name__)

# Blueprint
chat_bp = Blueprint('chat', __name__, url_prefix='/api/chat')


def _gateway():
    gateway = get_gateway()
    if gateway is None:
        raise TransportError('Realtime gateway is not initialized')
    return gateway


# =============================================================================
# Conversations
# =============================================================================

@chat_bp.route('/conversations', methods=['POST'])
@handle_errors
@require_auth
def create_conversation(auth_payload):
    """Find or create the conversation between the caller and participantId."""
    user_id = user_id_from_payload(auth_payload)
    data = get_json_body(request)
    participant_id = data.get('participantId')
    if not participant_id or not isinstance(participant_id, str):
        raise InvalidArgumentError('participantId is required')

    gateway = _gateway()
    conversation = gateway.messaging.get_or_create(user_id, participant_id, listing_id=data.get('listingId'))
    return respond_success({'conversation': conversation.to_dict()})


@chat_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    user_id = user_id_from_payload(auth_payload)
    conversations = _gateway().messaging.conversations_for(user_id)
    return respond_success({'conversations': [c.to_dict() for c in conversations]})


@chat_bp.route('/conversations/<conversation_id>', methods=['GET'])
@handle_errors
@require_auth
def get_conversation(conversation_id, auth_payload):
    user_id = user_id_from_payload(auth_payload)
    conversation = _gateway().messaging.get_by_id(conversation_id, user_id)
    return respond_success({'conversation': conversation.to_dict()})


# =============================================================================
# Messages
# =============================================================================

@chat_bp.route('/conversations/<conversation_id>/messages', methods=['GET'])
@handle_errors
@require_auth
def get_messages(conversation_id, auth_payload):
    """Messages older than `before` (ISO-8601 or epoch seconds), oldest first."""
    user_id = user_id_from_payload(auth_payload)
    messages = _gateway().messaging.list_messages(
        conversation_id,
        user_id,
        limit=request.args.get('limit'),
        before=request.args.get('before')
    )
    return respond_success({
        'messages': [m.to_dict() for m in messages],
        'hasMore': len(messages) == clamp_limit(request.args.get('limit'))
    })


@chat_bp.route('/conversations/<conversation_id>/messages', methods=['POST'])
@handle_errors
@require_auth
def send_message(conversation_id, auth_payload):
    user_id = user_id_from_payload(auth_payload)
    data = get_json_body(request)
    message = _gateway().chat.send_message(
        user_id,
        conversation_id,
        content=data.get('content'),
        image_url=data.get('imageUrl'),
        listing_id=data.get('listingId')
    )
    return respond_success({'message': message.to_dict()}, status=201)


@chat_bp.route('/conversations/<conversation_id>/read', methods=['PATCH'])
@handle_errors
@require_auth
def mark_conversation_read(conversation_id, auth_payload):
    user_id = user_id_from_payload(auth_payload)
    read_at = _gateway().chat.mark_read(user_id, conversation_id)
    return respond_success({'conversationId': conversation_id, 'readAt': to_iso(read_at)})
