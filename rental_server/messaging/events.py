"""Socket event catalogue for the chat and notification namespaces.

Inbound payloads are parsed into one of the payload classes below before any
handler touches them. Unknown keys are ignored; missing or wrongly typed keys
raise InvalidArgumentError. Keys are camelCase on the wire.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from rental_server.exception.ChatError import InvalidArgumentError


class InboundEvent(str, Enum):
    REGISTER = "register"
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    MARK_READ = "mark_read"


class OutboundEvent(str, Enum):
    NEW_MESSAGE = "new_message"
    TYPING_STATUS = "typing_status"
    MESSAGE_READ = "message_read"
    BOOKING_CREATED = "booking_created"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"


def _as_dict(data: Any) -> Dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError('Event payload must be an object')
    return data


def _required_str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None or value == '':
        raise InvalidArgumentError(f'{key} is required')
    if not isinstance(value, str):
        raise InvalidArgumentError(f'{key} must be a string')
    return value


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidArgumentError(f'{key} must be a string')
    return value


class RegisterPayload:
    """register{userId}"""

    def __init__(self, user_id: str):
        self.user_id = user_id

    @classmethod
    def from_payload(cls, data: Any) -> 'RegisterPayload':
        data = _as_dict(data)
        return cls(user_id=_required_str(data, 'userId'))


class ConversationPayload:
    """join_conversation / leave_conversation {conversationId}"""

    def __init__(self, conversation_id: str):
        self.conversation_id = conversation_id

    @classmethod
    def from_payload(cls, data: Any) -> 'ConversationPayload':
        data = _as_dict(data)
        return cls(conversation_id=_required_str(data, 'conversationId'))


class ConversationActionPayload:
    """typing_start / typing_stop / mark_read {conversationId, userId?}

    userId is optional; when present it has to match the registered identity.
    """

    def __init__(self, conversation_id: str, user_id: Optional[str] = None):
        self.conversation_id = conversation_id
        self.user_id = user_id

    @classmethod
    def from_payload(cls, data: Any) -> 'ConversationActionPayload':
        data = _as_dict(data)
        return cls(
            conversation_id=_required_str(data, 'conversationId'),
            user_id=_optional_str(data, 'userId')
        )


class SendMessagePayload(ConversationActionPayload):
    """send_message{conversationId, userId?, content?, imageUrl?, listingId?}"""

    def __init__(
        self,
        conversation_id: str,
        user_id: Optional[str] = None,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
        listing_id: Optional[str] = None
    ):
        super().__init__(conversation_id, user_id)
        self.content = content
        self.image_url = image_url
        self.listing_id = listing_id

    @classmethod
    def from_payload(cls, data: Any) -> 'SendMessagePayload':
        data = _as_dict(data)
        return cls(
            conversation_id=_required_str(data, 'conversationId'),
            user_id=_optional_str(data, 'userId'),
            content=_optional_str(data, 'content'),
            image_url=_optional_str(data, 'imageUrl'),
            listing_id=_optional_str(data, 'listingId')
        )


def typing_status_payload(conversation_id: str, typing_users) -> Dict[str, Any]:
    return {'conversationId': conversation_id, 'typingUsers': sorted(typing_users)}


def message_read_payload(conversation_id: str, user_id: str, read_at: str) -> Dict[str, Any]:
    return {'conversationId': conversation_id, 'userId': user_id, 'readAt': read_at}


def booking_payload(
    booking_id: str,
    listing_id: str,
    listing_title: str,
    message: str,
    **extra: Any
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        'bookingId': booking_id,
        'listing': {'id': listing_id, 'title': listing_title},
        'message': message,
    }
    payload.update(extra)
    return payload


BOOKING_EVENTS: List[OutboundEvent] = [
    OutboundEvent.BOOKING_CREATED,
    OutboundEvent.BOOKING_ACCEPTED,
    OutboundEvent.BOOKING_REJECTED,
    OutboundEvent.BOOKING_CANCELLED,
]
