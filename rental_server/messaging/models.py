"""Messaging data models for renter/landlord chat.

Collections:
- conversations: two-party conversations with embedded participant links
- chat_messages: immutable messages
- notifications: durable per-user notification records
"""
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum

from rental_server.utils.time_utils import now_std, to_iso


class NotificationType(str, Enum):
    BOOKING_CREATED = "booking_created"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"
    NEW_MESSAGE = "new_message"


class ParticipantLink:
    """A user's membership in a conversation and their read marker."""

    def __init__(
        self,
        user_id: str,
        joined_at: Optional[datetime] = None,
        last_read_at: Optional[datetime] = None,
        last_read_id: Any = None
    ):
        self.user_id = user_id
        self.joined_at = joined_at or now_std()
        self.last_read_at = last_read_at
        # _id of the newest message stored when the marker was set
        self.last_read_id = last_read_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'joinedAt': to_iso(self.joined_at),
            'lastReadAt': to_iso(self.last_read_at)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'user_id': self.user_id,
            'joined_at': self.joined_at,
            'last_read_at': self.last_read_at,
            'last_read_id': self.last_read_id
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'ParticipantLink':
        return cls(
            user_id=doc.get('user_id'),
            joined_at=doc.get('joined_at'),
            last_read_at=doc.get('last_read_at'),
            last_read_id=doc.get('last_read_id')
        )


class Message:
    """Message document structure. Messages are never edited or deleted."""

    def __init__(
        self,
        message_id: str,
        conversation_id: str,
        sender_id: str,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
        listing_id: Optional[str] = None,
        sent_at: Optional[datetime] = None
    ):
        self.message_id = message_id
        self.conversation_id = conversation_id
        self.sender_id = sender_id
        self.content = content
        self.image_url = image_url
        self.listing_id = listing_id
        self.sent_at = sent_at or now_std()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.message_id,
            'conversationId': self.conversation_id,
            'senderId': self.sender_id,
            'content': self.content,
            'imageUrl': self.image_url,
            'listingId': self.listing_id,
            'sentAt': to_iso(self.sent_at)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'message_id': self.message_id,
            'conversation_id': self.conversation_id,
            'sender_id': self.sender_id,
            'content': self.content,
            'image_url': self.image_url,
            'listing_id': self.listing_id,
            'sent_at': self.sent_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Message':
        return cls(
            message_id=doc.get('message_id') or str(doc.get('_id')),
            conversation_id=doc.get('conversation_id'),
            sender_id=doc.get('sender_id'),
            content=doc.get('content'),
            image_url=doc.get('image_url'),
            listing_id=doc.get('listing_id'),
            sent_at=doc.get('sent_at')
        )


class Conversation:
    """Conversation document structure.

    `last_message`, `participant_summaries` and `unread_count` are not stored;
    the service fills them in when listing a user's conversations.
    """

    def __init__(
        self,
        conversation_id: str,
        participants: List[str],
        pair_key: Optional[str] = None,
        participant_links: Optional[List[ParticipantLink]] = None,
        listing_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        last_message_at: Optional[datetime] = None
    ):
        self.conversation_id = conversation_id
        self.participants = sorted(participants)
        self.pair_key = pair_key or '|'.join(self.participants)
        self.created_at = created_at or now_std()
        self.participant_links = participant_links or [
            ParticipantLink(user_id, joined_at=self.created_at) for user_id in self.participants
        ]
        self.listing_id = listing_id
        self.last_message_at = last_message_at
        self.last_message: Optional[Message] = None
        self.participant_summaries: Optional[List[Dict[str, Any]]] = None
        self.unread_count: Optional[int] = None

    def has_participant(self, user_id: str) -> bool:
        return user_id in self.participants

    def link_for(self, user_id: str) -> Optional[ParticipantLink]:
        for link in self.participant_links:
            if link.user_id == user_id:
                return link
        return None

    @property
    def activity_at(self) -> datetime:
        """Sort key for inbox ordering."""
        return self.last_message_at or self.created_at

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.conversation_id,
            'participants': self.participant_summaries or [{'id': p} for p in self.participants],
            'listingId': self.listing_id,
            'createdAt': to_iso(self.created_at),
            'lastMessageAt': to_iso(self.last_message_at),
            'lastMessage': self.last_message.to_dict() if self.last_message else None
        }
        if self.unread_count is not None:
            data['unreadCount'] = self.unread_count
        return data

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'conversation_id': self.conversation_id,
            'pair_key': self.pair_key,
            'participants': self.participants,
            'participant_links': [link.to_db_doc() for link in self.participant_links],
            'listing_id': self.listing_id,
            'created_at': self.created_at,
            'last_message_at': self.last_message_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Conversation':
        return cls(
            conversation_id=doc.get('conversation_id') or str(doc.get('_id')),
            participants=doc.get('participants', []),
            pair_key=doc.get('pair_key'),
            participant_links=[ParticipantLink.from_doc(d) for d in doc.get('participant_links', [])],
            listing_id=doc.get('listing_id'),
            created_at=doc.get('created_at'),
            last_message_at=doc.get('last_message_at')
        )


class Notification:
    """Durable notification record delivered alongside the realtime event."""

    def __init__(
        self,
        notification_id: str,
        user_id: str,
        notification_type: NotificationType,
        data: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
        read_at: Optional[datetime] = None
    ):
        self.notification_id = notification_id
        self.user_id = user_id
        self.notification_type = NotificationType(notification_type)
        self.data = data or {}
        self.created_at = created_at or now_std()
        self.read_at = read_at

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.notification_id,
            'userId': self.user_id,
            'type': self.notification_type.value,
            'data': self.data,
            'isRead': self.is_read,
            'createdAt': to_iso(self.created_at),
            'readAt': to_iso(self.read_at)
        }

    def to_db_doc(self) -> Dict[str, Any]:
        return {
            'notification_id': self.notification_id,
            'user_id': self.user_id,
            'type': self.notification_type.value,
            'data': self.data,
            'created_at': self.created_at,
            'read_at': self.read_at
        }

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'Notification':
        return cls(
            notification_id=doc.get('notification_id') or str(doc.get('_id')),
            user_id=doc.get('user_id'),
            notification_type=doc.get('type'),
            data=doc.get('data', {}),
            created_at=doc.get('created_at'),
            read_at=doc.get('read_at')
        )
