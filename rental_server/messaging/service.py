"""Messaging service layer for business logic.

Owns two-party conversation lookup/creation and message persistence. Every
read or write that touches a conversation goes through `get_by_id`, which is
the only access-control check in the chat subsystem.
"""
import logging
from typing import Optional, Dict, Any, List, Callable, Union
from datetime import datetime

from pymongo.errors import DuplicateKeyError

from config import config
from rental_server.exception.ChatError import (
    NotFoundError, ForbiddenError, InvalidArgumentError, ConflictError
)
from rental_server.messaging.models import Conversation, Message
from rental_server.repository.media import ConversationRepository, ChatMessageRepository
from rental_server.utils.generator import generate_conversation_id, generate_message_id
from rental_server.utils.time_utils import now_std, parse_iso_or_epoch

logger = logging.getLogger(__name__)

# Resolves a user id to a summary dict such as {'id', 'name', 'avatarUrl'}.
UserDirectory = Callable[[str], Optional[Dict[str, Any]]]


class MessagingService:
    """Conversation store for renter/landlord chat."""

    def __init__(self, db, user_directory: Optional[UserDirectory] = None):
        self.conversations = ConversationRepository(db)
        self.messages = ChatMessageRepository(db)
        self.user_directory = user_directory

    # =========================================================================
    # Conversation Operations
    # =========================================================================

    def get_or_create(self, user_a: str, user_b: str, listing_id: Optional[str] = None) -> Conversation:
        """Return the single conversation between user_a and user_b, creating it if needed.

        The unique pair_key index rejects a second insert for the same pair. When
        that happens another request created the conversation first, so the
        lookup is retried once and its result returned.
        """
        if not user_a or not user_b:
            raise InvalidArgumentError('Both participant ids are required')
        if user_a == user_b:
            raise InvalidArgumentError('Cannot start a conversation with yourself')
        _check_listing_id(listing_id)

        existing = self.conversations.find_by_pair(user_a, user_b)
        if existing:
            return Conversation.from_doc(existing)

        conversation = Conversation(
            conversation_id=generate_conversation_id(),
            participants=[user_a, user_b],
            listing_id=listing_id,
            created_at=now_std()
        )
        try:
            self.conversations.insert(conversation.to_db_doc())
            logger.info(f"Created conversation {conversation.conversation_id} for {conversation.pair_key}")
            return conversation
        except DuplicateKeyError:
            logger.info(f"Concurrent create for {conversation.pair_key}; retrying lookup")

        existing = self.conversations.find_by_pair(user_a, user_b)
        if existing:
            return Conversation.from_doc(existing)
        logger.error(f"Conversation insert for {conversation.pair_key} conflicted but lookup found nothing")
        raise ConflictError('Conversation could not be created')

    def get_by_id(self, conversation_id: str, requesting_user_id: str) -> Conversation:
        if not conversation_id:
            raise InvalidArgumentError('conversationId is required')
        doc = self.conversations.get_conversation(conversation_id)
        if not doc:
            raise NotFoundError('Conversation not found')
        conversation = Conversation.from_doc(doc)
        if not conversation.has_participant(requesting_user_id):
            raise ForbiddenError('You are not a participant in this conversation')
        return conversation

    def conversations_for(self, user_id: str) -> List[Conversation]:
        """The user's conversations, most recent activity first.

        Each one carries its latest message, participant summaries and the
        requesting user's unread count.
        """
        conversations = [Conversation.from_doc(doc) for doc in self.conversations.get_user_conversations(user_id)]
        conversations.sort(key=lambda c: c.activity_at, reverse=True)
        for conversation in conversations:
            latest = self.messages.get_latest_message(conversation.conversation_id)
            conversation.last_message = Message.from_doc(latest) if latest else None
            conversation.participant_summaries = [self._summary(p) for p in conversation.participants]
            conversation.unread_count = self._unread_for(conversation, user_id)
        return conversations

    def conversation_ids_for(self, user_id: str) -> List[str]:
        return self.conversations.get_user_conversation_ids(user_id)

    def _summary(self, user_id: str) -> Dict[str, Any]:
        summary = None
        if self.user_directory is not None:
            summary = self.user_directory(user_id)
        if not summary:
            return {'id': user_id}
        return dict(summary, id=user_id)

    # =========================================================================
    # Message Operations
    # =========================================================================

    def list_messages(
        self,
        conversation_id: str,
        requesting_user_id: str,
        limit: Optional[int] = None,
        before: Union[datetime, str, None] = None
    ) -> List[Message]:
        """Page of messages strictly older than `before`, oldest first."""
        self.get_by_id(conversation_id, requesting_user_id)

        limit = clamp_limit(limit)
        before_dt = None
        if before is not None and before != '':
            before_dt = parse_iso_or_epoch(before)
            if before_dt is None:
                raise InvalidArgumentError('before must be an ISO-8601 timestamp or epoch seconds')

        docs = self.messages.get_conversation_messages(conversation_id, limit=limit, before=before_dt)
        docs.reverse()
        return [Message.from_doc(doc) for doc in docs]

    def append_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: Optional[str] = None,
        image_url: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> Message:
        conversation = self.get_by_id(conversation_id, sender_id)

        has_content = isinstance(content, str) and content.strip() != ''
        has_image = isinstance(image_url, str) and image_url.strip() != ''
        if not has_content and not has_image:
            raise InvalidArgumentError('Message must have content or an image')
        _check_listing_id(listing_id)

        message = Message(
            message_id=generate_message_id(),
            conversation_id=conversation.conversation_id,
            sender_id=sender_id,
            content=content if has_content else None,
            image_url=image_url.strip() if has_image else None,
            listing_id=listing_id,
            sent_at=now_std()
        )
        self.messages.create_message(message.to_db_doc())
        # A failed timestamp update only affects inbox ordering; the message stays stored.
        try:
            self.conversations.advance_last_message_at(conversation.conversation_id, message.sent_at)
        except Exception:
            logger.exception(f"Failed to advance last_message_at for {conversation.conversation_id}")
        logger.debug(f"Stored message {message.message_id} in {conversation.conversation_id}")
        return message

    # =========================================================================
    # Read State
    # =========================================================================

    def mark_read(self, conversation_id: str, user_id: str) -> datetime:
        """Set the participant's read marker to now and return it."""
        self.get_by_id(conversation_id, user_id)
        read_at = now_std()
        last_read_id = self.messages.get_latest_message_id(conversation_id)
        if not self.conversations.set_last_read(conversation_id, user_id, read_at, last_read_id):
            logger.warning(f"No participant link for {user_id} in {conversation_id}; read marker not stored")
        return read_at

    def unread_count(self, conversation_id: str, user_id: str) -> int:
        conversation = self.get_by_id(conversation_id, user_id)
        return self._unread_for(conversation, user_id)

    def _unread_for(self, conversation: Conversation, user_id: str) -> int:
        link = conversation.link_for(user_id)
        after_id = link.last_read_id if link else None
        return self.messages.count_unread(conversation.conversation_id, user_id, after_id)


def _check_listing_id(listing_id) -> None:
    if listing_id is not None and not isinstance(listing_id, str):
        raise InvalidArgumentError('listingId must be a string')


def clamp_limit(limit) -> int:
    if limit is None or limit == '':
        return config.MESSAGE_PAGE_LIMIT
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        raise InvalidArgumentError('limit must be an integer')
    return max(1, min(limit, config.MESSAGE_PAGE_MAX))
