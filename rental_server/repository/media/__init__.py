from rental_server.repository.media.conversation_repository import ConversationRepository, pair_key
from rental_server.repository.media.chat_message_repository import ChatMessageRepository
from rental_server.repository.media.notification_repository import NotificationRepository

__all__ = [
    'ConversationRepository',
    'ChatMessageRepository',
    'NotificationRepository',
    'pair_key',
]
