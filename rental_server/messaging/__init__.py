"""Messaging module for renter/landlord chat.

This module provides:
- Conversation, message and notification models
- The conversation store (at most one conversation per user pair)
- The socket event catalogue
"""

from rental_server.messaging.models import (
    Message, Conversation, ParticipantLink, Notification, NotificationType
)
from rental_server.messaging.events import (
    InboundEvent, OutboundEvent
)
from rental_server.messaging.service import MessagingService

__all__ = [
    # Models
    'Message', 'Conversation', 'ParticipantLink', 'Notification', 'NotificationType',
    # Events
    'InboundEvent', 'OutboundEvent',
    # Service
    'MessagingService',
]
