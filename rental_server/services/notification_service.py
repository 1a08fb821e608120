"""Booking notifications.

The booking workflow calls in here after a booking is created or changes
status. Each notification is stored first and then pushed to the recipient's
live connections, so offline users still find it in their notification list.
"""
import logging
from typing import Any, Dict, List, Optional

from flask import current_app, has_app_context

from config import config
from rental_server.exception.ChatError import InvalidArgumentError, NotFoundError
from rental_server.messaging.events import OutboundEvent, booking_payload
from rental_server.messaging.models import Notification, NotificationType
from rental_server.repository.media import NotificationRepository
from rental_server.utils.generator import generate_notification_id
from rental_server.utils.time_utils import now_std

logger = logging.getLogger(__name__)

EXTENSION_KEY = 'notification_service'


class BookingStatus:
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REJECTED = 'REJECTED'
    CANCELLED = 'CANCELLED'


class BookingSnapshot:
    """The booking fields notifications need, as sent by the booking workflow.

    Expected shape:
        {'id', 'status', 'renter': {'id', 'name'},
         'listing': {'id', 'title', 'landlordId'}}
    """

    def __init__(self, booking_id, status, renter_id, renter_name, listing_id, listing_title, landlord_id):
        self.booking_id = booking_id
        self.status = status
        self.renter_id = renter_id
        self.renter_name = renter_name
        self.listing_id = listing_id
        self.listing_title = listing_title
        self.landlord_id = landlord_id

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BookingSnapshot':
        if not isinstance(data, dict):
            raise InvalidArgumentError('booking must be an object')
        renter = data.get('renter') or {}
        listing = data.get('listing') or {}
        booking_id = data.get('id') or data.get('bookingId')
        if not booking_id or not listing.get('id'):
            raise InvalidArgumentError('booking id and listing id are required')
        return cls(
            booking_id=booking_id,
            status=(data.get('status') or '').upper(),
            renter_id=renter.get('id') or data.get('renterId'),
            renter_name=renter.get('name') or 'A renter',
            listing_id=listing.get('id'),
            listing_title=listing.get('title') or '',
            landlord_id=listing.get('landlordId') or data.get('landlordId')
        )


class NotificationService:

    def __init__(self, db, gateway=None):
        self.repo = NotificationRepository(db)
        self.gateway = gateway

    # =========================================================================
    # Booking bridge
    # =========================================================================

    def notify_booking_created(self, booking: Dict[str, Any]) -> Notification:
        """Tell the landlord a renter sent a booking request."""
        snapshot = BookingSnapshot.from_dict(booking)
        if not snapshot.landlord_id:
            raise InvalidArgumentError('listing.landlordId is required')
        message = f"{snapshot.renter_name} sent a booking request"
        payload = booking_payload(
            snapshot.booking_id, snapshot.listing_id, snapshot.listing_title, message,
            renter={'id': snapshot.renter_id, 'name': snapshot.renter_name}
        )
        return self._notify(
            snapshot, snapshot.landlord_id, NotificationType.BOOKING_CREATED,
            OutboundEvent.BOOKING_CREATED, message, payload
        )

    def notify_booking_status(self, booking: Dict[str, Any]) -> Optional[Notification]:
        """Tell the other party about an accepted, rejected or cancelled booking.

        Other statuses produce no notification and return None.
        """
        snapshot = BookingSnapshot.from_dict(booking)
        title = snapshot.listing_title
        if snapshot.status == BookingStatus.ACCEPTED:
            recipient_id = snapshot.renter_id
            notification_type, event = NotificationType.BOOKING_ACCEPTED, OutboundEvent.BOOKING_ACCEPTED
            message = f'Booking for "{title}" was accepted'
        elif snapshot.status == BookingStatus.REJECTED:
            recipient_id = snapshot.renter_id
            notification_type, event = NotificationType.BOOKING_REJECTED, OutboundEvent.BOOKING_REJECTED
            message = f'Booking for "{title}" was rejected'
        elif snapshot.status == BookingStatus.CANCELLED:
            recipient_id = snapshot.landlord_id
            notification_type, event = NotificationType.BOOKING_CANCELLED, OutboundEvent.BOOKING_CANCELLED
            message = f'{snapshot.renter_name} cancelled the booking for "{title}"'
        else:
            logger.debug(f"No notification for booking {snapshot.booking_id} status {snapshot.status!r}")
            return None

        if not recipient_id:
            raise InvalidArgumentError(f'No recipient for booking {snapshot.booking_id}')
        payload = booking_payload(
            snapshot.booking_id, snapshot.listing_id, title, message, status=snapshot.status
        )
        return self._notify(snapshot, recipient_id, notification_type, event, message, payload)

    def _notify(self, snapshot, recipient_id, notification_type, event, message, payload) -> Notification:
        notification = self.create_notification(recipient_id, notification_type, {
            'bookingId': snapshot.booking_id,
            'listingId': snapshot.listing_id,
            'listingTitle': snapshot.listing_title,
            'message': message,
        })
        if self.gateway is not None:
            delivered = self.gateway.send_notification_to_user(recipient_id, event, payload)
            logger.info(f"{event.value} for booking {snapshot.booking_id} delivered to {delivered} connection(s)")
        return notification

    # =========================================================================
    # Notification records
    # =========================================================================

    def create_notification(self, user_id: str, notification_type: NotificationType, data: Dict[str, Any]) -> Notification:
        notification = Notification(
            notification_id=generate_notification_id(),
            user_id=user_id,
            notification_type=notification_type,
            data=data,
            created_at=now_std()
        )
        self.repo.create(notification.to_db_doc())
        return notification

    def list_notifications(self, user_id: str, limit: Optional[int] = None) -> List[Notification]:
        limit = limit or config.NOTIFICATION_PAGE_LIMIT
        return [Notification.from_doc(doc) for doc in self.repo.get_user_notifications(user_id, limit)]

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        doc = self.repo.get_notification(notification_id, user_id)
        if not doc:
            raise NotFoundError('Notification not found')
        notification = Notification.from_doc(doc)
        if notification.read_at is None:
            notification.read_at = now_std()
            self.repo.mark_read(notification_id, user_id, notification.read_at)
        return notification

    def mark_all_read(self, user_id: str) -> int:
        return self.repo.mark_all_read(user_id, now_std())

    def unread_count(self, user_id: str) -> int:
        return self.repo.count_unread(user_id)


def get_notification_service() -> Optional[NotificationService]:
    if has_app_context():
        return current_app.extensions.get(EXTENSION_KEY)
    return None
