"""Notification routes.

Endpoints:
- GET /api/notifications - Latest notifications for the caller
- GET /api/notifications/unread-count - Unread notification count
- PATCH /api/notifications/{id}/read - Mark one notification as read
- PATCH /api/notifications/read-all - Mark every notification as read

Realtime delivery happens through the gateway when the booking workflow
creates the notification; these endpoints are the durable fallback.
"""
import logging

from flask import Blueprint, request

from rental_server.exception.ChatError import InvalidArgumentError, TransportError
from rental_server.security.authentication import user_id_from_payload
from rental_server.services.notification_service import get_notification_service
from rental_server.utils.decorators import handle_errors, require_auth
from rental_server.utils.helpers import respond_success

logger = logging.getLogger(__name__)

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


def _service():
    service = get_notification_service()
    if service is None:
        raise TransportError('Notification service is not initialized')
    return service


@notification_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def list_notifications(auth_payload):
    user_id = user_id_from_payload(auth_payload)
    limit = request.args.get('limit')
    if limit is not None:
        try:
            limit = max(1, int(limit))
        except ValueError:
            raise InvalidArgumentError('limit must be an integer')
    notifications = _service().list_notifications(user_id, limit)
    return respond_success({'notifications': [n.to_dict() for n in notifications]})


@notification_bp.route('/unread-count', methods=['GET'])
@handle_errors
@require_auth
def unread_count(auth_payload):
    user_id = user_id_from_payload(auth_payload)
    return respond_success({'count': _service().unread_count(user_id)})


@notification_bp.route('/<notification_id>/read', methods=['PATCH'])
@handle_errors
@require_auth
def mark_notification_read(notification_id, auth_payload):
    user_id = user_id_from_payload(auth_payload)
    notification = _service().mark_read(notification_id, user_id)
    return respond_success({'notification': notification.to_dict()})


@notification_bp.route('/read-all', methods=['PATCH'])
@handle_errors
@require_auth
def mark_all_notifications_read(auth_payload):
    user_id = user_id_from_payload(auth_payload)
    count = _service().mark_all_read(user_id)
    return respond_success({'updated': count})
