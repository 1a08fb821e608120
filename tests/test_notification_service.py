import pytest

from rental_server.exception.ChatError import InvalidArgumentError, NotFoundError
from rental_server.messaging.models import NotificationType
from rental_server.services.notification_service import NotificationService


def _booking(status="PENDING"):
    return {
        "id": "booking-1",
        "status": status,
        "renter": {"id": "renter-1", "name": "Rita"},
        "listing": {"id": "listing-1", "title": "Sunny loft", "landlordId": "landlord-1"},
    }


@pytest.fixture
def service(db, gateway):
    return NotificationService(db, gateway)


def _connect(gateway, sid, user_id):
    gateway.on_connect(sid, "/")
    gateway.on_register(sid, "/", {"userId": user_id})


def test_booking_created_notifies_landlord(service, gateway, transport):
    _connect(gateway, "sid-l", "landlord-1")

    notification = service.notify_booking_created(_booking())

    assert notification.user_id == "landlord-1"
    assert notification.notification_type == NotificationType.BOOKING_CREATED
    assert notification.data["listingTitle"] == "Sunny loft"
    event = transport.events("booking_created")[0]
    assert event["to"] == "sid-l"
    assert event["data"]["bookingId"] == "booking-1"
    assert event["data"]["listing"] == {"id": "listing-1", "title": "Sunny loft"}
    assert event["data"]["renter"] == {"id": "renter-1", "name": "Rita"}
    assert "Rita" in event["data"]["message"]


@pytest.mark.parametrize("status, recipient, event_name", [
    ("ACCEPTED", "renter-1", "booking_accepted"),
    ("REJECTED", "renter-1", "booking_rejected"),
    ("CANCELLED", "landlord-1", "booking_cancelled"),
])
def test_status_change_goes_to_the_other_party(service, gateway, transport, status, recipient, event_name):
    _connect(gateway, "sid-r", recipient)

    notification = service.notify_booking_status(_booking(status))

    assert notification.user_id == recipient
    event = transport.events(event_name)[0]
    assert event["to"] == "sid-r"
    assert event["data"]["status"] == status
    assert event["data"]["message"] == notification.data["message"]


def test_pending_status_sends_nothing(service, transport):
    assert service.notify_booking_status(_booking("PENDING")) is None
    assert service.unread_count("renter-1") == 0
    assert transport.emitted == []


def test_offline_recipient_still_gets_a_stored_notification(service, transport):
    service.notify_booking_status(_booking("ACCEPTED"))

    assert transport.emitted == []
    stored = service.list_notifications("renter-1")
    assert [n.notification_type for n in stored] == [NotificationType.BOOKING_ACCEPTED]
    assert service.unread_count("renter-1") == 1


def test_booking_without_listing_is_rejected(service):
    with pytest.raises(InvalidArgumentError):
        service.notify_booking_created({"id": "booking-1"})


def test_mark_read_and_mark_all_read(service):
    first = service.create_notification("renter-1", NotificationType.BOOKING_ACCEPTED, {"message": "one"})
    service.create_notification("renter-1", NotificationType.BOOKING_REJECTED, {"message": "two"})
    service.create_notification("landlord-1", NotificationType.BOOKING_CANCELLED, {"message": "other"})

    read = service.mark_read(first.notification_id, "renter-1")
    assert read.is_read
    assert service.unread_count("renter-1") == 1

    assert service.mark_all_read("renter-1") == 1
    assert service.unread_count("renter-1") == 0
    assert service.unread_count("landlord-1") == 1


def test_mark_read_of_someone_elses_notification_is_not_found(service):
    notification = service.create_notification("renter-1", NotificationType.BOOKING_ACCEPTED, {})
    with pytest.raises(NotFoundError):
        service.mark_read(notification.notification_id, "landlord-1")


def test_list_notifications_newest_first(service, monkeypatch):
    from datetime import datetime, timedelta

    times = iter([datetime(2024, 1, 1) + timedelta(minutes=i) for i in range(3)])
    monkeypatch.setattr("rental_server.services.notification_service.now_std", lambda: next(times))
    for i in range(3):
        service.create_notification("renter-1", NotificationType.BOOKING_ACCEPTED, {"message": f"n{i}"})

    assert [n.data["message"] for n in service.list_notifications("renter-1")] == ["n2", "n1", "n0"]
    assert len(service.list_notifications("renter-1", limit=2)) == 2
