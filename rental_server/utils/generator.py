import uuid

from bson import ObjectId


def generate_uuid_hex(length=24):
    return uuid.uuid4().hex[:length]


def generate_conversation_id():
    return f"CONV-{ObjectId()}"


def generate_message_id():
    return f"MSG-{ObjectId()}"


def generate_notification_id():
    return f"NTF-{generate_uuid_hex(24)}"
