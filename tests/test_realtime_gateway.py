import pytest

from rental_server.websocket.hub import RealtimeGateway


@pytest.fixture
def conversation(store):
    return store.get_or_create("alice", "bob")


def _register(gateway, sid, user_id, namespace="/chat"):
    assert gateway.on_connect(sid, namespace) is True
    ack = gateway.dispatch("register", gateway.on_register, sid, namespace, {"userId": user_id})
    assert ack == {"status": "registered", "userId": user_id}


def _chat(gateway, handler, sid, data):
    return gateway.dispatch("event", handler, sid, data)


# =========================================================================
# Connection lifecycle
# =========================================================================

def test_register_joins_existing_conversation_rooms(gateway, transport, conversation):
    _register(gateway, "sid-a", "alice")

    assert gateway.registry.is_online("alice")
    assert gateway.rooms.rooms_of("sid-a") == {conversation.conversation_id}
    assert ("enter", "sid-a", f"conv:{conversation.conversation_id}", "/chat") in transport.room_changes


def test_register_on_notification_namespace_skips_rooms(gateway, transport, conversation):
    _register(gateway, "sid-n", "alice", namespace="/")

    assert gateway.registry.namespace_of("sid-n") == "/"
    assert gateway.rooms.rooms_of("sid-n") == frozenset()


def test_connect_with_valid_token_registers_immediately(gateway, make_token):
    token = make_token("alice")

    assert gateway.on_connect("sid-a", "/chat", auth={"token": token}) is True
    assert gateway.registry.owner_of("sid-a") == "alice"


def test_connect_with_bad_token_is_refused(gateway):
    assert gateway.on_connect("sid-a", "/chat", auth={"token": "a.b.c"}) is False
    assert gateway.registry.owner_of("sid-a") is None


def test_connect_without_token_refused_when_auth_required(transport, store, auth_secret):
    gateway = RealtimeGateway(transport, store, require_auth=True)
    assert gateway.on_connect("sid-a", "/chat") is False


def test_register_must_match_token_identity(gateway, make_token):
    gateway.on_connect("sid-a", "/chat", auth={"token": make_token("alice")})

    ack = gateway.dispatch("register", gateway.on_register, "sid-a", "/chat", {"userId": "bob"})

    assert ack["status"] == "error"
    assert ack["code"] == "FORBIDDEN"
    assert gateway.registry.owner_of("sid-a") == "alice"


def test_register_with_bad_payload_returns_error_ack(gateway):
    gateway.on_connect("sid-a", "/chat")

    ack = gateway.dispatch("register", gateway.on_register, "sid-a", "/chat", {"userId": 42})

    assert ack == {"status": "error", "code": "INVALID_DATA", "message": "userId must be a string"}


def test_disconnect_of_last_connection_clears_typing(gateway, transport, conversation):
    cid = conversation.conversation_id
    _register(gateway, "sid-a1", "alice")
    _register(gateway, "sid-a2", "alice")
    _chat(gateway, gateway.chat.on_typing_start, "sid-a1", {"conversationId": cid})
    transport.clear()

    gateway.on_disconnect("sid-a1")
    assert gateway.presence.typing_users_in(cid) == {"alice"}
    assert transport.events("typing_status") == []

    gateway.on_disconnect("sid-a2")
    assert not gateway.registry.is_online("alice")
    assert gateway.presence.typing_users_in(cid) == frozenset()
    assert transport.events("typing_status")[-1]["data"] == {"conversationId": cid, "typingUsers": []}
    assert gateway.rooms.rooms_of("sid-a2") == frozenset()


def test_disconnect_of_unknown_connection_is_harmless(gateway):
    gateway.on_disconnect("never-registered")


# =========================================================================
# Chat events
# =========================================================================

def test_events_require_registration(gateway, conversation):
    gateway.on_connect("sid-x", "/chat")

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-x",
                {"conversationId": conversation.conversation_id, "content": "hi"})

    assert ack["status"] == "error"
    assert ack["code"] == "UNAUTHORIZED"


def test_send_message_persists_then_broadcasts(gateway, transport, store, conversation):
    cid = conversation.conversation_id
    _register(gateway, "sid-a", "alice")
    _register(gateway, "sid-b", "bob")
    transport.clear()

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-a",
                {"conversationId": cid, "userId": "alice", "content": "Hello"})

    assert ack["status"] == "sent"
    assert ack["message"]["content"] == "Hello"
    assert ack["message"]["senderId"] == "alice"
    broadcasts = transport.events("new_message")
    assert len(broadcasts) == 1
    assert broadcasts[0]["to"] == f"conv:{cid}"
    assert broadcasts[0]["data"] == ack["message"]
    assert [m.message_id for m in store.list_messages(cid, "bob")] == [ack["message"]["id"]]


def test_send_message_with_mismatched_user_is_forbidden(gateway, transport, store, conversation):
    _register(gateway, "sid-a", "alice")

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-a",
                {"conversationId": conversation.conversation_id, "userId": "bob", "content": "spoof"})

    assert ack["code"] == "FORBIDDEN"
    assert transport.events("new_message") == []
    assert store.messages.collection.count_documents({}) == 0


def test_send_message_by_non_participant_is_forbidden(gateway, transport, conversation):
    _register(gateway, "sid-m", "mallory")

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-m",
                {"conversationId": conversation.conversation_id, "content": "hi"})

    assert ack["code"] == "FORBIDDEN"
    assert transport.events("new_message") == []


def test_empty_message_returns_invalid_argument(gateway, conversation):
    _register(gateway, "sid-a", "alice")

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-a",
                {"conversationId": conversation.conversation_id, "content": ""})

    assert ack["status"] == "error"
    assert ack["code"] == "INVALID_DATA"


def test_send_message_stops_sender_typing(gateway, transport, conversation):
    cid = conversation.conversation_id
    _register(gateway, "sid-a", "alice")
    _chat(gateway, gateway.chat.on_typing_start, "sid-a", {"conversationId": cid})
    transport.clear()

    _chat(gateway, gateway.chat.on_send_message, "sid-a", {"conversationId": cid, "content": "done"})

    assert gateway.presence.typing_users_in(cid) == frozenset()
    assert [e["event"] for e in transport.emitted] == ["new_message", "typing_status"]


def test_send_message_subscribes_participants_registered_before_the_conversation(gateway, transport, store):
    _register(gateway, "sid-a", "alice")
    _register(gateway, "sid-b", "bob")
    conversation = store.get_or_create("alice", "bob")

    _chat(gateway, gateway.chat.on_send_message, "sid-a",
          {"conversationId": conversation.conversation_id, "content": "first"})

    assert gateway.rooms.members_of(conversation.conversation_id) == {"sid-a", "sid-b"}


def test_typing_broadcasts_full_set(gateway, transport, conversation):
    cid = conversation.conversation_id
    _register(gateway, "sid-a", "alice")
    _register(gateway, "sid-b", "bob")
    transport.clear()

    assert _chat(gateway, gateway.chat.on_typing_start, "sid-a", {"conversationId": cid}) == {"status": "typing_started"}
    _chat(gateway, gateway.chat.on_typing_start, "sid-b", {"conversationId": cid, "userId": "bob"})
    _chat(gateway, gateway.chat.on_typing_start, "sid-b", {"conversationId": cid})
    assert _chat(gateway, gateway.chat.on_typing_stop, "sid-a", {"conversationId": cid}) == {"status": "typing_stopped"}

    statuses = [e["data"]["typingUsers"] for e in transport.events("typing_status")]
    assert statuses == [["alice"], ["alice", "bob"], ["bob"]]


def test_typing_by_non_participant_is_forbidden(gateway, transport, conversation):
    _register(gateway, "sid-m", "mallory")

    ack = _chat(gateway, gateway.chat.on_typing_start, "sid-m", {"conversationId": conversation.conversation_id})

    assert ack["code"] == "FORBIDDEN"
    assert gateway.presence.typing_users_in(conversation.conversation_id) == frozenset()


def test_mark_read_broadcasts_receipt(gateway, transport, store, conversation):
    cid = conversation.conversation_id
    store.append_message(cid, "bob", content="ping")
    _register(gateway, "sid-a", "alice")
    transport.clear()

    ack = _chat(gateway, gateway.chat.on_mark_read, "sid-a", {"conversationId": cid})

    assert ack["status"] == "marked_read"
    receipt = transport.events("message_read")[0]["data"]
    assert receipt == {"conversationId": cid, "userId": "alice", "readAt": ack["readAt"]}
    assert store.unread_count(cid, "alice") == 0


def test_join_and_leave_conversation(gateway, store):
    _register(gateway, "sid-a", "alice")
    conversation = store.get_or_create("alice", "carol")
    cid = conversation.conversation_id

    assert _chat(gateway, gateway.chat.on_join_conversation, "sid-a", {"conversationId": cid}) == \
        {"status": "joined", "conversationId": cid}
    assert cid in gateway.rooms.rooms_of("sid-a")

    assert _chat(gateway, gateway.chat.on_leave_conversation, "sid-a", {"conversationId": cid}) == \
        {"status": "left", "conversationId": cid}
    assert cid not in gateway.rooms.rooms_of("sid-a")


def test_join_conversation_checks_participation(gateway, conversation):
    _register(gateway, "sid-m", "mallory")

    ack = _chat(gateway, gateway.chat.on_join_conversation, "sid-m", {"conversationId": conversation.conversation_id})

    assert ack["code"] == "FORBIDDEN"
    assert gateway.rooms.rooms_of("sid-m") == frozenset()


def test_unexpected_error_becomes_server_error_ack(gateway, monkeypatch, conversation):
    _register(gateway, "sid-a", "alice")

    def boom(*args, **kwargs):
        raise RuntimeError("database exploded")

    monkeypatch.setattr(gateway.messaging, "append_message", boom)

    ack = _chat(gateway, gateway.chat.on_send_message, "sid-a",
                {"conversationId": conversation.conversation_id, "content": "hi"})

    assert ack == {"status": "error", "code": "SERVER_ERROR", "message": "Internal server error"}
    assert gateway.registry.is_online("alice")


# =========================================================================
# Fan-out
# =========================================================================

def test_send_notification_reaches_every_connection(gateway, transport):
    _register(gateway, "sid-chat", "bob")
    _register(gateway, "sid-notify", "bob", namespace="/")
    transport.clear()

    delivered = gateway.send_notification_to_user("bob", "booking_accepted", {"bookingId": "b1"})

    assert delivered == 2
    targets = {(e["to"], e["namespace"]) for e in transport.events("booking_accepted")}
    assert targets == {("sid-chat", "/chat"), ("sid-notify", "/")}


def test_send_notification_to_offline_user_delivers_nothing(gateway, transport):
    assert gateway.send_notification_to_user("ghost", "booking_created", {"bookingId": "b1"}) == 0
    assert transport.emitted == []


def test_failed_emit_is_not_counted(gateway, transport):
    _register(gateway, "sid-1", "bob", namespace="/")
    _register(gateway, "sid-2", "bob", namespace="/")
    transport.fail_connections.add("sid-1")

    assert gateway.send_notification_to_user("bob", "booking_rejected", {}) == 1


def test_send_notification_to_users(gateway, transport):
    _register(gateway, "sid-a", "alice", namespace="/")
    _register(gateway, "sid-b", "bob", namespace="/")

    assert gateway.send_notification_to_users(["alice", "bob", "ghost"], "booking_cancelled", {}) == 2


def test_connection_cannot_switch_users(gateway):
    _register(gateway, "sid-a", "alice")

    ack = gateway.dispatch("register", gateway.on_register, "sid-a", "/chat", {"userId": "bob"})

    assert ack["code"] == "FORBIDDEN"
    assert gateway.registry.owner_of("sid-a") == "alice"


def test_typing_cleared_when_last_chat_connection_drops_despite_notification_socket(gateway, transport, conversation):
    cid = conversation.conversation_id
    _register(gateway, "sid-chat", "alice")
    _register(gateway, "sid-notify", "alice", namespace="/")
    _chat(gateway, gateway.chat.on_typing_start, "sid-chat", {"conversationId": cid})
    transport.clear()

    gateway.on_disconnect("sid-chat")

    assert gateway.registry.is_online("alice")
    assert gateway.presence.typing_users_in(cid) == frozenset()
    assert transport.events("typing_status")[-1]["data"] == {"conversationId": cid, "typingUsers": []}


def test_register_after_disconnect_is_refused(gateway, conversation):
    gateway.on_connect("sid-x", "/chat")
    gateway.on_disconnect("sid-x")

    ack = gateway.dispatch("register", gateway.on_register, "sid-x", "/chat", {"userId": "alice"})

    assert ack["code"] == "UNAUTHORIZED"
    assert not gateway.registry.is_online("alice")
    assert gateway.rooms.rooms_of("sid-x") == frozenset()


def test_disconnect_during_room_lookup_rolls_back_registration(gateway, conversation):
    lookup = gateway.rooms.conversation_ids_for

    def lookup_then_disconnect(user_id):
        ids = lookup(user_id)
        gateway.on_disconnect("sid-x")
        return ids

    gateway.rooms.conversation_ids_for = lookup_then_disconnect
    gateway.on_connect("sid-x", "/chat")

    ack = gateway.dispatch("register", gateway.on_register, "sid-x", "/chat", {"userId": "alice"})

    assert ack["code"] == "UNAUTHORIZED"
    assert not gateway.registry.is_online("alice")
    assert gateway.registry.owner_of("sid-x") is None
    assert gateway.rooms.rooms_of("sid-x") == frozenset()
    assert gateway.rooms.members_of(conversation.conversation_id) == frozenset()
