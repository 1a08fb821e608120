from rental_server.websocket.presence import PresenceTracker


def test_start_then_stop_leaves_conversation_empty():
    presence = PresenceTracker()
    assert presence.start_typing("c1", "alice") is True
    assert presence.typing_users_in("c1") == {"alice"}

    assert presence.stop_typing("c1", "alice") is True
    assert presence.typing_users_in("c1") == frozenset()


def test_repeated_start_reports_no_change():
    presence = PresenceTracker()
    presence.start_typing("c1", "alice")
    assert presence.start_typing("c1", "alice") is False


def test_stop_for_absent_user_is_a_noop():
    presence = PresenceTracker()
    assert presence.stop_typing("c1", "alice") is False
    presence.start_typing("c1", "bob")
    assert presence.stop_typing("c1", "alice") is False
    assert presence.typing_users_in("c1") == {"bob"}


def test_clear_user_removes_user_from_every_conversation():
    presence = PresenceTracker()
    presence.start_typing("c1", "alice")
    presence.start_typing("c2", "alice")
    presence.start_typing("c2", "bob")

    changed = presence.clear_user("alice")

    assert sorted(changed) == ["c1", "c2"]
    assert presence.typing_users_in("c1") == frozenset()
    assert presence.typing_users_in("c2") == {"bob"}
    assert presence.clear_user("alice") == []
