import logging
import threading
from typing import Dict, FrozenSet, List, Set

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Who is typing in which conversation.

    Typing is tracked per user, not per connection. The tracker never emits;
    callers broadcast the full set whenever a mutation reports a change.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._typing: Dict[str, Set[str]] = {}
        self._user_conversations: Dict[str, Set[str]] = {}

    def start_typing(self, conversation_id: str, user_id: str) -> bool:
        with self._lock:
            users = self._typing.setdefault(conversation_id, set())
            if user_id in users:
                return False
            users.add(user_id)
            self._user_conversations.setdefault(user_id, set()).add(conversation_id)
            return True

    def stop_typing(self, conversation_id: str, user_id: str) -> bool:
        with self._lock:
            return self._remove(conversation_id, user_id)

    def _remove(self, conversation_id: str, user_id: str) -> bool:
        users = self._typing.get(conversation_id)
        if not users or user_id not in users:
            return False
        users.discard(user_id)
        if not users:
            del self._typing[conversation_id]
        conversations = self._user_conversations.get(user_id)
        if conversations is not None:
            conversations.discard(conversation_id)
            if not conversations:
                del self._user_conversations[user_id]
        return True

    def typing_users_in(self, conversation_id: str) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._typing.get(conversation_id, ()))

    def clear_user(self, user_id: str) -> List[str]:
        """Remove the user from every typing set; returns the conversations that changed."""
        with self._lock:
            conversations = list(self._user_conversations.get(user_id, ()))
            changed = [cid for cid in conversations if self._remove(cid, user_id)]
        if changed:
            logger.debug(f"Cleared typing for {user_id} in {len(changed)} conversation(s)")
        return changed
