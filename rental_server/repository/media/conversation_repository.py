"""Conversation repository for chat feature.

Two-party conversations. The `pair_key` field (both participant ids, sorted,
joined by '|') carries a unique index, so the store itself rejects a second
conversation for the same pair even when two creators race.
"""
import logging
from typing import Optional, Dict, Any, List
from datetime import datetime

from rental_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)

PAIR_SEPARATOR = '|'


def pair_key(user_a: str, user_b: str) -> str:
    """Order-independent key for a participant pair."""
    return PAIR_SEPARATOR.join(sorted([user_a, user_b]))


class ConversationRepository(BaseRepository):
    """Repository for chat conversations."""
    collection_name = 'conversations'

    def insert(self, doc: Dict[str, Any]) -> None:
        """Insert a conversation document (raises DuplicateKeyError on pair conflict)."""
        self.collection.insert_one(doc)

    def find_by_pair(self, user_a: str, user_b: str) -> Optional[Dict]:
        """Find the conversation whose participant set is exactly {user_a, user_b}."""
        return self.collection.find_one({'pair_key': pair_key(user_a, user_b)})

    def get_conversation(self, conversation_id: str) -> Optional[Dict]:
        return self.find_one({'conversation_id': conversation_id})

    def get_user_conversations(self, user_id: str) -> List[Dict]:
        """All conversations the user participates in (unsorted)."""
        return self.find({'participants': user_id})

    def get_user_conversation_ids(self, user_id: str) -> List[str]:
        cursor = self.collection.find({'participants': user_id}, {'conversation_id': 1})
        return [doc['conversation_id'] for doc in cursor]

    def advance_last_message_at(self, conversation_id: str, sent_at: datetime) -> bool:
        """Move last_message_at forward to sent_at; never moves it backward."""
        result = self.collection.update_one(
            {
                'conversation_id': conversation_id,
                '$or': [
                    {'last_message_at': None},
                    {'last_message_at': {'$lt': sent_at}},
                ],
            },
            {'$set': {'last_message_at': sent_at}}
        )
        return result.modified_count > 0

    def set_last_read(self, conversation_id: str, user_id: str, read_at: datetime, last_read_id=None) -> bool:
        """Record the participant's read marker on their participant link."""
        doc = self.collection.find_one({'conversation_id': conversation_id}, {'participant_links': 1})
        links = (doc or {}).get('participant_links', [])
        for index, link in enumerate(links):
            if link.get('user_id') == user_id:
                result = self.collection.update_one(
                    {'conversation_id': conversation_id, f'participant_links.{index}.user_id': user_id},
                    {'$set': {
                        f'participant_links.{index}.last_read_at': read_at,
                        f'participant_links.{index}.last_read_id': last_read_id,
                    }}
                )
                return result.matched_count > 0
        return False
