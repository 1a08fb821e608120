"""Chat message repository for chat feature.

Messages are append-only; there is no edit or delete path.
"""
import logging
from typing import Optional, Dict, Any, List
from datetime import datetime

from pymongo import DESCENDING

from rental_server.repository.base_repository import BaseRepository

logger = logging.getLogger(__name__)

# Newest first; _id breaks ties between messages stored in the same millisecond.
NEWEST_FIRST = [('sent_at', DESCENDING), ('_id', DESCENDING)]


class ChatMessageRepository(BaseRepository):
    """Repository for chat messages."""
    collection_name = 'chat_messages'

    def create_message(self, data: Dict[str, Any]) -> str:
        """Insert a new message document and return its message_id."""
        self.collection.insert_one(data)
        return data['message_id']

    def get_conversation_messages(
        self,
        conversation_id: str,
        limit: int = 50,
        before: Optional[datetime] = None
    ) -> List[Dict]:
        """Newest `limit` messages (optionally strictly older than `before`), newest first."""
        query: Dict[str, Any] = {'conversation_id': conversation_id}
        if before is not None:
            query['sent_at'] = {'$lt': before}
        cursor = self.collection.find(query).sort(NEWEST_FIRST).limit(limit)
        return list(cursor)

    def get_latest_message(self, conversation_id: str) -> Optional[Dict]:
        docs = self.get_conversation_messages(conversation_id, limit=1)
        return docs[0] if docs else None

    def get_latest_message_id(self, conversation_id: str):
        """_id of the most recently stored message; _id order is insertion order."""
        doc = self.collection.find_one(
            {'conversation_id': conversation_id},
            {'_id': 1},
            sort=[('_id', DESCENDING)]
        )
        return doc['_id'] if doc else None

    def count_unread(self, conversation_id: str, reader_id: str, after_id=None) -> int:
        """Messages from other participants stored after `after_id`.

        `after_id` is the newest _id the reader had seen when they last marked the
        conversation read (None: nothing read yet). Comparing _ids rather than
        timestamps keeps a message stored in the marker's millisecond unread.
        """
        query: Dict[str, Any] = {
            'conversation_id': conversation_id,
            'sender_id': {'$ne': reader_id},
        }
        if after_id is not None:
            query['_id'] = {'$gt': after_id}
        return self.collection.count_documents(query)
