from typing import Optional, Dict, Any, List
from datetime import datetime

from pymongo import DESCENDING

from rental_server.repository.base_repository import BaseRepository


class NotificationRepository(BaseRepository):
    """Append-only notification records; the durable fallback for realtime events."""
    collection_name = 'notifications'

    def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        data.setdefault('read_at', None)
        self.collection.insert_one(data)
        return data

    def get_user_notifications(self, user_id: str, limit: int = 50) -> List[Dict]:
        cursor = self.collection.find({'user_id': user_id}).sort('created_at', DESCENDING).limit(limit)
        return list(cursor)

    def get_notification(self, notification_id: str, user_id: str) -> Optional[Dict]:
        return self.find_one({'notification_id': notification_id, 'user_id': user_id})

    def mark_read(self, notification_id: str, user_id: str, read_at: datetime) -> bool:
        result = self.collection.update_one(
            {'notification_id': notification_id, 'user_id': user_id},
            {'$set': {'read_at': read_at}}
        )
        return result.matched_count > 0

    def mark_all_read(self, user_id: str, read_at: datetime) -> int:
        result = self.update({'user_id': user_id, 'read_at': None}, {'read_at': read_at}, multi=True)
        return result.modified_count

    def count_unread(self, user_id: str) -> int:
        return self.collection.count_documents({'user_id': user_id, 'read_at': None})
