import logging

from pymongo import MongoClient, ASCENDING, DESCENDING

from config import config

logger = logging.getLogger(__name__)


class MongoRepositorySingleton:
    _client = None
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses MONGO_URI and CHAT_DB_NAME from config (environment variables
        override the YAML files). In production you should always set
        MONGO_URI securely via environment.
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.CHAT_DB_NAME
        logger.info(f"[MongoRepositorySingleton] Connecting to MongoDB DB: {db_name}")
        cls._client = MongoClient(mongo_uri)
        cls._db_instance = cls._client[db_name]
        return cls._db_instance

    @classmethod
    def set_db(cls, db):
        """Install an already-built database handle (tests, alternative runners)."""
        cls._db_instance = db

    @classmethod
    def reset(cls):
        if cls._client is not None:
            cls._client.close()
        cls._client = None
        cls._db_instance = None


def get_db():
    return MongoRepositorySingleton.get_db()


def ensure_indexes(db):
    """Create the indexes the chat query paths rely on (idempotent).

    The unique pair_key index enforces one conversation per user pair.
    """
    db['conversations'].create_index([('pair_key', ASCENDING)], unique=True, name='conversations_pair_key')
    db['conversations'].create_index([('conversation_id', ASCENDING)], unique=True, name='conversations_conversation_id')
    db['conversations'].create_index([('participants', ASCENDING), ('last_message_at', DESCENDING)], name='conversations_participants_activity')
    db['chat_messages'].create_index([('conversation_id', ASCENDING), ('sent_at', DESCENDING)], name='chat_messages_conversation_sent_at')
    db['chat_messages'].create_index([('message_id', ASCENDING)], unique=True, name='chat_messages_message_id')
    db['notifications'].create_index([('user_id', ASCENDING), ('created_at', DESCENDING)], name='notifications_user_created_at')
    db['notifications'].create_index([('notification_id', ASCENDING)], unique=True, name='notifications_notification_id')
    logger.info('Ensured chat DB indexes')
