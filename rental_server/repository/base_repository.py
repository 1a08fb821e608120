class BaseRepository:
    """Thin wrapper around one MongoDB collection.

    Subclasses add the query paths their feature needs; the generic helpers
    below cover the plain CRUD cases.
    """
    collection_name = None

    def __init__(self, db, collection_name=None):
        self.db = db
        self.collection_name = collection_name or self.collection_name
        self.collection = db[self.collection_name]

    def find(self, query=None, *args, **kwargs):
        """Find multiple documents matching the query."""
        return list(self.collection.find(query or {}, *args, **kwargs))

    def find_one(self, query):
        """Find a single document matching the query."""
        return self.collection.find_one(query)

    def update(self, query, update_fields, multi: bool = False):
        """Update documents matching the query with the given fields."""
        if multi:
            return self.collection.update_many(query, {'$set': update_fields})
        return self.collection.update_one(query, {'$set': update_fields})
