from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING
from app.core.config import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Correlation keys the user resolver looks up in reverse
USER_LOOKUP_FIELDS = ("subscriptionId", "subscriptionCustomerId")


class MongoDB:
    client: Optional[AsyncIOMotorClient] = None
    db: Optional[AsyncIOMotorDatabase] = None

    async def connect_to_database(self, uri: str = None, db_name: str = None):
        uri = uri or settings.MONGO_URI
        db_name = db_name or settings.MONGO_DB_NAME
        logger.info(f"Connecting to MongoDB database '{db_name}'...")
        try:
            self.client = AsyncIOMotorClient(uri)
            self.db = self.client[db_name]
            logger.info("Connected to MongoDB.")
        except Exception as e:
            logger.error(f"Could not connect to MongoDB: {e}")
            raise e
        return self.db

    async def close_database_connection(self):
        if self.client:
            logger.info("Closing MongoDB connection...")
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed.")


async def ensure_user_indexes(db: AsyncIOMotorDatabase, collection_name: str = None):
    """Create the secondary indexes used by reverse user lookups."""
    collection = db[collection_name or settings.USERS_COLLECTION]
    for field in USER_LOOKUP_FIELDS:
        name = await collection.create_index([(field, ASCENDING)])
        logger.info(f"Ensured index {name} on {collection.name}")


mongodb = MongoDB()
