from typing import List, Optional
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.schemas.subscription import SubscriptionPatch, SubscriptionRecord

logger = logging.getLogger(__name__)

_DEFAULT_RECORD = SubscriptionRecord().model_dump(by_alias=True, mode="json")


class UserStore:
    """
    Subscription fields on user profile documents.

    Documents are keyed by the local user id (``_id``) and every write is a
    partial-field ``$set`` merge, so concurrent writers resolve last-write-wins.
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "users"):
        self.db = db
        self.collection_name = collection_name

    @property
    def collection(self):
        return self.db[self.collection_name]

    async def get_record(self, user_id: str) -> Optional[SubscriptionRecord]:
        doc = await self.collection.find_one({"_id": user_id})
        if doc is None:
            return None
        return SubscriptionRecord.model_validate(doc)

    async def get_or_create_record(self, user_id: str) -> SubscriptionRecord:
        """Read the record, initializing a free/none record for a first-time reader."""
        await self.collection.update_one(
            {"_id": user_id},
            {"$setOnInsert": _DEFAULT_RECORD},
            upsert=True
        )
        return await self.get_record(user_id)

    async def merge(self, user_id: str, patch: SubscriptionPatch):
        fields = patch.to_document()
        if not fields:
            return
        await self.collection.update_one(
            {"_id": user_id},
            {"$set": fields},
            upsert=True
        )
        logger.info(f"Merged subscription fields {sorted(fields)} for user {user_id}")

    async def find_user_ids(self, field: str, value: str, limit: int = 2) -> List[str]:
        """Reverse lookup of user ids whose ``field`` equals ``value``."""
        cursor = self.collection.find({field: value}, {"_id": 1}).limit(limit)
        return [str(doc["_id"]) async for doc in cursor]
