# async mongodb client for the backend api
# uses motor for non-blocking operations and session transactions

import logging
from typing import Any, Awaitable, Callable, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from app.config import settings

logger = logging.getLogger(__name__)


class Database:
    """async mongodb connection manager"""

    def __init__(self):
        self.client: Optional[AsyncIOMotorClient] = None
        self.db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """establish connection to mongodb"""
        if self.client is not None:
            return

        logger.info(f"Connecting to MongoDB database: {settings.MONGODB_DATABASE}")
        self.client = AsyncIOMotorClient(settings.MONGODB_URI, tz_aware=True)
        self.db = self.client[settings.MONGODB_DATABASE]

        # verify connection
        await self.client.admin.command("ping")
        logger.info("MongoDB connection established")

    async def close(self):
        """close mongodb connection"""
        if self.client:
            self.client.close()
            self.client = None
            self.db = None
            logger.info("MongoDB connection closed")

    async def ensure_indexes(self):
        """create the lookup indexes used by the invitation read paths"""
        await self.invitation_codes.create_index([("code", ASCENDING), ("created_at", DESCENDING)])
        await self.invitation_codes.create_index([("therapist_id", ASCENDING), ("created_at", DESCENDING)])
        await self.invitation_codes.create_index([("patient_id", ASCENDING), ("is_used", ASCENDING)])
        logger.info("Invitation indexes ensured")

    async def run_transaction(
        self,
        callback: Callable[[AsyncIOMotorClientSession], Awaitable[Any]],
    ) -> Any:
        """run callback inside a session transaction.

        with_transaction commits on success, aborts on error and retries
        the whole callback on transient write conflicts.
        """
        async with await self.client.start_session() as session:
            return await session.with_transaction(callback)

    # collection accessors

    @property
    def users(self):
        return self.db["users"]

    @property
    def invitation_codes(self):
        return self.db["invitation_codes"]

    @property
    def invitation_errors(self):
        return self.db["invitation_errors"]

    @property
    def admin_settings(self):
        return self.db["admin_settings"]

    @property
    def ai_conversation_summaries(self):
        return self.db["ai_conversation_summaries"]


# singleton instance
db = Database()


async def get_db() -> Database:
    """dependency injection for database access"""
    return db
