import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.config import settings
from app.repositories.debt_repo import DebtRepository

logger = logging.getLogger(__name__)


class MongoDatabase:
    """MongoDB connection manager."""

    client: AsyncIOMotorClient = None
    db: AsyncIOMotorDatabase = None


mongodb = MongoDatabase()


async def connect_to_mongo(url: str = None, database_name: str = None) -> AsyncIOMotorDatabase:
    """Connect to MongoDB and make sure the debt indexes exist."""
    mongodb.client = AsyncIOMotorClient(url or settings.MONGODB_URL)
    mongodb.db = mongodb.client[database_name or settings.DATABASE_NAME]

    # Create indexes
    await create_indexes()
    logger.info("Connected to database")
    return mongodb.db


async def disconnect_from_mongo():
    """Disconnect from MongoDB."""
    if mongodb.client is not None:
        mongodb.client.close()
        logger.info("Disconnected from database")


async def create_indexes():
    """Create database indexes."""
    await DebtRepository(mongodb.db).create_indexes()
