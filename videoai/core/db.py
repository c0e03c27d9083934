"""MongoDB database connection and initialization."""

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from videoai.core.config import Settings
from videoai.core.logger import get_logger
from videoai.models import Summary, Transcript, Video

logger = get_logger(__name__)

# Global MongoDB client
mongodb_client: AsyncIOMotorClient | None = None


async def connect_to_mongodb(settings: Settings) -> None:
    """
    Connect to MongoDB and initialize Beanie.

    This function should be called on application startup.
    """
    global mongodb_client

    mongodb_client = AsyncIOMotorClient(settings.MONGODB_URL)

    await init_beanie(
        database=mongodb_client[settings.MONGODB_DB_NAME],
        document_models=[Video, Transcript, Summary],
    )

    logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")


async def close_mongodb_connection() -> None:
    """
    Close MongoDB connection.

    This function should be called on application shutdown.
    """
    global mongodb_client

    if mongodb_client:
        mongodb_client.close()
        mongodb_client = None
        logger.info("MongoDB connection closed")
