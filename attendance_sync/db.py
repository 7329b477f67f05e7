"""MongoDB connection and Beanie document registration."""
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from attendance_sync.config import settings
from attendance_sync.models import AttendanceRecord


_client = None


async def db_startup():
    """Connect to MongoDB and initialize Beanie ODM."""
    global _client
    if _client is None:
        _client = AsyncIOMotorClient(
            settings.mongodb_url,
            serverSelectionTimeoutMS=settings.mongodb_timeout_ms,
        )
    await init_beanie(
        database=_client[settings.mongodb_db_name],
        document_models=[AttendanceRecord],
    )


async def db_shutdown():
    """Close MongoDB connection."""
    global _client
    if _client:
        _client.close()
        _client = None


async def init_db():
    """Called lazily by the remote store on first use."""
    await db_startup()
