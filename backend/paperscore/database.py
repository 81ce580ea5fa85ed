"""
Database connection - MongoDB async (Motor).
"""

from motor.motor_asyncio import AsyncIOMotorClient

from .config import MONGO_URL, DB_NAME

# Async client (used by all app queries); connects lazily on first operation
client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]


def get_db():
    """FastAPI dependency returning the application database handle."""
    return db
