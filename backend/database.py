from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI

_client: AsyncIOMotorClient | None = None


def get_client() -> AsyncIOMotorClient:
    global _client
    if _client is None:
        if not MONGO_URI:
            raise RuntimeError("MONGODB_URI not set")
        _client = AsyncIOMotorClient(MONGO_URI)
    return _client


def get_db():
    return get_client().get_default_database()
