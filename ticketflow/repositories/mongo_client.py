"""MongoDB Client - Connection, collection access and index management"""
from typing import Any, Dict, List, Optional, Tuple, Union
from pymongo import MongoClient, ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[MongoClient] = None
_database: Optional[Database] = None

IndexKeys = Union[str, List[Tuple[str, int]]]

# collection -> [(keys, unique)]
INDEXES: Dict[str, List[Tuple[IndexKeys, bool]]] = {
    "schemas": [
        ("schema_id", True),
        ("flows.module.form_id", False),
        ("created_at", False),
    ],
    "tickets": [
        ("ticket_id", True),
        ([("requester_id", ASCENDING), ("status", ASCENDING)], False),
        ("flows.user_id", False),
        ("schema_id", False),
        ("updated_at", False),
    ],
    "users": [("user_id", True)],
    "roles": [("role_id", True)],
    "blobs": [("blob_id", True)],
    "audit_events": [
        ("audit_event_id", True),
        ([("ticket_id", ASCENDING), ("timestamp", DESCENDING)], False),
    ],
}


def get_client() -> MongoClient:
    """Get or create the MongoDB client, failing fast when the server is unreachable"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        client = MongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        try:
            client.admin.command("ping")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            client.close()
            raise
        _client = client
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def set_database(database: Optional[Database]) -> None:
    """Install an already-open database handle (tests pass a mongomock one)"""
    global _database
    _database = database


def get_collection(name: str) -> Collection:
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create every index in INDEXES (no-op for indexes that already exist)"""
    db = get_database()
    for collection, indexes in INDEXES.items():
        for keys, unique in indexes:
            db[collection].create_index(keys, unique=unique)
    logger.info(f"Ensured indexes on {len(INDEXES)} collections")


def health_check() -> Dict[str, Any]:
    """Ping the database; never raises"""
    try:
        get_database().command("ping")
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {"status": "unhealthy", "database": settings.mongo_db, "error": str(e)}
    return {"status": "healthy", "database": settings.mongo_db, "connection": "ok"}
