"""
MongoDB connection helper.
Provides a singleton-style database handle and the index bootstrap used
at startup.
"""
import logging

from pymongo import ASCENDING, MongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from config import (
    MONGO_URI, MONGO_DB_NAME,
    COLLECTION_CATEGORY_KEYS, COLLECTION_RESULTS, COLLECTION_USERS,
)

logger = logging.getLogger(__name__)

_client = None
_db = None


def get_client() -> MongoClient:
    """Return (and lazily create) the MongoClient singleton."""
    global _client
    if _client is None:
        _client = MongoClient(MONGO_URI, serverSelectionTimeoutMS=5000)
    return _client


def get_db():
    """Return the application database handle."""
    global _db
    if _db is None:
        _db = get_client()[MONGO_DB_NAME]
    return _db


def is_connected(db=None) -> bool:
    """Quick connectivity check (used by the health endpoint)."""
    try:
        (db if db is not None else get_db()).client.admin.command("ping")
        return True
    except Exception:
        return False


# Unique indexes carry the one-per-category / one-per-key invariants.
_UNIQUE_INDEXES = (
    (COLLECTION_CATEGORY_KEYS, "key"),
    (COLLECTION_CATEGORY_KEYS, "categoryname"),
    (COLLECTION_RESULTS, "categoryname"),
    (COLLECTION_USERS, "email"),
)


def ensure_indexes(db) -> None:
    """
    Create the unique indexes the write paths rely on.
    A collection holding legacy duplicates keeps working without its
    index, and an unreachable server does not stop startup; requests then
    fail individually with StoreUnavailable.  Failures are logged.
    """
    for collection, field in _UNIQUE_INDEXES:
        try:
            db[collection].create_index([(field, ASCENDING)], unique=True)
        except ConnectionFailure as exc:
            logger.error("Skipping index setup, document store unreachable: %s", exc)
            return
        except PyMongoError as exc:
            logger.warning("Could not create unique index %s.%s: %s", collection, field, exc)
