"""
Category registry: which API key may post results for which category.

Keys come from a closed list.  A key and a category name can each be
registered once; the unique indexes on the collection make the first
writer win.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pymongo.errors import DuplicateKeyError

from engine.errors import InvalidRequest, store_errors
from processing.normalizer import serialize_document
from storage.cache import ResultCache

logger = logging.getLogger(__name__)

CATEGORIES_CACHE_KEY = "categories:all"


@dataclass
class RegistrationOutcome:
    created: bool
    document: dict | None = None


class CategoryRegistry:
    def __init__(self, collection, cache: ResultCache, known_keys, ttl: int = 50) -> None:
        self._col = collection
        self._cache = cache
        self._known_keys = frozenset(known_keys)
        self._ttl = ttl

    def register_key(self, key, categoryname) -> RegistrationOutcome:
        if not isinstance(categoryname, str) or not categoryname:
            raise InvalidRequest("categoryname is required")
        if not isinstance(key, str) or key not in self._known_keys:
            raise InvalidRequest(f"Unknown key: {key}")

        now = datetime.now(timezone.utc)
        doc = {"key": key, "categoryname": categoryname, "createdAt": now, "updatedAt": now}
        with store_errors("key registration"):
            # The unique indexes settle races; this catches collections
            # still missing them.
            if self._col.find_one({"$or": [{"key": key}, {"categoryname": categoryname}]}):
                logger.info("Key %s or category %s already registered", key, categoryname)
                return RegistrationOutcome(created=False)
            try:
                result = self._col.insert_one(doc)
            except DuplicateKeyError:
                logger.info("Key %s or category %s already registered", key, categoryname)
                return RegistrationOutcome(created=False)

        doc["_id"] = result.inserted_id
        self._cache.delete(CATEGORIES_CACHE_KEY)
        logger.info("Registered key %s for %s", key, categoryname)
        return RegistrationOutcome(created=True, document=serialize_document(doc))

    def list_categories(self) -> list[dict]:
        cached = self._cache.get_json(CATEGORIES_CACHE_KEY)
        if cached is not None:
            return cached
        with store_errors("category listing"):
            docs = list(self._col.find({}))
        payload = serialize_document(docs)
        self._cache.set_json(CATEGORIES_CACHE_KEY, payload, self._ttl)
        return payload
