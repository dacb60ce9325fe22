"""
Reading stores: the two document shapes results are kept in.

GroupedReadingStore   one document per category, readings nested by date
                      ({"result": [{"date", "times": [{"time", "number"}]}]})
FlatReadingStore      scraper documents, one flat list of readings
                      ({"result": [{"date", "time", "number"}]})

Both expose the same query surface plus a date-group view of a document
(group_by_date / with_groups) so filtering and ordering can be written once
in the query engine.  Writes go through swap(), a compare-and-swap on the
document's revision counter.
"""
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from pymongo import ReturnDocument

REVISION_FIELD = "__v"


class ReadingStore(ABC):
    """Common query and write surface over one results collection."""

    def __init__(self, collection, case_insensitive: bool = False, clock=None) -> None:
        self._col = collection
        self._case_insensitive = case_insensitive
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def category_filter(self, categoryname: str) -> dict:
        if self._case_insensitive:
            return {"categoryname": re.compile(f"^{re.escape(categoryname)}$", re.IGNORECASE)}
        return {"categoryname": categoryname}

    # ── Queries ───────────────────────────────────────────────────

    def find(self, categoryname: str | None = None, date: str | None = None) -> list[dict]:
        """Documents for a category and/or holding readings on *date*, newest first."""
        query = {}
        if categoryname is not None:
            query.update(self.category_filter(categoryname))
        if date is not None:
            query["result.date"] = date
        return list(self._col.find(query).sort("createdAt", -1))

    def find_category(self, categoryname: str) -> dict | None:
        return self._col.find_one(self.category_filter(categoryname))

    def find_by_id(self, doc_id) -> dict | None:
        return self._col.find_one({"_id": doc_id})

    # ── Writes ────────────────────────────────────────────────────

    def insert(self, document: dict) -> dict:
        """Insert a new document at revision 0; duplicate keys propagate."""
        now = self._clock()
        doc = {**document, REVISION_FIELD: 0, "createdAt": now, "updatedAt": now}
        result = self._col.insert_one(doc)
        doc["_id"] = result.inserted_id
        return doc

    def swap(self, current: dict, changes: dict) -> dict | None:
        """
        Apply *changes* only if *current* is still the stored revision.
        Returns the updated document, or None when another writer got there
        first.
        """
        return self._col.find_one_and_update(
            {"_id": current["_id"], REVISION_FIELD: current.get(REVISION_FIELD)},
            {
                "$set": {**changes, "updatedAt": self._clock()},
                "$inc": {REVISION_FIELD: 1},
            },
            return_document=ReturnDocument.AFTER,
        )

    # ── Date-group view ───────────────────────────────────────────

    @abstractmethod
    def group_by_date(self, document: dict) -> list[tuple[str, list[dict]]]:
        """Return the document's readings as ordered (date, entries) pairs."""

    @abstractmethod
    def with_groups(self, document: dict, groups: list[tuple[str, list[dict]]]) -> dict:
        """Return a copy of *document* holding exactly *groups*."""


class GroupedReadingStore(ReadingStore):
    def group_by_date(self, document):
        return [
            (group.get("date"), list(group.get("times") or []))
            for group in document.get("result") or []
        ]

    def with_groups(self, document, groups):
        return {
            **document,
            "result": [{"date": date, "times": entries} for date, entries in groups],
        }


class FlatReadingStore(ReadingStore):
    def group_by_date(self, document):
        groups: dict[str, list[dict]] = {}
        for entry in document.get("result") or []:
            groups.setdefault(entry.get("date"), []).append(entry)
        return list(groups.items())

    def with_groups(self, document, groups):
        return {
            **document,
            "result": [entry for _date, entries in groups for entry in entries],
        }
