"""
Result upsert engine.

Merges incoming readings into the stored result documents and keeps the
cache honest afterwards.  Every write is a read / merge / compare-and-swap
cycle on the document revision, retried a bounded number of times, so two
writers racing on the same category and date cannot lose each other's
readings.
"""
import logging
from dataclasses import dataclass, field

from pymongo.errors import DuplicateKeyError

from engine.errors import (
    InvalidDateFormat, InvalidId, InvalidRequest, InvalidTimeFormat,
    NotFound, WriteConflict, store_errors,
)
from processing.normalizer import (
    normalize_date, normalize_time, parse_object_id, serialize_document,
)
from storage.cache import TAG_ALL_RESULTS, ResultCache, category_tag
from storage.readings import FlatReadingStore, GroupedReadingStore

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


@dataclass
class UpsertOutcome:
    """What an upsert did. *duplicates* is non-empty when the write was rejected."""

    document: dict
    created: bool = False
    duplicates: list[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return bool(self.duplicates)


def result_snapshot_key(categoryname: str, date: str) -> str:
    return f"results:{categoryname}:{date}"


def result_id_key(doc_id) -> str:
    return f"result:id:{doc_id}"


class ResultUpsertEngine:
    def __init__(
        self,
        grouped: GroupedReadingStore,
        flat: FlatReadingStore,
        cache: ResultCache,
        result_ttl: int = 50,
        flat_ttl: int = 120,
        max_attempts: int = MAX_WRITE_ATTEMPTS,
    ) -> None:
        self._grouped = grouped
        self._flat = flat
        self._cache = cache
        self._result_ttl = result_ttl
        self._flat_ttl = flat_ttl
        self._max_attempts = max_attempts

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Grouped model
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def upsert_reading(
        self,
        categoryname,
        date,
        time,
        number,
        next_time=None,
        next_number=None,
        key=None,
        mode=None,
        next_result=None,
    ) -> UpsertOutcome:
        """
        Add a reading (and optionally the following slot's reading) to the
        category's date group.

        The whole write is rejected when any of the submitted times is
        already present for that date; the outcome then lists the
        colliding times and the stored document is left untouched.
        """
        if not isinstance(categoryname, str) or not categoryname:
            raise InvalidRequest("categoryname is required")
        day = normalize_date(date)
        if day is None:
            raise InvalidRequest("Invalid or missing date")
        slot = normalize_time(time)
        if slot is None:
            raise InvalidTimeFormat()

        candidates = [{"time": slot, "number": number}]
        next_slot = normalize_time(next_time)
        if next_slot and next_number is not None and next_slot != slot:
            candidates.append({"time": next_slot, "number": next_number})
        root_next = next_slot or next_result

        with store_errors("result upsert"):
            doc, created, duplicates = self._merge_grouped(
                categoryname, day, candidates, root_next,
                {"key": key, "mode": mode, "number": number},
            )

        payload = serialize_document(doc)
        if duplicates:
            logger.info("Rejected duplicate time(s) %s for %s on %s", duplicates, categoryname, day)
            return UpsertOutcome(payload, duplicates=duplicates)

        logger.info(
            "Stored %d reading(s) for %s on %s (%s)",
            len(candidates), categoryname, day, "created" if created else "merged",
        )
        self._refresh_cache(doc["categoryname"], day, payload, self._result_ttl)
        return UpsertOutcome(payload, created=created)

    def _merge_grouped(self, categoryname, day, candidates, root_next, extra):
        for attempt in range(1, self._max_attempts + 1):
            current = self._grouped.find_category(categoryname)
            if current is None:
                try:
                    doc = self._grouped.insert({
                        "categoryname": categoryname,
                        "key": extra["key"],
                        "mode": extra["mode"],
                        "number": extra["number"],
                        "next_result": root_next,
                        "date": day,
                        "result": [{"date": day, "times": list(candidates)}],
                    })
                    return doc, True, []
                except DuplicateKeyError:
                    logger.info("%s was created concurrently, retrying as a merge", categoryname)
                    continue

            groups = self._grouped.group_by_date(current)
            times = next((entries for date, entries in groups if date == day), None)
            if times is None:
                groups.append((day, list(candidates)))
            else:
                taken = {entry.get("time") for entry in times}
                duplicates = [c["time"] for c in candidates if c["time"] in taken]
                if duplicates:
                    return current, False, duplicates
                times.extend(candidates)

            changes = {"result": self._grouped.with_groups(current, groups)["result"]}
            if root_next:
                changes["next_result"] = root_next
            updated = self._grouped.swap(current, changes)
            if updated is not None:
                return updated, False, []
            logger.info("Revision conflict on %s (attempt %d)", categoryname, attempt)
        raise WriteConflict()

    def update_time_entry(self, doc_id, date, time, number, next_result=None) -> dict:
        """Overwrite the number of one existing reading."""
        oid = parse_object_id(doc_id)
        if oid is None:
            raise InvalidId()
        day = normalize_date(date) or date
        slot = normalize_time(time) or time

        def change(entries):
            for index, entry in enumerate(entries):
                if entry.get("time") == slot:
                    entries[index] = {**entry, "number": number}
                    return True
            return False

        extra = {"next_result": next_result} if next_result is not None else {}
        with store_errors("result update"):
            doc = self._rewrite_entry(oid, day, change, extra)
        logger.info("Updated %s %s for result %s", day, slot, oid)
        return serialize_document(doc)

    def delete_time_entry(self, doc_id, date, time) -> dict:
        """Remove exactly one reading from one date group."""
        oid = parse_object_id(doc_id)
        if oid is None:
            raise InvalidId()
        day = normalize_date(date) or date
        slot = normalize_time(time) or time

        def change(entries):
            kept = [entry for entry in entries if entry.get("time") != slot]
            if len(kept) == len(entries):
                return False
            entries[:] = kept
            return True

        with store_errors("result delete"):
            doc = self._rewrite_entry(oid, day, change, {})
        logger.info("Deleted %s %s from result %s", day, slot, oid)
        return serialize_document(doc)

    def _rewrite_entry(self, oid, day, change, extra) -> dict:
        for attempt in range(1, self._max_attempts + 1):
            current = self._grouped.find_by_id(oid)
            if current is None:
                raise NotFound("No matching entry found")
            groups = self._grouped.group_by_date(current)
            times = next((entries for date, entries in groups if date == day), None)
            if times is None or not change(times):
                raise NotFound("No matching date/time entry found")
            changes = {"result": self._grouped.with_groups(current, groups)["result"], **extra}
            updated = self._grouped.swap(current, changes)
            if updated is not None:
                self._invalidate(updated["categoryname"], oid)
                return updated
            logger.info("Revision conflict on result %s (attempt %d)", oid, attempt)
        raise WriteConflict()

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Flat model (scraper uploads)
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def upload_flat_reading(self, categoryname, date, time, number, mode=None) -> tuple[dict, str]:
        """
        Record a scraped reading keyed by category + date + time.
        An existing reading for the same slot has its number overwritten.
        Returns the stored document and one of "created", "updated",
        "appended".
        """
        if not isinstance(categoryname, str) or not categoryname:
            raise InvalidRequest("categoryname is required")
        day = normalize_date(date)
        if day is None:
            raise InvalidDateFormat()
        slot = normalize_time(time)
        if slot is None:
            raise InvalidTimeFormat()

        with store_errors("flat upload"):
            doc, status = self._merge_flat(categoryname, day, slot, number, mode)

        payload = serialize_document(doc)
        logger.info("Flat upload for %s on %s %s: %s", categoryname, day, slot, status)
        self._refresh_cache(categoryname, day, payload, self._flat_ttl)
        return payload, status

    def _merge_flat(self, categoryname, day, slot, number, mode):
        root = {"number": number, "next_result": slot, "mode": mode, "date": day}
        for attempt in range(1, self._max_attempts + 1):
            current = self._flat.find_category(categoryname)
            if current is None:
                doc = self._flat.insert({
                    "categoryname": categoryname,
                    "result": [{"date": day, "time": slot, "number": number}],
                    **root,
                })
                return doc, "created"

            entries = list(current.get("result") or [])
            index = next(
                (i for i, e in enumerate(entries) if e.get("date") == day and e.get("time") == slot),
                None,
            )
            if index is None:
                entries.append({"date": day, "time": slot, "number": number})
                status = "appended"
            else:
                entries[index] = {**entries[index], "number": number}
                status = "updated"

            updated = self._flat.swap(current, {"result": entries, **root})
            if updated is not None:
                return updated, status
            logger.info("Revision conflict on flat %s (attempt %d)", categoryname, attempt)
        raise WriteConflict()

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Cache discipline
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    def _invalidate(self, categoryname: str, doc_id=None) -> None:
        self._cache.invalidate(category_tag(categoryname), TAG_ALL_RESULTS)
        if doc_id is not None:
            self._cache.delete(result_id_key(doc_id))

    def _refresh_cache(self, categoryname: str, day: str, payload: dict, ttl: int) -> None:
        self._invalidate(categoryname, payload.get("_id"))
        self._cache.set_json(
            result_snapshot_key(categoryname, day), payload, ttl,
            tags=[category_tag(categoryname)],
        )
