"""
Result query engine.

Read side of the results service.  Every query is cache-first; on a miss
both document shapes are read through the ReadingStore interface and the
same window / ordering rules are applied to each before the combined
payload is cached.

Ordering contracts:
  fetch_today   today's readings, latest first (live feed)
  fetch_month   chronological ledger; only today's group is trimmed to
                readings already drawn and sorted ascending
"""
import logging
from datetime import datetime

from engine.errors import InvalidDateFormat, InvalidId, NotFound, store_errors
from processing.normalizer import (
    DATE_FORMAT, minutes_of_day, month_of, normalize_date, parse_object_id,
    serialize_document,
)
from storage.cache import TAG_ALL_RESULTS, ResultCache, category_tag
from storage.readings import FlatReadingStore, GroupedReadingStore

logger = logging.getLogger(__name__)

SCRAPER_MODE = "scraper"


def _time_key(entry: dict) -> int:
    minutes = minutes_of_day(entry.get("time"))
    return -1 if minutes is None else minutes


def _has_elapsed(entry: dict, now_minutes: int) -> bool:
    minutes = minutes_of_day(entry.get("time"))
    return minutes is not None and minutes <= now_minutes


class ResultQueryEngine:
    def __init__(
        self,
        grouped: GroupedReadingStore,
        flat: FlatReadingStore,
        cache: ResultCache,
        ttl: int = 50,
        clock=datetime.now,
    ) -> None:
        self._grouped = grouped
        self._flat = flat
        self._cache = cache
        self._ttl = ttl
        self._clock = clock

    # ── Today ─────────────────────────────────────────────────────

    def fetch_today(self) -> list[dict]:
        """Each category's group for today, readings sorted latest first."""
        today = self._clock().strftime(DATE_FORMAT)
        with store_errors("fetch today"):
            docs = self._grouped.find(date=today)

        shaped = []
        for doc in docs:
            groups = [
                (date, sorted(entries, key=_time_key, reverse=True))
                for date, entries in self._grouped.group_by_date(doc)
                if date == today
            ][:1]
            shaped.append(self._grouped.with_groups(doc, groups))
        return serialize_document(shaped)

    # ── Month ─────────────────────────────────────────────────────

    def fetch_month(self, categoryname=None, mode=None, selected_date=None) -> tuple[dict, bool]:
        """
        Readings for a calendar month.

        Without a category this is the current month across every category
        and both document shapes.  With a category the window runs from the
        first of *selected_date*'s month up to *selected_date*; scraper mode
        reads both shapes, any other mode only the grouped one.

        Returns ({"from", "to", "data"}, served_from_cache).
        """
        now = self._clock()
        if categoryname is None:
            year, month = now.year, now.month
            end = None
            cache_key = f"results:{year}-{month:02d}"
            tags = [TAG_ALL_RESULTS]
            stores = [self._grouped, self._flat]
        else:
            selected = normalize_date(selected_date)
            if selected is None:
                raise InvalidDateFormat()
            year, month = month_of(selected)
            end = selected
            cache_key = f"resultsByMonth:{categoryname}:{selected_date}:{mode}"
            tags = [category_tag(categoryname)]
            stores = [self._grouped, self._flat] if mode == SCRAPER_MODE else [self._grouped]

        cached = self._cache.get_json(cache_key)
        if cached is not None:
            return cached, True

        start = f"{year:04d}-{month:02d}-01"

        def in_window(date) -> bool:
            return month_of(date) == (year, month) and (end is None or date <= end)

        today = now.strftime(DATE_FORMAT)
        now_minutes = now.hour * 60 + now.minute
        data = []
        with store_errors("fetch month"):
            for store in stores:
                for doc in store.find(categoryname=categoryname):
                    data.append(self._month_view(store, doc, in_window, today, now_minutes))

        payload = {"from": start, "to": end or today, "data": serialize_document(data)}
        self._cache.set_json(cache_key, payload, self._ttl, tags=tags)
        return payload, False

    @staticmethod
    def _month_view(store, doc, in_window, today, now_minutes) -> dict:
        groups = []
        for date, entries in store.group_by_date(doc):
            if not in_window(date):
                continue
            if date == today:
                entries = sorted(
                    (e for e in entries if _has_elapsed(e, now_minutes)),
                    key=_time_key,
                )
            groups.append((date, entries))
        return store.with_groups(doc, groups)

    # ── Date ──────────────────────────────────────────────────────

    def fetch_by_date(self, categoryname, date, mode=None) -> list[dict]:
        """
        Scraper mode: documents of both shapes with readings on *date*.
        Any other mode returns the category's grouped documents whatever
        the date.
        """
        cache_key = f"results:date:{categoryname}:{date}:{mode}"
        cached = self._cache.get_json(cache_key)
        if cached is not None:
            return cached

        with store_errors("fetch by date"):
            if mode == SCRAPER_MODE:
                day = normalize_date(date) or date
                docs = (
                    self._grouped.find(categoryname=categoryname, date=day)
                    + self._flat.find(categoryname=categoryname, date=day)
                )
            else:
                docs = self._grouped.find(categoryname=categoryname)

        payload = serialize_document(docs)
        self._cache.set_json(cache_key, payload, self._ttl, tags=[category_tag(categoryname)])
        return payload

    # ── Id ────────────────────────────────────────────────────────

    def fetch_by_id(self, doc_id) -> dict:
        oid = parse_object_id(doc_id)
        if oid is None:
            raise InvalidId()
        cache_key = f"result:id:{oid}"
        cached = self._cache.get_json(cache_key)
        if cached is not None:
            return cached

        with store_errors("fetch by id"):
            doc = self._grouped.find_by_id(oid)
        if doc is None:
            raise NotFound()

        payload = serialize_document(doc)
        self._cache.set_json(cache_key, payload, self._ttl, tags=[category_tag(doc["categoryname"])])
        return payload
