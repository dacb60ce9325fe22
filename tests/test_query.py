"""Tests for the read side: ordering, month window, cache behaviour."""
import pytest

from engine.errors import InvalidDateFormat, InvalidId, NotFound

from conftest import TODAY


def _seed(upsert_engine, categoryname, date, *times):
    for index, time in enumerate(times):
        upsert_engine.upsert_reading(categoryname, date, time, str(index))


class TestFetchToday:
    def test_latest_first(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", TODAY, "10:00", "09:00", "11:00")

        docs = query_engine.fetch_today()

        assert len(docs) == 1
        times = [e["time"] for e in docs[0]["result"][0]["times"]]
        assert times == ["11:00 AM", "10:00 AM", "09:00 AM"]

    def test_only_todays_group_is_returned(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-10-18", "10:00")
        _seed(upsert_engine, "Delhi", TODAY, "09:00")
        _seed(upsert_engine, "Mumbai", "2026-10-18", "10:00")

        docs = query_engine.fetch_today()

        assert [d["categoryname"] for d in docs] == ["Delhi"]
        assert [g["date"] for g in docs[0]["result"]] == [TODAY]


class TestFetchMonth:
    def test_future_readings_for_today_are_withheld(self, upsert_engine, query_engine):
        # The clock reads 10:30.
        _seed(upsert_engine, "Delhi", TODAY, "11:00", "10:30", "09:45")

        payload, from_cache = query_engine.fetch_month()

        assert from_cache is False
        times = [e["time"] for e in payload["data"][0]["result"][0]["times"]]
        assert times == ["09:45 AM", "10:30 AM"]

    def test_past_days_pass_through_unsorted(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-10-18", "23:45", "08:00")

        payload, _ = query_engine.fetch_month()

        times = [e["time"] for e in payload["data"][0]["result"][0]["times"]]
        assert times == ["11:45 PM", "08:00 AM"]

    def test_other_months_are_dropped(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-09-30", "10:00")
        _seed(upsert_engine, "Delhi", "2026-10-01", "10:00")

        payload, _ = query_engine.fetch_month()

        assert [g["date"] for g in payload["data"][0]["result"]] == ["2026-10-01"]
        assert payload["from"] == "2026-10-01"
        assert payload["to"] == TODAY

    def test_grouped_documents_come_before_flat(self, upsert_engine, query_engine):
        upsert_engine.upload_flat_reading("Scraped", TODAY, "09:00", "5", mode="scraper")
        _seed(upsert_engine, "Delhi", TODAY, "09:00")

        payload, _ = query_engine.fetch_month()

        assert [d["categoryname"] for d in payload["data"]] == ["Delhi", "Scraped"]
        assert payload["data"][1]["result"] == [{"date": TODAY, "time": "09:00 AM", "number": "5"}]

    def test_second_call_is_served_from_cache(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", TODAY, "09:00")

        first, _ = query_engine.fetch_month()
        second, from_cache = query_engine.fetch_month()

        assert from_cache is True
        assert second == first

    def test_write_invalidates_cached_month(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", TODAY, "09:00")
        query_engine.fetch_month()

        upsert_engine.upsert_reading("Delhi", TODAY, "09:15", "7")
        payload, from_cache = query_engine.fetch_month()

        assert from_cache is False
        times = [e["time"] for e in payload["data"][0]["result"][0]["times"]]
        assert times == ["09:00 AM", "09:15 AM"]

    def test_category_window_ends_at_selected_date(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-10-05", "10:00")
        _seed(upsert_engine, "Delhi", "2026-10-12", "10:00")

        payload, _ = query_engine.fetch_month("Delhi", mode="manual", selected_date="2026-10-10")

        assert payload["from"] == "2026-10-01"
        assert payload["to"] == "2026-10-10"
        assert [g["date"] for g in payload["data"][0]["result"]] == ["2026-10-05"]

    def test_category_scraper_mode_includes_flat(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", TODAY, "09:00")
        upsert_engine.upload_flat_reading("delhi", TODAY, "09:15", "5", mode="scraper")

        manual, _ = query_engine.fetch_month("Delhi", mode="manual", selected_date=TODAY)
        scraper, _ = query_engine.fetch_month("Delhi", mode="scraper", selected_date=TODAY)

        assert len(manual["data"]) == 1
        assert len(scraper["data"]) == 2

    def test_category_month_rejects_bad_date(self, query_engine):
        with pytest.raises(InvalidDateFormat):
            query_engine.fetch_month("Delhi", mode="manual", selected_date="someday")


class TestFetchByDate:
    def test_scraper_mode_filters_on_date(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-10-18", "10:00")
        upsert_engine.upload_flat_reading("Delhi", TODAY, "09:15", "5", mode="scraper")

        docs = query_engine.fetch_by_date("Delhi", TODAY, "scraper")

        assert len(docs) == 1
        assert docs[0]["result"][0]["time"] == "09:15 AM"

    def test_other_modes_return_every_grouped_document(self, upsert_engine, query_engine):
        _seed(upsert_engine, "Delhi", "2026-10-18", "10:00")

        docs = query_engine.fetch_by_date("Delhi", TODAY, "manual")

        assert len(docs) == 1
        assert docs[0]["result"][0]["date"] == "2026-10-18"

    def test_upload_invalidates_date_view(self, upsert_engine, query_engine):
        upsert_engine.upload_flat_reading("Delhi", TODAY, "09:15", "5", mode="scraper")
        query_engine.fetch_by_date("Delhi", TODAY, "scraper")

        upsert_engine.upload_flat_reading("Delhi", TODAY, "09:15", "6", mode="scraper")
        docs = query_engine.fetch_by_date("Delhi", TODAY, "scraper")

        assert docs[0]["result"][0]["number"] == "6"


class TestFetchById:
    def test_found(self, upsert_engine, query_engine):
        doc = upsert_engine.upsert_reading("Delhi", TODAY, "10:00", "42").document

        assert query_engine.fetch_by_id(doc["_id"])["categoryname"] == "Delhi"

    def test_invalid_id(self, query_engine):
        with pytest.raises(InvalidId):
            query_engine.fetch_by_id("abc")

    def test_unknown_id(self, query_engine):
        with pytest.raises(NotFound):
            query_engine.fetch_by_id("0123456789abcdef01234567")

    def test_edit_invalidates_cached_document(self, upsert_engine, query_engine):
        doc = upsert_engine.upsert_reading("Delhi", TODAY, "10:00", "42").document
        query_engine.fetch_by_id(doc["_id"])

        upsert_engine.update_time_entry(doc["_id"], TODAY, "10:00 AM", "99")

        fresh = query_engine.fetch_by_id(doc["_id"])
        assert fresh["result"][0]["times"][0]["number"] == "99"
