"""
Input normalisation utilities for the results pipeline.
Canonicalises dates and times before they reach the store, and turns
Mongo documents into JSON-safe dictionaries.
"""
from datetime import date, datetime

from bson import ObjectId

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%I:%M %p"

# Accepted inputs, tried in order.
_DATE_INPUT_FORMATS = ("%d/%m/%y", DATE_FORMAT)
_TIME_INPUT_FORMATS = ("%H:%M", TIME_FORMAT, "%I:%M%p")


# ── Dates & times ─────────────────────────────────────────────────

def normalize_date(raw) -> str | None:
    """Return *raw* as YYYY-MM-DD, or None when no accepted format matches."""
    if isinstance(raw, datetime):
        return raw.strftime(DATE_FORMAT)
    if isinstance(raw, date):
        return raw.strftime(DATE_FORMAT)
    if not raw or not isinstance(raw, str):
        return None
    for fmt in _DATE_INPUT_FORMATS:
        try:
            return datetime.strptime(raw.strip(), fmt).strftime(DATE_FORMAT)
        except ValueError:
            continue
    return None


def normalize_time(raw) -> str | None:
    """
    Return *raw* as a 12-hour "hh:mm AM" string.
    Accepts "19:15", "07:15 PM" and "07:15PM"; anything else gives None.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip()
    for fmt in _TIME_INPUT_FORMATS:
        try:
            return datetime.strptime(value, fmt).strftime(TIME_FORMAT)
        except ValueError:
            continue
    return None


def minutes_of_day(time_str) -> int | None:
    """Minutes since midnight for a canonical time string, None if unparseable."""
    canonical = normalize_time(time_str)
    if canonical is None:
        return None
    parsed = datetime.strptime(canonical, TIME_FORMAT)
    return parsed.hour * 60 + parsed.minute


def parse_object_id(raw) -> ObjectId | None:
    """ObjectId for a well-formed 24-hex id string, otherwise None."""
    if isinstance(raw, ObjectId):
        return raw
    if not isinstance(raw, str) or not ObjectId.is_valid(raw):
        return None
    return ObjectId(raw)


def month_of(date_str: str) -> tuple[int, int] | None:
    """(year, month) of a YYYY-MM-DD string."""
    try:
        parsed = datetime.strptime(date_str, DATE_FORMAT)
    except (TypeError, ValueError):
        return None
    return parsed.year, parsed.month


# ── Serialisation ─────────────────────────────────────────────────

def serialize_document(value):
    """Recursively convert ObjectId and datetime values into JSON-safe strings."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: serialize_document(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_document(v) for v in value]
    return value
