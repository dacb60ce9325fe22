"""
Synthetic result client.
Posts a random two-digit draw for the auto category to the results API,
the same way an operator client would.
"""
import logging
import random
from datetime import datetime, timedelta

import requests

logger = logging.getLogger(__name__)


def next_quarter(moment: datetime) -> datetime:
    """The next quarter-hour boundary strictly after *moment*'s minute."""
    start = moment.replace(second=0, microsecond=0)
    return start + timedelta(minutes=15 - start.minute % 15)


def build_payload(now: datetime, categoryname: str, key: str, number: str) -> dict:
    """Request body for one synthetic draw at *now*."""
    upcoming = next_quarter(now)
    current_time = now.strftime("%H:%M")
    return {
        "categoryname": categoryname,
        "time": current_time,
        "number": number,
        "next_result": upcoming.strftime("%I:%M %p").lstrip("0").lower(),
        "result": [{"time": current_time, "number": number}],
        "date": now.strftime("%Y-%m-%d"),
        "key": key,
        "mode": "auto",
    }


class AutoSubmitter:
    def __init__(self, base_url: str, categoryname: str, key: str, clock=datetime.now, timeout: int = 30) -> None:
        self._url = f"{base_url.rstrip('/')}/result-with-authcode"
        self._categoryname = categoryname
        self._key = key
        self._clock = clock
        self._timeout = timeout

    def submit(self) -> dict:
        """Post one synthetic draw; HTTP failures propagate to the scheduler."""
        number = f"{random.randint(1, 99):02d}"
        payload = build_payload(self._clock(), self._categoryname, self._key, number)
        resp = requests.post(self._url, json=payload, timeout=self._timeout)
        resp.raise_for_status()
        data = resp.json()
        logger.info("Auto-submitted %s at %s: %s", number, payload["time"], data.get("message"))
        return data
