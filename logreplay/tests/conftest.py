import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from logreplay.clock import Clock
from logreplay.entry import AccessEntry


BASE_TIME = datetime(2020, 6, 22, 4, 24, 0, 678451, tzinfo=timezone.utc)


class FakeClock(Clock):
    """Virtual time: sleep() advances the clock instead of waiting."""

    def __init__(self, start=1000.0):
        self.t = start
        self.sleeps = []

    def monotonic(self):
        return self.t

    def now(self):
        return BASE_TIME + timedelta(seconds=self.t)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.t += max(0.0, seconds)
        await asyncio.sleep(0)


def make_entry(seconds=0.0, url="http://prod.example.com/checkout?cart=1", method="GET", headers=None, body=""):
    return AccessEntry.from_raw(
        accessed_at=(BASE_TIME + timedelta(seconds=seconds)).strftime("%Y-%m-%d %H:%M:%S.%f UTC"),
        url=url,
        method=method,
        headers=headers or {},
        body=body,
    )


@pytest.fixture
def clock():
    return FakeClock()
