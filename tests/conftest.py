"""Shared fixtures: fake clocks, an in-memory store and comparable factories."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from quickval.core.store import MemoryStore
from quickval.data.base import ComparableProperty

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable wall clock that only moves when told to."""
    def __init__(self, start: datetime = NOW):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class FakeTimer:
    """Monotonic-seconds stand-in for the store's TTL timer."""
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubProvider:
    """Comparable provider returning a canned list (or raising / sleeping)."""
    def __init__(self, name, comparables=None, error=None, delay=0.0):
        self.name = name
        self.comparables = list(comparables or [])
        self.error = error
        self.delay = delay
        self.calls = 0

    async def fetch_comparables(self, location, beds, baths, property_type):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.comparables)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture
def store(timer):
    return MemoryStore(maxsize=1000, timer=timer)


@pytest.fixture
def make_comp():
    """Factory fixture for comparables with sensible defaults."""
    def _create(
        price: int = 1_000_000,
        address: str | None = None,
        source: str = "test",
        beds: int | None = 3,
        baths: int | None = 2,
        property_type: str | None = "House",
        distance_km: float | None = None,
        sold_date_raw: datetime | None = None,
        listing_type: str = "sold",
        land_area: float | None = None,
    ) -> ComparableProperty:
        return ComparableProperty(
            address=address or f"{price // 1000} Test St, Bondi",
            price=price,
            source=source,
            beds=beds,
            baths=baths,
            property_type=property_type,
            distance_km=distance_km,
            sold_date=sold_date_raw.strftime("%d %b %Y") if sold_date_raw else None,
            sold_date_raw=sold_date_raw,
            listing_type=listing_type,
            land_area=land_area,
        )
    return _create
