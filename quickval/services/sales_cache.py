"""
Suburb-level cache of comparable sales.

Entries are keyed by suburb/state/postcode/property type and are valid for a
configurable TTL measured from `cached_at`. Expiry is soft: a stale record may
still exist in the store but reads treat it as a miss. Writes replace the
whole entry.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from ..core.metrics import CACHE_LOOKUPS
from ..core.store import KeyValueStore
from ..core.utils import normalize_address
from ..data.base import ComparableProperty

logger = logging.getLogger(__name__)

KEY_PREFIX = "sales_cache:"


def cache_key(suburb: str, state: str, postcode: Optional[str] = None, property_type: Optional[str] = None) -> str:
    parts = (suburb, state, postcode or "none", property_type or "all")
    return "-".join(normalize_address(str(p)) for p in parts)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheEntry:
    cache_key: str
    cached_at: datetime
    suburb: str
    state: str
    postcode: Optional[str]
    property_type: str
    sales: List[ComparableProperty]

    def to_json(self) -> str:
        return json.dumps({
            "cache_key": self.cache_key,
            "cached_at": self.cached_at.isoformat(),
            "suburb": self.suburb,
            "state": self.state,
            "postcode": self.postcode,
            "property_type": self.property_type,
            "sales": [s.to_dict() for s in self.sales],
        }, separators=(",", ":"))

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        d = json.loads(raw)
        cached_at = datetime.fromisoformat(d["cached_at"])
        if cached_at.tzinfo is None:
            cached_at = cached_at.replace(tzinfo=timezone.utc)
        return cls(
            cache_key=d["cache_key"],
            cached_at=cached_at,
            suburb=d.get("suburb", ""),
            state=d.get("state", ""),
            postcode=d.get("postcode"),
            property_type=d.get("property_type") or "all",
            sales=[ComparableProperty.from_dict(s) for s in d.get("sales") or []],
        )

    def summary(self, now: datetime, ttl: timedelta) -> dict:
        return {
            "cache_key": self.cache_key,
            "suburb": self.suburb,
            "state": self.state.upper(),
            "postcode": self.postcode,
            "property_type": self.property_type,
            "cached_at": self.cached_at.isoformat(),
            "total": len(self.sales),
            "is_valid": now - self.cached_at < ttl,
            "sales": [s.to_dict() for s in self.sales],
        }


class SuburbSalesCache:
    def __init__(self, store: KeyValueStore, ttl: timedelta, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.ttl = ttl
        self.clock = clock

    async def get(
        self, suburb: str, state: str, postcode: Optional[str] = None, property_type: Optional[str] = None
    ) -> Optional[CacheEntry]:
        """Return the entry if present and younger than the TTL; store failures count as a miss."""
        key = cache_key(suburb, state, postcode, property_type)
        try:
            raw = await self.store.get(KEY_PREFIX + key)
            entry = CacheEntry.from_json(raw) if raw else None
        except Exception:
            logger.exception("Sales cache read failed for %s; treating as miss", key)
            CACHE_LOOKUPS.labels(result="error").inc()
            return None

        if entry is None or self.clock() - entry.cached_at >= self.ttl:
            logger.info("Sales cache MISS for %s", key)
            CACHE_LOOKUPS.labels(result="miss").inc()
            return None
        logger.info("Sales cache HIT for %s (cached %s)", key, entry.cached_at.isoformat())
        CACHE_LOOKUPS.labels(result="hit").inc()
        return entry

    async def put(
        self,
        suburb: str,
        state: str,
        postcode: Optional[str],
        property_type: Optional[str],
        sales: List[ComparableProperty],
    ) -> CacheEntry:
        """Replace the entry for this key. Raises on store failure; callers decide."""
        key = cache_key(suburb, state, postcode, property_type)
        entry = CacheEntry(
            cache_key=key,
            cached_at=self.clock(),
            suburb=normalize_address(suburb),
            state=normalize_address(state),
            postcode=postcode or None,
            property_type=normalize_address(property_type) if property_type else "all",
            # scores belong to a job, not to the suburb snapshot
            sales=[s.with_score(None) for s in sales],
        )
        await self.store.set(KEY_PREFIX + key, entry.to_json())
        logger.info("Sales cache STORED %s with %d properties", key, len(sales))
        return entry

    async def list_all(self) -> List[dict]:
        now = self.clock()
        rows = []
        for key, raw in (await self.store.list_prefix(KEY_PREFIX)).items():
            try:
                rows.append(CacheEntry.from_json(raw).summary(now, self.ttl))
            except (ValueError, KeyError, TypeError):
                logger.warning("Skipping unreadable sales cache entry %s", key)
        rows.sort(key=lambda r: r["cached_at"], reverse=True)
        return rows
