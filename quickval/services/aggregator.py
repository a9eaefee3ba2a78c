"""
Provider aggregation: cache first, then each provider in priority order until
enough priced comparables are collected.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..core.metrics import PROVIDER_CALLS
from ..core.utils import lower_median, normalize_address, round_half_up
from ..data.base import ComparableProperty, ComparableProvider, Location, ValuationEstimate, ValuationProvider
from .sales_cache import SuburbSalesCache

logger = logging.getLogger(__name__)


def compute_statistics(comparables: Sequence[ComparableProperty]) -> dict:
    """count/min/max/avg/median over priced comparables (median uses the lower middle)."""
    prices = [c.price for c in comparables if c.price and c.price > 0]
    sold = [c for c in comparables if c.price and c.listing_type == "sold"]
    if not prices:
        return {"total_found": 0, "sold_count": 0, "listing_count": 0,
                "price_range": {"min": None, "max": None, "avg": None, "median": None}}
    return {
        "total_found": len(prices),
        "sold_count": len(sold),
        "listing_count": len(prices) - len(sold),
        "price_range": {
            "min": min(prices),
            "max": max(prices),
            "avg": round_half_up(sum(prices) / len(prices)),
            "median": lower_median(prices),
        },
    }


def merge_comparables(
    working: List[ComparableProperty], incoming: Sequence[ComparableProperty]
) -> List[ComparableProperty]:
    """Append unseen comparables, deduplicating on (address, price)."""
    seen = {(normalize_address(c.address), c.price) for c in working}
    merged = list(working)
    for comp in incoming:
        if not comp.price or comp.price <= 0:
            continue
        key = (normalize_address(comp.address), comp.price)
        if key in seen:
            continue
        seen.add(key)
        merged.append(comp)
    return merged


@dataclass
class AggregationResult:
    comparables: List[ComparableProperty]
    statistics: dict
    cache_hit: bool = False
    sources: List[str] = field(default_factory=list)
    avm: Optional[ValuationEstimate] = None


class ProviderAggregator:
    def __init__(
        self,
        providers: Sequence[ComparableProvider],
        cache: SuburbSalesCache,
        valuation_provider: Optional[ValuationProvider] = None,
        min_comparables: int = 3,
        timeout: float = 20.0,
    ):
        self.providers = list(providers)
        self.cache = cache
        self.valuation_provider = valuation_provider
        self.min_comparables = min_comparables
        self.timeout = timeout

    async def gather(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> AggregationResult:
        loc = Location.parse(location)

        # 1) Suburb cache
        entry = await self.cache.get(loc.suburb, loc.state, loc.postcode, property_type)
        if entry is not None:
            return AggregationResult(
                comparables=list(entry.sales),
                statistics=compute_statistics(entry.sales),
                cache_hit=True,
                sources=["cache"],
            )

        # 2) AVM from the primary provider (optional)
        avm = await self._fetch_avm(loc, location)

        # 3) Providers in priority order, merging until the threshold is met
        working: List[ComparableProperty] = []
        sources: List[str] = []
        for provider in self.providers:
            found = await self._call(provider, location, beds, baths, property_type)
            before = len(working)
            working = merge_comparables(working, found)
            if len(working) > before:
                sources.append(provider.name)
            if len(working) >= self.min_comparables:
                break

        if not working:
            logger.info("No comparable data found for %s", location)

        # 4) Persist the merged set for the suburb
        if working:
            try:
                await self.cache.put(loc.suburb, loc.state, loc.postcode, property_type, working)
            except Exception:
                logger.exception("Sales cache write failed for %s; continuing", loc.suburb)

        return AggregationResult(
            comparables=working,
            statistics=compute_statistics(working),
            sources=sources,
            avm=avm,
        )

    async def _call(
        self, provider: ComparableProvider, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        name = getattr(provider, "name", type(provider).__name__)
        try:
            found = await asyncio.wait_for(
                provider.fetch_comparables(location, beds, baths, property_type), self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Provider %s timed out after %.0fs", name, self.timeout)
            PROVIDER_CALLS.labels(provider=name, outcome="timeout").inc()
            return []
        except Exception:
            logger.exception("Provider %s failed", name)
            PROVIDER_CALLS.labels(provider=name, outcome="error").inc()
            return []
        PROVIDER_CALLS.labels(provider=name, outcome="ok" if found else "empty").inc()
        logger.info("Provider %s returned %d comparables", name, len(found))
        return list(found)

    async def _fetch_avm(self, loc: Location, location: str) -> Optional[ValuationEstimate]:
        if self.valuation_provider is None:
            return None
        address = loc.street or location.split(",")[0].strip()
        try:
            return await asyncio.wait_for(
                self.valuation_provider.fetch_automated_valuation(address, location), self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("AVM lookup timed out for %s", address)
        except Exception:
            logger.exception("AVM lookup failed for %s", address)
        return None
