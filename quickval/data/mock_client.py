from datetime import datetime, timedelta, timezone
from typing import List

from .base import ComparableProperty, Location
from ..core.utils import fnv1a_32, seeded_rand

STREETS = ["Campbell Pde", "Hall St", "Curlewis St", "Blair St", "Warners Ave", "Glenayr Ave", "Wairoa Ave"]


class MockComparables:
    """
    Synthetic comps for a suburb. Prices/attributes are plausible but fake,
    and stable for the same suburb + bedroom count.
    """
    name = "mock"

    def __init__(self, count: int = 8, max_age_days: int = 540, radius_km: float = 3.0):
        self.count = count
        self.max_age_days = max_age_days
        self.radius_km = radius_km

    async def fetch_comparables(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        loc = Location.parse(location)
        seed = fnv1a_32(f"{loc.suburb.lower()}|{loc.state}|{beds}")
        today = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        out: List[ComparableProperty] = []
        for i in range(self.count):
            # Spread comps across the last `max_age_days` days
            sold = today - timedelta(days=int(seeded_rand(seed + i, 1)[0] * self.max_age_days))
            # Price around a local base, nudged per bedroom
            base = 650_000 + int(seeded_rand(seed + i * 31, 1)[0] * 1_400_000)
            base += (beds - 3) * 120_000
            dist = round(seeded_rand(seed + 7 * i, 1)[0] * self.radius_km, 2)
            comp_beds = max(1, beds - 1 + int(seeded_rand(seed + 13 * i, 1)[0] * 3))   # beds ±1
            comp_baths = max(1, baths - 1 + int(seeded_rand(seed + 17 * i, 1)[0] * 3))
            street_no = 1 + int(seeded_rand(seed + 19 * i, 1)[0] * 180)
            out.append(ComparableProperty(
                address=f"{street_no} {STREETS[i % len(STREETS)]}, {loc.suburb}",
                price=max(150_000, base),
                source=self.name,
                beds=comp_beds,
                baths=comp_baths,
                cars=1 + i % 2,
                land_area=float(250 + int(seeded_rand(seed + 23 * i, 1)[0] * 600)),
                property_type=property_type,
                sold_date=sold.strftime("%d %b %Y"),
                sold_date_raw=sold,
                distance_km=dist,
            ))
        # Sort by proximity (closer first)
        out.sort(key=lambda c: (c.distance_km, -c.sold_date_raw.toordinal()))
        return out
