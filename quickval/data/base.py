from typing import Protocol, List, Optional
from dataclasses import dataclass, field, asdict, replace
from datetime import datetime

from ..core.utils import parse_date, parse_float, parse_int, parse_location, parse_price

# ----- Data shapes (thin & explicit) -----

@dataclass(frozen=True)
class Location:
    suburb: str
    state: str
    postcode: Optional[str] = None
    street: Optional[str] = None   # present when the input starts with a street address
    raw: str = ""

    @classmethod
    def parse(cls, text: str) -> "Location":
        suburb, state, postcode, street = parse_location(text)
        return cls(suburb=suburb, state=state, postcode=postcode, street=street, raw=text)

@dataclass(frozen=True)
class ComparableProperty:
    address: str
    price: int
    source: str
    beds: Optional[int] = None
    baths: Optional[int] = None
    cars: Optional[int] = None
    land_area: Optional[float] = None
    property_type: Optional[str] = None
    sold_date: Optional[str] = None          # display string, e.g. "12 Mar 2024" or "Recently"
    sold_date_raw: Optional[datetime] = None  # used for recency scoring
    listing_type: str = "sold"               # sold | for_sale
    distance_km: Optional[float] = None
    score: Optional[float] = None
    images: tuple = field(default_factory=tuple)

    def with_score(self, score: float) -> "ComparableProperty":
        return replace(self, score=score)

    def to_dict(self) -> dict:
        out = asdict(self)
        out["sold_date_raw"] = self.sold_date_raw.isoformat() if self.sold_date_raw else None
        out["images"] = list(self.images)
        return out

    @classmethod
    def from_dict(cls, d: dict) -> "ComparableProperty":
        price = parse_price(d.get("price"))
        if not price:
            raise ValueError(f"comparable without a price: {d.get('address')!r}")
        return cls(
            address=d.get("address") or "Address not available",
            price=price,
            source=d.get("source") or "unknown",
            beds=parse_int(d.get("beds")), baths=parse_int(d.get("baths")), cars=parse_int(d.get("cars")),
            land_area=parse_float(d.get("land_area")),
            property_type=d.get("property_type"),
            sold_date=d.get("sold_date"),
            sold_date_raw=parse_date(d.get("sold_date_raw")),
            listing_type=d.get("listing_type") or "sold",
            distance_km=parse_float(d.get("distance_km")),
            score=d.get("score"),
            images=tuple(d.get("images") or ()),
        )

@dataclass(frozen=True)
class ValuationEstimate:
    # Provider AVM (automated valuation model) output
    valuation: Optional[int]
    lower_estimate: Optional[int] = None
    upper_estimate: Optional[int] = None
    confidence: Optional[str] = None
    valuation_date: Optional[str] = None
    property_type: Optional[str] = None
    land_area: Optional[float] = None
    building_area: Optional[float] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    carspaces: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)

# ----- Protocols (interfaces) -----

class ComparableProvider(Protocol):
    """
    One external comparables source. Implementations never raise on remote
    failure: they log and return an empty list.
    """
    name: str

    async def fetch_comparables(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]: ...

class ValuationProvider(Protocol):
    async def fetch_automated_valuation(
        self, address: str, location: str
    ) -> Optional[ValuationEstimate]: ...
