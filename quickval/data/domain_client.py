"""
Domain listings client: secondary source, used when CoreLogic is not
configured or returns too few comparables.
"""

import logging
from typing import List, Optional

import httpx

from .base import ComparableProperty, Location
from ..core.utils import parse_date, parse_float, parse_int, parse_price

logger = logging.getLogger(__name__)


class DomainClient:
    name = "domain"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def fetch_comparables(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        loc = Location.parse(location)
        body = {
            "listingType": "Sale",
            "propertyTypes": [property_type],
            "minBedrooms": max(1, beds - 1),
            "maxBedrooms": beds + 1,
            "minBathrooms": max(1, baths - 1),
            "maxBathrooms": baths + 1,
            "locations": [{
                "state": loc.state,
                "suburb": loc.suburb,
                "postCode": loc.postcode or "",
                "includeSurroundingSuburbs": True,
            }],
            "pageSize": 10,
        }
        headers = {"X-API-Key": self.api_key, "Accept": "application/json"}
        logger.info("Domain search for %s, %s", loc.suburb, loc.state)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(f"{self.base_url}/v1/listings/residential/_search",
                                      headers=headers, json=body)
                r.raise_for_status()
                items = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Domain search failed for %s: %s", loc.suburb, exc)
            return []

        if not isinstance(items, list):
            logger.error("Domain search payload malformed for %s", loc.suburb)
            return []

        out: List[ComparableProperty] = []
        for item in items[:10]:
            try:
                comp = self._to_comparable(item, property_type)
            except (AttributeError, TypeError, KeyError) as exc:
                logger.warning("Skipping malformed Domain listing: %s", exc)
                continue
            if comp is not None:
                out.append(comp)
        logger.info("Domain found %d comparable properties in %s, %s", len(out), loc.suburb, loc.state)
        return out

    def _to_comparable(self, item, property_type: str) -> Optional[ComparableProperty]:
        if not isinstance(item, dict):
            return None
        # search results come wrapped as {"type": "PropertyListing", "listing": {...}}
        listing = item.get("listing") if isinstance(item.get("listing"), dict) else item

        price = parse_price((listing.get("priceDetails") or {}).get("displayPrice"))
        if not price:
            return None

        details = listing.get("propertyDetails") or {}
        sale = listing.get("saleDetails") or {}
        sold_date = sale.get("soldDate")
        images = tuple(
            m["url"] for m in (listing.get("media") or [])[:3]
            if isinstance(m, dict) and m.get("category") == "Image" and m.get("url")
        )
        return ComparableProperty(
            address=details.get("displayableAddress") or listing.get("headline") or "Address not available",
            price=price,
            source=self.name,
            beds=parse_int(details.get("bedrooms")),
            baths=parse_int(details.get("bathrooms")),
            cars=parse_int(details.get("carspaces")),
            land_area=parse_float(details.get("landArea")),
            property_type=details.get("propertyType") or property_type,
            sold_date=sold_date or "Recently",
            sold_date_raw=parse_date(sold_date),
            listing_type="sold" if sold_date else "for_sale",
            images=images,
        )
