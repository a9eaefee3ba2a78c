"""
Public-page scraper: tertiary source. Reads realestate.com.au search pages for
current listings and recent sales, preferring schema.org JSON-LD and falling
back to regex over the raw HTML.
"""

import asyncio
import json
import logging
import re
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from .base import ComparableProperty, Location
from ..core.utils import parse_int, parse_price

logger = logging.getLogger(__name__)

HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-AU,en;q=0.9",
}

_LISTING_PRICE_RE = re.compile(r"\$[\d,]+(?:\s*-\s*\$[\d,]+)?")
_ADDRESS_RE = re.compile(r'data-testid="address"[^>]*>([^<]+)<')
_SOLD_PRICE_RE = re.compile(r"Sold[^$]{0,80}\$[\d,]+", re.IGNORECASE)
MIN_SOLD_PRICE = 100_000
PER_KIND_LIMIT = 5


class RealestateScraper:
    name = "realestate"

    def __init__(
        self,
        base_url: str = "https://www.realestate.com.au",
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def search_url(self, kind: str, loc: Location, beds: int, property_type: str) -> str:
        suburb = "-".join(loc.suburb.lower().split())
        return (f"{self.base_url}/{kind}/property-{property_type.lower()}-with-{beds}"
                f"-bedrooms-in-{suburb},+{loc.state.lower()}/list-1")

    async def fetch_comparables(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        loc = Location.parse(location)
        listings, sold = await asyncio.gather(
            self._scrape("buy", loc, beds, baths, property_type),
            self._scrape("sold", loc, beds, baths, property_type),
        )

        def similar(props: List[ComparableProperty]) -> List[ComparableProperty]:
            return [
                p for p in props
                if p.beds is not None and abs(p.beds - beds) <= 1
                and (p.baths is None or abs(p.baths - baths) <= 1)
            ][:PER_KIND_LIMIT]

        out = similar(sold) + similar(listings)
        logger.info("Scraper aggregated %d comparable properties for %s", len(out), loc.suburb)
        return out

    async def _scrape(
        self, kind: str, loc: Location, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        url = self.search_url(kind, loc, beds, property_type)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport,
                                         follow_redirects=True) as client:
                r = await client.get(url, headers={**HEADERS, "Referer": f"{self.base_url}/"})
        except httpx.HTTPError as exc:
            logger.error("Scraper request failed for %s: %s", url, exc)
            return []
        if r.status_code != 200:
            logger.warning("Scraper got status %s for %s", r.status_code, url)
            return []

        listing_type = "sold" if kind == "sold" else "for_sale"
        try:
            found = self._from_json_ld(r.text, listing_type, beds, baths, property_type)
            if not found:
                found = self._from_markup(r.text, listing_type, loc, beds, baths, property_type)
        except (TypeError, AttributeError, ValueError) as exc:
            # one unreadable page must not sink the other search
            logger.error("Scraper could not parse %s: %s", url, exc)
            return []
        logger.info("Scraper found %d %s properties", len(found), listing_type)
        return found

    def _from_json_ld(
        self, html: str, listing_type: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        out: List[ComparableProperty] = []
        soup = BeautifulSoup(html, "html.parser")
        for script in soup.find_all("script", type="application/ld+json"):
            if not script.string:
                continue
            try:
                data = json.loads(script.string)
            except json.JSONDecodeError:
                continue
            for block in data if isinstance(data, list) else [data]:
                if not isinstance(block, dict) or block.get("@type") != "ItemList":
                    continue
                elements = block.get("itemListElement")
                if not isinstance(elements, list):
                    continue
                for element in elements[:10]:
                    try:
                        comp = self._from_list_item(element, listing_type, beds, baths, property_type)
                    except (TypeError, AttributeError, ValueError) as exc:
                        logger.warning("Skipping unreadable JSON-LD item: %s", exc)
                        continue
                    if comp is not None:
                        out.append(comp)
        return out

    def _from_list_item(
        self, element, listing_type: str, beds: int, baths: int, property_type: str
    ) -> Optional[ComparableProperty]:
        prop = element.get("item") if isinstance(element, dict) else None
        if not isinstance(prop, dict):
            return None
        offers = prop.get("offers") if isinstance(prop.get("offers"), dict) else {}
        price = parse_price(offers.get("price") or offers.get("priceRange"))
        if not price:
            return None
        address = prop.get("address") if isinstance(prop.get("address"), dict) else {}
        return ComparableProperty(
            address=address.get("streetAddress") or prop.get("name") or "Address not available",
            price=price,
            source=self.name,
            beds=parse_int(prop.get("numberOfRooms")) or beds,
            baths=baths,
            property_type=property_type,
            sold_date="Recently" if listing_type == "sold" else None,
            listing_type=listing_type,
        )

    def _from_markup(
        self, html: str, listing_type: str, loc: Location, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        out: List[ComparableProperty] = []
        if listing_type == "sold":
            for match in _SOLD_PRICE_RE.findall(html)[:10]:
                price = parse_price(match)
                if price and price > MIN_SOLD_PRICE:
                    out.append(ComparableProperty(
                        address=f"Property in {loc.suburb}",
                        price=price, source=self.name, beds=beds, baths=baths,
                        property_type=property_type, sold_date="Recently", listing_type="sold",
                    ))
            return out

        prices = [parse_price(m) for m in _LISTING_PRICE_RE.findall(html)]
        prices = [p for p in prices if p]
        addresses = [a.strip() for a in _ADDRESS_RE.findall(html)]
        for address, price in list(zip(addresses, prices))[:10]:
            out.append(ComparableProperty(
                address=address, price=price, source=self.name, beds=beds, baths=baths,
                property_type=property_type, listing_type="for_sale",
            ))
        return out
