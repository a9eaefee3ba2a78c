"""
CoreLogic client: primary source. Provides both an AVM for the target address
and recent comparable sales for the suburb.
"""

import base64
import logging
from typing import List, Optional

import httpx
from cachetools import TTLCache

from .base import ComparableProperty, Location, ValuationEstimate
from ..core.utils import parse_date, parse_float, parse_int, parse_price

logger = logging.getLogger(__name__)

# One token per client key; CoreLogic tokens live for an hour, refresh early.
_token_cache: TTLCache = TTLCache(maxsize=16, ttl=3300)


class CoreLogicClient:
    name = "corelogic"

    def __init__(
        self,
        base_url: str,
        client_key: str,
        secret_key: str,
        timeout: float = 20.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_key = client_key
        self.secret_key = secret_key
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def _access_token(self, client: httpx.AsyncClient) -> Optional[str]:
        token = _token_cache.get(self.client_key)
        if token:
            return token
        credentials = base64.b64encode(f"{self.client_key}:{self.secret_key}".encode()).decode()
        r = await client.post(
            f"{self.base_url}/oauth/token",
            headers={
                "Authorization": f"Basic {credentials}",
                "Content-Type": "application/x-www-form-urlencoded",
            },
            content="grant_type=client_credentials",
        )
        if r.status_code != 200:
            logger.error("CoreLogic OAuth failed with status %s", r.status_code)
            return None
        token = r.json().get("access_token")
        if token:
            _token_cache[self.client_key] = token
        return token

    async def fetch_automated_valuation(self, address: str, location: str) -> Optional[ValuationEstimate]:
        loc = Location.parse(location)
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                if not token:
                    return None
                r = await client.post(
                    f"{self.base_url}/api/v1/property/avm",
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                    json={"address": address, "suburb": loc.suburb, "state": loc.state,
                          "postcode": loc.postcode or ""},
                )
                if r.status_code == 404:
                    logger.warning("CoreLogic has no AVM for %s, %s", address, loc.suburb)
                    return None
                r.raise_for_status()
                j = r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("CoreLogic AVM request failed: %s", exc)
            return None

        if not isinstance(j, dict):
            logger.error("CoreLogic AVM payload malformed: %r", type(j))
            return None
        return ValuationEstimate(
            valuation=parse_price(j.get("valuation")),
            lower_estimate=parse_price(j.get("lowerEstimate")),
            upper_estimate=parse_price(j.get("upperEstimate")),
            confidence=j.get("confidence"),
            valuation_date=j.get("valuationDate"),
            property_type=j.get("propertyType"),
            land_area=parse_float(j.get("landArea")),
            building_area=parse_float(j.get("buildingArea")),
            bedrooms=parse_int(j.get("bedrooms")),
            bathrooms=parse_int(j.get("bathrooms")),
            carspaces=parse_int(j.get("carspaces")),
        )

    async def fetch_comparables(
        self, location: str, beds: int, baths: int, property_type: str
    ) -> List[ComparableProperty]:
        loc = Location.parse(location)
        body = {
            "suburb": loc.suburb,
            "state": loc.state,
            "propertyType": property_type.capitalize(),
            "minBedrooms": max(1, beds - 1),
            "maxBedrooms": beds + 1,
            "minBathrooms": max(1, baths - 1),
            "maxBathrooms": baths + 1,
            "saleType": "Sold",
            "pageSize": 10,
        }
        try:
            async with self._client() as client:
                token = await self._access_token(client)
                if not token:
                    return []
                r = await client.post(
                    f"{self.base_url}/api/v1/sales/search",
                    headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                    json=body,
                )
                r.raise_for_status()
                sales = r.json().get("sales") or []
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.error("CoreLogic sales search failed for %s: %s", loc.suburb, exc)
            return []

        if not isinstance(sales, list):
            logger.error("CoreLogic sales payload malformed for %s", loc.suburb)
            return []

        out: List[ComparableProperty] = []
        for sale in sales[:10]:
            if not isinstance(sale, dict):
                continue
            price = parse_price(sale.get("price"))
            if not price:
                continue
            images = []
            for img in (sale.get("images") or [])[:3]:
                if isinstance(img, str):
                    images.append(img)
                elif isinstance(img, dict) and img.get("url"):
                    images.append(img["url"])
            out.append(ComparableProperty(
                address=sale.get("address") or "Address not available",
                price=price,
                source=self.name,
                beds=parse_int(sale.get("bedrooms")),
                baths=parse_int(sale.get("bathrooms")),
                cars=parse_int(sale.get("carspaces")),
                land_area=parse_float(sale.get("landArea")),
                property_type=sale.get("propertyType") or property_type,
                sold_date=sale.get("saleDate"),
                sold_date_raw=parse_date(sale.get("saleDate")),
                distance_km=parse_float(sale.get("distanceKm")),
                images=tuple(images),
            ))
        logger.info("CoreLogic found %d comparable sales in %s, %s", len(out), loc.suburb, loc.state)
        return out
