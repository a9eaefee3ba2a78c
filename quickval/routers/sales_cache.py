from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from ..schemas import CacheWriteRequest
from ..data.base import ComparableProperty
from ..services.sales_cache import SuburbSalesCache, cache_key
from ..core.security import require_api_key, rate_limit

router = APIRouter(dependencies=[Depends(require_api_key), Depends(rate_limit)])

def cache_dep(request: Request) -> SuburbSalesCache:
    return request.app.state.sales_cache

@router.get("/historic-sales-cache")
async def read_cached_sales(
    suburb: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    postcode: Optional[str] = Query(default=None),
    property_type: Optional[str] = Query(default=None, alias="propertyType"),
    cache: SuburbSalesCache = Depends(cache_dep),
):
    if not suburb or not state:
        raise HTTPException(status_code=400, detail="suburb and state are required")

    entry = await cache.get(suburb, state, postcode, property_type)
    if entry is None:
        return {"cached": False, "cache_key": cache_key(suburb, state, postcode, property_type)}
    payload = entry.summary(cache.clock(), cache.ttl)
    payload.pop("is_valid")
    return {"cached": True, **payload}

@router.get("/historic-sales-cache/all")
async def list_cached_sales(cache: SuburbSalesCache = Depends(cache_dep)):
    entries = await cache.list_all()
    return {"entries": entries, "total": len(entries)}

@router.post("/historic-sales-cache")
async def write_cached_sales(body: CacheWriteRequest, cache: SuburbSalesCache = Depends(cache_dep)):
    # StoreError surfaces as 503 via the app-level handler
    sales = [ComparableProperty.from_dict(s.model_dump()) for s in body.sales]
    entry = await cache.put(body.suburb, body.state, body.postcode, body.property_type, sales)
    return {
        "success": True,
        "cache_key": entry.cache_key,
        "cached_at": entry.cached_at.isoformat(),
        "total": len(entry.sales),
    }
