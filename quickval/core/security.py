from fastapi import Header, HTTPException, Request
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_429_TOO_MANY_REQUESTS
from datetime import datetime, timezone

from .errors import StoreError

def require_api_key(request: Request, x_api_key: str | None = Header(default=None, alias="x-api-key")):
    """
    Simple header-based API key check.
    In prod, you could swap to OAuth or JWT validation dependency.
    """
    expected = request.app.state.settings.API_KEY
    if not expected:
        # If unset, we allow requests (dev convenience).
        return
    if x_api_key != expected:
        raise HTTPException(status_code=HTTP_401_UNAUTHORIZED, detail="Invalid API key")

async def rate_limit(request: Request):
    """
    Basic RPM limiter over the shared store.
    Keyed by API key (if present) or client IP to discourage abuse.
    Read-then-write, so counts are best-effort under concurrency.
    """
    rpm = max(1, request.app.state.settings.RATE_LIMIT_RPM)
    store = request.app.state.store
    client_ip = request.client.host if request.client else "unknown"
    api_key = request.headers.get("x-api-key") or "anon"
    minute_bucket = datetime.now(timezone.utc).strftime("%Y%m%d%H%M")
    key = f"rate:{api_key}:{client_ip}:{minute_bucket}"

    try:
        current = await store.get(key)
        try:
            count = int(current) + 1 if current is not None else 1
        except ValueError:
            count = 1
        if count > rpm:
            raise HTTPException(status_code=HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
        await store.set(key, str(count), ttl=60)
    except StoreError:
        # Limiter unavailable; let the request through.
        return
