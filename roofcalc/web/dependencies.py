"""Shared dependencies for RoofCalc web routes.

Usage:
    from fastapi import Depends
    from roofcalc.web.dependencies import get_org_id

    @router.get("/ml/pricing-patterns")
    async def list_patterns(org_id: str = Depends(get_org_id)):
        ...
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Query, Request

from roofcalc.config import get_config
from roofcalc.ingestion.locks import ImportLockRegistry
from roofcalc.intelligence.rate_limiter import RateLimiter

_rate_limiter: RateLimiter | None = None


def get_org_id(
    org: str | None = Query(default=None),
    x_organization_id: str | None = Header(default=None),
) -> str:
    """Organization for the request: ``org`` query param, then the
    ``X-Organization-Id`` header, then the configured default."""
    return org or x_organization_id or get_config().org_id


def get_rate_limiter() -> RateLimiter:
    """Process-wide rate limiter (one per app process)."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(
            sweep_interval_seconds=get_config().rate_limit.sweep_interval_seconds
        )
    return _rate_limiter


def reset_rate_limiter() -> None:
    global _rate_limiter
    _rate_limiter = None


def get_import_locks(request: Request) -> ImportLockRegistry:
    """Import locks owned by the running app (see ``create_app``)."""
    return request.app.state.import_locks


def get_client_identifier(request: Request) -> str:
    """Client IP, honouring the first X-Forwarded-For hop behind a proxy."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def ai_rate_limit(request: Request) -> None:
    """Dependency enforcing the ``ai`` bucket limit (429 when exceeded)."""
    limits = get_config().rate_limit
    limiter = get_rate_limiter()
    client = get_client_identifier(request)

    if not limiter.check("ai", client, limits.ai_max_requests, limits.ai_window_seconds):
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again in a minute.",
            headers={"Retry-After": str(int(limiter.retry_after("ai", client)) + 1)},
        )
