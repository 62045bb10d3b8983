"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends

from prepstream.services.cache import check_cache
from prepstream.services.pocketbase import PocketbaseError

from .deps import ServiceContainer, get_services

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(services: ServiceContainer = Depends(get_services)) -> dict:
    """Liveness plus reachability of Redis and Pocketbase."""
    redis_ok, redis_msg = await check_cache(services.cache)

    try:
        await services.pocketbase.health_check()
        pocketbase_ok, pocketbase_msg = True, "Pocketbase available"
    except PocketbaseError as e:
        pocketbase_ok, pocketbase_msg = False, e.message

    return {
        "status": "ok" if redis_ok and pocketbase_ok else "degraded",
        "redis": {"ok": redis_ok, "message": redis_msg},
        "pocketbase": {"ok": pocketbase_ok, "message": pocketbase_msg},
    }
