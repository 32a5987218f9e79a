"""
Health Check Router - Validation Hub
validation_hub/routers/health.py

Reports service status, persisted-tier reachability and provider circuits.
"""
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from validation_hub.config import settings
from validation_hub.core.dependencies import get_provider_gateway
from validation_hub.services.cache import get_cache
from validation_hub.services.provider_gateway import ProviderGateway

router = APIRouter(tags=["health"])



#  Schemas


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, str]
    circuits: Dict[str, Dict[str, Any]] = {}



#  Dependency Health Checks


async def check_redis() -> str:
    """Check persisted cache health."""
    if not settings.PERSISTED_CACHE_ENABLED:
        return "disabled"
    cache = get_cache()
    if cache is None:
        return "unhealthy: Redis unreachable"
    try:
        cache.client.ping()
        return "healthy"
    except Exception as e:
        error_msg = str(e)[:100] + "..." if len(str(e)) > 100 else str(e)
        return f"unhealthy: {error_msg}"



#  Main Health Check Route


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "One or more dependencies unhealthy"},
    },
    summary="Health check",
)
async def health_check(gateway: ProviderGateway = Depends(get_provider_gateway)):
    """Check health of all dependencies."""
    dependencies = {"redis": await check_redis()}
    circuits = gateway.circuit_states()

    all_healthy = all(v.startswith(("healthy", "disabled")) for v in dependencies.values())
    any_open = any(not c["is_available"] for c in circuits.values())

    response = HealthResponse(
        status="healthy" if all_healthy and not any_open else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=settings.APP_VERSION,
        dependencies=dependencies,
        circuits=circuits,
    )

    if all_healthy:
        return response
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(mode="json"),
    )
