"""
Tile Router - Validation Hub
validation_hub/routers/tiles.py

Read-only access to resolved tile data for renderer consumers, plus
drill-down synthesis and cache maintenance.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.exceptions import HTTPException
from pydantic import BaseModel, Field

from validation_hub.core.dependencies import get_cache_resolver, get_insight_generator
from validation_hub.core.exceptions import FetchError, ProviderMalformed
from validation_hub.models.tile import DrillDownLevel, MetricExplanation, TileData, TileRequest
from validation_hub.pipeline.insights import InsightGenerator, classify_metric
from validation_hub.pipeline.resolver import CacheResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["tiles"])

# Query parameters with a meaning of their own; everything else is a tile param
RESERVED_QUERY_PARAMS = {"idea", "session_id", "refresh"}



#  Schemas


class ErrorResponse(BaseModel):
    error_code: str
    message: str
    details: Optional[dict] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DrillDownRequest(BaseModel):
    metric_key: str = Field(..., min_length=1, max_length=128)
    metric_value: Any = None
    explanation: Optional[MetricExplanation] = None


class DrillDownResponse(BaseModel):
    metric_key: str
    category: str
    levels: List[DrillDownLevel]


class InvalidateResponse(BaseModel):
    idea: str
    removed: Dict[str, int]



#  Exception Helpers


def raise_error(status_code: int, error_code: str, message: str, details: Optional[dict] = None):
    raise HTTPException(
        status_code=status_code,
        detail=ErrorResponse(error_code=error_code, message=message, details=details).model_dump(mode="json"),
    )


def raise_fetch_error(exc: FetchError):
    # malformed payloads are a provider bug; everything else means "try later"
    status_code = (
        status.HTTP_502_BAD_GATEWAY
        if isinstance(exc, ProviderMalformed)
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    raise_error(
        status_code,
        exc.error_code,
        exc.message,
        details={"provider": exc.provider, "retryable": getattr(exc, "retryable", False)},
    )



#  Endpoints


@router.get(
    "/tiles/cache/stats",
    summary="Tile cache statistics",
    description="Ephemeral cache counters, persisted tier status, in-flight fetches and circuit states.",
)
async def cache_stats(resolver: CacheResolver = Depends(get_cache_resolver)) -> Dict[str, Any]:
    return resolver.stats()


@router.delete(
    "/tiles/cache",
    response_model=InvalidateResponse,
    responses={400: {"model": ErrorResponse, "description": "Blank idea"}},
    summary="Clear cached tiles for an idea",
)
async def invalidate_idea(
    idea: str = Query(..., description="Idea text whose tiles should be dropped"),
    resolver: CacheResolver = Depends(get_cache_resolver),
) -> InvalidateResponse:
    try:
        removed = resolver.invalidate_idea(idea)
    except ValueError as e:
        raise_error(status.HTTP_400_BAD_REQUEST, "INVALID_IDEA", str(e))
    return InvalidateResponse(idea=idea, removed=removed)


@router.post(
    "/tiles/drilldown",
    response_model=DrillDownResponse,
    summary="Build a metric drill-down",
    description="Three levels: Overview, Breakdown, Strategic Analysis.",
)
async def drill_down(
    body: DrillDownRequest,
    generator: InsightGenerator = Depends(get_insight_generator),
) -> DrillDownResponse:
    try:
        levels = generator.build_drill_down(body.metric_key, body.metric_value, body.explanation)
    except ValueError as e:
        raise_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", str(e))
    return DrillDownResponse(
        metric_key=body.metric_key.strip(),
        category=classify_metric(body.metric_key).value,
        levels=levels,
    )


@router.get(
    "/tiles/{tile_type}",
    response_model=TileData,
    responses={
        502: {"model": ErrorResponse, "description": "Provider returned malformed data and nothing is cached"},
        503: {"model": ErrorResponse, "description": "Provider unavailable and nothing is cached"},
    },
    summary="Resolve tile data",
    description=(
        "Serves the tile from the persisted or ephemeral cache, or fetches it from its provider. "
        "Extra query parameters are passed to the provider as tile params. "
        "When a refresh fails but older data exists, that data is returned with refresh_error set."
    ),
)
async def get_tile(
    tile_type: str,
    request: Request,
    idea: str = Query("", max_length=2000),
    session_id: Optional[str] = Query(None, max_length=128),
    refresh: bool = Query(False, description="Bypass caches and fetch from the provider"),
    user_id: Optional[str] = Header(None, alias="X-User-Id", max_length=128),
    resolver: CacheResolver = Depends(get_cache_resolver),
) -> TileData:
    params = {k: v for k, v in request.query_params.items() if k not in RESERVED_QUERY_PARAMS}
    try:
        tile_request = TileRequest(
            tile_type=tile_type,
            user_id=user_id,
            session_id=session_id,
            idea_text=idea,
            params=params,
        )
    except ValueError as e:
        raise_error(status.HTTP_422_UNPROCESSABLE_ENTITY, "VALIDATION_ERROR", str(e))

    try:
        return await resolver.resolve(tile_request, force_refresh=refresh)
    except FetchError as e:
        logger.warning(
            "Tile unavailable",
            extra={"tile_type": tile_request.tile_type, "error_code": e.error_code},
        )
        raise_fetch_error(e)
