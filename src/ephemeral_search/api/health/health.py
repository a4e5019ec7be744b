from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from src.ephemeral_search.api.deps import get_services
from src.ephemeral_search.domain.errors import SearchServiceError
from src.ephemeral_search.services.sessions.factory import SessionServices


router = APIRouter(prefix="/health", tags=["health"])


class HealthStatus(BaseModel):
    status: str


class ReadinessStatus(BaseModel):
    status: str
    search: str


@router.get("/live", response_model=HealthStatus)
def live() -> HealthStatus:
    return HealthStatus(status="ok")


@router.get("/ready", response_model=ReadinessStatus)
async def ready(services: SessionServices = Depends(get_services)) -> ReadinessStatus:
    try:
        await services.search.get_service_statistics()
    except (SearchServiceError, httpx.HTTPError) as e:
        raise HTTPException(status_code=503, detail=f"search service error: {e}")
    return ReadinessStatus(status="ok", search="ok")
