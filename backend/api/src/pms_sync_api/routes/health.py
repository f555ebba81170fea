"""Health check endpoint."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends

from pms_sync.config import SyncSettings
from pms_sync_api.dependencies import get_sync_settings
from pms_sync_api.models.responses import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse, summary="Service health")
async def health(settings: SyncSettings = Depends(get_sync_settings)) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        service="pms-sync-api",
        environment=settings.environment,
    )
