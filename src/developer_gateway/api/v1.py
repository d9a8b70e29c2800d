"""Developer API routes authenticated with X-API-Key / X-API-Secret; all but /status are metered."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import DeveloperIdentity, SuccessResponse
from ..services.usage_logger import UsageReporter
from .dependencies import metered, optional_api_credentials

router = APIRouter(prefix="/v1", tags=["Developer API"])


@router.get("/health", response_model=SuccessResponse)
def api_health(developer: DeveloperIdentity = Depends(metered("health"))):
    """Authenticated health check; also a cheap way to verify credentials."""
    return SuccessResponse(
        data={
            "status": "ok",
            "version": "1.0.0",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "developer": {"id": developer.id, "name": developer.name},
        }
    )


@router.get("/status", response_model=SuccessResponse)
def api_status(developer: DeveloperIdentity = Depends(optional_api_credentials)):
    """Public status; identifies the caller when credentials are sent. Not metered."""
    return SuccessResponse(
        data={
            "status": "ok",
            "version": "1.0.0",
            "authenticated": not developer.is_anonymous,
            "developer": None
            if developer.is_anonymous
            else {"id": developer.id, "name": developer.name},
        }
    )


@router.get("/usage", response_model=SuccessResponse)
def api_usage(
    time_range: str = Query("30d", description="24h, 7d, 30d, 90d or all"),
    developer: DeveloperIdentity = Depends(metered("usage_stats")),
    db: Session = Depends(get_db),
):
    """Usage statistics for the calling developer."""
    summary = UsageReporter(db).get_usage_summary([developer.id], time_range)
    return SuccessResponse(data=summary)
