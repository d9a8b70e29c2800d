"""Developer portal: self-service management of a user's own API keys."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import (
    DeveloperUpdateRequest,
    KeyCreateRequest,
    SuccessResponse,
)
from ..services.developers import DeveloperService
from ..services.usage_logger import UsageReporter
from ..utils.tokens import SessionUser
from .dependencies import get_current_user, get_developer_service

router = APIRouter(prefix="/api/dev", tags=["Developer Portal"])


@router.get("/portal/stats", response_model=SuccessResponse)
def portal_stats(
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    """Dashboard numbers for the signed-in user."""
    return SuccessResponse(data=service.portal_stats(user.user_id))


@router.get("/keys", response_model=SuccessResponse)
def list_keys(
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    """List the API keys owned by the signed-in user."""
    return SuccessResponse(data=service.list_developers(owner_user_id=user.user_id))


@router.post("/keys", response_model=SuccessResponse, status_code=201)
def create_key(
    request: KeyCreateRequest,
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    """Create an API key. The secret in the response is never shown again."""
    created = service.create_developer(
        name=request.name,
        email=user.email,
        monthly_limit=request.monthly_limit,
        metadata={"created_by": user.email, "source": "portal"},
        owner_user_id=user.user_id,
        environment=request.environment,
    )
    return SuccessResponse(message="API key created successfully", data=created)


@router.patch("/keys/{key_id}", response_model=SuccessResponse)
def update_key(
    key_id: str,
    request: DeveloperUpdateRequest,
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    """Rename, enable or disable one of your keys."""
    changes = request.model_dump(exclude_unset=True, include={"name", "is_active"})
    developer = service.update_developer(key_id, changes, owner_user_id=user.user_id)
    return SuccessResponse(message="API key updated successfully", data=developer)


@router.delete("/keys/{key_id}", response_model=SuccessResponse)
def delete_key(
    key_id: str,
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    service.delete_developer(key_id, owner_user_id=user.user_id)
    return SuccessResponse(message="API key deleted successfully")


@router.post("/keys/{key_id}/regenerate", response_model=SuccessResponse)
def regenerate_key(
    key_id: str,
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
):
    """Issue a new secret for an existing key; the old secret stops working."""
    rotated = service.regenerate_secret(key_id, owner_user_id=user.user_id)
    return SuccessResponse(message="API secret regenerated successfully", data=rotated)


@router.get("/usage", response_model=SuccessResponse)
def usage(
    time_range: str = Query("30d", description="24h, 7d, 30d, 90d or all"),
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
    db: Session = Depends(get_db),
):
    """Usage across all of the user's keys."""
    developer_ids = service.repository.ids_for_owner(user.user_id)
    summary = UsageReporter(db).get_usage_summary(developer_ids, time_range)
    return SuccessResponse(data=summary)


@router.get("/logs", response_model=SuccessResponse)
def logs(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: SessionUser = Depends(get_current_user),
    service: DeveloperService = Depends(get_developer_service),
    db: Session = Depends(get_db),
):
    """Recent API calls made with the user's keys."""
    developer_ids = service.repository.ids_for_owner(user.user_id)
    entries = UsageReporter(db).get_logs(developer_ids, limit=limit, offset=offset)
    return SuccessResponse(data=[entry.to_dict() for entry in entries])
