"""Admin routes: unrestricted management of every developer credential."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import (
    DeveloperCreateRequest,
    DeveloperUpdateRequest,
    LimitsUpdateRequest,
    SuccessResponse,
)
from ..services.developers import DeveloperService
from ..services.usage_logger import UsageReporter
from .dependencies import get_developer_service, require_admin

router = APIRouter(
    prefix="/api/developers",
    tags=["Developer Administration"],
    dependencies=[Depends(require_admin)],
)


@router.post("", response_model=SuccessResponse, status_code=201)
def create_developer(
    request: DeveloperCreateRequest,
    service: DeveloperService = Depends(get_developer_service),
):
    created = service.create_developer(
        name=request.name,
        email=request.email,
        monthly_limit=request.monthly_limit,
        rate_limit_per_minute=request.rate_limit_per_minute,
        metadata=request.metadata,
        owner_user_id=request.owner_user_id,
        environment=request.environment,
        enforce_key_cap=False,
    )
    return SuccessResponse(message="Developer created successfully", data=created)


@router.get("", response_model=SuccessResponse)
def list_developers(service: DeveloperService = Depends(get_developer_service)):
    return SuccessResponse(data=service.list_developers())


@router.get("/{developer_id}", response_model=SuccessResponse)
def get_developer(
    developer_id: str, service: DeveloperService = Depends(get_developer_service)
):
    return SuccessResponse(data=service.get_developer(developer_id))


@router.put("/{developer_id}", response_model=SuccessResponse)
def update_developer(
    developer_id: str,
    request: DeveloperUpdateRequest,
    service: DeveloperService = Depends(get_developer_service),
):
    developer = service.update_developer(
        developer_id, request.model_dump(exclude_unset=True)
    )
    return SuccessResponse(message="Developer updated successfully", data=developer)


@router.put("/{developer_id}/limits", response_model=SuccessResponse)
def update_limits(
    developer_id: str,
    request: LimitsUpdateRequest,
    service: DeveloperService = Depends(get_developer_service),
):
    limits = service.update_limits(
        developer_id,
        monthly_limit=request.monthly_limit,
        rate_limit_per_minute=request.rate_limit_per_minute,
    )
    return SuccessResponse(message="Limits updated successfully", data=limits)


@router.delete("/{developer_id}", response_model=SuccessResponse)
def delete_developer(
    developer_id: str, service: DeveloperService = Depends(get_developer_service)
):
    service.delete_developer(developer_id)
    return SuccessResponse(message="Developer deleted successfully")


@router.post("/{developer_id}/regenerate", response_model=SuccessResponse)
def regenerate_secret(
    developer_id: str, service: DeveloperService = Depends(get_developer_service)
):
    rotated = service.regenerate_secret(developer_id)
    return SuccessResponse(message="API secret regenerated successfully", data=rotated)


@router.post("/{developer_id}/reset-usage", response_model=SuccessResponse)
def reset_usage(
    developer_id: str, service: DeveloperService = Depends(get_developer_service)
):
    limits = service.reset_monthly_usage(developer_id)
    return SuccessResponse(message="Monthly usage reset successfully", data=limits)


@router.get("/{developer_id}/logs", response_model=SuccessResponse)
def developer_logs(
    developer_id: str,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: DeveloperService = Depends(get_developer_service),
    db: Session = Depends(get_db),
):
    developer = service.get_developer(developer_id)
    entries = UsageReporter(db).get_logs([developer.id], limit=limit, offset=offset)
    return SuccessResponse(data=[entry.to_dict() for entry in entries])
