from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


SECRET_WARNING = "Save the API secret now! It will never be shown again."


# =============================================================================
# Identity Schemas
# =============================================================================


class DeveloperIdentity(BaseModel):
    """Minimal projection of an authenticated developer (no credential material)."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    is_anonymous: bool = False

    @classmethod
    def anonymous(cls) -> "DeveloperIdentity":
        return cls(is_anonymous=True)


# =============================================================================
# Developer Schemas
# =============================================================================


class LimitsInfo(BaseModel):
    """Quota state of a developer."""

    monthly_limit: int
    current_month_used: int
    current_month: str
    remaining: int
    rate_limit_per_minute: int


class ToolUsage(BaseModel):
    """Aggregated usage of a single tool."""

    tool_name: str
    usage_count: int
    last_used_at: Optional[datetime] = None


class DeveloperInfo(BaseModel):
    """Developer information (never includes the secret or its hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: Optional[str] = None
    api_key: str
    is_active: bool
    owner_user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    limits: Optional[LimitsInfo] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class DeveloperDetail(DeveloperInfo):
    """Developer with per-tool usage aggregates."""

    usage: List[ToolUsage] = Field(default_factory=list)


class DeveloperCreated(BaseModel):
    """The only shape that ever carries a plaintext secret after creation."""

    developer: DeveloperInfo
    api_key: str
    api_secret: str
    warning: str = SECRET_WARNING


class SecretRotated(BaseModel):
    """New plaintext secret for an existing API key."""

    id: str
    name: str
    api_key: str
    api_secret: str
    warning: str = "Save the new API secret now! It will never be shown again."


class DeveloperCreateRequest(BaseModel):
    """Admin request to create a developer."""

    name: str = Field(..., min_length=1, max_length=200, description="Developer name")
    email: Optional[EmailStr] = Field(None, description="Contact email")
    monthly_limit: Optional[int] = Field(None, gt=0, description="Calls per month")
    rate_limit_per_minute: Optional[int] = Field(None, gt=0, description="Calls per minute")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    owner_user_id: Optional[str] = Field(None, description="Owning platform user")
    environment: str = Field("live", pattern="^(live|test)$")


class KeyCreateRequest(BaseModel):
    """Self-service request to create an API key."""

    name: str = Field(..., min_length=1, max_length=200, description="Key name")
    monthly_limit: Optional[int] = Field(None, gt=0, description="Calls per month")
    environment: str = Field("live", pattern="^(live|test)$")


class DeveloperUpdateRequest(BaseModel):
    """Partial update. Credential fields are not accepted here."""

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None


class LimitsUpdateRequest(BaseModel):
    monthly_limit: Optional[int] = Field(None, gt=0)
    rate_limit_per_minute: Optional[int] = Field(None, gt=0)


# =============================================================================
# Usage Schemas
# =============================================================================


class DenyReason(str, Enum):
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"


class UsageDecision(BaseModel):
    """Outcome of a metering check."""

    allowed: bool
    reason: Optional[DenyReason] = None
    monthly_limit: int
    current_month_used: int
    remaining: int
    rate_limit_per_minute: int
    rate_remaining: Optional[int] = None
    rate_reset_seconds: Optional[int] = None


class UsageSummary(BaseModel):
    """Usage statistics response."""

    monthly_limit: int
    current_month_used: int
    remaining: int
    rate_limit_per_minute: int
    current_month: Optional[str] = None
    time_range: str
    tools: List[ToolUsage]


class PortalStats(BaseModel):
    """Developer dashboard numbers."""

    total_requests: int
    monthly_limit: int
    active_keys: int
    has_developer_account: bool


# =============================================================================
# Envelope Schemas
# =============================================================================


class SuccessResponse(BaseModel):
    """Standard success response."""

    success: bool = True
    message: Optional[str] = None
    data: Any = None

