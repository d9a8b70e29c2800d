from fastapi import Depends, Header, Request, Response
from sqlalchemy.orm import Session
from typing import Callable, Optional

from ..database import get_db, get_redis
from ..exceptions import (
    AdminRequired,
    InvalidSession,
    MissingCredentials,
    QuotaExceeded,
    RateLimited,
)
from ..schemas import DenyReason, DeveloperIdentity, UsageDecision
from ..services.authenticator import Authenticator
from ..services.developers import DeveloperService
from ..services.limiter import UsageLimiter
from ..services.rate_window import RateWindow, get_rate_window
from ..utils.tokens import SessionTokenManager, SessionUser


# =============================================================================
# Shared services
# =============================================================================


def get_rate_window_dependency(redis_client=Depends(get_redis)) -> RateWindow:
    return get_rate_window(redis_client)


def get_developer_service(
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis),
    rate_window: RateWindow = Depends(get_rate_window_dependency),
) -> DeveloperService:
    return DeveloperService(db, redis_client=redis_client, rate_window=rate_window)


# =============================================================================
# End-user sessions (portal and admin routes)
# =============================================================================


def get_current_user(authorization: Optional[str] = Header(None)) -> SessionUser:
    """Resolve the platform user from ``Authorization: Bearer <session token>``."""
    if not authorization or not authorization.startswith("Bearer "):
        raise InvalidSession("Missing bearer session token")

    user = SessionTokenManager().verify_token(authorization[len("Bearer "):].strip())
    if user is None:
        raise InvalidSession()
    return user


def require_admin(user: SessionUser = Depends(get_current_user)) -> SessionUser:
    if not user.is_admin:
        raise AdminRequired()
    return user


# =============================================================================
# API credentials (metered routes)
# =============================================================================


def require_api_credentials(
    request: Request,
    api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_secret: Optional[str] = Header(None, alias="X-API-Secret"),
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis),
) -> DeveloperIdentity:
    """Authenticate the X-API-Key / X-API-Secret pair and attach the developer."""
    if not api_key or not api_secret:
        raise MissingCredentials()

    identity = Authenticator(db, redis_client).authenticate(api_key.strip(), api_secret.strip())
    request.state.developer = identity
    return identity


def optional_api_credentials(
    request: Request,
    api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_secret: Optional[str] = Header(None, alias="X-API-Secret"),
    db: Session = Depends(get_db),
    redis_client=Depends(get_redis),
) -> DeveloperIdentity:
    """Anonymous when no credentials are sent; a partial or bad attempt still fails."""
    if not api_key and not api_secret:
        identity = DeveloperIdentity.anonymous()
        request.state.developer = identity
        return identity
    return require_api_credentials(request, api_key, api_secret, db, redis_client)


def _apply_rate_headers(response: Response, decision: UsageDecision) -> None:
    response.headers["X-RateLimit-Limit"] = str(decision.rate_limit_per_minute)
    response.headers["X-RateLimit-Remaining"] = str(decision.rate_remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.rate_reset_seconds)
    response.headers["X-Quota-Limit"] = str(decision.monthly_limit)
    response.headers["X-Quota-Used"] = str(decision.current_month_used)
    response.headers["X-Quota-Remaining"] = str(decision.remaining)


def metered(tool_name: str, cost: int = 1) -> Callable[..., DeveloperIdentity]:
    """Dependency factory: authenticate, consume quota, mark the call for logging.

    Usage::

        @router.post("/ocr")
        def ocr(developer: DeveloperIdentity = Depends(metered("ocr_pro"))):
            ...
    """

    def dependency(
        request: Request,
        response: Response,
        developer: DeveloperIdentity = Depends(require_api_credentials),
        db: Session = Depends(get_db),
        rate_window: RateWindow = Depends(get_rate_window_dependency),
    ) -> DeveloperIdentity:
        decision = UsageLimiter(db, rate_window=rate_window).check_and_consume(
            developer.id, cost=cost
        )

        if decision.reason == DenyReason.QUOTA_EXCEEDED:
            raise QuotaExceeded(
                f"You have reached your monthly limit of {decision.monthly_limit} requests. "
                "Upgrade your plan or wait for the next billing cycle.",
                limit=decision.monthly_limit,
                used=decision.current_month_used,
                remaining=decision.remaining,
            )
        if decision.reason == DenyReason.RATE_LIMITED:
            raise RateLimited(
                f"Too many requests. Rate limit: {decision.rate_limit_per_minute} requests per minute.",
                headers={"Retry-After": str(decision.rate_reset_seconds)},
                limit=decision.rate_limit_per_minute,
                reset_in_seconds=decision.rate_reset_seconds,
            )

        _apply_rate_headers(response, decision)
        request.state.tool_name = tool_name
        return developer

    dependency.__name__ = f"metered_{tool_name}"
    return dependency
