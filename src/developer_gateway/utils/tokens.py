import jwt
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from pydantic import BaseModel

from ..config import settings


class SessionUser(BaseModel):
    """End-user resolved from a platform session token."""

    user_id: str
    email: Optional[str] = None
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionTokenManager:
    """Verifies end-user session JWTs issued by the platform's user service.

    The gateway does not log users in; it trusts the ``sub`` claim of a token
    signed with the shared secret. ``create_token`` exists for tooling and
    tests that need to act as the user service.
    """

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self.secret_key = secret_key or settings.secret_key
        self.algorithm = algorithm or settings.session_algorithm
        self.default_expiry = timedelta(hours=24)  # 24 hours default

    def create_token(
        self,
        user_id: str,
        email: Optional[str] = None,
        role: str = "user",
        expires_in: Optional[timedelta] = None,
    ) -> Dict[str, Any]:
        """Create a session token for a platform user."""
        if expires_in is None:
            expires_in = self.default_expiry

        now = datetime.now(timezone.utc)
        expiry = now + expires_in

        payload = {
            "sub": user_id,
            "email": email,
            "role": role,
            "iat": now,
            "exp": expiry,
            "jti": secrets.token_hex(16),
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

        return {
            "access_token": token,
            "token_type": "bearer",
            "expires_in": int(expires_in.total_seconds()),
            "expires_at": expiry.isoformat(),
        }

    def verify_token(self, token: str) -> Optional[SessionUser]:
        """Verify and decode a session token."""
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.InvalidTokenError:
            # Covers expiry, bad signature and malformed tokens
            return None

        user_id = payload.get("sub")
        if not user_id:
            return None

        return SessionUser(
            user_id=str(user_id),
            email=payload.get("email"),
            role=payload.get("role") or "user",
        )
