"""Session JWTs and shared-secret checks."""

import hmac
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from aris.core.config import settings

SESSION_ALGORITHM = "HS256"


def create_session_token(user_id: UUID, org_id: UUID, role: str, token_version: int) -> str:
    """Sign a session token with the current ``JWT_SECRET``."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "org_id": str(org_id),
        "role": role,
        "token_version": token_version,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session token against the current secret, then the previous one.

    Raises ``jwt.InvalidTokenError`` when no configured secret accepts it.
    """
    error: jwt.InvalidTokenError = jwt.InvalidTokenError("No JWT secret configured")
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=[SESSION_ALGORITHM])
        except jwt.InvalidTokenError as exc:
            error = exc
    raise error


def secrets_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison for shared secrets (cron, webhooks)."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())
