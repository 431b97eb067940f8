"""Request dependencies: database sessions, cookie sessions, roles and CSRF."""

from typing import Collection, Generator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from aris.core.security import decode_session_token
from aris.db.enums import ROLES_CAN_MANAGE_INTEGRATIONS, Role
from aris.db.models import Membership, User
from aris.db.session import SessionLocal
from aris.schemas.auth import UserSession

COOKIE_NAME = "crm_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"
INTERNAL_SECRET_HEADER = "X-Internal-Secret"


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(status_code=401, detail=message)


def _read_session_cookie(request: Request) -> dict:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        return decode_session_token(token)
    except jwt.PyJWTError:
        raise _unauthorized("Invalid session")


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the user behind the ``crm_session`` cookie.

    A token minted before the user's ``token_version`` was bumped (logout
    everywhere, CLI revoke) is rejected as revoked.
    """
    payload = _read_session_cookie(request)
    try:
        user_id = UUID(str(payload["sub"]))
    except (KeyError, ValueError):
        raise _unauthorized("Invalid session")

    user = db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("Account disabled")
    if payload.get("token_version") != user.token_version:
        raise _unauthorized("Session revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)) -> UserSession:
    """Authenticated user plus their organization and role, used by every tenant route."""
    user = get_current_user(request, db)

    membership = db.query(Membership).filter(Membership.user_id == user.id).first()
    if membership is None:
        raise HTTPException(status_code=403, detail="No organization membership")
    if not Role.has_value(membership.role):
        raise HTTPException(status_code=403, detail=f"Unknown role '{membership.role}'")

    return UserSession(
        user_id=user.id,
        org_id=membership.organization_id,
        role=Role(membership.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: Collection[Role]):
    """Dependency factory: the session's role must be one of ``allowed_roles``."""

    def dependency(request: Request, db: Session = Depends(get_db)) -> UserSession:
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' not authorized for this action",
            )
        return session

    return dependency


def require_csrf_header(request: Request) -> None:
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def can_manage_integrations(session: UserSession) -> bool:
    return session.role in ROLES_CAN_MANAGE_INTEGRATIONS


def is_owner_or_can_manage(session: UserSession, owner_user_id: UUID | None) -> bool:
    """Mailbox owners manage their own accounts; admins and owners manage any."""
    return session.user_id == owner_user_id or can_manage_integrations(session)
