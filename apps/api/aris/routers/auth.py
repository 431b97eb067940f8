"""Auth router - session introspection and logout."""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from aris.core.config import settings
from aris.core.deps import COOKIE_NAME, get_current_session, get_db, require_csrf_header
from aris.db.models import Organization, User
from aris.schemas.auth import MeResponse, UserSession

router = APIRouter()


@router.get("/me", response_model=MeResponse)
def get_me(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
) -> MeResponse:
    """
    Get current authenticated user info.

    Used by the frontend to bootstrap auth state on page load.
    """
    user = db.query(User).filter(User.id == session.user_id).first()
    org = db.query(Organization).filter(Organization.id == session.org_id).first()
    if not user or not org:
        raise HTTPException(status_code=401, detail="Not authenticated")

    return MeResponse(
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        org_id=org.id,
        org_name=org.name,
        org_slug=org.slug,
        role=session.role,
        subscription_tier=org.subscription_tier,
    )


@router.post("/logout", dependencies=[Depends(require_csrf_header)])
def logout(response: Response):
    """Clear the session cookie."""
    response.delete_cookie(
        key=COOKIE_NAME,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )
    return {"status": "logged_out"}
