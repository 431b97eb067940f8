"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from aris.db.enums import Role


class UserSession(BaseModel):
    """
    Full session context for authenticated requests.

    This is returned by get_current_session dependency
    and contains all information needed for authorization.
    """
    user_id: UUID
    org_id: UUID
    role: Role  # Validated enum
    email: str
    display_name: str


class MeResponse(BaseModel):
    """Response schema for GET /auth/me endpoint."""
    user_id: UUID
    email: str
    display_name: str
    org_id: UUID
    org_name: str
    org_slug: str
    role: Role
    subscription_tier: str
