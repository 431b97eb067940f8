"""Auth-related enums."""

from enum import Enum


class Role(str, Enum):
    """
    Organization member roles with increasing privilege levels.

    - MEMBER: Works email, queue, pipelines and sales documents
    - ADMIN: Manages integrations, email accounts of others, jobs
    - OWNER: Billing and subscription management
    """

    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


ROLES_CAN_MANAGE_INTEGRATIONS = frozenset({Role.ADMIN, Role.OWNER})
ROLES_CAN_MANAGE_BILLING = frozenset({Role.OWNER})
