"""Sales pipeline enums."""

from enum import Enum


class OpportunityStatus(str, Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"


class OpportunityPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ActivityType(str, Enum):
    """Opportunity timeline entries."""

    NOTE_ADDED = "note_added"
    STAGE_CHANGED = "stage_changed"
    VALUE_CHANGED = "value_changed"
    STATUS_CHANGED = "status_changed"
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
