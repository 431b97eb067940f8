"""Enum definitions for application constants."""

from aris.db.enums.auth import (
    ROLES_CAN_MANAGE_BILLING,
    ROLES_CAN_MANAGE_INTEGRATIONS,
    Role,
)
from aris.db.enums.email import (
    PRIORITY_RANK,
    PROVIDER_ALIASES,
    QUEUE_FINISHED_STATUSES,
    EmailProvider,
    EmailType,
    ImapSecurity,
    QueuePriority,
    QueueStatus,
    SyncMode,
)
from aris.db.enums.jobs import JobStatus, JobType
from aris.db.enums.metakocka import (
    LogCategory,
    LogLevel,
    MetakockaEntity,
    SyncDirection,
    SyncStatus,
)
from aris.db.enums.notifications import NotificationType
from aris.db.enums.pipelines import ActivityType, OpportunityPriority, OpportunityStatus
from aris.db.enums.sales import OrderStatus, SalesDocumentType
from aris.db.enums.subscriptions import BillingInterval, InvoiceStatus, SubscriptionStatus

__all__ = [
    "ActivityType",
    "BillingInterval",
    "EmailProvider",
    "EmailType",
    "ImapSecurity",
    "InvoiceStatus",
    "JobStatus",
    "JobType",
    "LogCategory",
    "LogLevel",
    "MetakockaEntity",
    "NotificationType",
    "OpportunityPriority",
    "OpportunityStatus",
    "OrderStatus",
    "PRIORITY_RANK",
    "PROVIDER_ALIASES",
    "QUEUE_FINISHED_STATUSES",
    "QueuePriority",
    "QueueStatus",
    "ROLES_CAN_MANAGE_BILLING",
    "ROLES_CAN_MANAGE_INTEGRATIONS",
    "Role",
    "SalesDocumentType",
    "SubscriptionStatus",
    "SyncDirection",
    "SyncMode",
    "SyncStatus",
]
