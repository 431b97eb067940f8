"""SQLAlchemy ORM models.

Importing this package registers every table on ``Base.metadata``.
"""

from aris.db.models.auth import Membership, Organization, User
from aris.db.models.crm import Contact, Product, Supplier
from aris.db.models.email import (
    EmailAccount,
    EmailContentCache,
    EmailIndex,
    EmailQueueItem,
    EmailSyncState,
)
from aris.db.models.jobs import Job
from aris.db.models.metakocka import (
    MetakockaAutoSyncSettings,
    MetakockaContactMapping,
    MetakockaCredentials,
    MetakockaIntegrationLog,
    MetakockaProductMapping,
    MetakockaSalesDocumentMapping,
)
from aris.db.models.notifications import Notification
from aris.db.models.pipelines import (
    Opportunity,
    OpportunityActivity,
    PipelineStage,
    SalesPipeline,
)
from aris.db.models.sales import SalesDocument, SalesDocumentItem
from aris.db.models.subscriptions import (
    OrganizationSubscription,
    SubscriptionInvoice,
    SubscriptionPlan,
)

__all__ = [
    "Contact",
    "EmailAccount",
    "EmailContentCache",
    "EmailIndex",
    "EmailQueueItem",
    "EmailSyncState",
    "Job",
    "Membership",
    "MetakockaAutoSyncSettings",
    "MetakockaContactMapping",
    "MetakockaCredentials",
    "MetakockaIntegrationLog",
    "MetakockaProductMapping",
    "MetakockaSalesDocumentMapping",
    "Notification",
    "Opportunity",
    "OpportunityActivity",
    "Organization",
    "OrganizationSubscription",
    "PipelineStage",
    "Product",
    "SalesDocument",
    "SalesDocumentItem",
    "SalesPipeline",
    "Supplier",
    "SubscriptionInvoice",
    "SubscriptionPlan",
    "User",
]
