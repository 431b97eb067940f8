"""Metakocka integration enums."""

from enum import Enum


class SyncStatus(str, Enum):
    """State of a CRM <-> Metakocka mapping row."""

    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    NEEDS_REVIEW = "needs_review"


class SyncDirection(str, Enum):
    CRM_TO_METAKOCKA = "crm_to_metakocka"
    METAKOCKA_TO_CRM = "metakocka_to_crm"


class MetakockaEntity(str, Enum):
    """Entities covered by auto-sync."""

    PRODUCTS = "products"
    INVOICES = "invoices"
    CONTACTS = "contacts"
    INVENTORY = "inventory"


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogCategory(str, Enum):
    API = "api"
    AUTH = "auth"
    MAPPING = "mapping"
    SYNC = "sync"
