"""Sales document enums."""

from enum import Enum


class SalesDocumentType(str, Enum):
    INVOICE = "invoice"
    QUOTE = "quote"
    ORDER = "order"
    RECEIPT = "receipt"
    CREDIT_NOTE = "credit_note"
    DEBIT_NOTE = "debit_note"
    PROFORMA = "proforma"
    ADVANCE = "advance"


class OrderStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"
