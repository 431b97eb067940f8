"""Subscription billing enums."""

from enum import Enum


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"
    INCOMPLETE = "incomplete"


class InvoiceStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    VOID = "void"


class BillingInterval(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
