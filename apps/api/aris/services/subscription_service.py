"""Subscription service - plans, organization subscriptions, invoices and billing webhooks."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from aris.db.enums import InvoiceStatus, NotificationType, SubscriptionStatus
from aris.db.models import (
    Organization,
    OrganizationSubscription,
    SubscriptionInvoice,
    SubscriptionPlan,
)
from aris.services import notification_service

logger = logging.getLogger(__name__)

DEFAULT_PERIOD = timedelta(days=30)

WEBHOOK_EVENTS = {
    "payment_succeeded",
    "payment_failed",
    "subscription_created",
    "subscription_updated",
    "subscription_canceled",
    "trial_will_end",
}


class SubscriptionError(Exception):
    pass


class SubscriptionNotFoundError(SubscriptionError):
    pass


class PlanNotFoundError(SubscriptionError):
    pass


class UnknownWebhookEventError(SubscriptionError):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Plans and subscriptions
# =============================================================================


def get_subscription_plans(db: Session) -> list[SubscriptionPlan]:
    return (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active == True)  # noqa: E712
        .order_by(SubscriptionPlan.price.asc())
        .all()
    )


def get_plan(db: Session, plan_id: UUID) -> SubscriptionPlan:
    plan = db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
    if not plan or not plan.is_active:
        raise PlanNotFoundError("Subscription plan not found")
    return plan


def get_organization_subscription(db: Session, org_id: UUID) -> OrganizationSubscription | None:
    """Most recent subscription for the org."""
    return (
        db.query(OrganizationSubscription)
        .filter(OrganizationSubscription.organization_id == org_id)
        .order_by(OrganizationSubscription.created_at.desc())
        .first()
    )


def _sync_org_tier(db: Session, org_id: UUID, plan: SubscriptionPlan | None, status: str) -> None:
    org = db.query(Organization).filter(Organization.id == org_id).first()
    if not org:
        return
    if plan is not None:
        org.subscription_tier = plan.name.lower()
    org.subscription_status = status


def create_subscription(
    db: Session,
    org_id: UUID,
    plan_id: UUID,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    period: timedelta = DEFAULT_PERIOD,
    payment_method_id: str | None = None,
    provider: str | None = None,
    provider_subscription_id: str | None = None,
) -> OrganizationSubscription:
    plan = get_plan(db, plan_id)
    start = _now()
    subscription = OrganizationSubscription(
        organization_id=org_id,
        subscription_plan_id=plan.id,
        status=status.value,
        current_period_start=start,
        current_period_end=start + period,
        payment_method_id=payment_method_id,
        subscription_provider=provider,
        provider_subscription_id=provider_subscription_id,
        details={},
    )
    db.add(subscription)
    _sync_org_tier(db, org_id, plan, status.value)
    db.commit()
    db.refresh(subscription)
    return subscription


def update_subscription(
    db: Session,
    subscription: OrganizationSubscription,
    status: SubscriptionStatus | None = None,
    plan_id: UUID | None = None,
    cancel_at_period_end: bool | None = None,
) -> OrganizationSubscription:
    plan = None
    if plan_id is not None:
        plan = get_plan(db, plan_id)
        subscription.subscription_plan_id = plan.id
    if status is not None:
        subscription.status = status.value
    if cancel_at_period_end is not None:
        subscription.cancel_at_period_end = cancel_at_period_end
    _sync_org_tier(db, subscription.organization_id, plan, subscription.status)
    db.commit()
    db.refresh(subscription)
    return subscription


def cancel_subscription(db: Session, subscription: OrganizationSubscription) -> OrganizationSubscription:
    """Cancel at the end of the current period."""
    return update_subscription(db, subscription, cancel_at_period_end=True)


# =============================================================================
# Invoices
# =============================================================================


def get_organization_invoices(db: Session, org_id: UUID, limit: int = 50, offset: int = 0) -> list[SubscriptionInvoice]:
    return (
        db.query(SubscriptionInvoice)
        .filter(SubscriptionInvoice.organization_id == org_id)
        .order_by(SubscriptionInvoice.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def create_invoice(
    db: Session,
    subscription: OrganizationSubscription,
    amount: float,
    status: InvoiceStatus = InvoiceStatus.UNPAID,
    due_date: datetime | None = None,
    provider_invoice_id: str | None = None,
    invoice_url: str | None = None,
) -> SubscriptionInvoice:
    invoice = SubscriptionInvoice(
        organization_id=subscription.organization_id,
        subscription_id=subscription.id,
        amount=amount,
        status=status.value,
        due_date=due_date,
        paid_at=_now() if status == InvoiceStatus.PAID else None,
        provider_invoice_id=provider_invoice_id,
        invoice_url=invoice_url,
    )
    db.add(invoice)
    db.commit()
    db.refresh(invoice)
    return invoice


# =============================================================================
# Webhooks
# =============================================================================


def _find_subscription(db: Session, data: dict[str, Any]) -> OrganizationSubscription:
    ref = data.get("subscription_id")
    subscription = None
    if ref:
        try:
            subscription = db.get(OrganizationSubscription, UUID(str(ref)))
        except ValueError:
            subscription = db.query(OrganizationSubscription).filter(
                OrganizationSubscription.provider_subscription_id == str(ref)
            ).first()
    if subscription is None and data.get("organization_id"):
        try:
            subscription = get_organization_subscription(db, UUID(str(data["organization_id"])))
        except ValueError:
            subscription = None
    if subscription is None:
        raise SubscriptionNotFoundError("Subscription not found")
    return subscription


def _notify(
    db: Session,
    subscription: OrganizationSubscription,
    type: NotificationType,
    title: str,
    message: str,
) -> None:
    notification_service.notify_org_admins(
        db=db,
        org_id=subscription.organization_id,
        type=type,
        title=title,
        message=message,
        action_url="/settings/subscription",
        details={"subscription_id": str(subscription.id)},
        dedupe_key=f"{type.value}:{subscription.id}",
    )


def handle_webhook_event(db: Session, event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply a billing provider event. Unknown types raise UnknownWebhookEventError."""
    if event_type not in WEBHOOK_EVENTS:
        raise UnknownWebhookEventError(f"Unhandled event type: {event_type}")

    subscription = _find_subscription(db, data)
    logger.info("Subscription webhook %s for subscription=%s", event_type, subscription.id)

    if event_type == "payment_succeeded":
        update_subscription(db, subscription, status=SubscriptionStatus.ACTIVE)
        if data.get("amount") is not None:
            create_invoice(
                db, subscription, float(data["amount"]),
                status=InvoiceStatus.PAID,
                provider_invoice_id=data.get("invoice_id"),
                invoice_url=data.get("invoice_url"),
            )
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_PAYMENT_SUCCEEDED,
            "Payment received", "Your subscription payment was processed successfully.",
        )
    elif event_type == "payment_failed":
        update_subscription(db, subscription, status=SubscriptionStatus.PAST_DUE)
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_PAYMENT_FAILED,
            "Payment failed", "We could not process your subscription payment. Please update your payment method.",
        )
    elif event_type == "subscription_canceled":
        update_subscription(db, subscription, status=SubscriptionStatus.CANCELED)
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_CANCELLED,
            "Subscription cancelled", "Your subscription has been cancelled.",
        )
    elif event_type == "subscription_created":
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_CREATED,
            "Subscription created", "Your subscription is now set up.",
        )
    elif event_type == "subscription_updated":
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_UPDATED,
            "Subscription updated", "Your subscription details have changed.",
        )
    else:
        _notify(
            db, subscription, NotificationType.SUBSCRIPTION_TRIAL_ENDING,
            "Trial ending soon", "Your trial ends soon. Choose a plan to keep access.",
        )

    return {"success": True, "event": event_type}
