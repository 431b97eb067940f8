"""Subscriptions router - plans, the org's subscription and its invoices."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_current_session, get_db, require_csrf_header, require_roles
from aris.db.enums import ROLES_CAN_MANAGE_BILLING
from aris.schemas.auth import UserSession
from aris.schemas.subscription import InvoiceRead, PlanRead, SubscriptionCreate, SubscriptionRead
from aris.services import subscription_service

router = APIRouter()


@router.get("/plans", response_model=list[PlanRead])
def list_plans(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    return [PlanRead.model_validate(p) for p in subscription_service.get_subscription_plans(db)]


@router.get("/current", response_model=SubscriptionRead | None)
def get_current_subscription(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    subscription = subscription_service.get_organization_subscription(db, session.org_id)
    return SubscriptionRead.model_validate(subscription) if subscription else None


@router.post("/current", response_model=SubscriptionRead, dependencies=[Depends(require_csrf_header)])
def create_subscription(
    body: SubscriptionCreate,
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_BILLING)),
    db: Session = Depends(get_db),
):
    try:
        subscription = subscription_service.create_subscription(
            db,
            session.org_id,
            body.plan_id,
            status=body.status,
            payment_method_id=body.payment_method_id,
        )
    except subscription_service.PlanNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return SubscriptionRead.model_validate(subscription)


@router.post(
    "/current/cancel",
    response_model=SubscriptionRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_subscription(
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_BILLING)),
    db: Session = Depends(get_db),
):
    """Cancel at the end of the current billing period."""
    subscription = subscription_service.get_organization_subscription(db, session.org_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="No subscription found")
    return SubscriptionRead.model_validate(subscription_service.cancel_subscription(db, subscription))


@router.get("/invoices", response_model=list[InvoiceRead])
def list_invoices(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    invoices = subscription_service.get_organization_invoices(
        db, session.org_id, limit=limit, offset=offset
    )
    return [InvoiceRead.model_validate(i) for i in invoices]
