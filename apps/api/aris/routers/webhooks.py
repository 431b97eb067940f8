"""Webhooks router - billing provider events."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from aris.core.config import settings
from aris.core.deps import get_db
from aris.core.rate_limit import limiter
from aris.core.security import secrets_match
from aris.schemas.subscription import WebhookEvent, WebhookResponse
from aris.services import subscription_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/subscription", response_model=WebhookResponse)
@limiter.limit(f"{settings.RATE_LIMIT_WEBHOOK}/minute")
def receive_subscription_webhook(
    request: Request,
    body: WebhookEvent,
    x_webhook_secret: str | None = Header(None),
    db: Session = Depends(get_db),
):
    """
    Receive a subscription event.

    Security:
    - X-Webhook-Secret must match SUBSCRIPTION_WEBHOOK_SECRET when one is configured
    - Rate limited per client address

    Errors:
    - 400: unknown event type
    - 404: the event references no known subscription
    """
    expected = settings.SUBSCRIPTION_WEBHOOK_SECRET
    if expected and not secrets_match(x_webhook_secret, expected):
        logger.warning("Subscription webhook rejected: bad secret")
        raise HTTPException(status_code=403, detail="Invalid webhook secret")

    try:
        result = subscription_service.handle_webhook_event(db, body.type, body.data)
    except subscription_service.UnknownWebhookEventError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except subscription_service.SubscriptionNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return WebhookResponse(**result)
