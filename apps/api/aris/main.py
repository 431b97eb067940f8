"""FastAPI application entry point."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from aris.core.config import settings
from aris.core.errors import register_exception_handlers
from aris.db.session import engine

# ============================================================================
# Sentry Integration (optional, for production error tracking)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logging.info("Sentry initialized for error tracking")

# ============================================================================
# Rate Limiting
# ============================================================================

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from aris.core.rate_limit import limiter


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="ARIS API",
    description="Multi-tenant CRM with email automation and Metakocka ERP sync",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_exception_handlers(app)

# CORS middleware - must be added before routers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,  # Required for cookies
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    expose_headers=["X-Request-ID"],
)

# ============================================================================
# Routers
# ============================================================================

from aris.routers import auth, notifications, jobs, webhooks

app.include_router(auth.router, prefix="/auth", tags=["auth"])

# Notifications (user-scoped)
app.include_router(notifications.router, prefix="/me", tags=["notifications"])

# Email accounts, synced mail and the AI processing queue
from aris.routers import email_accounts, emails, email_queue
app.include_router(email_accounts.router, prefix="/email-accounts", tags=["email"])
app.include_router(emails.router, prefix="/emails", tags=["email"])
app.include_router(email_queue.router, prefix="/email-queue", tags=["email"])

# CRM records
from aris.routers import suppliers, contacts, products, sales_documents
app.include_router(suppliers.router, prefix="/suppliers", tags=["suppliers"])
app.include_router(contacts.router, prefix="/contacts", tags=["contacts"])
app.include_router(products.router, prefix="/products", tags=["products"])
app.include_router(sales_documents.router, prefix="/sales-documents", tags=["sales-documents"])

# Metakocka ERP integration (admin only)
from aris.routers import metakocka
app.include_router(metakocka.router, prefix="/integrations/metakocka", tags=["metakocka"])

# Sales pipelines
from aris.routers import pipelines, opportunities
app.include_router(pipelines.router, prefix="/pipelines", tags=["pipelines"])
app.include_router(opportunities.router, prefix="/opportunities", tags=["opportunities"])

# Billing
from aris.routers import subscriptions
app.include_router(subscriptions.router, prefix="/subscriptions", tags=["subscriptions"])

# Jobs (admin)
app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])

# Webhooks (billing provider events)
app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

# Internal endpoints (scheduled/cron jobs - protected by INTERNAL_SECRET)
from aris.routers import internal
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Health check endpoint.

    Verifies database connectivity and returns environment info.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
