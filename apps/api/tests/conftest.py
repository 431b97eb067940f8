"""
Test configuration and fixtures.

Provides:
- Fresh in-memory SQLite schema per test
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
"""
import os
import uuid
from dataclasses import dataclass
from typing import AsyncGenerator, Callable, Generator

# Must be set before anything imports aris.core.config
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["FERNET_KEY"] = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="
os.environ["INTERNAL_SECRET"] = "test-internal-secret"
os.environ["OPENAI_API_KEY"] = ""
os.environ["SUBSCRIPTION_WEBHOOK_SECRET"] = ""

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from aris.core.deps import COOKIE_NAME, get_db
from aris.core.security import create_session_token
from aris.db.base import Base
from aris.db.enums import Role
from aris.db.models import Membership, Organization, User
from aris.db.session import SessionLocal, engine
from aris.main import app


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Session on a freshly created schema.

    The engine uses a StaticPool, so sessions opened by app code
    (internal endpoints, CLI) see the same in-memory database.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_org(db: Session) -> Organization:
    """Create a test organization."""
    org = Organization(
        id=uuid.uuid4(),
        name="Test Organization",
        slug=f"test-org-{uuid.uuid4().hex[:8]}",
    )
    db.add(org)
    db.commit()
    return org


@pytest.fixture(scope="function")
def make_user(db: Session) -> Callable[..., User]:
    """Factory: create a user with a membership in the given org."""

    def _make(org: Organization, role: Role = Role.ADMIN, email: str | None = None) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email or f"test-{uuid.uuid4().hex[:8]}@test.com",
            display_name="Test User",
        )
        db.add(user)
        db.flush()
        db.add(
            Membership(
                id=uuid.uuid4(),
                user_id=user.id,
                organization_id=org.id,
                role=role.value,
                is_owner=role == Role.OWNER,
            )
        )
        db.commit()
        return user

    return _make


@pytest.fixture(scope="function")
def test_user(test_org: Organization, make_user) -> User:
    """Create an admin user with membership in test_org."""
    return make_user(test_org, Role.ADMIN)


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    __test__ = False

    user: User
    org: Organization
    token: str
    role: Role = Role.ADMIN
    cookie_name: str = COOKIE_NAME


def mint_auth(user: User, org: Organization, role: Role) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        org_id=org.id,
        role=role.value,
        token_version=user.token_version,
    )
    return TestAuth(user=user, org=org, token=token, role=role)


@pytest.fixture(scope="function")
def test_auth(test_user: User, test_org: Organization) -> TestAuth:
    """Create JWT token for test user."""
    return mint_auth(test_user, test_org, Role.ADMIN)


# =============================================================================
# Client Fixtures
# =============================================================================

def _override_db(db: Session) -> None:
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated AsyncClient for public endpoints."""
    _override_db(db)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def authed_client(
    db: Session,
    test_auth: TestAuth,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated AsyncClient with JWT cookie and CSRF header."""
    _override_db(db)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={test_auth.cookie_name: test_auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def member_client(
    db: Session,
    test_org: Organization,
    make_user,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client for a plain member of test_org."""
    auth = mint_auth(make_user(test_org, Role.MEMBER), test_org, Role.MEMBER)
    _override_db(db)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def owner_client(
    db: Session,
    test_org: Organization,
    make_user,
) -> AsyncGenerator[AsyncClient, None]:
    """Authenticated client for an owner of test_org."""
    auth = mint_auth(make_user(test_org, Role.OWNER), test_org, Role.OWNER)
    _override_db(db)

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={auth.cookie_name: auth.token},
        headers={"X-Requested-With": "XMLHttpRequest"},
    ) as c:
        yield c

    app.dependency_overrides.clear()


# =============================================================================
# Email Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def email_account(db: Session, test_org: Organization, test_user: User):
    """A Gmail account owned by test_user (token stored encrypted)."""
    from datetime import datetime, timedelta, timezone

    from aris.core.encryption import encrypt_token
    from aris.db.models import EmailAccount

    account = EmailAccount(
        organization_id=test_org.id,
        user_id=test_user.id,
        email="sales@test.com",
        provider_type="google",
        access_token_encrypted=encrypt_token("access-token"),
        refresh_token_encrypted=encrypt_token("refresh-token"),
        token_expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    db.add(account)
    db.commit()
    return account


@pytest.fixture(scope="function")
def make_email(db: Session, email_account):
    """Factory: index one email (with cached content) on email_account."""
    from datetime import datetime, timezone

    from aris.db.models import EmailContentCache, EmailIndex

    def _make(
        subject: str = "Question about my order",
        body: str = "Thanks for the quick delivery, great service.",
        sender: str = "customer@example.com",
        message_id: str | None = None,
        email_type: str = "received",
    ) -> EmailIndex:
        email = EmailIndex(
            organization_id=email_account.organization_id,
            email_account_id=email_account.id,
            user_id=email_account.user_id,
            message_id=message_id or f"msg-{uuid.uuid4().hex}",
            subject=subject,
            preview_text=body[:200],
            sender_email=sender,
            recipient_email=email_account.email,
            email_type=email_type,
            folder_name="INBOX",
            received_at=datetime.now(timezone.utc),
        )
        db.add(email)
        db.flush()
        db.add(
            EmailContentCache(
                email_index_id=email.id,
                message_id=email.message_id,
                plain_content=body,
            )
        )
        db.commit()
        return email

    return _make
