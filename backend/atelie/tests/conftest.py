"""
Root test configuration and fixtures.

Provides:
- An SQLite in-memory database (fresh schema per test)
- Settings built from a controlled environment
- Session token factory signed with the test JWT secret
- A FastAPI TestClient wired to the test database and a fake Mercado Pago client
"""

import os
import time
import uuid
from datetime import datetime
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

TEST_JWT_SECRET = "test-supabase-jwt-secret-with-enough-length"
TEST_ACCESS_TOKEN = "TEST-mercadopago-access-token"

MANAGED_ENV_VARS = (
    "DATABASE_URL",
    "MERCADOPAGO_ACCESS_TOKEN",
    "MERCADO_PAGO_ACCESS_TOKEN",
    "MERCADOPAGO_API_BASE",
    "MERCADOPAGO_WEBHOOK_SECRET",
    "MERCADOPAGO_NOTIFICATION_URL",
    "SUPABASE_JWT_SECRET",
    "SUPABASE_JWT_AUDIENCE",
    "SUBSCRIPTION_PLAN_ID",
    "SUBSCRIPTION_PERIOD_DAYS",
    "PUBLIC_SITE_URL",
)


@pytest.fixture(scope="session", autouse=True)
def _httpx_app_kwarg_patch():
    """
    Compatibility patch for httpx>=0.28 where Client(app=...) is not supported.

    Starlette's TestClient (used by FastAPI) passes app= into httpx.Client.
    This patch removes the app kwarg to avoid TypeError in environments
    with newer httpx while remaining safe for older versions.
    """
    import httpx

    original_init = httpx.Client.__init__

    def patched_init(self, *args, **kwargs):
        kwargs.pop("app", None)
        return original_init(self, *args, **kwargs)

    httpx.Client.__init__ = patched_init
    try:
        yield
    finally:
        httpx.Client.__init__ = original_init


@pytest.fixture(autouse=True)
def test_settings(monkeypatch):
    """
    Controlled environment for every test.

    Auth and Mercado Pago are configured, webhook signatures are off.
    Tests that need a different configuration set env vars and call
    get_settings.cache_clear().
    """
    from atelie.config import get_settings

    for var in MANAGED_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("SUPABASE_JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("MERCADOPAGO_ACCESS_TOKEN", TEST_ACCESS_TOKEN)

    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def db_engine():
    """SQLite in-memory engine with every table created."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Import and create all tables
    from atelie.db_base import Base
    import atelie.models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    """Database session for one test. Commits are real; the schema is discarded."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()


# =============================================================================
# Data helpers
# =============================================================================

def _unique_user_id() -> str:
    return f"user-{uuid.uuid4().hex[:12]}"


@pytest.fixture
def make_profile(db_session):
    """Factory: persist a profile, and a subscription for ceramistas."""
    from atelie.models.profile import Profile, ProfileRole
    from atelie.models.subscription import Subscription, SubscriptionStatus

    def _make_profile(
        email: str,
        role: ProfileRole = ProfileRole.CERAMISTA,
        user_id: Optional[str] = None,
        subscription_status: Optional[SubscriptionStatus] = SubscriptionStatus.PENDING,
        external_reference: Optional[str] = None,
        current_period_end: Optional[datetime] = None,
        display_name: str = "Ateliê Teste",
    ) -> Profile:
        profile = Profile(
            id=user_id or _unique_user_id(),
            email=email.lower(),
            display_name=display_name,
            role=role.value,
        )
        db_session.add(profile)
        if role == ProfileRole.CERAMISTA and subscription_status is not None:
            db_session.add(Subscription(
                user_id=profile.id,
                status=subscription_status.value,
                plan_id="premium",
                external_reference=external_reference,
                current_period_end=current_period_end,
            ))
        db_session.commit()
        return profile

    return _make_profile


def _payment(
    payment_id: str = "123456789",
    status: str = "approved",
    payer_email: Optional[str] = "ana@example.com",
):
    from atelie.integrations.mercadopago.client import MercadoPagoPayment

    return MercadoPagoPayment(
        id=payment_id,
        status=status,
        payer_email=payer_email,
        status_detail="accredited" if status == "approved" else None,
    )


@pytest.fixture
def make_payment():
    """Factory: MercadoPagoPayment as returned by the client."""
    return _payment


@pytest.fixture
def payment_client():
    """Stand-in for MercadoPagoClient; configure get_payment per test."""
    client = MagicMock()
    client.get_payment = AsyncMock(return_value=_payment())
    client.create_preference = AsyncMock()
    client.close = AsyncMock()
    return client


# =============================================================================
# Auth helpers
# =============================================================================

def _session_token(
    user_id: str,
    email: Optional[str] = None,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
    **extra_claims,
) -> str:
    """Create an HS256 session token shaped like the auth backend's."""
    now = int(time.time())
    payload = {
        "sub": user_id,
        "aud": audience,
        "iat": now,
        "exp": now + expires_in,
        "role": "authenticated",
        "session_id": f"sess-{uuid.uuid4().hex[:8]}",
        **extra_claims,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def _auth_headers(user_id: str, email: Optional[str] = None) -> dict:
    return {"Authorization": f"Bearer {_session_token(user_id, email)}"}


# =============================================================================
# API client
# =============================================================================

@pytest.fixture
def client(db_session, payment_client):
    """TestClient with database and Mercado Pago dependencies overridden."""
    from fastapi.testclient import TestClient

    from main import app
    from atelie.api.dependencies.payments import get_payment_client
    from atelie.database.session import get_db_session

    def override_db_session():
        yield db_session

    def override_payment_client():
        return payment_client

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_payment_client] = override_payment_client

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_session_token():
    """Factory: signed session token (see _session_token for claims)."""
    return _session_token


@pytest.fixture
def auth_headers():
    """Factory: Authorization header for a user id and optional email."""
    return _auth_headers
