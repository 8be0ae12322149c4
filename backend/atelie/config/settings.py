"""
Runtime configuration loaded from environment variables.

All settings are read once per process and cached. Tests that change the
environment must call get_settings.cache_clear().
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional


DEFAULT_MERCADOPAGO_API_BASE = "https://api.mercadopago.com"


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    # Render/Supabase hand out postgres:// URLs, SQLAlchemy requires postgresql://
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


@dataclass(frozen=True)
class Settings:
    """Immutable view of the service configuration."""

    env: str
    database_url: Optional[str]

    # Mercado Pago
    mercadopago_access_token: Optional[str]
    mercadopago_api_base: str
    mercadopago_webhook_secret: Optional[str]
    mercadopago_timeout_seconds: float
    mercadopago_notification_url: Optional[str]

    # Session tokens issued by the hosted auth backend
    supabase_jwt_secret: Optional[str]
    supabase_jwt_audience: str

    # Subscription plan
    subscription_plan_id: str
    subscription_plan_name: str
    subscription_price_cents: int
    subscription_period_days: int

    # Public web app, used for piece share links
    public_site_url: str

    cors_origins: List[str]

    @property
    def mercadopago_configured(self) -> bool:
        return bool(self.mercadopago_access_token)

    @property
    def auth_configured(self) -> bool:
        return bool(self.supabase_jwt_secret)

    @property
    def webhook_signature_enabled(self) -> bool:
        return bool(self.mercadopago_webhook_secret)


@lru_cache()
def get_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        env=os.getenv("ENV", "development"),
        database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
        mercadopago_access_token=os.getenv("MERCADOPAGO_ACCESS_TOKEN")
        or os.getenv("MERCADO_PAGO_ACCESS_TOKEN"),
        mercadopago_api_base=os.getenv(
            "MERCADOPAGO_API_BASE", DEFAULT_MERCADOPAGO_API_BASE
        ).rstrip("/"),
        mercadopago_webhook_secret=os.getenv("MERCADOPAGO_WEBHOOK_SECRET"),
        mercadopago_timeout_seconds=float(os.getenv("MERCADOPAGO_TIMEOUT_SECONDS", "10")),
        mercadopago_notification_url=os.getenv("MERCADOPAGO_NOTIFICATION_URL"),
        supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET"),
        supabase_jwt_audience=os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated"),
        subscription_plan_id=os.getenv("SUBSCRIPTION_PLAN_ID", "premium"),
        subscription_plan_name=os.getenv("SUBSCRIPTION_PLAN_NAME", "Plano Ateliê"),
        subscription_price_cents=int(os.getenv("SUBSCRIPTION_PRICE_CENTS", "4990")),
        subscription_period_days=int(os.getenv("SUBSCRIPTION_PERIOD_DAYS", "30")),
        public_site_url=os.getenv("PUBLIC_SITE_URL", "http://localhost:3000").rstrip("/"),
        cors_origins=[
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ],
    )
