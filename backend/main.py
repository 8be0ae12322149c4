"""
FastAPI application entry point for the Ateliê marketplace API.

Ceramista subscriptions are activated by the Mercado Pago webhook; every
other route authenticates with the hosted auth backend's session token.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from atelie.api.routes import health
from atelie.api.routes import webhooks_mercadopago
from atelie.api.routes import session
from atelie.api.routes import profiles
from atelie.api.routes import subscription
from atelie.api.routes import pieces
from atelie.api.routes import dashboard
from atelie.config import get_settings

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting Ateliê API")
    settings = get_settings()

    app.state.auth_configured = settings.auth_configured
    if not settings.auth_configured:
        logger.warning(
            "Session token verification not configured (missing SUPABASE_JWT_SECRET). "
            "Authenticated endpoints will return 503."
        )

    if not settings.mercadopago_configured:
        logger.warning(
            "Mercado Pago not configured (missing MERCADOPAGO_ACCESS_TOKEN). "
            "Webhook reconciliation and checkout will return 503."
        )

    if not settings.webhook_signature_enabled:
        logger.warning(
            "MERCADOPAGO_WEBHOOK_SECRET not set, webhook signatures will not be verified"
        )

    if not settings.database_url:
        logger.error("DATABASE_URL is not set. Database-backed endpoints will return 503.")
        app.state.database_configured = False
    else:
        # Mask credentials for safe logging
        masked = settings.database_url.split("@")[-1]
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        app.state.database_configured = True

    yield

    logger.info("Shutting down Ateliê API")


app = FastAPI(
    title="Ateliê API",
    description="Ceramics marketplace: catalog, ceramista subscriptions and Mercado Pago reconciliation",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include health route (bypasses authentication)
app.include_router(health.router)

# Include Mercado Pago webhook routes (optional signature check, not session token)
app.include_router(webhooks_mercadopago.router)

# Include session routes (requires authentication)
app.include_router(session.router)

# Include profile routes (signup requires authentication, ceramista pages are public)
app.include_router(profiles.router)

# Include subscription routes (requires ceramista)
app.include_router(subscription.router)

# Include catalog routes (listing is public, writes require an active subscription)
app.include_router(pieces.router)

# Include dashboard summary (requires an active subscription)
app.include_router(dashboard.router)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "user_id": getattr(request.state, "user_id", "unknown"),
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred"
        }
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development"
    )
