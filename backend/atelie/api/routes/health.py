"""
Health check route. No authentication.
"""

from fastapi import APIRouter

from atelie.config import get_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    settings = get_settings()
    return {
        "status": "ok",
        "env": settings.env,
        "database_configured": bool(settings.database_url),
        "auth_configured": settings.auth_configured,
        "mercadopago_configured": settings.mercadopago_configured,
        "webhook_signature_enabled": settings.webhook_signature_enabled,
    }
