"""
Mercado Pago client dependency.
"""

import logging
from typing import AsyncGenerator

from fastapi import HTTPException, status

from atelie.integrations.mercadopago.client import MercadoPagoClient, get_mercadopago_client

logger = logging.getLogger(__name__)


async def get_payment_client() -> AsyncGenerator[MercadoPagoClient, None]:
    """
    Yield a MercadoPagoClient for the request and close it afterwards.

    Raises 503 if MERCADOPAGO_ACCESS_TOKEN is not configured.
    """
    try:
        client = get_mercadopago_client()
    except ValueError:
        logger.error("MERCADOPAGO_ACCESS_TOKEN not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment processor not configured",
        )
    try:
        yield client
    finally:
        await client.close()
