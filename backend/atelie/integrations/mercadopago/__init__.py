"""
Mercado Pago integration module.
"""

from atelie.integrations.mercadopago.client import (
    MercadoPagoClient,
    MercadoPagoPayment,
    MercadoPagoAPIError,
    CheckoutPreference,
    get_mercadopago_client,
)

__all__ = [
    "MercadoPagoClient",
    "MercadoPagoPayment",
    "MercadoPagoAPIError",
    "CheckoutPreference",
    "get_mercadopago_client",
]
