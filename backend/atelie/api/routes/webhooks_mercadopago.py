"""
Mercado Pago webhook endpoint for payment notifications.

Mercado Pago retries any non-2xx response, so the status code decides
whether a notification is redelivered:
- 200: acknowledged (applied, ignored, or unknown payer flagged for review)
- 400/404: permanent for this notification
- 500: transient, redeliver

SECURITY: When MERCADOPAGO_WEBHOOK_SECRET is set, the x-signature header is
verified before any processing.

Documentation: https://www.mercadopago.com.br/developers/en/docs/your-integrations/notifications/webhooks
"""

import hashlib
import hmac
import json
import logging
from typing import Optional, Any

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from atelie.api.dependencies.payments import get_payment_client
from atelie.config import get_settings
from atelie.database.session import get_db_session
from atelie.integrations.mercadopago.client import MercadoPagoClient
from atelie.services.payment_webhook_handler import PaymentWebhookHandler, extract_payment_id
from atelie.services.reconciliation_errors import ReconciliationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _parse_signature_header(x_signature: str) -> dict:
    """Parse 'ts=<ts>,v1=<hash>' into a dict."""
    parts = {}
    for part in x_signature.split(","):
        key, sep, value = part.partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_mercadopago_signature(
    x_signature: Optional[str],
    x_request_id: Optional[str],
    data_id: Optional[str],
    webhook_secret: str,
) -> bool:
    """
    Verify a Mercado Pago webhook signature.

    The signed manifest is "id:<data.id>;request-id:<x-request-id>;ts:<ts>;"
    with absent parts omitted, HMAC-SHA256 with the webhook secret, hex.

    Args:
        x_signature: x-signature header ("ts=...,v1=...")
        x_request_id: x-request-id header
        data_id: Payment id from the notification
        webhook_secret: Secret from the Mercado Pago dashboard

    Returns:
        True if signature is valid, False otherwise
    """
    if not x_signature or not webhook_secret:
        return False

    parts = _parse_signature_header(x_signature)
    ts = parts.get("ts")
    expected = parts.get("v1")
    if not ts or not expected:
        return False

    manifest = ""
    if data_id:
        manifest += f"id:{data_id.lower()};"
    if x_request_id:
        manifest += f"request-id:{x_request_id};"
    manifest += f"ts:{ts};"

    computed = hmac.new(
        webhook_secret.encode("utf-8"),
        manifest.encode("utf-8"),
        hashlib.sha256
    ).hexdigest()

    # Constant-time comparison to prevent timing attacks
    return hmac.compare_digest(computed, expected)


def _merge_query_id(payload: Any, request: Request) -> Any:
    """Fall back to ?data.id= / ?id= when the body carries no id."""
    if not isinstance(payload, dict) or extract_payment_id(payload):
        return payload
    query_id = request.query_params.get("data.id") or request.query_params.get("id")
    if query_id:
        return {**payload, "data": {"id": query_id}}
    return payload


@router.post("/mercadopago")
async def handle_mercadopago_webhook(
    request: Request,
    db_session: Session = Depends(get_db_session),
    payment_client: MercadoPagoClient = Depends(get_payment_client),
    x_signature: Optional[str] = Header(None, alias="x-signature"),
    x_request_id: Optional[str] = Header(None, alias="x-request-id"),
):
    """
    Handle a Mercado Pago payment notification.

    Accepts {"data": {"id": ...}} or {"id": ...}. The payment itself is
    re-fetched from Mercado Pago; nothing else in the body is trusted.
    """
    body = await request.body()
    try:
        payload = json.loads(body) if body else {}
    except json.JSONDecodeError:
        logger.warning("Invalid JSON in Mercado Pago webhook body")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid JSON body", "code": "invalid_payload"},
        )

    payload = _merge_query_id(payload, request)
    payment_id = extract_payment_id(payload)

    logger.info("Mercado Pago webhook received", extra={
        "payment_id": payment_id,
        "type": payload.get("type") if isinstance(payload, dict) else None,
        "request_id": x_request_id,
    })

    settings = get_settings()
    if settings.webhook_signature_enabled:
        if not verify_mercadopago_signature(
            x_signature, x_request_id, payment_id, settings.mercadopago_webhook_secret
        ):
            logger.warning("Invalid Mercado Pago webhook signature", extra={
                "payment_id": payment_id,
                "request_id": x_request_id,
            })
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": "Invalid signature", "code": "invalid_signature"},
            )
    else:
        logger.warning("MERCADOPAGO_WEBHOOK_SECRET not set, signature not verified")

    handler = PaymentWebhookHandler(db_session, payment_client, settings=settings)

    try:
        result = await handler.handle_notification(payload)
    except ReconciliationError as e:
        log = logger.warning if e.retryable else logger.info
        log("Payment notification not applied", extra={
            "payment_id": e.payment_id or payment_id,
            "code": e.error_code,
            "retryable": e.retryable,
        })
        return JSONResponse(status_code=e.http_status, content=e.to_dict())
    except Exception as e:
        # Anything unexpected must be redelivered, never dropped
        logger.error("Unexpected error processing Mercado Pago webhook", extra={
            "payment_id": payment_id,
            "error": str(e),
            "error_type": type(e).__name__,
        }, exc_info=True)
        db_session.rollback()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Server error"},
        )

    logger.info("Payment notification processed", extra={
        "payment_id": result.payment_id,
        "outcome": result.outcome.value,
        "user_id": result.user_id,
    })

    return JSONResponse(status_code=status.HTTP_200_OK, content=result.to_response())
