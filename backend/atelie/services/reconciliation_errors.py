"""
Error taxonomy for payment notification reconciliation.

Each error carries the HTTP status returned to Mercado Pago and whether a
redelivery could succeed. Mercado Pago redelivers on any non-2xx response,
so non-retryable failures use 4xx and transient ones use 500.
"""

from typing import Optional

from fastapi import status


class ReconciliationError(Exception):
    """Base exception for reconciliation errors."""

    http_status: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = True
    error_code: str = "server_error"

    def __init__(self, message: str, payment_id: Optional[str] = None):
        self.message = message
        self.payment_id = payment_id
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        body = {"error": self.message, "code": self.error_code}
        if self.payment_id:
            body["payment_id"] = self.payment_id
        return body


class InvalidPayload(ReconciliationError):
    """Notification has no payment reference id."""
    http_status = status.HTTP_400_BAD_REQUEST
    retryable = False
    error_code = "invalid_payload"


class UpstreamUnavailable(ReconciliationError):
    """Mercado Pago could not be queried; redelivery should succeed later."""
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True
    error_code = "upstream_unavailable"


class PaymentNotFound(ReconciliationError):
    """Mercado Pago has no usable record for the payment id."""
    http_status = status.HTTP_404_NOT_FOUND
    retryable = False
    error_code = "payment_not_found"


class MissingPayerEmail(ReconciliationError):
    """Approved payment without payer email. Needs manual review."""
    http_status = status.HTTP_400_BAD_REQUEST
    retryable = False
    error_code = "missing_payer_email"


class ProfileNotFound(ReconciliationError):
    """
    Payer email matches no profile.

    Acknowledged with a warning: redelivery cannot create the profile.
    """
    http_status = status.HTTP_200_OK
    retryable = False
    error_code = "profile_not_found"


class PersistenceFailure(ReconciliationError):
    """The entitlement write did not commit."""
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable = True
    error_code = "persistence_failure"
