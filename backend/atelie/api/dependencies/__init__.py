"""
Shared FastAPI dependencies.
"""

from atelie.api.dependencies.guards import (
    get_guard_decision,
    require_profile,
    require_ceramista,
    require_active_subscription,
)
from atelie.api.dependencies.payments import get_payment_client

__all__ = [
    "get_guard_decision",
    "require_profile",
    "require_ceramista",
    "require_active_subscription",
    "get_payment_client",
]
