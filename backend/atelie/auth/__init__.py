"""
Authentication module for session tokens issued by the hosted auth backend.

SECURITY NOTES:
- The auth backend is the ONLY authentication authority
- NO tokens are issued by this application
- Every request re-verifies its token; nothing is cached client-side
"""

from atelie.auth.session_token import (
    SessionIdentity,
    SessionTokenVerifier,
    get_current_identity,
    get_session_token_verifier,
)

__all__ = [
    "SessionIdentity",
    "SessionTokenVerifier",
    "get_current_identity",
    "get_session_token_verifier",
]
