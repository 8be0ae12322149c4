"""
Session token authentication.

Clients send the access token issued by the hosted auth backend (Supabase)
as a Bearer token. Tokens are HS256 JWTs signed with the project's JWT
secret and are verified on every request; no client-held user object is
ever trusted for role or plan.

Claims used:
- sub: user id (profile id)
- email: account email
- session_id: auth session (optional)
- exp: expiration (enforced)
- aud: "authenticated"
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import jwt
from fastapi import Request, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from atelie.config import Settings, get_settings

logger = logging.getLogger(__name__)

# Security scheme for extracting Bearer token
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class SessionIdentity:
    """Identity extracted from a verified session token."""
    user_id: str
    email: Optional[str]
    session_id: Optional[str]
    expires_at: datetime


class SessionTokenVerifier:
    """
    Verifies session tokens (JWTs) issued by the auth backend.

    Tokens are signed with HS256 using the shared JWT secret.
    """

    def __init__(self, jwt_secret: str, audience: str = "authenticated"):
        if not jwt_secret:
            raise ValueError("SUPABASE_JWT_SECRET environment variable is required")
        self.jwt_secret = jwt_secret
        self.audience = audience

    def verify_session_token(self, token: str) -> SessionIdentity:
        """
        Verify a session token and extract the identity.

        Args:
            token: Bearer token from the Authorization header

        Returns:
            SessionIdentity

        Raises:
            HTTPException: 401 if the token is invalid, expired or malformed
        """
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=["HS256"],
                audience=self.audience,
                options={
                    "verify_signature": True,
                    "verify_aud": True,
                    "verify_exp": True,
                    "require": ["sub", "exp"],
                }
            )
        except jwt.ExpiredSignatureError:
            logger.warning("Session token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token has expired"
            )
        except jwt.InvalidAudienceError:
            logger.warning("Session token invalid audience", extra={
                "expected": self.audience
            })
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token has invalid audience"
            )
        except jwt.InvalidSignatureError:
            logger.warning("Session token invalid signature")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token signature is invalid"
            )
        except jwt.InvalidTokenError as e:
            logger.warning("Session token rejected", extra={"error": str(e)})
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token is malformed"
            )

        user_id = payload.get("sub")
        if not user_id:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Session token missing 'sub' claim"
            )

        return SessionIdentity(
            user_id=str(user_id),
            email=payload.get("email"),
            session_id=payload.get("session_id"),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )


def get_session_token_verifier(settings: Optional[Settings] = None) -> SessionTokenVerifier:
    """
    Build a verifier from settings.

    Raises:
        HTTPException: 503 if the JWT secret is not configured
    """
    settings = settings or get_settings()
    if not settings.auth_configured:
        logger.error("SUPABASE_JWT_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication not configured"
        )
    return SessionTokenVerifier(settings.supabase_jwt_secret, settings.supabase_jwt_audience)


async def get_current_identity(request: Request) -> SessionIdentity:
    """
    FastAPI dependency to extract and verify the session token.

    Usage:
        @router.get("/api/profiles/me")
        async def me(identity: SessionIdentity = Depends(get_current_identity)):
            ...

    Raises:
        HTTPException: If token is missing or invalid
    """
    credentials: Optional[HTTPAuthorizationCredentials] = await security(request)

    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization token"
        )

    verifier = get_session_token_verifier()
    identity = verifier.verify_session_token(credentials.credentials)
    request.state.user_id = identity.user_id
    return identity
