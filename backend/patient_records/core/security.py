"""
Bearer-token authentication against an Amazon Cognito user pool.

Tokens are verified locally with the pool's published JWKS (RS256). The
claims are never interpreted beyond the identity fields; they are attached
to ``request.state.user`` for downstream handlers.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from jwt import PyJWKClient

from .config import settings
from .errors import Unauthorized

logger = logging.getLogger(__name__)

INVALID_TOKEN = "Invalid or expired token"


@dataclass
class AuthenticatedUser:
    sub: str
    username: Optional[str] = None
    email: Optional[str] = None
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthenticatedUser":
        return cls(
            sub=claims["sub"],
            username=claims.get("username") or claims.get("cognito:username"),
            email=claims.get("email"),
            claims=dict(claims),
        )


class CognitoTokenVerifier:
    """Verify Cognito access (or id) tokens for one app client."""

    def __init__(
        self,
        user_pool_id: str,
        client_id: str,
        token_use: str = "access",
        region: Optional[str] = None,
        jwks_client=None,
    ):
        if not user_pool_id or not client_id:
            raise ValueError("COGNITO_USER_POOL_ID and COGNITO_CLIENT_ID must be set")
        region = region or user_pool_id.split("_")[0]
        self.issuer = f"https://cognito-idp.{region}.amazonaws.com/{user_pool_id}"
        self.client_id = client_id
        self.token_use = token_use
        self.jwks_client = jwks_client or PyJWKClient(
            f"{self.issuer}/.well-known/jwks.json", cache_keys=True
        )

    def verify(self, token: str) -> Dict[str, Any]:
        """Return the token's claims, or raise ``Unauthorized``."""
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            claims = jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                options={"verify_aud": False, "require": ["exp", "iss", "sub"]},
            )
        except jwt.PyJWTError as exc:
            logger.info("Token verification failed: %s", exc)
            raise Unauthorized(INVALID_TOKEN) from exc

        if claims.get("token_use") != self.token_use:
            logger.info("Token rejected: token_use=%s", claims.get("token_use"))
            raise Unauthorized(INVALID_TOKEN)

        # Access tokens name the app client in client_id, id tokens in aud
        audience = claims.get("client_id") if self.token_use == "access" else claims.get("aud")
        if audience != self.client_id:
            logger.info("Token rejected: issued for client %s", audience)
            raise Unauthorized(INVALID_TOKEN)
        return claims


_verifier: Optional[CognitoTokenVerifier] = None
_verifier_lock = threading.Lock()


def get_token_verifier() -> CognitoTokenVerifier:
    global _verifier
    if _verifier is None:
        with _verifier_lock:
            if _verifier is None:
                try:
                    _verifier = CognitoTokenVerifier(
                        settings.COGNITO_USER_POOL_ID,
                        settings.COGNITO_CLIENT_ID,
                        token_use=settings.COGNITO_TOKEN_USE,
                    )
                except ValueError as exc:
                    logger.error("Token verification unavailable: %s", exc)
                    raise Unauthorized(f"Unauthorized: {INVALID_TOKEN}") from exc
    return _verifier


def bearer_token(request: Request) -> str:
    """Extract the token from ``Authorization: Bearer <token>``."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise Unauthorized("Authorization header is missing")
    if not auth_header.startswith("Bearer "):
        raise Unauthorized("Invalid authorization header format. Expected: Bearer <token>")
    return auth_header[len("Bearer "):].strip()


def get_current_user(
    request: Request,
    token: str = Depends(bearer_token),
    verifier: CognitoTokenVerifier = Depends(get_token_verifier),
) -> AuthenticatedUser:
    """FastAPI dependency for protected routes.

    The header is checked before the verifier is resolved, so a malformed
    request is reported as such even when Cognito is not configured.
    """
    try:
        claims = verifier.verify(token)
    except Unauthorized as exc:
        raise Unauthorized(f"Unauthorized: {exc.message}") from exc

    user = AuthenticatedUser.from_claims(claims)
    request.state.user = user
    return user
