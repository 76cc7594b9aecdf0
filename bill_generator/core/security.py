"""
Password hashing and session tokens.

Passwords are hashed with bcrypt directly. Sessions are stateless HS256 JWTs
bound to a restaurant id; there is no revocation list, so a token stays valid
until it expires even after logout.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import bcrypt
import jwt
from fastapi import Header, Request

from bill_generator.core.config import get_settings
from bill_generator.core.exceptions import Unauthorized

logger = logging.getLogger(__name__)


# =============================================================================
# PASSWORDS
# =============================================================================

# bcrypt only looks at the first 72 bytes and rejects longer input
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Returns:
        Hashed password string (includes salt and algorithm info), e.g. $2b$12$...
    """
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its bcrypt hash.

    bcrypt.checkpw compares digests in constant time.
    """
    if not hashed_password.startswith(("$2a$", "$2b$", "$2y$")):
        logger.warning("Stored password is not a bcrypt hash, rejecting")
        return False
    if len(plain_password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        return False
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


# =============================================================================
# SESSION TOKENS
# =============================================================================

@dataclass(frozen=True)
class RequestContext:
    """
    Identity of the caller, resolved once per request and passed explicitly
    to every handler that needs it.
    """
    restaurant_id: int
    expires_at: datetime


def create_session_token(restaurant_id: int, ttl_seconds: Optional[int] = None) -> str:
    """
    Sign a session token for a restaurant.

    Args:
        restaurant_id: Subject of the token
        ttl_seconds: Lifetime, defaults to SESSION_TTL_DAYS

    Returns:
        Encoded JWT
    """
    settings = get_settings()
    if ttl_seconds is None:
        ttl_seconds = settings.session_ttl_seconds

    now = int(time.time())
    payload = {
        "sub": str(restaurant_id),
        "iat": now,
        "exp": now + ttl_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_session_token(token: str) -> RequestContext:
    """
    Verify a session token and return the caller's context.

    Raises:
        Unauthorized: If the token is malformed, tampered with or expired
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
        restaurant_id = int(payload["sub"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token has expired")
    except (jwt.InvalidTokenError, ValueError) as e:
        logger.warning(f"Session token rejected: {e}")
        raise Unauthorized("Invalid token")

    return RequestContext(
        restaurant_id=restaurant_id,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


def extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    """Session cookie first, then an `Authorization: Bearer` header."""
    token = request.cookies.get(get_settings().session_cookie_name)
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):].strip()
    return token or None


async def get_request_context(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> RequestContext:
    """
    FastAPI dependency resolving the authenticated restaurant.

    Raises:
        Unauthorized: No token supplied, or the token does not verify
    """
    token = extract_token(request, authorization)
    if token is None:
        raise Unauthorized("Unauthorized")
    return decode_session_token(token)
