"""
Bearer-token capability check.

Account registration and login live outside this service; all it needs is
to turn an ``Authorization: Bearer <token>`` header into an ``Actor``.

Token format (HMAC-SHA256 over the encoded claims, keyed by SECRET_KEY):

    base64url(json({"sub": user_id, "role": role, "exp": unix_ts})) "." hex_signature

``issue_token`` exists for operators, the dev console and tests.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from backend.app.core.config import settings
from backend.app.core.errors import UnauthenticatedError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER      = "user"
    RESPONDER = "responder"
    ADMIN     = "admin"


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a mutation."""
    id: str
    role: Role = Role.USER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _sign(encoded_claims: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), encoded_claims.encode("utf-8"), hashlib.sha256,
    ).hexdigest()


def issue_token(
    user_id: str,
    role: Role = Role.USER,
    *,
    ttl_seconds: Optional[int] = None,
    secret: Optional[str] = None,
) -> str:
    """Mint a signed bearer token for ``user_id``."""
    ttl = settings.TOKEN_TTL_SECONDS if ttl_seconds is None else ttl_seconds
    claims = {
        "sub": user_id,
        "role": Role(role).value,
        "exp": int(time.time()) + ttl,
    }
    encoded = _b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
    return f"{encoded}.{_sign(encoded, secret or settings.SECRET_KEY)}"


def verify_token(token: Optional[str], *, secret: Optional[str] = None) -> Actor:
    """
    Validate a bearer token and return its actor.

    Raises
    ------
    UnauthenticatedError
        Missing, malformed, badly signed or expired token.
    """
    if not token:
        raise UnauthenticatedError()

    try:
        encoded, signature = token.split(".", 1)
    except ValueError:
        raise UnauthenticatedError("Not authorized, malformed token")

    expected = _sign(encoded, secret or settings.SECRET_KEY)
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        logger.warning("Rejected bearer token with bad signature")
        raise UnauthenticatedError("Not authorized, token failed")

    try:
        claims = json.loads(_b64decode(encoded))
        user_id = str(claims["sub"])
        role = Role(claims.get("role", Role.USER.value))
        expires_at = int(claims["exp"])
    except (KeyError, TypeError, ValueError):
        raise UnauthenticatedError("Not authorized, malformed token")

    if expires_at < time.time():
        raise UnauthenticatedError("Not authorized, token expired")

    return Actor(id=user_id, role=role)


def parse_authorization_header(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer ...`` header value."""
    if not header:
        return None
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()
