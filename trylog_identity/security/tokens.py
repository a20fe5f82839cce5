"""Utilities for issuing and validating bearer JWTs and single-use security tokens."""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from ..config import Settings, get_settings
from ..domain.account import Account

DEFAULT_ROLE = "user_default"
ALGORITHM = "HS256"


@dataclass(slots=True)
class IssuedToken:
    """Encoded bearer token together with its absolute expiry."""

    token: str
    expires_at: datetime

    @property
    def expiry_message(self) -> str:
        local = self.expires_at.astimezone()
        return f"Token will expire on: {local:%Y-%m-%d %H:%M:%S %Z}"


def issue_access_token(account: Account, settings: Settings | None = None) -> IssuedToken:
    """Create a signed JWT representing an authenticated account.

    Parameters
    ----------
    account:
        Account whose email becomes the `sub` claim.
    settings:
        Optional configuration override; defaults to the process settings.

    Returns
    -------
    IssuedToken
        The encoded JWT and the UTC instant at which it stops being valid.
    """

    settings = settings or get_settings()
    issued_at = datetime.now(timezone.utc).replace(microsecond=0)
    expires_at = issued_at + timedelta(hours=settings.jwt_hours)
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": account.email,
        "email": account.email,
        "role": DEFAULT_ROLE,
        "jti": str(uuid.uuid4()),
        "name": account.full_name,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
    }

    token = jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)
    return IssuedToken(token=token, expires_at=expires_at)


def decode_access_token(token: str, settings: Settings | None = None) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, or signed by another issuer.
    """

    settings = settings or get_settings()
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "sub", "jti"]},
    )


def generate_security_token() -> tuple[str, str]:
    """Generate a single-use token string and its SHA-256 hash."""
    token = secrets.token_urlsafe(48)
    return token, hash_security_token(token)


def hash_security_token(token: str) -> str:
    """Return the SHA-256 hex digest for a security token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
