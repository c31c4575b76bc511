"""Utilities for reading caller identity from JWTs and generating random tokens."""

from __future__ import annotations

import secrets
import string
import time
from typing import Any

import jwt

from ..config import get_settings
from ..domain.contracts import CallerContext

TOKEN_ALPHABET = string.ascii_letters + string.digits


def issue_access_token(
    *, subject: str | None, role: str = "authenticated", email: str | None = None
) -> tuple[str, int]:
    """Create a signed JWT shaped like the ones the identity provider hands out.

    Parameters
    ----------
    subject:
        User identifier embedded in the ``sub`` claim; omitted for service tokens.
    role:
        ``authenticated`` for end users or the configured service role name.
    email:
        Optional email claim.

    Returns
    -------
    tuple[str, int]
        The encoded JWT string and its TTL in seconds.
    """

    settings = get_settings()
    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "role": role,
        "iat": now,
        "exp": now + expires_in,
    }
    if subject is not None:
        payload["sub"] = subject
    if email is not None:
        payload["email"] = email

    token = jwt.encode(payload, settings.jwt_secret, algorithm="HS256")
    return token, expires_in


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Service-role tokens may omit ``aud``; every other token must carry the
    configured audience.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is invalid, expired, signed by another issuer
        or addressed to another audience.
    """

    settings = get_settings()
    claims = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=["HS256"],
        issuer=settings.jwt_issuer or None,
        options={"verify_aud": False},
    )
    if claims.get("role") != settings.service_role_name and claims.get("aud") != settings.jwt_audience:
        raise jwt.InvalidAudienceError("token audience not accepted")
    return claims


def caller_from_claims(claims: dict[str, Any]) -> CallerContext:
    """Build the caller context carried by decoded JWT claims."""
    settings = get_settings()
    return CallerContext(
        user_id=claims.get("sub"),
        privileged=claims.get("role") == settings.service_role_name,
    )


def generate_token(length: int | None = None) -> str:
    """Return a random string of ``length`` characters drawn uniformly from 62 alphanumerics."""
    if length is None:
        length = get_settings().invite_token_length
    if length < 0:
        raise ValueError("token length must be non-negative")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))
