"""
JWT Service — access token generation and verification.

Access token:  15 minutes (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": <user_id>,
    "email": <email>,
    "system_role": "USER" | "SUPER_ADMIN",
    "email_verified": <bool>,
    "organization_id": <org_id>,        # optional
    "organization_role": <org_role>,    # optional
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from specforge.services.access_resolver import CurrentUser


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 900       # 15 minutes
ALGORITHM = "HS256"


def _get_secret():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return int(current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES))


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(
    user,
    organization_id: str | None = None,
    organization_role: str | None = None,
) -> str:
    """Generate a short-lived access token for a User row or CurrentUser."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "system_role": user.system_role,
        "email_verified": bool(user.is_email_verified),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    organization_id = organization_id or getattr(user, "organization_id", None)
    organization_role = organization_role or getattr(user, "organization_role", None)
    if organization_id is not None:
        payload["organization_id"] = organization_id
    if organization_role is not None:
        payload["organization_role"] = organization_role
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")
    if not payload.get("sub"):
        raise jwt.InvalidTokenError("Token has no subject")
    return payload


def decode_access_token(token: str) -> dict:
    return decode_token(token, expected_type="access")


def current_user_from_claims(payload: dict) -> CurrentUser:
    return CurrentUser(
        id=str(payload["sub"]),
        email=payload.get("email", ""),
        system_role=payload.get("system_role", "USER"),
        is_email_verified=bool(payload.get("email_verified", False)),
        organization_id=payload.get("organization_id"),
        organization_role=payload.get("organization_role"),
    )
