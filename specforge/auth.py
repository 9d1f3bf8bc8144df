"""
Route-level authorization helpers.

The JWT middleware has already resolved ``g.current_user`` for every
/api/v1 request; these helpers read it and add the email-verification gate
used on mutating routes.
"""

import functools

from flask import g

from specforge.services.access_resolver import CurrentUser
from specforge.utils.errors import E, api_error


def current_user() -> CurrentUser:
    user = getattr(g, "current_user", None)
    if user is None:
        # Only reachable if a route is mounted outside the JWT-protected prefix.
        raise RuntimeError("No authenticated user on this request")
    return user


def require_verified_email(fn):
    """Reject callers whose email is not verified (403)."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        user = getattr(g, "current_user", None)
        if user is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        if not user.is_email_verified:
            return api_error(E.EMAIL_NOT_VERIFIED, "Email verification required")
        return fn(*args, **kwargs)

    return wrapper
