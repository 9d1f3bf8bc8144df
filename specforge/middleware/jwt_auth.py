"""
JWT Auth Middleware — parses the Bearer token and sets ``g.current_user``.

Every /api/v1/* route requires a valid access token except the prefixes in
JWT_SKIP_PREFIXES. Missing, expired or malformed tokens are rejected with 401
before the view runs.
"""

import logging

import jwt as pyjwt
from flask import g, request

from specforge.services.jwt_service import current_user_from_claims, decode_access_token
from specforge.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/") or request.method == "OPTIONS":
            return None
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return None

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return api_error(E.UNAUTHORIZED, "Authentication required")

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            return api_error(E.UNAUTHORIZED, "Token has expired")
        except pyjwt.InvalidTokenError as exc:
            logger.info("Rejected invalid token on %s: %s", path, exc)
            return api_error(E.UNAUTHORIZED, "Invalid token")

        g.current_user = current_user_from_claims(payload)
        return None
