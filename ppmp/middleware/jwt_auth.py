"""
JWT auth middleware: reads the bearer token and sets g.jwt_*.

    Authorization: Bearer <token>  →  g.jwt_user_id, g.jwt_role

The hook never rejects a request by itself. Protected views call
``current_actor()``, which raises AuthenticationError (401) when no valid
token was presented and records why on ``g.jwt_error``.
"""

import jwt as pyjwt
from flask import g, request

from ppmp.core.exceptions import AuthenticationError
from ppmp.services.auth_service import load_actor
from ppmp.services.jwt_service import decode_access_token


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.jwt_user_id = None
        g.jwt_role = None
        g.jwt_error = None
        g.actor = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            g.jwt_error = "Missing bearer token"
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
            g.jwt_user_id = payload.get("sub")
            g.jwt_role = payload.get("role")
        except pyjwt.ExpiredSignatureError:
            g.jwt_error = "Token expired"
        except pyjwt.InvalidTokenError:
            g.jwt_error = "Invalid token"


def current_actor():
    """The authenticated Actor for this request, cached on ``g``."""
    actor = getattr(g, "actor", None)
    if actor is not None:
        return actor
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise AuthenticationError(getattr(g, "jwt_error", None) or "Authentication required")
    g.actor = load_actor(user_id)
    return g.actor
