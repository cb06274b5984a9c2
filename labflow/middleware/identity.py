"""
Identity middleware — resolves the caller into ``g.actor``.

Identity is consumed, not issued, by this service.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  sub / role / client_code claims
  2. X-User-Id / X-User-Role / X-Client-Code headers, only when
     API_AUTH_ENABLED is false (development and tests)

Routes call ``current_actor()``, which raises AuthenticationError when no
identity could be resolved.  An invalid or expired token never falls back
to the headers.
"""

import logging

import jwt as pyjwt
from flask import current_app, g, request

from labflow.core.actor import Actor
from labflow.core.exceptions import AuthenticationError
from labflow.models.workflow import Role
from labflow.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip identity resolution entirely
SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _auth_enabled(app) -> bool:
    return str(app.config.get("API_AUTH_ENABLED", "true")).lower() in ("1", "true", "yes")


def _actor_from(user_id, role_raw, client_code) -> Actor | None:
    role = Role.parse(role_raw)
    if not user_id or role is None:
        return None
    return Actor(user_id=str(user_id), role=role, client_code=client_code or None)


def init_identity_middleware(app):
    """Register identity resolution as a before_request hook."""

    @app.before_request
    def _resolve_identity():
        g.actor = None
        g.identity_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
            try:
                payload = decode_access_token(token)
            except pyjwt.ExpiredSignatureError:
                g.identity_error = "Token expired"
                return
            except pyjwt.InvalidTokenError:
                g.identity_error = "Invalid token"
                return
            g.actor = _actor_from(payload.get("sub"), payload.get("role"), payload.get("client_code"))
            if g.actor is None:
                g.identity_error = "Token carries no usable role"
            return

        if not _auth_enabled(current_app):
            g.actor = _actor_from(
                request.headers.get("X-User-Id"),
                request.headers.get("X-User-Role"),
                request.headers.get("X-Client-Code"),
            )


def current_actor() -> Actor:
    """The authenticated caller, or AuthenticationError."""
    actor = getattr(g, "actor", None)
    if actor is None:
        raise AuthenticationError(getattr(g, "identity_error", None) or "Authentication required")
    return actor
