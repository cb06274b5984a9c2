"""Standardised API error responses.

Usage
-----
    from labflow.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Report not found")
    return api_error(E.VALIDATION_REQUIRED, "expectedVersion is required")

``init_error_handlers(app)`` maps the service exception hierarchy in
``labflow.core.exceptions`` onto these responses once for every blueprint.
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from labflow.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants."""

    # Validation – HTTP 400 / 422
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Authentication – HTTP 401
    AUTHENTICATION = "ERR_AUTHENTICATION"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_VERSION = "ERR_CONFLICT_VERSION"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.AUTHENTICATION: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_VERSION: 409,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (field errors, version numbers, ...).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


# ── Exception → response mapping ──────────────────────────────────────

def init_error_handlers(app):
    """Register one handler per service exception type."""
    from labflow.models import db

    def _rollback():
        db.session.rollback()

    @app.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        _rollback()
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @app.errorhandler(AuthenticationError)
    def _handle_authentication(error: AuthenticationError):
        _rollback()
        logger.info("Authentication failed: %s", error, extra={"path": request.path})
        return api_error(E.AUTHENTICATION, str(error) or "Authentication required")

    @app.errorhandler(ForbiddenError)
    def _handle_forbidden(error: ForbiddenError):
        _rollback()
        logger.info(
            "Forbidden: %s", error,
            extra={"path": request.path, "role": error.role, "report_status": error.status},
        )
        return api_error(E.FORBIDDEN, str(error))

    @app.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        _rollback()
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @app.errorhandler(VersionConflictError)
    def _handle_version_conflict(error: VersionConflictError):
        _rollback()
        return api_error(
            E.CONFLICT_VERSION,
            "Report was modified by someone else; reload and retry",
            details={
                "expected_version": error.expected_version,
                "current_version": error.current_version,
            },
        )

    @app.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        _rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @app.errorhandler(404)
    def _handle_404(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def _handle_405(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def _handle_rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def _handle_server_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("Unhandled error on %s %s", request.method, request.path, exc_info=original)
        _rollback()
        return api_error(E.INTERNAL, "Internal server error")
