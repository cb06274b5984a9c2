"""
Audit trail blueprint — read-only access to ``audit_trail``.

Endpoints:
    GET  /api/v1/audit                         — paginated, filtered listing
    GET  /api/v1/audit/<entity>/<entity_id>    — full trail of one entity, oldest first
    GET  /api/v1/audit/export                  — same filters, CSV download

Readable by ADMIN, SYSTEMADMIN and QA only.
"""

from datetime import datetime, timezone

from flask import Blueprint, Response, jsonify, request

from labflow.blueprints import int_arg
from labflow.core.exceptions import ForbiddenError
from labflow.middleware.identity import current_actor
from labflow.models.workflow import Role
from labflow.services import audit_service

audit_bp = Blueprint("audit", __name__, url_prefix="/api/v1")

AUDIT_READERS = frozenset({Role.ADMIN, Role.SYSTEMADMIN, Role.QA})
FILTER_KEYS = ("entity", "entity_id", "user_id", "action", "from", "to", "order")


def _require_reader():
    actor = current_actor()
    if actor.role not in AUDIT_READERS:
        raise ForbiddenError(f"Role {actor.role.value} cannot read the audit trail", role=actor.role.value)
    return actor


def _filters() -> dict:
    args = request.args
    filters = {key: args.get(key) for key in FILTER_KEYS if args.get(key)}
    if args.get("entityId"):
        filters["entity_id"] = args["entityId"]
    if args.get("userId"):
        filters["user_id"] = args["userId"]
    return filters


@audit_bp.route("/audit", methods=["GET"])
def list_audit_logs():
    """
    Query params:
        entity, entity_id, user_id, action, from, to, order
        page       — page number (default 1)
        page_size  — items per page (default 20, max 100)
    """
    _require_reader()
    result = audit_service.list_paged(
        _filters(),
        page=int_arg("page", 1),
        page_size=int_arg("page_size", audit_service.DEFAULT_PAGE_SIZE),
    )
    return jsonify(result)


@audit_bp.route("/audit/export", methods=["GET"])
def export_audit_logs():
    _require_reader()
    body = audit_service.export_csv(_filters())
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="audit-{stamp}.csv"'},
    )


@audit_bp.route("/audit/<entity>/<entity_id>", methods=["GET"])
def entity_trail(entity, entity_id):
    _require_reader()
    logs = audit_service.list_for_entity(entity, entity_id)
    return jsonify({"items": [log.to_dict() for log in logs], "total": len(logs)})
