"""
Report blueprint — drafts, field patches, status changes and corrections.

Endpoints:
    POST   /api/v1/reports                                   — create draft
    GET    /api/v1/reports                                   — list (scoped to caller)
    GET    /api/v1/reports/<id>                              — detail incl. corrections
    PATCH  /api/v1/reports/<id>                              — field patch
    PATCH  /api/v1/reports/<id>/status                       — status change
    PATCH  /api/v1/reports/<id>/status/override              — admin override
    GET    /api/v1/reports/<id>/transitions                  — allowed targets
    POST   /api/v1/reports/<id>/corrections                  — request corrections
    GET    /api/v1/reports/<id>/corrections                  — list (?status=OPEN)
    PATCH  /api/v1/reports/<id>/corrections/<cid>            — resolve one item
    POST   /api/v1/reports/<id>/corrections/resolve-field    — resolve a field

Every mutation carries ``expectedVersion``; a stale one answers 409.
"""

import logging

from flask import Blueprint, jsonify, request

from labflow.blueprints import change_reason, esign_password, expected_version, json_body
from labflow.middleware.identity import current_actor
from labflow.services.correction_service import CorrectionTracker
from labflow.services.report_service import ReportService
from labflow.services.transition_service import TransitionExecutor
from labflow.utils.helpers import clean_text, pick

logger = logging.getLogger(__name__)

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1")


# ═════════════════════════════════════════════════════════════════════════════
# Reports
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports", methods=["POST"])
def create_report():
    actor = current_actor()
    report = ReportService().create_draft(actor, json_body())
    return jsonify(report.to_dict()), 201


@report_bp.route("/reports", methods=["GET"])
def list_reports():
    """
    Query params:
        formType / form_type — MICRO_MIX, MICRO_MIX_WATER, CHEMISTRY_MIX, COA
        status               — exact status value
        clientCode           — ignored for CLIENT callers
    """
    actor = current_actor()
    args = request.args
    reports = ReportService().list_reports(
        actor,
        form_type=pick(args, "formType", "form_type"),
        status=args.get("status"),
        client_code=pick(args, "clientCode", "client_code"),
    )
    return jsonify({"items": [r.to_dict() for r in reports], "total": len(reports)})


@report_bp.route("/reports/<report_id>", methods=["GET"])
def get_report(report_id):
    report = ReportService().get_report(report_id, current_actor())
    return jsonify(report.to_dict(include_corrections=True))


@report_bp.route("/reports/<report_id>", methods=["PATCH"])
def patch_report(report_id):
    actor = current_actor()
    data = json_body()
    version = expected_version(data)
    patch = data.get("fields") if isinstance(data.get("fields"), dict) else data
    report, result = ReportService().patch_fields(
        report_id, actor, patch, version, reason=change_reason(data),
    )
    return jsonify({
        **report.to_dict(),
        "applied_fields": sorted(result.applied),
        "dropped_fields": sorted(result.dropped),
    })


# ═════════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports/<report_id>/status", methods=["PATCH"])
def change_status(report_id):
    actor = current_actor()
    data = json_body()
    version = expected_version(data)
    report = TransitionExecutor().request_status_change(
        report_id, actor,
        pick(data, "targetStatus", "target_status", "status"),
        version,
        reason=change_reason(data),
        esign_password=esign_password(data),
    )
    return jsonify(report.to_dict())


@report_bp.route("/reports/<report_id>/status/override", methods=["PATCH"])
def override_status(report_id):
    actor = current_actor()
    data = json_body()
    version = expected_version(data)
    report = TransitionExecutor().override_status(
        report_id, actor,
        pick(data, "targetStatus", "target_status", "status"),
        version,
        reason=change_reason(data),
        esign_password=esign_password(data),
    )
    return jsonify(report.to_dict())


@report_bp.route("/reports/<report_id>/transitions", methods=["GET"])
def list_transitions(report_id):
    targets = TransitionExecutor().allowed_targets(report_id, current_actor())
    return jsonify({"items": targets})


# ═════════════════════════════════════════════════════════════════════════════
# Corrections
# ═════════════════════════════════════════════════════════════════════════════

@report_bp.route("/reports/<report_id>/corrections", methods=["POST"])
def create_corrections(report_id):
    actor = current_actor()
    data = json_body()
    version = expected_version(data)
    report, items = CorrectionTracker().create_corrections(
        report_id, actor,
        pick(data, "targetStatus", "target_status"),
        data.get("items"),
        version,
        reason=change_reason(data),
    )
    return jsonify({
        "report": report.to_dict(),
        "corrections": [c.to_dict() for c in items],
    }), 201


@report_bp.route("/reports/<report_id>/corrections", methods=["GET"])
def list_corrections(report_id):
    items = CorrectionTracker().list_corrections(report_id, current_actor(), status=request.args.get("status"))
    return jsonify({"items": [c.to_dict() for c in items], "total": len(items)})


@report_bp.route("/reports/<report_id>/corrections/<correction_id>", methods=["PATCH"])
def resolve_correction(report_id, correction_id):
    actor = current_actor()
    data = json_body()
    item = CorrectionTracker().resolve_correction(
        report_id, correction_id, actor,
        resolution_note=clean_text(pick(data, "resolutionNote", "resolution_note")),
    )
    return jsonify(item.to_dict())


@report_bp.route("/reports/<report_id>/corrections/resolve-field", methods=["POST"])
def resolve_field(report_id):
    actor = current_actor()
    data = json_body()
    items = CorrectionTracker().resolve_field(
        report_id,
        pick(data, "fieldKey", "field_key"),
        actor,
        resolution_note=clean_text(pick(data, "resolutionNote", "resolution_note")),
    )
    return jsonify({"items": [c.to_dict() for c in items], "resolved": len(items)})
