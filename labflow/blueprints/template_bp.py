"""
Form template blueprint.

Endpoints:
    POST   /api/v1/templates                  — create
    GET    /api/v1/templates                  — list (?q, formType, clientCode, scope, take, skip, sort)
    GET    /api/v1/templates/<id>             — detail
    PATCH  /api/v1/templates/<id>             — update (expectedVersion)
    DELETE /api/v1/templates/<id>             — delete (expectedVersion in body or query)
    POST   /api/v1/templates/<id>/reports     — new draft report pre-filled from the template
"""

from flask import Blueprint, jsonify, request

from labflow.blueprints import expected_version, int_arg, json_body
from labflow.middleware.identity import current_actor
from labflow.services.template_service import TemplateService
from labflow.utils.helpers import pick

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1")


@template_bp.route("/templates", methods=["POST"])
def create_template():
    tpl = TemplateService().create(current_actor(), json_body())
    return jsonify(tpl.to_dict()), 201


@template_bp.route("/templates", methods=["GET"])
def list_templates():
    actor = current_actor()
    args = request.args
    result = TemplateService().list_templates(
        actor,
        q=args.get("q"),
        form_type=pick(args, "formType", "form_type"),
        client_code=pick(args, "clientCode", "client_code"),
        scope=args.get("scope", "ALL"),
        take=int_arg("take"),
        skip=int_arg("skip"),
        sort=args.get("sort", "NEWEST"),
    )
    return jsonify(result)


@template_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(TemplateService().get(current_actor(), template_id).to_dict())


@template_bp.route("/templates/<int:template_id>", methods=["PATCH"])
def update_template(template_id):
    actor = current_actor()
    data = json_body()
    tpl = TemplateService().update(actor, template_id, data, expected_version(data))
    return jsonify(tpl.to_dict())


@template_bp.route("/templates/<int:template_id>", methods=["DELETE"])
def delete_template(template_id):
    actor = current_actor()
    data = json_body() or dict(request.args)
    TemplateService().delete(actor, template_id, expected_version(data))
    return jsonify({"message": "Template deleted", "id": template_id})


@template_bp.route("/templates/<int:template_id>/reports", methods=["POST"])
def create_report_from_template(template_id):
    report = TemplateService().create_report_from_template(current_actor(), template_id)
    return jsonify(report.to_dict()), 201
