"""
Form template service — reusable field presets for new reports.

Scope rules:
  - A CLIENT sees and uses its own templates plus the global ones, edits
    only its own, and everything it creates is pinned to its code.
  - ``client_code`` NULL marks a global template; only ADMIN and
    SYSTEMADMIN may create, edit or delete one.
  - Names are unique per (client_code, form_type).

Updates and deletes go through ``VersionedRepository`` with the caller's
expectedVersion, exactly like report mutations.

Usage:
    svc = TemplateService()
    tpl = svc.create(actor, {"name": "Weekly water", "formType": "MICRO_MIX_WATER", "data": {...}})
    report = svc.create_report_from_template(actor, tpl.id)
"""

import logging

from sqlalchemy import func, or_, select

from labflow.core.actor import Actor
from labflow.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from labflow.models import db
from labflow.models.template import FormTemplate
from labflow.models.workflow import workflow_for
from labflow.services.audit_service import AuditRecorder, SqlAuditRecorder
from labflow.services.helpers.scoped_queries import in_scope
from labflow.services.helpers.transaction import unit_of_work
from labflow.services.report_service import ReportService, domain_fields
from labflow.services.versioned_repository import VersionedRepository
from labflow.utils.helpers import clean_text, coerce_field_values, pick

logger = logging.getLogger(__name__)

SCOPES = ("CLIENT", "GLOBAL", "ALL")
SORTS = {
    "NEWEST": (FormTemplate.created_at.desc(), FormTemplate.id.desc()),
    "OLDEST": (FormTemplate.created_at.asc(), FormTemplate.id.asc()),
    "NAME_AZ": (FormTemplate.name.asc(),),
    "NAME_ZA": (FormTemplate.name.desc(),),
}
MAX_TAKE = 200
DEFAULT_TAKE = 50


def sanitize_template_data(data) -> dict:
    """Template data minus metadata keys, with date fields normalised."""
    if not isinstance(data, dict):
        return {}
    return coerce_field_values(domain_fields(data))


class TemplateService:
    def __init__(self, session=None, audit: AuditRecorder | None = None):
        self.session = session if session is not None else db.session
        self.repo = VersionedRepository(FormTemplate, self.session, resource="FormTemplate")
        self.audit = audit or SqlAuditRecorder(self.session)

    # ── Queries ──────────────────────────────────────────────────────────

    def get(self, actor: Actor, template_id: int) -> FormTemplate:
        tpl = self.session.get(FormTemplate, template_id)
        if tpl is None or not (tpl.is_global or in_scope(actor, tpl.client_code)):
            raise NotFoundError(resource="FormTemplate", resource_id=template_id)
        return tpl

    def list_templates(
        self,
        actor: Actor,
        q: str | None = None,
        form_type: str | None = None,
        client_code: str | None = None,
        scope: str = "ALL",
        take: int | None = None,
        skip: int | None = None,
        sort: str = "NEWEST",
    ) -> dict:
        take = min(max(take or DEFAULT_TAKE, 1), MAX_TAKE)
        skip = max(skip or 0, 0)
        scope = (scope or "ALL").upper()
        if scope not in SCOPES:
            raise ValidationError(f"Unknown scope: {scope}", details={"scope": list(SCOPES)})

        stmt = select(FormTemplate)
        if actor.is_client:
            if not actor.client_code:
                raise ForbiddenError("Client user has no client code assigned", role=actor.role.value)
            client_code = actor.client_code
        if scope == "GLOBAL":
            stmt = stmt.where(FormTemplate.client_code.is_(None))
        elif scope == "CLIENT":
            if client_code:
                stmt = stmt.where(FormTemplate.client_code == client_code)
            else:
                stmt = stmt.where(FormTemplate.client_code.is_not(None))
        elif actor.is_client:
            stmt = stmt.where(or_(
                FormTemplate.client_code == client_code,
                FormTemplate.client_code.is_(None),
            ))
        if form_type:
            stmt = stmt.where(FormTemplate.form_type == form_type.strip().upper())
        if q:
            like = f"%{q.strip().lower()}%"
            stmt = stmt.where(or_(
                func.lower(FormTemplate.name).like(like),
                func.lower(FormTemplate.client_code).like(like),
            ))

        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        order = SORTS.get((sort or "NEWEST").upper(), SORTS["NEWEST"])
        items = list(self.session.execute(stmt.order_by(*order).offset(skip).limit(take)).scalars())
        return {"items": [t.to_dict() for t in items], "total": total, "take": take, "skip": skip}

    # ── Commands ─────────────────────────────────────────────────────────

    def create(self, actor: Actor, payload: dict) -> FormTemplate:
        name = clean_text(payload.get("name"))
        form_type = clean_text(pick(payload, "formType", "form_type"))
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        if not form_type:
            raise ValidationError("formType is required", details={"formType": "required"})
        workflow_for(form_type)
        form_type = form_type.upper()

        client_code = self._resolve_client_code(actor, clean_text(pick(payload, "clientCode", "client_code")))
        data = sanitize_template_data(payload.get("data"))

        with unit_of_work(self.session):
            self._ensure_unique_name(name, form_type, client_code)
            tpl = FormTemplate(
                name=name,
                form_type=form_type,
                client_code=client_code,
                data=data,
                version=1,
                created_by=actor.user_id,
                updated_by=actor.user_id,
            )
            self.session.add(tpl)
            self.session.flush()
            self.audit.record(
                entity="template", entity_id=str(tpl.id), user_id=actor.user_id,
                role=actor.role.value, action="template.create",
                before_after={"name": name, "form_type": form_type, "client_code": client_code},
            )
        logger.info("Template %s created", tpl.id, extra={"user_id": actor.user_id, "role": actor.role.value})
        return tpl

    def update(self, actor: Actor, template_id: int, payload: dict, expected_version: int) -> FormTemplate:
        with unit_of_work(self.session):
            tpl = self.get(actor, template_id)
            self._authorize_write(actor, tpl)
            self.repo.check_version(tpl, expected_version)

            values = {"updated_by": actor.user_id}
            name = clean_text(payload.get("name"))
            if name and name != tpl.name:
                self._ensure_unique_name(name, tpl.form_type, tpl.client_code)
                values["name"] = name
            if "data" in payload:
                values["data"] = sanitize_template_data(payload.get("data"))
            before = {"name": tpl.name, "data": tpl.data}

            tpl = self.repo.update(tpl.id, expected_version, values)
            self.audit.record(
                entity="template", entity_id=str(tpl.id), user_id=actor.user_id,
                role=actor.role.value, action="template.update",
                before_after={"before": before, "after": {"name": tpl.name, "data": tpl.data}},
            )
        return tpl

    def delete(self, actor: Actor, template_id: int, expected_version: int) -> None:
        with unit_of_work(self.session):
            tpl = self.get(actor, template_id)
            self._authorize_write(actor, tpl)
            self.repo.check_version(tpl, expected_version)
            name = tpl.name
            self.repo.delete(template_id, expected_version)
            self.audit.record(
                entity="template", entity_id=str(template_id), user_id=actor.user_id,
                role=actor.role.value, action="template.delete",
                before_after={"name": name, "version": expected_version},
            )
        logger.info("Template %s deleted", template_id, extra={"user_id": actor.user_id, "role": actor.role.value})

    def create_report_from_template(self, actor: Actor, template_id: int, reports: ReportService | None = None):
        tpl = self.get(actor, template_id)
        client_code = tpl.client_code or actor.client_code
        if not client_code:
            raise ValidationError(
                "A client code is required to create a report from a global template",
                details={"clientCode": "required"},
            )
        payload = dict(sanitize_template_data(tpl.data))
        payload["formType"] = tpl.form_type
        payload["clientCode"] = client_code
        reports = reports or ReportService(self.session, self.audit)
        return reports.create_draft(actor, payload)

    # ── Internals ────────────────────────────────────────────────────────

    def _resolve_client_code(self, actor: Actor, requested: str | None) -> str | None:
        if actor.is_client:
            if not actor.client_code:
                raise ForbiddenError("Client user has no client code assigned", role=actor.role.value)
            return actor.client_code
        if requested is None and not actor.is_admin:
            raise ForbiddenError("Only ADMIN/SYSTEMADMIN can create global templates", role=actor.role.value)
        return requested

    def _authorize_write(self, actor: Actor, tpl: FormTemplate) -> None:
        if tpl.is_global and not actor.is_admin:
            raise ForbiddenError("Only ADMIN/SYSTEMADMIN can change global templates", role=actor.role.value)

    def _ensure_unique_name(self, name: str, form_type: str, client_code: str | None) -> None:
        stmt = select(FormTemplate.id).where(
            FormTemplate.name == name,
            FormTemplate.form_type == form_type,
        )
        if client_code is None:
            stmt = stmt.where(FormTemplate.client_code.is_(None))
        else:
            stmt = stmt.where(FormTemplate.client_code == client_code)
        if self.session.execute(stmt).first() is not None:
            raise ConflictError("FormTemplate", "name", name)
