"""
Report service — draft creation, reads and field patches.

Business rules:
  - Only CLIENT, ADMIN and SYSTEMADMIN may create drafts.  A client's
    drafts always carry the client's own code.
  - A new draft starts in DRAFT at version 0 with a form number
    "{clientCode}-{YYYY}{seq}".
  - A field patch is filtered through the authorization matrix; keys
    the caller may not write are dropped and reported back, never
    rejected.  Critical fields in the authorized subset need a reason.
  - Every patch names the version it was based on; a stale version is
    rejected before anything else is looked at.

Status changes live in ``transition_service``; correction requests in
``correction_service``.
"""

import logging

from sqlalchemy import select

from labflow.core.actor import Actor
from labflow.core.exceptions import ForbiddenError, ValidationError
from labflow.models import db
from labflow.models.report import Report
from labflow.models.workflow import FORM_TYPES, RESERVED_KEYS, Role, workflow_for
from labflow.services.audit_service import AuditRecorder, SqlAuditRecorder, field_diff
from labflow.services.field_authorization import FieldPatch, critical_fields_touched, filter_patch
from labflow.services.helpers.scoped_queries import get_report_for_actor, scope_to_actor
from labflow.services.helpers.transaction import unit_of_work
from labflow.services.numbering import next_form_number
from labflow.services.versioned_repository import VersionedRepository
from labflow.utils.helpers import clean_text, coerce_field_values, pick

logger = logging.getLogger(__name__)

DRAFT_CREATORS = frozenset({Role.CLIENT, Role.ADMIN, Role.SYSTEMADMIN})


def domain_fields(payload: dict) -> dict:
    """Drop reserved metadata keys from a request payload."""
    return {k: v for k, v in (payload or {}).items() if k not in RESERVED_KEYS}


class ReportService:
    def __init__(self, session=None, audit: AuditRecorder | None = None):
        self.session = session if session is not None else db.session
        self.repo = VersionedRepository(Report, self.session, resource="Report")
        self.audit = audit or SqlAuditRecorder(self.session)

    # ── Queries ──────────────────────────────────────────────────────────

    def get_report(self, report_id: str, actor: Actor) -> Report:
        return get_report_for_actor(report_id, actor, self.session)

    def list_reports(
        self,
        actor: Actor,
        form_type: str | None = None,
        status: str | None = None,
        client_code: str | None = None,
    ) -> list[Report]:
        stmt = scope_to_actor(select(Report), Report, actor)
        if form_type:
            workflow_for(form_type)
            stmt = stmt.where(Report.form_type == form_type.strip().upper())
        if status:
            stmt = stmt.where(Report.status == status.strip().upper())
        if client_code and not actor.is_client:
            stmt = stmt.where(Report.client_code == client_code)
        stmt = stmt.order_by(Report.created_at.desc())
        return list(self.session.execute(stmt).scalars())

    # ── Commands ─────────────────────────────────────────────────────────

    def create_draft(self, actor: Actor, payload: dict) -> Report:
        if actor.role not in DRAFT_CREATORS:
            raise ForbiddenError(f"Role {actor.role.value} cannot create reports", role=actor.role.value)

        form_type = clean_text(pick(payload, "formType", "form_type"))
        if not form_type:
            raise ValidationError("formType is required", details={"formType": sorted(FORM_TYPES)})
        wf = workflow_for(form_type)

        if actor.is_client:
            client_code = actor.client_code
        else:
            client_code = clean_text(pick(payload, "clientCode", "client_code"))
        if not client_code:
            raise ValidationError("clientCode is required", details={"clientCode": "required"})

        fields = coerce_field_values(domain_fields(payload))

        with unit_of_work(self.session):
            report = Report(
                form_type=form_type.upper(),
                form_number=next_form_number(client_code, self.session),
                client_code=client_code,
                status=wf.initial_status.value,
                version=0,
                data=fields,
                created_by=actor.user_id,
                updated_by=actor.user_id,
            )
            self.session.add(report)
            self.session.flush()
            self.audit.record(
                entity="report",
                entity_id=report.id,
                user_id=actor.user_id,
                role=actor.role.value,
                action="report.create",
                before_after={
                    "status": {"old": None, "new": report.status},
                    "form_number": report.form_number,
                },
            )

        logger.info(
            "Report %s created (%s, %s)", report.id, report.form_type, report.form_number,
            extra={"report_id": report.id, "user_id": actor.user_id, "role": actor.role.value},
        )
        return report

    def patch_fields(
        self,
        report_id: str,
        actor: Actor,
        patch: dict,
        expected_version: int,
        reason: str | None = None,
    ) -> tuple[Report, FieldPatch]:
        """Apply the authorized subset of ``patch`` under the version guard.

        Returns the report and the FieldPatch describing which keys were
        applied and which were dropped.  An empty authorized subset
        writes nothing and leaves the version unchanged.
        """
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            wf = report.workflow
            self.repo.check_version(report, expected_version)

            status = report.status_value
            if not wf.can_edit(actor.role, status):
                raise ForbiddenError(
                    f"Role {actor.role.value} cannot edit report in status {status.value}",
                    role=actor.role.value,
                    status=status.value,
                )

            result = filter_patch(wf, actor.role, status, patch)
            if result.is_empty:
                return report, result

            critical = critical_fields_touched(wf, result.applied)
            reason = clean_text(reason)
            if critical and not reason:
                raise ValidationError(
                    "A reason is required when changing critical fields",
                    details={"reason": "required", "critical_fields": critical},
                )

            values = coerce_field_values(result.applied)
            result.applied = values
            before = report.fields
            after = {**before, **values}

            report = self.repo.update(
                report.id, expected_version,
                {"data": after, "updated_by": actor.user_id},
            )
            self.audit.record(
                entity="report",
                entity_id=report.id,
                user_id=actor.user_id,
                role=actor.role.value,
                action="report.update",
                reason=reason,
                before_after=field_diff(before, after, values.keys()),
            )

        if result.dropped:
            logger.debug(
                "Report %s: dropped unauthorized fields %s", report.id, result.dropped,
                extra={"report_id": report.id, "user_id": actor.user_id, "role": actor.role.value},
            )
        return report, result
