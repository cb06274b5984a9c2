"""
Correction tracker — field-level correction requests on a report.

A reviewer who finds problems moves the report to a "needs correction"
status and, in the same transaction, records one OPEN item per field:

    POST /reports/<id>/corrections
    {"targetStatus": "QA_NEEDS_PRELIMINARY_CORRECTION",
     "expectedVersion": 4,
     "items": [{"fieldKey": "tbc_result", "message": "Recount plate 2"},
               {"fieldKey": "coaRows:ROW-7:result", "message": "Units missing"}]}

Either the status change and every item persist, or nothing does.  The
current value of each field is captured server-side as ``old_value``.

Resolving an item is a separate, narrower action: whoever may currently
edit the item's base field may mark it RESOLVED.  Resolution never moves
the report's status and never bumps its version.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy import update as sa_update

from labflow.core.actor import Actor
from labflow.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from labflow.core.field_path import FieldPath
from labflow.models import db
from labflow.models.report import CORRECTION_OPEN, CORRECTION_RESOLVED, CORRECTION_STATUSES, CorrectionItem, Report
from labflow.models.workflow import RESERVED_KEYS
from labflow.services.audit_service import AuditRecorder, SqlAuditRecorder
from labflow.services.field_authorization import can_edit_field
from labflow.services.helpers.scoped_queries import get_report_for_actor
from labflow.services.helpers.transaction import unit_of_work
from labflow.services.versioned_repository import VersionedRepository
from labflow.utils.helpers import clean_text, pick

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Corrections requested"


def parse_items(raw_items) -> list[tuple[FieldPath, str]]:
    """Validate the request items; every item needs a field key and a message."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one correction item is required", details={"items": "required"})
    parsed = []
    errors = {}
    for idx, item in enumerate(raw_items):
        if not isinstance(item, dict):
            errors[str(idx)] = "must be an object"
            continue
        message = clean_text(item.get("message"))
        raw_key = pick(item, "fieldKey", "field_key")
        if not message or not clean_text(raw_key):
            errors[str(idx)] = "fieldKey and message are required"
            continue
        path = FieldPath.parse(raw_key)
        if path.base in RESERVED_KEYS:
            errors[str(idx)] = f"{path.base} is not a correctable field"
            continue
        parsed.append((path, message))
    if errors:
        raise ValidationError("Invalid correction items", details=errors)
    return parsed


class CorrectionTracker:
    def __init__(self, session=None, audit: AuditRecorder | None = None):
        self.session = session if session is not None else db.session
        self.repo = VersionedRepository(Report, self.session, resource="Report")
        self.audit = audit or SqlAuditRecorder(self.session)

    # ── Queries ──────────────────────────────────────────────────────────

    def list_corrections(self, report_id: str, actor: Actor, status: str | None = None) -> list[CorrectionItem]:
        report = get_report_for_actor(report_id, actor, self.session)
        stmt = select(CorrectionItem).where(CorrectionItem.report_id == report.id)
        if status:
            status = status.strip().upper()
            if status not in CORRECTION_STATUSES:
                raise ValidationError(f"Unknown correction status: {status}", details={"status": sorted(CORRECTION_STATUSES)})
            stmt = stmt.where(CorrectionItem.status == status)
        stmt = stmt.order_by(CorrectionItem.created_at.asc(), CorrectionItem.id.asc())
        return list(self.session.execute(stmt).scalars())

    def list_open_corrections(self, report_id: str, actor: Actor) -> list[CorrectionItem]:
        return self.list_corrections(report_id, actor, status=CORRECTION_OPEN)

    def can_resolve_field(self, report: Report, actor: Actor, field_key) -> bool:
        path = FieldPath.parse(field_key)
        has_open = any(c.field_key == str(path) for c in report.open_corrections())
        return has_open and can_edit_field(report.workflow, actor.role, report.status, path)

    # ── Commands ─────────────────────────────────────────────────────────

    def create_corrections(
        self,
        report_id: str,
        actor: Actor,
        target_status,
        items,
        expected_version: int,
        reason: str | None = None,
    ) -> tuple[Report, list[CorrectionItem]]:
        """Move to a needs-correction status and record OPEN items atomically."""
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            wf = report.workflow
            self.repo.check_version(report, expected_version)

            current = report.status_value
            target = wf.parse_status(target_status)
            if not wf.is_correction_status(target):
                raise ValidationError(
                    f"{target.value} is not a correction status",
                    details={"targetStatus": [s.value for s in wf.correction_statuses()]},
                )
            if not wf.can_initiate(actor.role, current, target):
                raise ForbiddenError(
                    f"Role {actor.role.value} cannot request corrections from {current.value} to {target.value}",
                    role=actor.role.value,
                    status=current.value,
                )
            parsed = parse_items(items)
            reason = clean_text(reason) or DEFAULT_REASON
            snapshot = report.fields

            report = self.repo.update(
                report.id, expected_version,
                {"status": target.value, "updated_by": actor.user_id},
            )
            created = []
            for path, message in parsed:
                item = CorrectionItem(
                    report_id=report.id,
                    field_key=str(path),
                    message=message,
                    status=CORRECTION_OPEN,
                    old_value=path.resolve(snapshot),
                    requested_by_user_id=actor.user_id,
                    requested_by_role=actor.role.value,
                )
                self.session.add(item)
                created.append(item)
            self.session.flush()

            self.audit.record(
                entity="report",
                entity_id=report.id,
                user_id=actor.user_id,
                role=actor.role.value,
                action="report.corrections_requested",
                reason=reason,
                before_after={
                    "status": {"old": current.value, "new": target.value},
                    "corrections": [{"field_key": c.field_key, "message": c.message} for c in created],
                },
            )

        logger.info(
            "Report %s: %d correction(s) requested, %s → %s",
            report.id, len(created), current.value, target.value,
            extra={"report_id": report.id, "user_id": actor.user_id, "role": actor.role.value},
        )
        return report, created

    def resolve_correction(
        self,
        report_id: str,
        correction_id: str,
        actor: Actor,
        resolution_note: str | None = None,
    ) -> CorrectionItem:
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            item = self.session.get(CorrectionItem, correction_id)
            if item is None or item.report_id != report.id:
                raise NotFoundError(resource="CorrectionItem", resource_id=correction_id)
            self._authorize_resolution(report, actor, item.field_key)
            if item.status != CORRECTION_OPEN:
                raise ConflictError("CorrectionItem", "status", item.status)

            self._mark_resolved([item.id], actor, resolution_note)
            self.session.refresh(item)
            self._audit_resolution(report, actor, [item], resolution_note)
        return item

    def resolve_field(
        self,
        report_id: str,
        field_key,
        actor: Actor,
        resolution_note: str | None = None,
    ) -> list[CorrectionItem]:
        """Resolve every OPEN item on exactly ``field_key``; may return []."""
        path = FieldPath.parse(field_key)
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            self._authorize_resolution(report, actor, str(path))
            items = list(self.session.execute(
                select(CorrectionItem).where(
                    CorrectionItem.report_id == report.id,
                    CorrectionItem.field_key == str(path),
                    CorrectionItem.status == CORRECTION_OPEN,
                )
            ).scalars())
            if not items:
                return []
            self._mark_resolved([i.id for i in items], actor, resolution_note)
            for item in items:
                self.session.refresh(item)
            self._audit_resolution(report, actor, items, resolution_note)
        return items

    # ── Internals ────────────────────────────────────────────────────────

    def _authorize_resolution(self, report: Report, actor: Actor, field_key: str) -> None:
        if not can_edit_field(report.workflow, actor.role, report.status, field_key):
            raise ForbiddenError(
                f"Role {actor.role.value} cannot edit {FieldPath.parse(field_key).base} "
                f"while report is {report.status}",
                role=actor.role.value,
                status=report.status,
            )

    def _mark_resolved(self, ids: list[str], actor: Actor, note: str | None) -> None:
        result = self.session.execute(
            sa_update(CorrectionItem)
            .where(CorrectionItem.id.in_(ids), CorrectionItem.status == CORRECTION_OPEN)
            .values(
                status=CORRECTION_RESOLVED,
                resolved_at=datetime.now(timezone.utc),
                resolved_by_user_id=actor.user_id,
                resolution_note=clean_text(note),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != len(ids):
            raise ConflictError("CorrectionItem", "status", CORRECTION_RESOLVED)

    def _audit_resolution(self, report: Report, actor: Actor, items: list, note: str | None) -> None:
        self.audit.record(
            entity="report",
            entity_id=report.id,
            user_id=actor.user_id,
            role=actor.role.value,
            action="report.correction_resolved",
            reason=clean_text(note),
            before_after={
                "corrections": [
                    {"id": i.id, "field_key": i.field_key, "status": {"old": CORRECTION_OPEN, "new": CORRECTION_RESOLVED}}
                    for i in items
                ],
            },
        )
