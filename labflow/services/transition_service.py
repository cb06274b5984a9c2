"""
Transition executor — moves a report between statuses.

Order of checks for ``request_status_change`` (each failure leaves the
report untouched):

    1. expectedVersion matches the stored version      → VersionConflictError
    2. target is a status of this report's workflow     → ValidationError
    3. role may initiate from → target                  → ForbiddenError
    4. target is not a "needs correction" status        → ValidationError
       (those go through CorrectionTracker so items and status land together)
    5. e-signature, when the target requires one        → ValidationError / AuthenticationError
    6. compare-and-swap write (status, report number, lock stamp)
    7. audit row in the same transaction

``override_status`` is the administrator's escape hatch: it skips the
``next`` / ``can_set`` check but keeps the version guard, always needs a
reason and needs an e-signature unless the target is exempt.

Usage:
    executor = TransitionExecutor(audit=SqlAuditRecorder(), esign=ESignService())
    report = executor.request_status_change(
        report_id, actor, "UNDER_CLIENT_FINAL_REVIEW", expected_version=7,
        reason="Released to client", esign_password="...",
    )
"""

import logging
from datetime import datetime, timezone

from labflow.core.actor import Actor
from labflow.core.exceptions import ForbiddenError, ValidationError
from labflow.models import db
from labflow.models.report import Report
from labflow.services.audit_service import AuditRecorder, SqlAuditRecorder
from labflow.services.esign_service import ESignGate, ESignService
from labflow.services.helpers.scoped_queries import get_report_for_actor
from labflow.services.helpers.transaction import unit_of_work
from labflow.services.numbering import next_report_number
from labflow.services.versioned_repository import VersionedRepository

logger = logging.getLogger(__name__)


class TransitionExecutor:
    def __init__(
        self,
        session=None,
        audit: AuditRecorder | None = None,
        esign: ESignService | None = None,
    ):
        self.session = session if session is not None else db.session
        self.repo = VersionedRepository(Report, self.session, resource="Report")
        self.audit = audit or SqlAuditRecorder(self.session)
        self.gate = ESignGate(esign or ESignService(self.session))

    # ── Queries ──────────────────────────────────────────────────────────

    def allowed_targets(self, report_id: str, actor: Actor) -> list[dict]:
        """Statuses the actor may move this report to, with their requirements."""
        report = get_report_for_actor(report_id, actor, self.session)
        wf = report.workflow
        return [
            {
                "status": target.value,
                "requires_esign": wf.requires_esign(actor.role, target),
                "requires_corrections": wf.is_correction_status(target),
            }
            for target in wf.allowed_targets(actor.role, report.status_value)
        ]

    # ── Commands ─────────────────────────────────────────────────────────

    def request_status_change(
        self,
        report_id: str,
        actor: Actor,
        target,
        expected_version: int,
        reason: str | None = None,
        esign_password: str | None = None,
    ) -> Report:
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            wf = report.workflow
            self.repo.check_version(report, expected_version)

            current = report.status_value
            target = wf.parse_status(target)
            if not wf.can_initiate(actor.role, current, target):
                raise ForbiddenError(
                    f"Role {actor.role.value} cannot move report from {current.value} to {target.value}",
                    role=actor.role.value,
                    status=current.value,
                )
            if wf.is_correction_status(target):
                raise ValidationError(
                    f"{target.value} requires correction items; "
                    "use POST /reports/<id>/corrections",
                    details={"targetStatus": target.value},
                )
            if wf.requires_esign(actor.role, target):
                self.gate.require(actor, esign_password, reason)

            report = self._write(report, actor, target, expected_version)
            self.audit.record(
                entity="report",
                entity_id=report.id,
                user_id=actor.user_id,
                role=actor.role.value,
                action="report.status_change",
                reason=reason,
                before_after={"status": {"old": current.value, "new": target.value}},
            )

        logger.info(
            "Report %s: %s → %s", report.id, current.value, target.value,
            extra={"report_id": report.id, "user_id": actor.user_id, "role": actor.role.value},
        )
        return report

    def override_status(
        self,
        report_id: str,
        actor: Actor,
        target,
        expected_version: int,
        reason: str | None = None,
        esign_password: str | None = None,
    ) -> Report:
        if not actor.is_admin:
            raise ForbiddenError(
                f"Role {actor.role.value} cannot override report status",
                role=actor.role.value,
            )
        with unit_of_work(self.session):
            report = get_report_for_actor(report_id, actor, self.session)
            wf = report.workflow
            self.repo.check_version(report, expected_version)

            current = report.status_value
            target = wf.parse_status(target)
            if wf.is_terminal(current):
                raise ForbiddenError(
                    f"Report is {current.value}; its status can no longer change",
                    role=actor.role.value,
                    status=current.value,
                )
            if wf.is_correction_status(target):
                raise ValidationError(
                    f"{target.value} requires correction items; "
                    "use POST /reports/<id>/corrections",
                    details={"targetStatus": target.value},
                )
            if not reason:
                raise ValidationError("A reason is required to override status", details={"reason": "required"})
            if target not in wf.override_esign_exempt:
                self.gate.require(actor, esign_password, reason)

            report = self._write(report, actor, target, expected_version)
            self.audit.record(
                entity="report",
                entity_id=report.id,
                user_id=actor.user_id,
                role=actor.role.value,
                action="report.status_override",
                reason=reason,
                before_after={"status": {"old": current.value, "new": target.value}},
            )

        logger.warning(
            "Report %s status overridden: %s → %s", report.id, current.value, target.value,
            extra={"report_id": report.id, "user_id": actor.user_id, "role": actor.role.value},
        )
        return report

    # ── Internals ────────────────────────────────────────────────────────

    def _write(self, report: Report, actor: Actor, target, expected_version: int) -> Report:
        wf = report.workflow
        values = {"status": target.value, "updated_by": actor.user_id}
        if target == wf.testing_start and not report.report_number:
            values["report_number"] = next_report_number(wf.department, self.session)
        if target == wf.lock_status:
            values["locked_at"] = datetime.now(timezone.utc)
        return self.repo.update(report.id, expected_version, values)
