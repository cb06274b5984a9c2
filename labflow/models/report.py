"""
Lab Report Workflow Service
Report domain models.

Models:
    - Report: the versioned aggregate (status + domain fields + metadata).
    - CorrectionItem: field-level correction request attached to a report.
    - ClientSequence: per-client counter behind form numbers.
    - LabReportSequence: per-department counter behind lab report numbers.

``Report.version`` is the optimistic-concurrency counter.  It is written
only through ``VersionedRepository``; nothing else may assign it.
"""

import uuid
from datetime import datetime, timezone

from labflow.core.field_path import FieldPath
from labflow.models import db
from labflow.models.workflow import workflow_for

CORRECTION_OPEN = "OPEN"
CORRECTION_RESOLVED = "RESOLVED"
CORRECTION_STATUSES = {CORRECTION_OPEN, CORRECTION_RESOLVED}


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class Report(db.Model):
    """
    A lab test report moving through its workflow.

    ``data`` holds the domain fields keyed by their client-facing names
    (``tbc_result``, ``coaRows``, ...).  Metadata lives in columns.
    """

    __tablename__ = "reports"
    __table_args__ = (
        db.Index("idx_report_form_status", "form_type", "status"),
        db.Index("idx_report_client", "client_code"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    form_type = db.Column(db.String(30), nullable=False)
    form_number = db.Column(db.String(50), unique=True, nullable=True)
    report_number = db.Column(db.String(50), unique=True, nullable=True)
    client_code = db.Column(db.String(20), nullable=True)
    status = db.Column(db.String(60), nullable=False, default="DRAFT")
    version = db.Column(db.Integer, nullable=False, default=0)
    data = db.Column(db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    corrections = db.relationship(
        "CorrectionItem",
        back_populates="report",
        cascade="all, delete-orphan",
        order_by="CorrectionItem.created_at",
        lazy="select",
    )

    @property
    def workflow(self):
        return workflow_for(self.form_type)

    @property
    def status_value(self):
        """Status as a member of this report's status enum."""
        return self.workflow.parse_status(self.status)

    @property
    def fields(self) -> dict:
        return dict(self.data or {})

    def open_corrections(self) -> list:
        return [c for c in self.corrections if c.status == CORRECTION_OPEN]

    def to_dict(self, include_corrections: bool = False) -> dict:
        d = {
            "id": self.id,
            "form_type": self.form_type,
            "form_number": self.form_number,
            "report_number": self.report_number,
            "client_code": self.client_code,
            "status": self.status,
            "version": self.version,
            "fields": self.fields,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "locked_at": _iso(self.locked_at),
        }
        if include_corrections:
            d["corrections"] = [c.to_dict() for c in self.corrections]
        return d

    def __repr__(self):
        return f"<Report {self.id} {self.form_type} {self.status} v{self.version}>"


class CorrectionItem(db.Model):
    """
    A request that one field (or one cell of a row-based field) be changed.

    Created OPEN inside the same transaction that moves the report to a
    "needs correction" status; moves to RESOLVED exactly once.
    """

    __tablename__ = "report_corrections"
    __table_args__ = (
        db.Index("idx_correction_report_status", "report_id", "status"),
        db.Index("idx_correction_field", "report_id", "field_key"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    report_id = db.Column(
        db.String(36),
        db.ForeignKey("reports.id", ondelete="CASCADE"),
        nullable=False,
    )
    field_key = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(10), nullable=False, default=CORRECTION_OPEN)
    old_value = db.Column(db.JSON, nullable=True)

    requested_by_user_id = db.Column(db.String(64), nullable=True)
    requested_by_role = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_by_user_id = db.Column(db.String(64), nullable=True)
    resolution_note = db.Column(db.Text, nullable=True)

    report = db.relationship("Report", back_populates="corrections")

    @property
    def field_path(self) -> FieldPath:
        return FieldPath.parse(self.field_key)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "report_id": self.report_id,
            "field_key": self.field_key,
            "message": self.message,
            "status": self.status,
            "old_value": self.old_value,
            "requested_by_user_id": self.requested_by_user_id,
            "requested_by_role": self.requested_by_role,
            "created_at": _iso(self.created_at),
            "resolved_at": _iso(self.resolved_at),
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolution_note": self.resolution_note,
        }

    def __repr__(self):
        return f"<CorrectionItem {self.id} {self.field_key} {self.status}>"


class ClientSequence(db.Model):
    """Last form number issued per client code."""

    __tablename__ = "client_sequences"

    client_code = db.Column(db.String(20), primary_key=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<ClientSequence {self.client_code}={self.last_number}>"


class LabReportSequence(db.Model):
    """Last lab report number issued per department prefix."""

    __tablename__ = "lab_report_sequences"

    department = db.Column(db.String(10), primary_key=True)
    last_number = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<LabReportSequence {self.department}={self.last_number}>"
