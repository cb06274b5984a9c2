"""
Lab Report Workflow Service
Audit domain model.

Models:
    - AuditLog: immutable, append-only record of every report and template
      mutation, including the change reason and before/after snapshot.
"""

import json
from datetime import datetime, timezone

from labflow.models import db

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {"report", "correction", "template"}

AUDIT_ACTIONS = {
    # Report lifecycle
    "report.create",
    "report.update",
    "report.status_change",
    "report.status_override",
    "report.corrections_requested",
    "report.correction_resolved",
    # Templates
    "template.create",
    "template.update",
    "template.delete",
}


class AuditLog(db.Model):
    """
    Immutable audit trail.

    One row per mutation.  ``changes_json`` carries ``{field: {old, new}}``
    for field and status changes, or a summary payload for corrections.
    """

    __tablename__ = "audit_trail"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity", "entity_id"),
        db.Index("idx_audit_user", "user_id"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity = db.Column(db.String(30), nullable=False, comment="report | correction | template")
    entity_id = db.Column(db.String(36), nullable=False)

    # Who and what
    action = db.Column(db.String(60), nullable=False)
    user_id = db.Column(db.String(64), nullable=True)
    role = db.Column(db.String(20), nullable=True)
    reason = db.Column(db.Text, nullable=True)
    changes_json = db.Column(db.Text, default="{}")

    # Request context
    ip_address = db.Column(db.String(64), nullable=True)
    request_id = db.Column(db.String(64), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def changes(self) -> dict:
        try:
            return json.loads(self.changes_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "action": self.action,
            "user_id": self.user_id,
            "role": self.role,
            "reason": self.reason,
            "changes": self.changes,
            "ip_address": self.ip_address,
            "request_id": self.request_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────

def write_audit(
    *,
    entity: str,
    entity_id: str,
    action: str,
    user_id: str | None = None,
    role: str | None = None,
    reason: str | None = None,
    changes: dict | None = None,
    session=None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control; the row commits or rolls back with the mutation.

    Returns the (flushed) AuditLog instance.  ``session`` defaults to
    ``db.session``; services pass their own so the row joins their
    transaction.
    """
    ip_address = None
    request_id = None
    from flask import g, has_request_context, request
    if has_request_context():
        ip_address = request.remote_addr
        request_id = getattr(g, "request_id", None)

    log = AuditLog(
        entity=entity,
        entity_id=str(entity_id),
        action=action,
        user_id=user_id,
        role=role,
        reason=reason,
        changes_json=json.dumps(changes or {}, default=str),
        ip_address=ip_address,
        request_id=request_id,
    )
    session = session if session is not None else db.session
    session.add(log)
    session.flush()
    return log
