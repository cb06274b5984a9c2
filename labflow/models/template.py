"""
Lab Report Workflow Service
Form template model.

A template is a named, reusable set of field values for one form type.
``client_code`` NULL means the template is global (visible to every
client, editable only by administrators).  Templates are versioned the
same way reports are: updates and deletes carry an expected version.
"""

from datetime import datetime, timezone

from labflow.models import db


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FormTemplate(db.Model):
    __tablename__ = "form_templates"
    __table_args__ = (
        db.UniqueConstraint("client_code", "form_type", "name", name="uq_template_client_form_name"),
        db.Index("idx_template_form_type", "form_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    form_type = db.Column(db.String(30), nullable=False)
    client_code = db.Column(db.String(20), nullable=True, index=True)
    data = db.Column(db.JSON, nullable=False, default=dict)
    version = db.Column(db.Integer, nullable=False, default=1)

    created_by = db.Column(db.String(64), nullable=True)
    updated_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def is_global(self) -> bool:
        return self.client_code is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "form_type": self.form_type,
            "client_code": self.client_code,
            "data": self.data or {},
            "version": self.version,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<FormTemplate {self.id}: {self.name!r} {self.form_type} v{self.version}>"
