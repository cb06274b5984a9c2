"""
Lab Report Workflow Service
User credentials used for electronic signatures.

Identity is issued elsewhere; this table only maps a user id to the role,
client code and password hash needed to re-authenticate an e-signature.
Rows are provisioned with ``flask create-user``.
"""

from datetime import datetime, timezone

from labflow.models import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(200), nullable=True, unique=True)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False)
    client_code = db.Column(db.String(20), nullable=True)
    password_hash = db.Column(db.String(256))  # NULL until credentials are set
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "client_code": self.client_code,
            "active": self.active,
            "has_esign_credentials": bool(self.password_hash),
        }

    def __repr__(self):
        return f"<User {self.id} {self.role}>"
