"""
Actor — the authenticated caller as seen by the service layer.

Built by ``labflow.middleware.identity`` from a JWT or, when API auth is
disabled, from the ``X-User-*`` headers.  Services never read request
state directly; they receive an Actor.
"""

from dataclasses import dataclass

from labflow.models.workflow import ADMIN_ROLES, Role


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role
    client_code: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_client(self) -> bool:
        return self.role == Role.CLIENT
