"""
User credential provisioning for electronic signatures.

Backs the ``flask create-user`` command.  Re-running it for an existing
id updates the role, client code and password hash in place.
"""

import logging

from labflow.core.exceptions import ValidationError
from labflow.models import db
from labflow.models.auth import User
from labflow.models.workflow import Role
from labflow.services.helpers.transaction import unit_of_work
from labflow.utils.crypto import hash_password
from labflow.utils.helpers import clean_text

logger = logging.getLogger(__name__)


def upsert_user(*, user_id, role, password, email=None, full_name=None, client_code=None, rounds=12, session=None) -> User:
    session = session if session is not None else db.session
    parsed = Role.parse(role)
    if parsed is None:
        raise ValidationError(f"Unknown role: {role}", details={"role": [r.value for r in Role]})
    client_code = clean_text(client_code)
    if parsed is Role.CLIENT and not client_code:
        raise ValidationError("CLIENT users need a client code", details={"clientCode": "required"})
    if not password:
        raise ValidationError("A password is required", details={"password": "required"})

    with unit_of_work(session):
        user = session.get(User, str(user_id))
        if user is None:
            user = User(id=str(user_id))
            session.add(user)
        user.role = parsed.value
        user.client_code = client_code
        user.email = clean_text(email) or user.email
        user.full_name = clean_text(full_name) or user.full_name
        user.password_hash = hash_password(password, rounds=rounds)
        user.active = True
        session.flush()
    logger.info("Credentials stored for user %s", user.id, extra={"user_id": user.id, "role": user.role})
    return user
