"""
Electronic signature — password re-authentication for gated transitions.

Some status changes (releasing a report to the client, locking it) are
signatures in the regulatory sense: the acting user must re-enter their
password, and the change must carry a reason.

    ESignService.verify_password(user_id, plaintext) -> bool
    ESignGate.require(actor, password, reason)       raises on failure

Missing user, missing hash or a wrong password all verify False; the gate
turns False into AuthenticationError.  Plaintext is never logged.
"""

import logging

from labflow.core.exceptions import AuthenticationError, ValidationError
from labflow.models import db
from labflow.models.auth import User
from labflow.utils.crypto import verify_password

logger = logging.getLogger(__name__)


class ESignService:
    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def verify_password(self, user_id: str, plaintext: str) -> bool:
        if not user_id or not plaintext:
            return False
        user = self.session.get(User, str(user_id))
        if user is None or not user.active or not user.password_hash:
            logger.warning("E-signature attempted without credentials on file", extra={"user_id": user_id})
            return False
        return verify_password(plaintext, user.password_hash)


class ESignGate:
    """Applies the e-signature rule for one request."""

    def __init__(self, esign: ESignService):
        self.esign = esign

    def require(self, actor, password: str | None, reason: str | None) -> None:
        if not reason:
            raise ValidationError(
                "A reason is required for an electronically signed change",
                details={"reason": "required"},
            )
        if not password:
            raise ValidationError(
                "Electronic signature (password) is required",
                details={"eSignPassword": "required"},
            )
        if not self.esign.verify_password(actor.user_id, password):
            logger.warning(
                "Electronic signature failed",
                extra={"user_id": actor.user_id, "role": actor.role.value},
            )
            raise AuthenticationError("Electronic signature failed")
