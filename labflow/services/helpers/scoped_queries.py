"""
Client-scoped lookups for reports and templates.

A CLIENT only ever sees rows carrying its own client code; every other
role sees everything.  Lookups outside the caller's scope raise
NotFoundError (not Forbidden) so the existence of another client's
report is never disclosed.

Usage:
    report = get_report_for_actor(report_id, actor)
    stmt = scope_to_actor(select(Report), Report, actor)
"""

import logging

from labflow.core.actor import Actor
from labflow.core.exceptions import NotFoundError
from labflow.models import db
from labflow.models.report import Report

logger = logging.getLogger(__name__)


def in_scope(actor: Actor, client_code: str | None) -> bool:
    if not actor.is_client:
        return True
    return client_code is not None and client_code == actor.client_code


def scope_to_actor(stmt, model, actor: Actor):
    """Restrict a select over ``model`` to the actor's client code."""
    if actor.is_client:
        return stmt.where(model.client_code == actor.client_code)
    return stmt


def get_report_for_actor(report_id: str, actor: Actor, session=None) -> Report:
    session = session if session is not None else db.session
    report = session.get(Report, report_id)
    if report is None or not in_scope(actor, report.client_code):
        if report is not None:
            logger.warning(
                "Out-of-scope report access",
                extra={"user_id": actor.user_id, "report_id": report_id},
            )
        raise NotFoundError(resource="Report", resource_id=report_id)
    return report
