"""
Audit boundary — recording and querying the append-only audit trail.

Write side:
    ``AuditRecorder`` is the interface every mutating service receives in
    its constructor.  ``SqlAuditRecorder`` appends ``AuditLog`` rows inside
    the caller's transaction (flush only), so a mutation and its audit row
    commit or roll back together.  Recorder failures propagate; a mutation
    is never committed without its audit row.

Read side:
    list_for_entity, list_paged, export_csv.

Usage:
    recorder = SqlAuditRecorder()
    recorder.record(entity="report", entity_id=report.id, user_id="u-1",
                    role="QA", action="report.status_change",
                    reason="Results verified",
                    before_after={"status": {"old": "A", "new": "B"}})
"""

import csv
import io
import logging
from abc import ABC, abstractmethod
from datetime import datetime, time, timezone

from sqlalchemy import func, select

from labflow.models import db
from labflow.models.audit import AuditLog, write_audit
from labflow.utils.helpers import parse_date

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20


class AuditRecorder(ABC):
    """Interface for the audit boundary."""

    @abstractmethod
    def record(
        self,
        *,
        entity: str,
        entity_id: str,
        user_id: str | None,
        role: str | None,
        action: str,
        reason: str | None = None,
        before_after: dict | None = None,
    ) -> None:
        ...


class SqlAuditRecorder(AuditRecorder):
    """Appends to ``audit_trail`` in the current session transaction."""

    def __init__(self, session=None):
        self.session = session

    def record(
        self,
        *,
        entity: str,
        entity_id: str,
        user_id: str | None,
        role: str | None,
        action: str,
        reason: str | None = None,
        before_after: dict | None = None,
    ) -> None:
        write_audit(
            entity=entity,
            entity_id=entity_id,
            action=action,
            user_id=user_id,
            role=role,
            reason=reason,
            changes=before_after,
            session=self.session,
        )
        logger.info(
            "Audit %s on %s/%s", action, entity, entity_id,
            extra={"action": action, "user_id": user_id, "role": role, "entity_id": str(entity_id)},
        )


def field_diff(before: dict, after: dict, keys) -> dict:
    """``{key: {old, new}}`` for every key whose value changed."""
    diff = {}
    for key in keys:
        old, new = (before or {}).get(key), (after or {}).get(key)
        if old != new:
            diff[key] = {"old": old, "new": new}
    return diff


# ═════════════════════════════════════════════════════════════════════════
# Read side
# ═════════════════════════════════════════════════════════════════════════

def list_for_entity(entity: str, entity_id: str) -> list[AuditLog]:
    """Full trail for one entity, oldest first."""
    stmt = (
        select(AuditLog)
        .where(AuditLog.entity == entity, AuditLog.entity_id == str(entity_id))
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    )
    return list(db.session.execute(stmt).scalars())


def _filtered(stmt, filters: dict):
    if filters.get("entity"):
        stmt = stmt.where(AuditLog.entity == filters["entity"])
    if filters.get("entity_id"):
        stmt = stmt.where(AuditLog.entity_id.contains(str(filters["entity_id"])))
    if filters.get("user_id"):
        stmt = stmt.where(AuditLog.user_id.contains(str(filters["user_id"])))
    if filters.get("action"):
        stmt = stmt.where(AuditLog.action == filters["action"])
    start = parse_date(filters.get("from"))
    if start:
        stmt = stmt.where(AuditLog.created_at >= datetime.combine(start, time.min, tzinfo=timezone.utc))
    end = parse_date(filters.get("to"))
    if end:
        stmt = stmt.where(AuditLog.created_at <= datetime.combine(end, time.max, tzinfo=timezone.utc))
    return stmt


def _ordering(filters: dict):
    if (filters.get("order") or "desc").lower() == "asc":
        return (AuditLog.created_at.asc(), AuditLog.id.asc())
    return (AuditLog.created_at.desc(), AuditLog.id.desc())


def list_paged(filters: dict, page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> dict:
    """Filtered, paginated listing.

    Filters: entity, entity_id (substring), user_id (substring), action,
    from / to (dates, inclusive), order ("asc" | "desc").
    """
    page = max(1, page or 1)
    page_size = min(max(page_size or DEFAULT_PAGE_SIZE, 1), MAX_PAGE_SIZE)

    total = db.session.execute(
        _filtered(select(func.count(AuditLog.id)), filters)
    ).scalar_one()
    stmt = (
        _filtered(select(AuditLog), filters)
        .order_by(*_ordering(filters))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = list(db.session.execute(stmt).scalars())
    return {
        "items": [log.to_dict() for log in items],
        "total": total,
        "page": page,
        "page_size": page_size,
    }


CSV_HEADERS = [
    "created_at", "user_id", "role", "ip_address", "action",
    "entity", "entity_id", "reason", "changes",
]


def export_csv(filters: dict) -> str:
    """Every matching row as CSV text."""
    stmt = _filtered(select(AuditLog), filters).order_by(*_ordering(filters))
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_HEADERS)
    for log in db.session.execute(stmt).scalars():
        writer.writerow([
            log.created_at.isoformat() if log.created_at else "",
            log.user_id or "",
            log.role or "",
            log.ip_address or "",
            log.action,
            log.entity,
            log.entity_id,
            (log.reason or "").replace("\n", " "),
            log.changes_json or "{}",
        ])
    return buf.getvalue()
