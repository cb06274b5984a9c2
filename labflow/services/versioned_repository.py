"""
Versioned repository — optimistic compare-and-swap persistence.

Every mutation of a versioned entity (reports, form templates) goes
through ``update`` or ``delete``.  The write is a single conditional
statement:

    UPDATE <table> SET ..., version = version + 1
     WHERE id = :id AND version = :expected

so there is no window between "check" and "write".  Zero affected rows
means the caller's snapshot is stale (VersionConflictError carrying the
stored version) or the row is gone (NotFoundError).

Usage:
    repo = VersionedRepository(Report, db.session)
    report = repo.update(report_id, expected_version, {"status": "LOCKED"})

The repository flushes but never commits; the calling service owns the
transaction so that audit rows and child rows land atomically with the
version bump.
"""

import logging
from typing import Callable

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy import update as sa_update

from labflow.core.exceptions import NotFoundError, VersionConflictError
from labflow.models import db

logger = logging.getLogger(__name__)


class VersionedRepository:
    """CAS persistence for any model with ``id`` and integer ``version`` columns."""

    def __init__(self, model, session=None, resource: str | None = None):
        self.model = model
        self.session = session if session is not None else db.session
        self.resource = resource or model.__name__

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, entity_id):
        entity = self.session.get(self.model, entity_id)
        if entity is None:
            raise NotFoundError(resource=self.resource, resource_id=entity_id)
        return entity

    def current_version(self, entity_id) -> int | None:
        return self.session.execute(
            select(self.model.version).where(self.model.id == entity_id)
        ).scalar_one_or_none()

    def check_version(self, entity, expected_version: int) -> None:
        """Fail fast when the loaded snapshot already disagrees with the caller."""
        if entity.version != expected_version:
            raise VersionConflictError(
                self.resource, entity.id, expected_version, entity.version,
            )

    # ── Writes ───────────────────────────────────────────────────────────

    def update(self, entity_id, expected_version: int, changes: dict | Callable):
        """Apply ``changes`` iff the stored version equals ``expected_version``.

        ``changes`` is a column→value dict, or a callable receiving the
        loaded entity and returning one.  Returns the refreshed entity
        with ``version == expected_version + 1``.
        """
        if callable(changes):
            entity = self.get(entity_id)
            self.check_version(entity, expected_version)
            values = changes(entity)
        else:
            values = dict(changes)
        values.pop("version", None)
        values.pop("id", None)

        stmt = (
            sa_update(self.model)
            .where(self.model.id == entity_id, self.model.version == expected_version)
            .values(version=self.model.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self._raise_for_missing_row(entity_id, expected_version)

        entity = self.session.get(self.model, entity_id)
        self.session.refresh(entity)
        logger.debug(
            "%s %s updated to version %s", self.resource, entity_id, entity.version,
            extra={"entity_id": str(entity_id), "version": entity.version},
        )
        return entity

    def delete(self, entity_id, expected_version: int) -> None:
        """Delete iff the stored version equals ``expected_version``."""
        entity = self.session.get(self.model, entity_id)
        stmt = (
            sa_delete(self.model)
            .where(self.model.id == entity_id, self.model.version == expected_version)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        if result.rowcount != 1:
            self._raise_for_missing_row(entity_id, expected_version)
        if entity is not None:
            self.session.expunge(entity)

    def _raise_for_missing_row(self, entity_id, expected_version: int):
        current = self.current_version(entity_id)
        if current is None:
            raise NotFoundError(resource=self.resource, resource_id=entity_id)
        logger.info(
            "Version conflict on %s %s: expected %s, current %s",
            self.resource, entity_id, expected_version, current,
            extra={"entity_id": str(entity_id)},
        )
        raise VersionConflictError(self.resource, entity_id, expected_version, current)
