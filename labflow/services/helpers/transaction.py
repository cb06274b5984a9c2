"""
Unit-of-work helper.

Services wrap each mutation in ``unit_of_work`` so that the version bump,
child rows and audit row commit together, and any exception (business
rule or database) rolls the whole session back before propagating.

    with unit_of_work(self.session):
        report = self.repo.update(...)
        self.audit.record(...)
"""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


@contextmanager
def unit_of_work(session):
    try:
        yield session
        session.commit()
    except SQLAlchemyError:
        logger.exception("Database error; rolling back")
        session.rollback()
        raise
    except Exception:
        session.rollback()
        raise
