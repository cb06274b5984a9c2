"""
Form and lab report numbering.

    form number    "{clientCode}-{YYYY}{seq:04}"   issued when a draft is created
    report number  "{dept}-{YYYY}{seq:04}"         issued when testing starts

Sequences are single rows bumped with ``UPDATE ... SET last_number =
last_number + 1`` inside the caller's transaction, so two concurrent
drafts never share a number.  The first issue for a key inserts the row
under a savepoint; losing that insert race falls back to the UPDATE.
The sequence is not reset per year.
"""

from datetime import datetime, timezone

from sqlalchemy import insert as sa_insert
from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError

from labflow.models import db
from labflow.models.report import ClientSequence, LabReportSequence


def _pad(n: int) -> str:
    return str(n).zfill(4)


def _year() -> int:
    return datetime.now(timezone.utc).year


def _increment(session, model, key_col, key: str) -> int | None:
    result = session.execute(
        sa_update(model)
        .where(key_col == key)
        .values(last_number=model.last_number + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    return session.execute(select(model.last_number).where(key_col == key)).scalar_one()


def _bump(session, model, key_col, key: str) -> int:
    seq = _increment(session, model, key_col, key)
    if seq is not None:
        return seq
    try:
        with session.begin_nested():
            session.execute(sa_insert(model).values({key_col.key: key, "last_number": 1}))
        return 1
    except IntegrityError:
        # another transaction issued the first number for this key
        seq = _increment(session, model, key_col, key)
        if seq is None:
            raise
        return seq


def next_form_number(client_code: str, session=None) -> str:
    session = session if session is not None else db.session
    seq = _bump(session, ClientSequence, ClientSequence.client_code, client_code)
    return f"{client_code}-{_year()}{_pad(seq)}"


def next_report_number(department: str, session=None) -> str:
    session = session if session is not None else db.session
    seq = _bump(session, LabReportSequence, LabReportSequence.department, department)
    return f"{department}-{_year()}{_pad(seq)}"
