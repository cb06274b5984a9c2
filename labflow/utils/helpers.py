"""Shared utility functions for services and blueprints.

parse_date:          lenient date parsing (returns None on bad input)
coerce_field_values: normalise date-typed domain fields to ISO strings
pick:                read a request key under its contract name or snake_case alias
parse_expected_version: validate the optimistic-concurrency token
"""
from datetime import date, datetime

from labflow.core.exceptions import ValidationError
from labflow.models.workflow import DATE_FIELDS


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY
    - MM/DD/YYYY
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text)
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except (ValueError, TypeError):
        pass
    for fmt in ("%d.%m.%Y", "%m/%d/%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except (ValueError, TypeError):
            continue
    return None


def coerce_field_values(values: dict) -> dict:
    """Return a copy of ``values`` with date fields normalised to ISO strings.

    Empty strings and the literal "NA" clear a date field.  A value that
    does not parse as a date raises ValidationError naming the field.
    """
    out = {}
    bad = {}
    for key, value in values.items():
        if key in DATE_FIELDS:
            if value in (None, "") or (isinstance(value, str) and value.strip().upper() == "NA"):
                out[key] = None
                continue
            parsed = parse_date(value)
            if parsed is None:
                bad[key] = f"invalid date: {value!r}"
                continue
            out[key] = parsed.isoformat()
        else:
            out[key] = value
    if bad:
        raise ValidationError("Invalid date value", details=bad)
    return out


def pick(data: dict, *keys, default=None):
    """First non-None value of ``keys`` in ``data``."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def parse_expected_version(raw) -> int:
    """Validate ``expectedVersion``; it is mandatory on every mutation."""
    if raw is None or raw == "":
        raise ValidationError(
            "expectedVersion is required",
            details={"expectedVersion": "required"},
        )
    # exact integers only: 1.9 must not pass as 1
    if isinstance(raw, int) and not isinstance(raw, bool):
        version = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit():
        version = int(raw.strip())
    else:
        raise ValidationError(
            "expectedVersion must be an integer",
            details={"expectedVersion": raw},
        )
    if version < 0:
        raise ValidationError("expectedVersion must not be negative", details={"expectedVersion": raw})
    return version


def clean_text(value) -> str | None:
    """Strip a free-text value; empty strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None
