"""
Lab Report Workflow Service
Blueprint registry.
"""

from flask import request

from labflow.core.exceptions import ValidationError
from labflow.utils.helpers import clean_text, parse_expected_version, pick


def json_body() -> dict:
    """Request JSON as a dict; anything else becomes an empty dict."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def change_reason(data: dict) -> str | None:
    """Reason from the body, else the X-Change-Reason header."""
    return clean_text(pick(data, "reason")) or clean_text(request.headers.get("X-Change-Reason"))


def esign_password(data: dict) -> str | None:
    """E-signature password from the body, else the X-ESign-Password header."""
    password = pick(data, "eSignPassword", "esign_password")
    if password is not None and not isinstance(password, str):
        raise ValidationError(
            "Electronic signature password must be a string",
            details={"eSignPassword": "must be a string"},
        )
    return password or request.headers.get("X-ESign-Password") or None


def expected_version(data: dict) -> int:
    return parse_expected_version(pick(data, "expectedVersion", "expected_version"))


def int_arg(name: str, default: int | None = None) -> int | None:
    """Query-string integer; bad input falls back to ``default``."""
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
