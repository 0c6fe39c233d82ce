"""Small shared helpers."""

from datetime import datetime, timezone

from flask import request

from helpdesk.exceptions import ValidationError


def utcnow():
    return datetime.now(timezone.utc)


def as_utc(value):
    """Attach UTC to a naive datetime.

    SQLite returns naive datetimes; Postgres returns aware ones.
    """
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def request_data():
    """JSON body of the current request, or {} if absent/malformed."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def text_field(value, field):
    """Pass through a string or None; any other JSON type is a client error."""
    if value is None or isinstance(value, str):
        return value
    raise ValidationError(f"{field} must be a string")
