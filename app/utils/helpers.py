"""Shared utility functions used by services and blueprints.

parse_datetime:  ISO string / epoch milliseconds / date → aware UTC datetime (None on bad input)
ensure_utc:      attach UTC to naive datetimes read back from SQLite
round_half_up:   percentage rounding that matches the dashboard UI (2.5 → 3)
parse_bool:      query-string flag parsing
parse_int:       strict integer coercion for ids, orders and ratings (raises ValidationError)
normalize_email: email_validator syntax check (raises ValidationError)
"""
import logging
import math
from datetime import date, datetime, time, timezone

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def ensure_utc(value):
    """Return *value* as a timezone-aware UTC datetime.

    SQLite drops tzinfo on the way back from the database, so every
    Python-side comparison against ``datetime.now(timezone.utc)`` goes
    through here.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse a timestamp to an aware UTC datetime.

    Returns None for empty/invalid input. Supports:
    - datetime / date objects
    - int/float epoch milliseconds (the dashboard UI sends Date.now())
    - YYYY-MM-DD
    - YYYY-MM-DDTHH:MM:SS[.ffffff][+HH:MM|Z]
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.combine(date.fromisoformat(text), time.min, tzinfo=timezone.utc)
    except (ValueError, TypeError):
        logger.debug("parse_datetime: unparseable value %r", value)
        return None


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    Python's built-in round() is banker's rounding (round(2.5) == 2), which
    would make 5-of-8 style percentages disagree with the UI.
    """
    return int(math.floor(value + 0.5))


def parse_bool(value, default=False):
    """Interpret a query-string / JSON flag."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def normalize_email(email: str) -> str:
    """Validate *email* syntax and return its normalized form.

    Raises:
        ValidationError: If the address is syntactically invalid.
    """
    try:
        return validate_email((email or "").strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(f"Invalid email: {exc}", details={"email": email}) from exc


def parse_int(value, field: str) -> int:
    """Coerce a JSON number or numeric string to ``int`` without truncating.

    ``7``, ``7.0`` and ``"7"`` are accepted; ``7.5``, ``"abc"``, ``None``,
    booleans and containers raise.

    Raises:
        ValidationError: If *value* is not an integral number.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", details={field: value})
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValidationError(f"{field} must be an integer", details={field: value})
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be an integer", details={field: value})
