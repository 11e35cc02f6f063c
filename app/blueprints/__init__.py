"""
SaaS Operations Dashboard
Blueprint registry and request helpers shared by every blueprint.
"""

from flask import request

from app.utils.errors import E, api_error
from app.utils.helpers import parse_datetime


def acting_user_id():
    """Resolve the acting user id from the request.

    Looked up in order: ``X-User-Id`` header, ``user_id`` query param,
    ``user_id`` JSON body field.

    Returns:
        (user_id, None) on success, (None, error_response) otherwise.
    """
    raw = request.headers.get("X-User-Id") or request.args.get("user_id")
    if raw is None and request.is_json:
        raw = (request.get_json(silent=True) or {}).get("user_id")
    if raw is None or raw == "":
        return None, api_error(E.VALIDATION_REQUIRED, "user_id is required")
    try:
        return int(raw), None
    except (ValueError, TypeError):
        return None, api_error(E.VALIDATION_INVALID, "user_id must be an integer", details={"user_id": raw})


def json_body():
    """Return the JSON body as a dict ({} when absent or not an object)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_pagination(default_limit=20, max_limit=200):
    """Read limit/offset query params.

    Query params:
        limit:  max items (default *default_limit*, capped at *max_limit*)
        offset: starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def date_range_args():
    """Parse required ``start`` / ``end`` query params.

    Returns:
        ((start, end), None) or (None, error_response).
    """
    start = parse_datetime(request.args.get("start"))
    end = parse_datetime(request.args.get("end"))
    if start is None or end is None:
        return None, api_error(E.VALIDATION_REQUIRED, "start and end are required ISO dates")
    return (start, end), None
