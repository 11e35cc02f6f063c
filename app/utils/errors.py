"""JSON error envelope shared by blueprints and the app-level handlers.

Every failure leaves the API as::

    {"error": "<human message>", "code": "ERR_...", "details": {...}?}

Blueprints return ``api_error(...)`` directly for malformed input (400);
service exceptions are translated by the handlers in ``create_app``.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error code constants."""

    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"      # 400 missing field / acting user
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"        # 400 wrong type or shape
    VALIDATION_CONSTRAINT = "ERR_VALIDATION_CONSTRAINT"  # 422 business rule
    NOT_FOUND = "ERR_NOT_FOUND"
    FORBIDDEN = "ERR_FORBIDDEN"
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    METHOD_NOT_ALLOWED = "ERR_METHOD_NOT_ALLOWED"
    PAYLOAD_TOO_LARGE = "ERR_PAYLOAD_TOO_LARGE"
    UNSUPPORTED_MEDIA_TYPE = "ERR_UNSUPPORTED_MEDIA_TYPE"
    RATE_LIMITED = "ERR_RATE_LIMITED"
    INTERNAL = "ERR_INTERNAL"


_STATUS_BY_CODE: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_CONSTRAINT: 422,
    E.NOT_FOUND: 404,
    E.FORBIDDEN: 403,
    E.CONFLICT_DUPLICATE: 409,
    E.METHOD_NOT_ALLOWED: 405,
    E.PAYLOAD_TOO_LARGE: 413,
    E.UNSUPPORTED_MEDIA_TYPE: 415,
    E.RATE_LIMITED: 429,
    E.INTERNAL: 500,
}

# Reverse lookup for werkzeug HTTPExceptions raised via abort()
_CODE_BY_STATUS: dict[int, str] = {
    400: E.VALIDATION_INVALID,
    403: E.FORBIDDEN,
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    409: E.CONFLICT_DUPLICATE,
    413: E.PAYLOAD_TOO_LARGE,
    415: E.UNSUPPORTED_MEDIA_TYPE,
    422: E.VALIDATION_CONSTRAINT,
    429: E.RATE_LIMITED,
}


def code_for_status(status: int) -> str:
    return _CODE_BY_STATUS.get(status, E.INTERNAL if status >= 500 else E.VALIDATION_INVALID)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for a Flask view.

    ``status`` defaults to the code's usual HTTP status (400 if unknown).
    ``details`` is omitted from the body when empty.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _STATUS_BY_CODE.get(code, 400)
