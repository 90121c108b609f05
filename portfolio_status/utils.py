"""
Request helpers shared by the blueprints:
- json_body: parsed JSON request body or ValidationError
- text_field: one string field of a JSON object body (non-strings rejected)
- parse_ids: ids from ?ids=a,b,c or a JSON {"ids": [...]} body
- records_from_body: record array from a JSON body (bare array or {"<key>": [...]})
"""

from flask import request

from .exceptions import ValidationError


def json_body(expected=None):
    """
    Return the parsed JSON body.

    expected: optional type (dict/list/tuple of types) the body must be.
    """
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Request body must be valid JSON")
    if expected is not None and not isinstance(data, expected):
        raise ValidationError("Unexpected JSON body shape")
    return data


def text_field(data, key, required=False):
    """
    String value of `key` in a JSON object body, unchanged.

    Missing or null -> "" (ValidationError when required); any other
    non-string JSON value -> ValidationError.
    """
    value = data.get(key)
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"Field {key!r} must be a string", details={key: "must be a string"})
    if required and not value:
        raise ValidationError(f"Field {key!r} is required", details={key: "required"})
    return value


def parse_ids():
    """Ids to act on, from the query string first, then the JSON body."""
    raw = (request.args.get("ids") or "").strip()
    if raw:
        return [part.strip() for part in raw.split(",") if part.strip()]

    data = request.get_json(silent=True) or {}
    ids = data.get("ids") if isinstance(data, dict) else None
    if isinstance(ids, list) and ids:
        return [str(i) for i in ids if str(i).strip()]

    raise ValidationError("No ids provided", details={"ids": "required"})


def records_from_body(key):
    """
    Record array from the body: either a bare JSON array or {key: [...]}.

    The editors historically posted {"countries": [...]}, scripts post arrays.
    """
    data = json_body()
    if isinstance(data, dict):
        data = data.get(key)
    if not isinstance(data, list):
        raise ValidationError(f"Expected an array of records under {key!r}")
    return data
