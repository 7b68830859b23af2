# Overview: Query-string and body parsing shared by the API blueprints.

from flask import request

from ..errors import ValidationError
from orderdesk.time_utils import parse_iso_date


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def query_int(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def query_date(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)")


def query_limit(default: int = 200, maximum: int = 1000) -> int:
    limit = query_int("limit", default)
    return max(1, min(limit, maximum))
