"""
Attribute casting for records.

Read casts turn stored values into Python values; write casts turn Python
values back into something the driver can bind. None is never cast.
"""

import json
from datetime import date, datetime
from types import SimpleNamespace
from typing import Any, Callable

from arbor.exceptions import InvalidCastError

_FALSE_STRINGS = frozenset({"", "0", "false", "off", "no"})


def _to_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return int(float(value))


def _to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _to_json(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value


def _to_object(value: Any) -> Any:
    if isinstance(value, (str, bytes)):
        return json.loads(value, object_hook=lambda d: SimpleNamespace(**d))
    if isinstance(value, dict):
        return SimpleNamespace(**value)
    return value


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    return datetime.fromisoformat(str(value))


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value)).date()


READ_CASTS: dict[str, Callable[[Any], Any]] = {
    "int": _to_int,
    "integer": _to_int,
    "float": float,
    "real": float,
    "double": float,
    "string": str,
    "str": str,
    "bool": _to_bool,
    "boolean": _to_bool,
    "array": _to_json,
    "json": _to_json,
    "list": _to_json,
    "dict": _to_json,
    "object": _to_object,
    "datetime": _to_datetime,
    "timestamp": _to_datetime,
    "date": _to_date,
}

JSON_CASTS = frozenset({"array", "json", "list", "dict", "object"})
DATETIME_CASTS = frozenset({"datetime", "timestamp"})


def _object_to_dict(value: Any) -> Any:
    if isinstance(value, SimpleNamespace):
        return {key: _object_to_dict(item) for key, item in vars(value).items()}
    if isinstance(value, list):
        return [_object_to_dict(item) for item in value]
    return value


def cast_value(cast: str, value: Any) -> Any:
    """Apply a read cast.

    Args:
        cast: Cast name, e.g. "int" or "json"
        value: Stored value

    Returns:
        Cast value, or None when value is None

    Raises:
        InvalidCastError: If the cast name is unknown
    """
    caster = READ_CASTS.get(cast.lower())
    if caster is None:
        raise InvalidCastError(f"Unknown cast type: {cast!r}")
    if value is None:
        return None
    return caster(value)


def prepare_value(cast: str, value: Any, date_format: str) -> Any:
    """Apply a write cast before a value is stored on the record.

    JSON-like casts encode non-string values; datetime casts format
    datetimes with ``date_format``; bool casts store 1/0.
    """
    cast = cast.lower()
    if cast not in READ_CASTS:
        raise InvalidCastError(f"Unknown cast type: {cast!r}")
    if value is None:
        return None
    if cast in JSON_CASTS and not isinstance(value, (str, bytes)):
        return json.dumps(_object_to_dict(value))
    if cast in DATETIME_CASTS and isinstance(value, datetime):
        return value.strftime(date_format)
    if cast == "date" and isinstance(value, date):
        return _to_date(value).isoformat()
    if cast in ("bool", "boolean") and isinstance(value, bool):
        return 1 if value else 0
    return value
