"""
Collection and value normalization shared by the host and the Python guest.

normalize_collection(value) -> list[{"key", "value", "enabled"}] accepts the
three shapes a script or a caller may hand us for headers / queryParams /
pathParams:

    [{"key": "A", "value": "1", "enabled": False}, ...]   entry list
    {"key": "A", "value": "1"}                            single entry
    {"A": "1", "B": "2"}                                  map form

Entries whose trimmed key is empty are dropped. Values are stringified with
JavaScript String() rules so both guest runtimes agree on the result.
"""

import json
import math
from decimal import Decimal
from typing import Any

COLLECTION_FIELDS = ("headers", "queryParams", "pathParams")

LOG_LEVELS = frozenset({"log", "info", "debug", "warn", "error"})


def _format_number(value: float) -> str:
    """Number::toString: plain digits for 1e-7 < |v| < 1e21, else d.ddde±n."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"
    # repr() yields the shortest round-trip digits, as JS does
    sign, digit_tuple, exponent = Decimal(repr(value)).normalize().as_tuple()
    digits = "".join(map(str, digit_tuple))
    k = len(digits)
    n = exponent + k
    if k <= n <= 21:
        text = digits + "0" * (n - k)
    elif 0 < n <= 21:
        text = f"{digits[:n]}.{digits[n:]}"
    elif -6 < n <= 0:
        text = "0." + "0" * -n + digits
    else:
        e = n - 1
        mantissa = digits if k == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"
    return f"-{text}" if sign else text


def js_string(value: Any) -> str:
    """String(value) as JavaScript would render a JSON-like value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value) if abs(value) < 10**21 else _format_number(float(value))
    if isinstance(value, float):
        return _format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else js_string(v) for v in value)
    if isinstance(value, dict):
        return "[object Object]"
    plain = to_plain(value)
    if plain is not value:
        return js_string(plain)
    return str(value)


def to_plain(value: Any) -> Any:
    """Unwrap script-facing proxies (to_plain()) and pydantic models one level."""
    if isinstance(value, type):
        return value
    unwrap = getattr(value, "to_plain", None)
    if callable(unwrap):
        return unwrap()
    dump = getattr(value, "model_dump", None)
    if callable(dump):
        return dump(by_alias=True)
    return value


def jsonify(value: Any) -> Any:
    """
    Reduce value to plain JSON data: dict/list/str/int/float/bool/None.

    Non-finite floats become None and integral floats become int, matching
    what JSON.stringify would emit. Unknown objects fall back to str().
    """
    value = to_plain(value)
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        if value == int(value) and abs(value) < 2**53:
            return int(value)
        return value
    if isinstance(value, dict):
        return {str(k): jsonify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonify(v) for v in value]
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


def _dump(value: Any) -> str:
    if isinstance(value, float):
        return _format_number(value)
    if isinstance(value, int) and not isinstance(value, bool):
        return js_string(value)
    if isinstance(value, dict):
        return "{" + ",".join(f"{_dump(str(k))}:{_dump(v)}" for k, v in value.items()) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_dump(v) for v in value) + "]"
    return json.dumps(value, ensure_ascii=False)


def to_json_text(value: Any) -> str:
    """Compact JSON text, the layout JSON.stringify uses (numbers as Number::toString)."""
    return _dump(jsonify(value))


def _entry(key: Any, value: Any, enabled: Any = True) -> dict[str, Any] | None:
    k = ("" if key is None else js_string(key)).strip()
    if not k:
        return None
    return {
        "key": k,
        "value": "" if value is None else js_string(value),
        "enabled": enabled is not False,
    }


def normalize_collection(value: Any) -> list[dict[str, Any]]:
    """Canonicalize an entry list, single entry, or map into a KV entry list."""
    value = to_plain(value)
    items: list[dict[str, Any]] = []
    if isinstance(value, (list, tuple)):
        for raw in value:
            item = to_plain(raw)
            if not isinstance(item, dict):
                continue
            entry = _entry(item.get("key"), item.get("value"), item.get("enabled", True))
            if entry is not None:
                items.append(entry)
        return items

    if isinstance(value, dict):
        if "key" in value and "value" in value:
            entry = _entry(value.get("key"), value.get("value"), value.get("enabled", True))
            return [entry] if entry is not None else []
        for k, v in value.items():
            entry = _entry(k, to_plain(v))
            if entry is not None:
                items.append(entry)
        return items

    return items


def normalize_request_collections(request: Any) -> Any:
    """Normalize headers/queryParams/pathParams of a request dict in place."""
    if not isinstance(request, dict):
        return request
    for field in COLLECTION_FIELDS:
        request[field] = normalize_collection(request.get(field))
    return request


def normalize_level(value: Any) -> str | None:
    """Return the canonical log level for value, or None when it is not one."""
    if not isinstance(value, str):
        return None
    lowered = value.lower()
    if lowered == "warning":
        return "warn"
    if lowered in LOG_LEVELS:
        return lowered
    return None


def split_log_args(args: tuple[Any, ...] | list[Any]) -> tuple[str, list[Any]]:
    """log(levelOrMessage, *rest) -> (level, payload)."""
    if args:
        level = normalize_level(args[0])
        if level is not None:
            return level, list(args[1:])
    return "log", list(args)
