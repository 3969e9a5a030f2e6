"""
Assertion evaluator: operator synonyms, comparison rules, assertion records.

Comparison follows JavaScript value semantics over JSON data so a script
gets the same verdict from either guest runtime. The JavaScript worker
carries a line-for-line port of these rules (see wrappers.WORKER_SOURCE).
"""

import math
import re
from typing import Any

from .normalize import js_string, jsonify, to_json_text, to_plain

CANONICAL_OPERATORS = (
    "==",
    "===",
    "!=",
    "!==",
    ">",
    ">=",
    "<",
    "<=",
    "contains",
    "matches",
    "truthy",
    "falsy",
)

OPERATOR_SYNONYMS: dict[str, str] = {
    **{op: op for op in CANONICAL_OPERATORS},
    "eq": "==",
    "equal": "==",
    "neq": "!=",
    "notequal": "!=",
    "greater": ">",
    "greaterthan": ">",
    "gte": ">=",
    "less": "<",
    "lessthan": "<",
    "lte": "<=",
    "includes": "contains",
    "regex": "matches",
}

_WS_RE = re.compile(r"\s+")
_DECIMAL_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$", re.ASCII)
_RADIX_RE = re.compile(r"^0([xXoObB])([0-9a-fA-F]+)$")
_RADIX = {"x": 16, "o": 8, "b": 2}


class UnsupportedAssertionOperator(ValueError):
    """Raised by canonical_operator() for an operator outside the synonym table."""

    def __init__(self, operator: Any) -> None:
        self.operator = js_string(operator)
        super().__init__(f"Unsupported operator: {self.operator}")


def normalize_operator(op: Any) -> str | None:
    """Map a synonym (case-insensitive, whitespace ignored) to its canonical operator."""
    if not isinstance(op, str):
        return None
    return OPERATOR_SYNONYMS.get(_WS_RE.sub("", op.strip().lower()))


def canonical_operator(op: Any) -> str:
    normalized = normalize_operator(op)
    if normalized is None:
        raise UnsupportedAssertionOperator(op)
    return normalized


# ---------------------------------------------------------------------------
# JavaScript value semantics over JSON data
# ---------------------------------------------------------------------------


def json_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    return "object"


def to_number(value: Any) -> float:
    """Number(value)."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return 0.0
        if s in ("Infinity", "+Infinity"):
            return math.inf
        if s == "-Infinity":
            return -math.inf
        m = _RADIX_RE.match(s)
        if m:
            try:
                return float(int(m.group(2), _RADIX[m.group(1).lower()]))
            except ValueError:
                return math.nan
        if _DECIMAL_RE.match(s):
            return float(s)
        return math.nan
    if isinstance(value, (list, tuple)):
        return to_number(js_string(value))
    return math.nan


def is_truthy(value: Any) -> bool:
    """Boolean(value): null, false, 0, NaN and "" are falsy; containers are truthy."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return not (value == 0 or math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def strict_equals(a: Any, b: Any) -> bool:
    """a === b, with arrays and objects compared structurally."""
    ta, tb = json_type(a), json_type(b)
    if ta != tb:
        return False
    if ta == "array":
        return len(a) == len(b) and all(strict_equals(x, y) for x, y in zip(a, b))
    if ta == "object":
        return a.keys() == b.keys() and all(strict_equals(a[k], b[k]) for k in a)
    return a == b


def loose_equals(a: Any, b: Any) -> bool:
    """a == b: null only equals null, booleans and numeric strings coerce to numbers."""
    ta, tb = json_type(a), json_type(b)
    if ta == "null" or tb == "null":
        return ta == tb
    if ta in ("array", "object") or tb in ("array", "object"):
        return ta == tb and strict_equals(a, b)
    if ta == "boolean" or tb == "boolean":
        return to_number(a) == to_number(b)
    if ta == tb:
        return a == b
    return to_number(a) == to_number(b)


def _to_primitive(value: Any) -> Any:
    if isinstance(value, (list, tuple, dict)):
        return js_string(value)
    return value


def compare(a: Any, b: Any, op: str) -> bool:
    """Relational comparison: two strings compare lexically, anything else numerically."""
    pa, pb = _to_primitive(a), _to_primitive(b)
    if isinstance(pa, str) and isinstance(pb, str):
        x: Any = pa
        y: Any = pb
    else:
        x, y = to_number(pa), to_number(pb)
        if math.isnan(x) or math.isnan(y):
            return False
    if op == ">":
        return x > y
    if op == ">=":
        return x >= y
    if op == "<":
        return x < y
    return x <= y


def evaluate(actual: Any, operator: str, expected: Any) -> bool:
    """Evaluate one canonical operator. Never raises; a failing comparison is False."""
    actual = jsonify(actual)
    expected = jsonify(expected)
    try:
        if operator == "==":
            return loose_equals(actual, expected)
        if operator == "===":
            return strict_equals(actual, expected)
        if operator == "!=":
            return not loose_equals(actual, expected)
        if operator == "!==":
            return not strict_equals(actual, expected)
        if operator in (">", ">=", "<", "<="):
            return compare(actual, expected, operator)
        if operator == "contains":
            if isinstance(actual, str):
                return js_string(expected) in actual
            if isinstance(actual, list):
                return any(strict_equals(item, expected) for item in actual)
            return False
        if operator == "matches":
            try:
                return re.search(js_string(expected), js_string(actual)) is not None
            except re.error:
                return False
        if operator == "truthy":
            return is_truthy(actual)
        if operator == "falsy":
            return not is_truthy(actual)
    except (TypeError, ValueError, OverflowError):
        return False
    return False


def build_assertion(
    actual: Any, operator: Any, expected: Any, message: Any = None
) -> dict[str, Any]:
    """Evaluate and return one assertion record (wire shape, camelCase keys)."""
    actual = to_plain(actual)
    expected = to_plain(expected)
    record: dict[str, Any] = {
        "message": js_string(message) if is_truthy(jsonify(message)) else "",
        "actualValue": jsonify(actual),
        "expectedValue": jsonify(expected),
    }
    try:
        op = canonical_operator(operator)
    except UnsupportedAssertionOperator as e:
        record.update(
            passed=False,
            operator=e.operator,
            reason=str(e),
            condition=f"{to_json_text(actual)} {e.operator} {to_json_text(expected)}",
        )
        return record
    record.update(
        passed=evaluate(actual, op, expected),
        operator=op,
        condition=f"{to_json_text(actual)} {op} {to_json_text(expected)}",
    )
    return record
