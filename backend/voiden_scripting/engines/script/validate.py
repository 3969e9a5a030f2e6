"""
Static checks run before a script executes.

validate_script          JavaScript: unawaited async vd calls, unknown vd.*
                         calls, plain-text lines (warning)
validate_python_script   Python: stray await, mixed indentation, bracket
                         pairing, unknown vd.* calls, plain-text lines, and
                         finally a RestrictedPython compile

Both return a list of {line, column, method?, message, severity} dicts
(1-based positions); an empty list means valid.
"""

import re
from typing import Any

from RestrictedPython import compile_restricted_exec

from .guest import rewrite_assert_calls

ASYNC_VD_METHODS = ("vd.variables.set", "vd.variables.get", "vd.env.get")

SUPPORTED_VD_CALLS = frozenset(
    {
        "vd.variables.set",
        "vd.variables.get",
        "vd.env.get",
        "vd.log",
        "vd.cancel",
        "vd.assert",
        "vd.assert_",
    }
)
# vd.request.headers.push(...) and friends operate on plain data
_DATA_PREFIXES = ("vd.request.", "vd.response.")

_UNKNOWN_CALL_MSG = (
    "Unknown function '{method}()'. Supported: vd.env.get, vd.variables.get/set, "
    "vd.log, vd.assert, vd.cancel."
)

_JS_KEYWORDS_RE = re.compile(
    r"^(const|let|var|if|else|for|while|do|return|await|async|function|try|catch|finally|"
    r"throw|switch|case|break|continue|class|new|import|export|vd)\b"
)
_PY_KEYWORDS_RE = re.compile(
    r"^(if|elif|else|for|while|return|await|async|def|class|try|except|finally|raise|"
    r"import|from|pass|break|continue|lambda|with|vd)\b"
)
_CODE_SYMBOLS_RE = re.compile(r"[=()\[\]{};+*/%<>$&|]")
_MEMBER_ACCESS_RE = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)+\s*(\(|$)")
_BARE_CALL_RE = re.compile(r"^[A-Za-z_$][\w$]*\s*\(")
_TRAILING_PUNCT_RE = re.compile(r"[.,!?;:]+$")
_PROSE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_'\"\-]*(\s+[A-Za-z0-9_'\"\-]+)+$")
_SINGLE_WORD_RE = re.compile(r"^[A-Za-z]{3,}$")
_VD_CALL_RE = re.compile(r"(^|[^.\w])(vd(?:\.[A-Za-z_$][\w$]*)+)\s*\(")
_AWAIT_TAIL_RE = re.compile(r"\bawait\s+$")
_RESTRICTED_LINE_RE = re.compile(r"^Line (\d+):\s*(.*)$", re.S)

_PAIRS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {v: k for k, v in _PAIRS.items()}


def _error(
    line: int,
    column: int,
    message: str,
    *,
    method: str | None = None,
    severity: str = "error",
) -> dict[str, Any]:
    err: dict[str, Any] = {"line": line, "column": column, "message": message, "severity": severity}
    if method is not None:
        err["method"] = method
    return err


def is_likely_plain_text(trimmed: str, language: str) -> bool:
    """Heuristic for accidental prose in a script body."""
    if not trimmed:
        return False
    keywords = _JS_KEYWORDS_RE if language == "javascript" else _PY_KEYWORDS_RE
    if keywords.match(trimmed):
        return False
    if _CODE_SYMBOLS_RE.search(trimmed):
        return False
    if _MEMBER_ACCESS_RE.match(trimmed) or _BARE_CALL_RE.match(trimmed):
        return False
    normalized = _TRAILING_PUNCT_RE.sub("", trimmed).strip()
    if not normalized:
        return False
    if _PROSE_RE.match(normalized):
        return True
    return bool(_SINGLE_WORD_RE.match(normalized))


def find_vd_calls(line: str) -> list[tuple[str, int]]:
    """(method, 1-based column) for every vd.x.y( call on the line."""
    return [(m.group(2), m.start() + len(m.group(1)) + 1) for m in _VD_CALL_RE.finditer(line)]


def _unknown_calls(line: str, lineno: int) -> list[dict[str, Any]]:
    errors = []
    for method, column in find_vd_calls(line):
        if method in SUPPORTED_VD_CALLS or method.startswith(_DATA_PREFIXES):
            continue
        errors.append(_error(lineno, column, _UNKNOWN_CALL_MSG.format(method=method), method=method))
    return errors


def _strip_line_comment(line: str, marker: str, quotes: str) -> str:
    """Cut the line at a comment marker outside string literals."""
    out: list[str] = []
    in_string: str | None = None
    escaped = False
    i = 0
    while i < len(line):
        ch = line[i]
        if escaped:
            escaped = False
        elif ch == "\\" and in_string:
            escaped = True
        elif in_string:
            if ch == in_string:
                in_string = None
        elif ch in quotes:
            in_string = ch
        elif line.startswith(marker, i):
            break
        out.append(ch)
        i += 1
    return "".join(out)


# ---------------------------------------------------------------------------
# JavaScript
# ---------------------------------------------------------------------------


def _strip_block_comments(line: str, in_block: bool) -> tuple[str, bool]:
    if in_block:
        end = line.find("*/")
        if end == -1:
            return "", True
        line = line[end + 2 :]
    out: list[str] = []
    j = 0
    while j < len(line):
        if line.startswith("/*", j):
            end = line.find("*/", j + 2)
            if end == -1:
                return "".join(out), True
            j = end + 2
            continue
        out.append(line[j])
        j += 1
    return "".join(out), False


def validate_script(script_body: str) -> list[dict[str, Any]]:
    """Validate a JavaScript body."""
    if not script_body or not script_body.strip():
        return []
    errors: list[dict[str, Any]] = []
    in_block = False
    for lineno, raw in enumerate(script_body.split("\n"), start=1):
        cleaned, in_block = _strip_block_comments(raw, in_block)
        if in_block:
            continue
        cleaned = _strip_line_comment(cleaned, "//", "\"'`")
        trimmed = cleaned.strip()
        if not trimmed:
            continue

        if is_likely_plain_text(trimmed, "javascript"):
            errors.append(
                _error(
                    lineno,
                    1,
                    "This line looks like plain text. Comment it with '//' or wrap it in quotes.",
                    severity="warning",
                )
            )

        for method in ASYNC_VD_METHODS:
            start = 0
            while True:
                idx = cleaned.find(method + "(", start)
                if idx == -1:
                    break
                if not _AWAIT_TAIL_RE.search(cleaned[:idx]):
                    errors.append(
                        _error(
                            lineno,
                            idx + 1,
                            f"'{method}()' must be called with 'await'. Example: await {method}(...)",
                            method=method,
                        )
                    )
                start = idx + len(method)

        errors.extend(_unknown_calls(cleaned, lineno))
    return errors


# ---------------------------------------------------------------------------
# Python
# ---------------------------------------------------------------------------


def _restricted_errors(script_body: str) -> list[dict[str, Any]]:
    result = compile_restricted_exec(rewrite_assert_calls(script_body), "<script>")
    errors = []
    for text in result.errors:
        m = _RESTRICTED_LINE_RE.match(text)
        if m:
            errors.append(_error(int(m.group(1)), 1, m.group(2).strip()))
        else:
            errors.append(_error(1, 1, text))
    return errors


def validate_python_script(script_body: str) -> list[dict[str, Any]]:
    """Validate a Python body. The sandbox compile only runs when the line checks pass."""
    if not script_body or not script_body.strip():
        return []
    errors: list[dict[str, Any]] = []
    stack: list[tuple[str, int, int]] = []
    for lineno, raw in enumerate(script_body.split("\n"), start=1):
        cleaned = _strip_line_comment(raw, "#", "\"'")
        trimmed = cleaned.strip()
        if not trimmed:
            continue

        if is_likely_plain_text(trimmed, "python"):
            errors.append(
                _error(
                    lineno,
                    1,
                    "This line looks like plain text. Comment it with '#' or wrap it in quotes.",
                    severity="warning",
                )
            )

        idx = cleaned.find("await ")
        if idx >= 0:
            errors.append(_error(lineno, idx + 1, "Python scripts run synchronously here; remove 'await'."))

        indent = raw[: len(raw) - len(raw.lstrip(" \t"))]
        if "\t" in indent and " " in indent:
            errors.append(_error(lineno, 1, "Mixed tabs and spaces in indentation."))

        in_string: str | None = None
        escaped = False
        for col, ch in enumerate(cleaned, start=1):
            if escaped:
                escaped = False
            elif ch == "\\" and in_string:
                escaped = True
            elif in_string:
                if ch == in_string:
                    in_string = None
            elif ch in "\"'":
                in_string = ch
            elif ch in _PAIRS:
                stack.append((ch, lineno, col))
            elif ch in _CLOSERS:
                if stack and stack[-1][0] == _CLOSERS[ch]:
                    stack.pop()
                else:
                    errors.append(_error(lineno, col, f"Unexpected '{ch}'."))

        errors.extend(_unknown_calls(cleaned, lineno))

    for ch, lineno, col in stack:
        errors.append(_error(lineno, col, f"Unclosed '{ch}'."))

    if not any(e["severity"] == "error" for e in errors):
        errors.extend(_restricted_errors(script_body))
    return errors
