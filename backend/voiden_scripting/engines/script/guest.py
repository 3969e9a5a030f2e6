"""
Python guest: runs inside the one-shot subprocess spawned by the host.

Reads one JSON payload from stdin:
    {"scriptBody", "request", "response", "envVars", "variables",
     "timeoutMs", "allowedModules"}
writes one JSON line (the result) to stdout and exits 0 on success, 1 on
failure or timeout. There is no channel back to the host while the script
runs; env and variables arrive pre-resolved.
"""

import json
import re
import sys
import traceback
from typing import Any, TextIO

from voiden_scripting.engines.script.context import ScriptContext
from voiden_scripting.engines.script.sandbox import build_restricted_globals, compile_script
from voiden_scripting.engines.script.supervisor import (
    ScriptTimeoutError,
    arm_soft_alarm,
    soft_budget_ms,
)

SCRIPT_FILENAME = "<script>"

# `assert` is a keyword; scripts written against the JS API call vd.assert(...)
_ASSERT_CALL_RE = re.compile(r"\b(voiden|vd)\.assert\s*\(")


def rewrite_assert_calls(script_body: str) -> str:
    return _ASSERT_CALL_RE.sub(r"\1.assert_(", script_body)


def format_script_error(exc: BaseException) -> str:
    """Traceback limited to frames from the user script."""
    if isinstance(exc, SyntaxError) and exc.args and isinstance(exc.args[0], (list, tuple)):
        return "\n".join(str(e) for e in exc.args[0])
    frames = [f for f in traceback.extract_tb(exc.__traceback__) if f.filename == SCRIPT_FILENAME]
    lines: list[str] = []
    if frames:
        lines.append("Traceback (most recent call last):\n")
        lines.extend(traceback.format_list(frames))
    lines.extend(traceback.format_exception_only(type(exc), exc))
    return "".join(lines).rstrip()


def run_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Execute one payload and return the wire-shaped result. Never raises."""
    ctx = ScriptContext(
        request=payload.get("request") or {},
        response=payload.get("response"),
        env_vars=payload.get("envVars") or {},
        variables=payload.get("variables") or {},
    )
    timeout_ms = payload.get("timeoutMs")
    try:
        code = compile_script(rewrite_assert_calls(str(payload.get("scriptBody") or "")), SCRIPT_FILENAME)
        g = build_restricted_globals(
            ctx.to_dict(),
            print_sink=ctx.print_sink,
            allowed_modules=payload.get("allowedModules") or (),
        )
        with arm_soft_alarm(soft_budget_ms(timeout_ms) if timeout_ms else None):
            exec(code, g)
    except ScriptTimeoutError:
        return ctx.outcome(
            success=False,
            error=f"Script execution timed out after {timeout_ms}ms",
        )
    except Exception as e:
        return ctx.outcome(success=False, error=format_script_error(e))
    return ctx.outcome(success=True)


def main(stdin: TextIO | None = None, stdout: TextIO | None = None) -> int:
    stdin = stdin or sys.stdin
    out = stdout or sys.stdout
    try:
        payload = json.loads(stdin.read() or "{}")
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
    except ValueError as e:
        result: dict[str, Any] = {
            "success": False,
            "logs": [],
            "assertions": [],
            "cancelled": False,
            "error": f"Invalid script payload: {e}",
            "modifiedVariables": {},
        }
    else:
        # Keep the result line the only thing on stdout.
        saved, sys.stdout = sys.stdout, sys.stderr
        try:
            result = run_payload(payload)
        finally:
            sys.stdout = saved
    out.write(json.dumps(result, ensure_ascii=False) + "\n")
    out.flush()
    return 0 if result.get("success") else 1


if __name__ == "__main__":
    sys.exit(main())
