"""Tests for engines.script.guest: the Python guest run in-process."""

import io
import json
import signal

import pytest

from voiden_scripting.engines.script.guest import (
    format_script_error,
    main,
    rewrite_assert_calls,
    run_payload,
)


def _payload(script: str, **extra: object) -> dict:
    payload: dict = {
        "scriptBody": script,
        "request": {"url": "https://a", "method": "GET", "headers": [], "queryParams": [], "pathParams": []},
        "response": None,
        "envVars": {"BASE": "https://api"},
        "variables": {"token": "abc"},
        "allowedModules": ["json", "math"],
    }
    payload.update(extra)
    return payload


class TestRewriteAssert:
    def test_rewrites_both_names(self) -> None:
        src = "vd.assert(1, '==', 1)\nvoiden.assert (2, '==', 2)"
        assert rewrite_assert_calls(src) == "vd.assert_(1, '==', 1)\nvoiden.assert_(2, '==', 2)"

    def test_leaves_other_text(self) -> None:
        assert rewrite_assert_calls("x = 'vd.asserted'") == "x = 'vd.asserted'"


class TestRunPayload:
    def test_url_and_log(self) -> None:
        out = run_payload(_payload('voiden.request.url = voiden.request.url + "?x=1"\nvoiden.log("done")'))
        assert out["success"] is True
        assert out["modifiedRequest"]["url"] == "https://a?x=1"
        assert out["logs"] == [{"level": "log", "args": ["done"]}]

    def test_assert_then_raise_keeps_partial_work(self) -> None:
        out = run_payload(_payload('vd.log("before")\nvd.assert(1, "==", 1)\nraise ValueError("boom")'))
        assert out["success"] is False
        assert len(out["assertions"]) == 1
        assert out["assertions"][0]["passed"] is True
        assert "boom" in out["error"]
        assert out["logs"] == [{"level": "log", "args": ["before"]}]

    def test_error_traceback_points_at_script(self) -> None:
        out = run_payload(_payload("x = 1\ny = x / 0"))
        assert "ZeroDivisionError" in out["error"]
        assert "line 2" in out["error"]

    def test_variables_and_env(self) -> None:
        script = (
            "vd.variables.set('x', 1)\n"
            "vd.log(vd.variables.get('x'), vd.variables.get('token'), vd.env.get('BASE'))"
        )
        out = run_payload(_payload(script))
        assert out["modifiedVariables"] == {"x": 1}
        assert out["logs"][0]["args"] == [1, "abc", "https://api"]

    def test_print_captured_as_log(self) -> None:
        out = run_payload(_payload("print('hi', 2)"))
        assert out["logs"] == [{"level": "log", "args": ["hi", 2]}]

    def test_allowed_import(self) -> None:
        out = run_payload(_payload("import math\nvd.log(math.sqrt(16))"))
        assert out["success"] is True
        assert out["logs"][0]["args"] == [4]

    def test_disallowed_import(self) -> None:
        out = run_payload(_payload("import os"))
        assert out["success"] is False
        assert "not allowed" in out["error"]

    def test_compile_error(self) -> None:
        out = run_payload(_payload("def f(:"))
        assert out["success"] is False
        assert out["error"]

    def test_cancel_is_retrospective(self) -> None:
        out = run_payload(_payload("vd.cancel()\nvd.log('still running')"))
        assert out["cancelled"] is True
        assert out["logs"] == [{"level": "log", "args": ["still running"]}]

    def test_unsupported_operator_does_not_abort(self) -> None:
        out = run_payload(_payload("vd.assert(5, 'bogus', 5)\nvd.log('after')"))
        assert out["success"] is True
        assert out["assertions"][0]["reason"].startswith("Unsupported operator")

    @pytest.mark.skipif(not hasattr(signal, "setitimer"), reason="needs setitimer")
    def test_runaway_loop_hits_soft_alarm(self) -> None:
        out = run_payload(_payload("vd.log('start')\nwhile True:\n    pass", timeoutMs=300))
        assert out["success"] is False
        assert "timed out after 300ms" in out["error"]
        assert out["logs"] == [{"level": "log", "args": ["start"]}]


class TestMain:
    def test_writes_single_json_line(self) -> None:
        stdin = io.StringIO(json.dumps(_payload("vd.log('x')")))
        stdout = io.StringIO()
        assert main(stdin, stdout) == 0
        lines = stdout.getvalue().splitlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["success"] is True

    def test_failure_exit_code(self) -> None:
        stdout = io.StringIO()
        assert main(io.StringIO(json.dumps(_payload("raise RuntimeError('x')"))), stdout) == 1

    def test_invalid_payload(self) -> None:
        stdout = io.StringIO()
        assert main(io.StringIO("not json"), stdout) == 1
        assert "Invalid script payload" in json.loads(stdout.getvalue())["error"]

    def test_non_object_payload(self) -> None:
        for raw in ("[]", "42", "null", '"text"'):
            stdout = io.StringIO()
            assert main(io.StringIO(raw), stdout) == 1
            result = json.loads(stdout.getvalue())
            assert result["error"].startswith("Invalid script payload: expected a JSON object")
            assert result["logs"] == []


class TestFormatScriptError:
    def test_restricted_compile_errors_joined(self) -> None:
        exc = SyntaxError(("Line 1: bad", "Line 2: worse"))
        assert format_script_error(exc) == "Line 1: bad\nLine 2: worse"
