"""Tests for engines.script.hooks: pre-send and post-response pipeline hooks."""

import asyncio
from typing import Any

import pytest

from voiden_scripting.core.log_store import ScriptLogStore
from voiden_scripting.engines.script import hooks
from voiden_scripting.engines.script.hooks import (
    ScriptBlockedError,
    ScriptCancelledError,
    extract_script_from_doc,
    format_script_runtime_error,
    post_process_script_hook,
    pre_send_script_hook,
    strip_comments,
)


@pytest.fixture(autouse=True)
def store(monkeypatch: pytest.MonkeyPatch) -> ScriptLogStore:
    fresh = ScriptLogStore()
    monkeypatch.setattr(hooks, "script_log_store", fresh)
    return fresh


def _doc(*blocks: dict[str, Any]) -> dict[str, Any]:
    return {"type": "doc", "content": [{"type": "paragraph"}, *blocks]}


def _block(kind: str, body: str, language: str = "javascript") -> dict[str, Any]:
    return {"type": kind, "attrs": {"body": body, "language": language}}


def _context(doc: dict[str, Any]) -> dict[str, Any]:
    return {
        "requestState": {
            "url": "https://a",
            "method": "GET",
            "headers": [{"key": "A", "value": "1"}],
            "metadata": {"editorDocument": doc},
        },
        "responseState": {"status": 200, "headers": [], "body": "ok", "metadata": {}},
    }


class TestExtract:
    def test_last_matching_block_wins(self) -> None:
        doc = _doc(
            _block("pre_script", "vd.log(1)"),
            {"type": "section", "content": [_block("pre_script", "x = 1", "python")]},
            _block("post_script", "vd.log(3)"),
        )
        assert extract_script_from_doc(doc, "pre_script") == {"body": "x = 1", "language": "python"}
        assert extract_script_from_doc(doc, "post_script")["body"] == "vd.log(3)"

    def test_missing(self) -> None:
        assert extract_script_from_doc(None, "pre_script") is None
        assert extract_script_from_doc({"type": "doc"}, "pre_script") is None
        assert extract_script_from_doc(_doc(_block("pre_script", "")), "pre_script") is None

    def test_language_defaults_to_javascript(self) -> None:
        doc = _doc({"type": "pre_script", "attrs": {"body": "vd.log(1)"}})
        assert extract_script_from_doc(doc, "pre_script")["language"] == "javascript"


class TestFormatting:
    def test_strip_comments(self) -> None:
        assert strip_comments("// a\n/* b */", "javascript") == ""
        assert strip_comments("# only a comment", "python") == ""
        assert strip_comments("x = 1  # c", "python") == "x = 1"

    def test_js_position_adjusted(self) -> None:
        error = "Error: boom\n    at eval (eval at run, <anonymous>:4:7)"
        assert format_script_runtime_error(error, "a\nb", "javascript") == "Line 2:7: Error: boom"

    def test_python_line(self) -> None:
        error = 'Traceback\n  File "<script>", line 3, in <module>'
        assert format_script_runtime_error(error, "a\nb\nc", "python") == "Line 3: Traceback"

    def test_no_position(self) -> None:
        assert format_script_runtime_error("plain", "x", "javascript") == "plain"
        assert format_script_runtime_error("", "x", "javascript") == "Script execution failed"


class TestPreSend:
    def test_no_script_is_noop(self, fake_host: Any) -> None:
        context = _context(_doc(_block("pre_script", "// nothing here")))
        asyncio.run(pre_send_script_hook(context, host=fake_host))
        fake_host.execute_node.assert_not_awaited()
        assert "preScriptLogs" not in context["requestState"]["metadata"]

    def test_applies_modified_request(self, fake_host: Any, store: ScriptLogStore) -> None:
        fake_host.execute_node.return_value = {
            "success": True,
            "logs": [{"level": "info", "args": ["hi"]}],
            "modifiedRequest": {"url": "https://b", "headers": {"X": "2"}},
            "exitCode": 0,
        }
        context = _context(_doc(_block("pre_script", "vd.request.url = 'https://b'")))
        asyncio.run(pre_send_script_hook(context, host=fake_host))
        state = context["requestState"]
        assert state["url"] == "https://b"
        assert state["headers"] == [{"key": "X", "value": "2", "enabled": True}]
        assert state["metadata"]["preScriptLogs"] == [{"level": "info", "args": ["hi"]}]
        assert "preScriptError" not in state["metadata"]

        entries = store.get_entries()
        assert len(entries) == 1
        assert entries[0].phase.value == "pre"
        assert entries[0].exit_code == 0

    def test_payload_excludes_disabled_headers(self, fake_host: Any) -> None:
        fake_host.execute_node.return_value = {"success": True}
        context = _context(_doc(_block("pre_script", "vd.log(1)")))
        context["requestState"]["headers"].append({"key": "B", "value": "2", "enabled": False})
        asyncio.run(pre_send_script_hook(context, host=fake_host))
        payload = fake_host.execute_node.await_args.args[0]
        assert [h["key"] for h in payload["request"]["headers"]] == ["A"]

    def test_runtime_error_recorded(self, fake_host: Any, store: ScriptLogStore) -> None:
        fake_host.execute_node.return_value = {"success": False, "error": "Error: boom", "exitCode": 1}
        context = _context(_doc(_block("pre_script", "throw new Error('boom')")))
        asyncio.run(pre_send_script_hook(context, host=fake_host))
        metadata = context["requestState"]["metadata"]
        assert metadata["preScriptError"] == "Script execution failed: Error: boom"
        assert context["requestState"]["url"] == "https://a"
        assert store.get_entries()[0].error == "Script execution failed: Error: boom"

    def test_cancel_raises(self, fake_host: Any) -> None:
        fake_host.execute_node.return_value = {"success": True, "cancelled": True}
        context = _context(_doc(_block("pre_script", "vd.cancel()")))
        with pytest.raises(ScriptCancelledError):
            asyncio.run(pre_send_script_hook(context, host=fake_host))
        assert context["requestState"]["metadata"]["scriptCancelled"] is True

    def test_validation_blocks(self, fake_host: Any) -> None:
        context = _context(_doc(_block("pre_script", "const t = vd.env.get('T');")))
        with pytest.raises(ScriptBlockedError):
            asyncio.run(pre_send_script_hook(context, host=fake_host))
        fake_host.execute_node.assert_not_awaited()
        assert context["requestState"]["metadata"]["preScriptError"].startswith("Script validation failed:")

    def test_editor_document_on_context_wins(self, fake_host: Any) -> None:
        fake_host.execute_python.return_value = {"success": True}
        context = _context(_doc())
        context["editorDocument"] = _doc(_block("pre_script", "x = 1", "python"))
        asyncio.run(pre_send_script_hook(context, host=fake_host))
        fake_host.execute_python.assert_awaited_once()


class TestPostResponse:
    def test_applies_modified_response(self, fake_host: Any, store: ScriptLogStore) -> None:
        fake_host.execute_node.return_value = {
            "success": True,
            "logs": [{"level": "log", "args": ["seen"]}],
            "modifiedResponse": {"status": 299, "headers": {"A": "1"}, "body": "changed"},
        }
        context = _context(_doc(_block("post_script", "vd.response.body = 'changed'")))
        asyncio.run(post_process_script_hook(context, host=fake_host))
        response = context["responseState"]
        assert response["status"] == 299
        assert response["headers"] == [{"key": "A", "value": "1"}]
        assert response["body"] == "changed"
        assert response["metadata"]["postScriptLogs"] == [{"level": "log", "args": ["seen"]}]
        assert store.get_entries()[0].phase.value == "post"

        payload = fake_host.execute_node.await_args.args[0]
        assert payload["response"]["status"] == 200

    def test_validation_failure_does_not_raise(self, fake_host: Any) -> None:
        context = _context(_doc(_block("post_script", "vd.nope()")))
        asyncio.run(post_process_script_hook(context, host=fake_host))
        assert "Script validation failed" in context["responseState"]["metadata"]["postScriptError"]
        fake_host.execute_node.assert_not_awaited()

    def test_error_recorded(self, fake_host: Any) -> None:
        fake_host.execute_node.return_value = {"success": False, "error": "TypeError: x"}
        context = _context(_doc(_block("post_script", "vd.log(1)")))
        asyncio.run(post_process_script_hook(context, host=fake_host))
        assert context["responseState"]["metadata"]["postScriptError"] == "Script execution failed: TypeError: x"
        assert context["responseState"]["body"] == "ok"
