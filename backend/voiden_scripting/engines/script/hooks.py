"""
Request pipeline hooks: pre-send and post-response scripts.

The pipeline context is a dict:

    {"requestState": {..., "metadata": {"editorDocument": <doc JSON>}},
     "responseState": {..., "metadata": {...}},
     "editorDocument": <doc JSON>}          # optional, wins over metadata

The script comes from the last pre_script / post_script node of the
document. Logs and errors land in metadata and in script_log_store.
"""

import logging
import re
from typing import Any

from voiden_scripting.core.host import get_default_host
from voiden_scripting.core.log_store import script_log_store
from voiden_scripting.models_script import ScriptLanguageEnum, ScriptPhaseEnum

from .validate import validate_python_script, validate_script
from .vd_api import (
    HostEnvApi,
    HostVariablesApi,
    VdApi,
    apply_vd_request_to_state,
    apply_vd_response_to_state,
    build_vd_request,
    build_vd_response,
)

_log = logging.getLogger(__name__)

_JS_POSITION_RE = re.compile(r"<anonymous>:(\d+):(\d+)")
_PY_LINE_RE = re.compile(r"line\s+(\d+)", re.I)


class ScriptCancelledError(RuntimeError):
    """A pre-send script called vd.cancel(); the request must not be sent."""


class ScriptBlockedError(RuntimeError):
    """Static validation found blocking errors in a pre-send script."""


def extract_script_from_doc(doc: Any, node_type: str) -> dict[str, str] | None:
    """{body, language} of the last node of node_type with a body, or None."""
    if not isinstance(doc, dict) or not doc.get("content"):
        return None
    found: dict[str, str] | None = None
    stack = [doc]
    # depth-first, document order
    while stack:
        node = stack.pop()
        if not isinstance(node, dict):
            continue
        attrs = node.get("attrs") or {}
        if node.get("type") == node_type and attrs.get("body"):
            found = {"body": attrs["body"], "language": attrs.get("language") or "javascript"}
        children = node.get("content")
        if isinstance(children, list):
            stack.extend(reversed(children))
    return found


def strip_comments(body: str, language: str) -> str:
    if language == ScriptLanguageEnum.PYTHON.value:
        return re.sub(r"#.*$", "", body, flags=re.M).strip()
    body = re.sub(r"//.*$", "", body, flags=re.M)
    return re.sub(r"/\*[\s\S]*?\*/", "", body).strip()


def format_script_runtime_error(raw_error: Any, script_body: str, language: str) -> str:
    """`Line N[:C]: <first line>` when a position is recoverable, else the first line."""
    text = str(raw_error or "").strip()
    if not text:
        return "Script execution failed"
    first_line = next((s.strip() for s in text.split("\n") if s.strip()), "Script execution failed")
    line_count = len(script_body.split("\n"))

    line: int | None = None
    column: int | None = None
    m = _JS_POSITION_RE.search(text)
    if m:
        line, column = int(m.group(1)), int(m.group(2))
    if not line:
        m = _PY_LINE_RE.search(text)
        if m:
            line = int(m.group(1))

    # the AsyncFunction wrapper shifts stack lines by one or two
    if language == ScriptLanguageEnum.JAVASCRIPT.value and line and line > line_count:
        if 0 < line - 2 <= line_count:
            line -= 2
        elif 0 < line - 1 <= line_count:
            line -= 1

    if line and line > 0:
        return f"Line {line}{f':{column}' if column else ''}: {first_line}"
    return first_line


def _document(context: dict[str, Any]) -> Any:
    if context.get("editorDocument") is not None:
        return context["editorDocument"]
    metadata = (context.get("requestState") or {}).get("metadata") or {}
    return metadata.get("editorDocument")


def _blocking_errors(body: str, language: str) -> list[dict[str, Any]]:
    errors = validate_python_script(body) if language == "python" else validate_script(body)
    return [e for e in errors if (e.get("severity") or "error") == "error"]


def _script_for(context: dict[str, Any], node_type: str) -> dict[str, str] | None:
    info = extract_script_from_doc(_document(context), node_type)
    if not info or not info["body"].strip():
        return None
    if not strip_comments(info["body"], info["language"]):
        return None
    return info


async def pre_send_script_hook(context: dict[str, Any], *, host: Any = None) -> None:
    """Run the pre-send script; apply request changes; raise on cancel."""
    from voiden_scripting.engines.executor import ScriptExecutor

    info = _script_for(context, "pre_script")
    if info is None:
        return
    body, language = info["body"], info["language"]
    request_state = context.setdefault("requestState", {})
    metadata = request_state.setdefault("metadata", {})

    blocking = _blocking_errors(body, language)
    if blocking:
        msg = "\n".join(f"Line {e['line']}: {e['message']}" for e in blocking)
        metadata["preScriptError"] = f"Script validation failed:\n{msg}"
        raise ScriptBlockedError(f"Pre-request script blocked: {blocking[0]['message']}")

    host = host or get_default_host()
    api = VdApi(
        request=build_vd_request(request_state),
        env=HostEnvApi(host),
        variables=HostVariablesApi(host),
    )
    result = await ScriptExecutor(host=host).execute(body, api, language)

    if result.success and result.modified_request is not None:
        apply_vd_request_to_state(result.modified_request, request_state)

    logs = [x.model_dump(by_alias=True, mode="json") for x in result.logs]
    metadata["preScriptLogs"] = logs
    error = None
    if result.error or not result.success:
        error = format_script_runtime_error(result.error, body, language)
        metadata["preScriptError"] = error
    script_log_store.push(ScriptPhaseEnum.PRE, logs, error, result.exit_code)

    if result.cancelled:
        metadata["scriptCancelled"] = True
        _log.info("request cancelled by pre-request script")
        raise ScriptCancelledError("Request cancelled by pre-request script")


async def post_process_script_hook(context: dict[str, Any], *, host: Any = None) -> None:
    """Run the post-response script; apply response changes."""
    from voiden_scripting.engines.executor import ScriptExecutor

    info = _script_for(context, "post_script")
    if info is None:
        return
    body, language = info["body"], info["language"]
    request_state = context.get("requestState") or {}
    response_state = context.setdefault("responseState", {})
    metadata = response_state.setdefault("metadata", {})

    blocking = _blocking_errors(body, language)
    if blocking:
        msg = "\n".join(f"Line {e['line']}: {e['message']}" for e in blocking)
        metadata["postScriptError"] = f"Script validation failed:\n{msg}"
        return

    host = host or get_default_host()
    api = VdApi(
        request=build_vd_request(request_state),
        response=build_vd_response(response_state),
        env=HostEnvApi(host),
        variables=HostVariablesApi(host),
    )
    result = await ScriptExecutor(host=host).execute(body, api, language)

    if result.success and result.modified_response is not None:
        apply_vd_response_to_state(result.modified_response, response_state)

    logs = [x.model_dump(by_alias=True, mode="json") for x in result.logs]
    metadata["postScriptLogs"] = logs
    error = None
    if result.error or not result.success:
        error = str(result.error or "Script execution failed")
        metadata["postScriptError"] = error
    script_log_store.push(ScriptPhaseEnum.POST, logs, error, result.exit_code)
