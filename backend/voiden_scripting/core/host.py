"""
Script host: the platform side the scripting core calls into.

ScriptHost (protocol)
    load_env()        -> {"activeEnv": name, "data": {name: {KEY: value}}}
    read_variables()  -> {name: JSONValue}
    execute_node(payload) / execute_python(payload) -> wire result dict
                         (optional capabilities; absence means the bridge
                         for that language is unavailable)

LocalScriptHost spawns the interpreters as one-shot subprocesses: one JSON
object on stdin, one JSON line on stdout, exit 0 / 1. Persisted variables
live in <project>/.voiden/.process.env.json.
"""

import asyncio
import contextlib
import json
import logging
import os
import shutil
import sys
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any, Protocol

from voiden_scripting.core.config import settings

_log = logging.getLogger(__name__)

VARIABLES_DIR = ".voiden"
VARIABLES_FILE = ".process.env.json"

# backend/ (parent of the voiden_scripting package), put on the guest's PYTHONPATH
PACKAGE_ROOT = Path(__file__).resolve().parents[2]


class BridgeUnavailableError(RuntimeError):
    """The host cannot run this language (no execute_node / execute_python)."""


class ScriptHost(Protocol):
    def load_env(self) -> Any: ...

    def read_variables(self) -> Any: ...


def host_capability(host: Any, name: str) -> Callable[..., Any] | None:
    """Return host.<name> when the host offers it, else None."""
    fn = getattr(host, name, None)
    if not callable(fn):
        return None
    supports = getattr(host, "supports", None)
    if callable(supports) and not supports(name):
        return None
    return fn


@lru_cache(maxsize=1)
def detect_node_path() -> str | None:
    """Resolve the node binary once per process."""
    path = shutil.which(settings.SCRIPT_NODE_BINARY)
    if path is None:
        _log.info("node binary %r not found on PATH", settings.SCRIPT_NODE_BINARY)
    return path


def python_binary() -> str:
    return settings.SCRIPT_PYTHON_BINARY or sys.executable


def child_env() -> dict[str, str]:
    """Minimal environment for guest processes; nothing else of the host leaks in."""
    env = {
        "PATH": os.environ.get("PATH", os.defpath),
        "PYTHONPATH": str(PACKAGE_ROOT),
        "PYTHONIOENCODING": "utf-8",
        "PYTHONDONTWRITEBYTECODE": "1",
    }
    if os.name == "nt" and "SYSTEMROOT" in os.environ:
        env["SYSTEMROOT"] = os.environ["SYSTEMROOT"]
    return env


def failure(error: str, exit_code: int, logs: list[Any] | None = None) -> dict[str, Any]:
    return {
        "success": False,
        "logs": logs or [],
        "assertions": [],
        "error": error,
        "cancelled": False,
        "exitCode": exit_code,
    }


def parse_result_line(stdout: str) -> dict[str, Any]:
    """The result is the last non-empty stdout line. Raises ValueError when unparsable."""
    lines = [line for line in stdout.splitlines() if line.strip()]
    result = json.loads(lines[-1] if lines else stdout)
    if not isinstance(result, dict):
        raise ValueError("result is not a JSON object")
    return result


class LocalScriptHost:
    """
    Subprocess-backed host.

    env_loader / variables_reader supply the persistent stores; without a
    reader, variables come from the project variables file.
    """

    def __init__(
        self,
        *,
        project_path: str | os.PathLike[str] | None = None,
        env_loader: Callable[[], Any] | None = None,
        variables_reader: Callable[[], Any] | None = None,
        node_bridge: bool = True,
        timeout_ms: int | None = None,
    ) -> None:
        self.project_path = Path(project_path) if project_path else None
        self._env_loader = env_loader
        self._variables_reader = variables_reader
        self._node_bridge = node_bridge
        self.timeout_ms = timeout_ms or settings.SCRIPT_SUBPROCESS_TIMEOUT_MS

    def supports(self, capability: str) -> bool:
        if capability == "execute_node":
            return self._node_bridge and detect_node_path() is not None
        return True

    # -- collaborators ------------------------------------------------------

    def load_env(self) -> dict[str, Any]:
        if self._env_loader is not None:
            return self._env_loader()
        return {"activeEnv": None, "data": {}}

    def read_variables(self) -> dict[str, Any]:
        if self._variables_reader is not None:
            return self._variables_reader()
        return self.load_project_variables()

    @property
    def variables_file(self) -> Path | None:
        if self.project_path is None:
            return None
        return self.project_path / VARIABLES_DIR / VARIABLES_FILE

    def load_project_variables(self) -> dict[str, Any]:
        path = self.variables_file
        if path is None or not path.is_file():
            return {}
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            _log.warning("cannot read %s: %s", path, e)
            return {}
        return parsed if isinstance(parsed, dict) else {}

    def persist_project_variables(self, updates: dict[str, Any]) -> None:
        """Merge updates into the variables file. Best effort."""
        path = self.variables_file
        if path is None or not updates:
            return
        merged = {**self.load_project_variables(), **updates}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(merged, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            _log.warning("cannot persist variables to %s: %s", path, e)

    # -- bridges --------------------------------------------------------------

    async def execute_node(self, payload: dict[str, Any]) -> dict[str, Any]:
        node = detect_node_path()
        if node is None:
            return failure("Node.js not found. Ensure node is in your PATH.", -1)
        wrapper = (payload.get("nodeHostWrapper") or "").strip()
        if not wrapper:
            return failure("Node host wrapper source missing from payload.", -1)
        return await self._run([node, "-e", wrapper], payload, label="Node.js")

    async def execute_python(self, payload: dict[str, Any]) -> dict[str, Any]:
        wrapper = (payload.get("pythonWrapper") or "").strip()
        if not wrapper:
            return failure("Python wrapper source missing from payload.", -1)
        return await self._run([python_binary(), "-c", wrapper], payload, label="Python")

    async def _run(self, argv: list[str], payload: dict[str, Any], *, label: str) -> dict[str, Any]:
        timeout_ms = int(payload.get("timeoutMs") or self.timeout_ms)
        merged = {
            **payload,
            "timeoutMs": timeout_ms,
            "variables": {**self.load_project_variables(), **(payload.get("variables") or {})},
        }
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.project_path) if self.project_path else None,
                env=child_env(),
            )
        except OSError as e:
            _log.warning("failed to spawn %s: %s", label, e)
            return failure(f"Failed to spawn {label}: {e}", -1)

        hard_timeout = (timeout_ms + settings.SCRIPT_KILL_GRACE_MS) / 1000
        try:
            out, err = await asyncio.wait_for(
                proc.communicate(json.dumps(merged).encode("utf-8")), timeout=hard_timeout
            )
        except asyncio.TimeoutError:
            _log.info("%s script exceeded %sms, killing pid %s", label, timeout_ms, proc.pid)
            proc.kill()
            await proc.wait()
            return failure(f"Script execution timed out after {timeout_ms}ms", 1)
        except asyncio.CancelledError:
            # Caller gave up (e.g. an outer supervisor); never leave the child running.
            _log.info("%s script cancelled, killing pid %s", label, proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            raise

        exit_code = proc.returncode if proc.returncode is not None else -1
        stdout = out.decode("utf-8", errors="replace")
        stderr = err.decode("utf-8", errors="replace")
        if exit_code != 0 and not stdout.strip():
            return failure(stderr.strip() or f"{label} exited with code {exit_code}", exit_code)
        try:
            result = parse_result_line(stdout)
        except ValueError:
            return failure(f"Failed to parse {label} output: {stdout[:500]}", exit_code)

        result["exitCode"] = 1 if result.get("success") is False and exit_code == 0 else exit_code
        modified = result.get("modifiedVariables")
        if isinstance(modified, dict) and modified:
            self.persist_project_variables(modified)
        return result


_default_host: LocalScriptHost | None = None


def get_default_host() -> LocalScriptHost:
    global _default_host
    if _default_host is None:
        _default_host = LocalScriptHost(project_path=settings.SCRIPT_PROJECT_PATH)
    return _default_host
