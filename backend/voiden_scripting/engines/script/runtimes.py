"""
Isolation units. Each runtime drives one SandboxSession to COMPLETED,
TIMED_OUT or CRASHED_INTERNALLY; the caller finalizes it.

NodeBridgeRuntime    host.execute_node(payload)   JS, require() available
PythonBridgeRuntime  host.execute_python(payload) Python, RestrictedPython guest
WorkerRuntime        session-owned node child, JSON lines over stdio, live RPC
InProcessRuntime     embedded V8 (mini-racer) on one executor thread, live RPC
"""

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from voiden_scripting.core.config import settings
from voiden_scripting.core.host import child_env
from voiden_scripting.models_script import ExecutionPathEnum
from voiden_scripting.schemas_script import ScriptExecutionRequest

from .normalize import to_json_text
from .rpc import RpcDispatcher, maybe_await
from .session import SandboxCrashedError, SandboxSession
from .supervisor import ScriptTimeoutError, TimeoutSupervisor
from .wrappers import (
    IN_PROCESS_SHIM,
    NODE_HOST_WRAPPER,
    PYTHON_BOOTSTRAP,
    WORKER_CHANNEL_SHIM,
    WORKER_SOURCE,
)

_log = logging.getLogger(__name__)

HostCall = Callable[[dict[str, Any]], Awaitable[Any] | Any]

# Idle wait between outbox polls while the in-process script awaits
_POLL_INTERVAL_S = 0.005
# stderr kept from a worker child for crash reports
_STDERR_TAIL_BYTES = 4096


def start_message(request: ScriptExecutionRequest) -> dict[str, Any]:
    """The `start` message of the worker protocol."""
    return {
        "type": "start",
        "script": request.script_body,
        "request": request.request.model_dump(by_alias=True),
        "response": request.response.model_dump(by_alias=True) if request.response else None,
    }


def bridge_payload(request: ScriptExecutionRequest, *, timeout_ms: int) -> dict[str, Any]:
    """Payload for the subprocess bridges. env and variables are pre-resolved."""
    return {
        "scriptBody": request.script_body,
        "request": request.request.model_dump(by_alias=True),
        "response": request.response.model_dump(by_alias=True) if request.response else None,
        "envVars": dict(request.env_vars),
        "variables": dict(request.variables),
        "timeoutMs": timeout_ms,
    }


# ---------------------------------------------------------------------------
# Subprocess bridges
# ---------------------------------------------------------------------------


class _BridgeRuntime:
    path: ExecutionPathEnum
    error_prefix: str

    def __init__(self, call: HostCall, *, timeout_ms: int | None = None) -> None:
        self._call = call
        self.timeout_ms = timeout_ms or settings.SCRIPT_SUBPROCESS_TIMEOUT_MS

    def payload(self, request: ScriptExecutionRequest) -> dict[str, Any]:
        return bridge_payload(request, timeout_ms=self.timeout_ms)

    async def run(self, session: SandboxSession) -> None:
        payload = self.payload(session.request)
        session.start()
        session.mark_running()
        # The host enforces timeoutMs plus one grace period itself; this
        # safety net fires only after the host had its chance to kill the child.
        supervisor = TimeoutSupervisor(self.timeout_ms + 2 * settings.SCRIPT_KILL_GRACE_MS)
        try:
            raw = await supervisor.run(maybe_await(self._call(payload)))
        except ScriptTimeoutError as e:
            session.time_out(e)
            return
        except Exception as e:
            _log.warning("%s bridge call failed", self.path.value, exc_info=True, extra=session.log_extra)
            session.crash(SandboxCrashedError(f"{self.error_prefix}: {e}"))
            return
        if not isinstance(raw, dict):
            session.crash(SandboxCrashedError(f"{self.error_prefix}: host returned no result"))
            return
        session.complete(raw, error_prefix=self.error_prefix)


class NodeBridgeRuntime(_BridgeRuntime):
    path = ExecutionPathEnum.NODE_BRIDGE
    error_prefix = "Script execution failed"

    def payload(self, request: ScriptExecutionRequest) -> dict[str, Any]:
        payload = super().payload(request)
        payload["workerSource"] = WORKER_SOURCE
        payload["nodeHostWrapper"] = NODE_HOST_WRAPPER
        return payload


class PythonBridgeRuntime(_BridgeRuntime):
    path = ExecutionPathEnum.PYTHON_BRIDGE
    error_prefix = "Python execution failed"

    def payload(self, request: ScriptExecutionRequest) -> dict[str, Any]:
        payload = super().payload(request)
        payload["pythonWrapper"] = PYTHON_BOOTSTRAP
        payload["allowedModules"] = sorted(settings.python_allowed_modules)
        return payload


# ---------------------------------------------------------------------------
# Worker: node child, newline-delimited JSON over stdio
# ---------------------------------------------------------------------------


class WorkerRuntime:
    """
    Runs WORKER_SOURCE inside a vm context of a dedicated node child.

    The child gets no require(); env and variables are served over RPC from
    the caller's APIs while the script runs.
    """

    path = ExecutionPathEnum.WORKER

    def __init__(
        self,
        *,
        env: Any,
        variables: Any,
        node_path: str,
        timeout_ms: int | None = None,
    ) -> None:
        self._env = env
        self._variables = variables
        self.node_path = node_path
        self.timeout_ms = timeout_ms or settings.SCRIPT_WORKER_TIMEOUT_MS

    async def run(self, session: SandboxSession) -> None:
        session.start()
        try:
            proc = await asyncio.create_subprocess_exec(
                self.node_path,
                "-e",
                WORKER_CHANNEL_SHIM,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=child_env(),
                limit=settings.SCRIPT_MAX_MESSAGE_BYTES,
            )
        except OSError as e:
            session.crash(SandboxCrashedError(f"Failed to spawn script worker: {e}"))
            return

        stderr_tail = bytearray()
        stderr_task = asyncio.ensure_future(_drain_stderr(proc, stderr_tail))
        write_lock = asyncio.Lock()

        async def send(message: dict[str, Any]) -> None:
            assert proc.stdin is not None
            async with write_lock:
                try:
                    proc.stdin.write((to_json_text(message) + "\n").encode("utf-8"))
                    await proc.stdin.drain()
                except (BrokenPipeError, ConnectionResetError):
                    _log.debug("worker stdin closed, dropping %s", message.get("type"), extra=session.log_extra)

        dispatcher = RpcDispatcher(
            env=self._env,
            variables=self._variables,
            modified_variables=session.modified_variables,
            session_id=session.id,
        )
        supervisor = TimeoutSupervisor(self.timeout_ms, on_expire=lambda: _kill(proc))
        try:
            await send({"type": "init", "workerSource": WORKER_SOURCE})
            await send(start_message(session.request))
            session.mark_running()
            report = await supervisor.run(self._pump(proc, session, dispatcher, send, stderr_tail))
        except ScriptTimeoutError as e:
            session.time_out(e)
        except SandboxCrashedError as e:
            session.crash(e)
        else:
            session.complete(report)
        finally:
            dispatcher.discard_all()
            await _teardown(proc)
            stderr_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stderr_task

    async def _pump(
        self,
        proc: asyncio.subprocess.Process,
        session: SandboxSession,
        dispatcher: RpcDispatcher,
        send: Callable[[dict[str, Any]], Awaitable[None]],
        stderr_tail: bytearray,
    ) -> dict[str, Any]:
        assert proc.stdout is not None
        while True:
            try:
                line = await proc.stdout.readline()
            except ValueError as e:
                raise SandboxCrashedError(f"Script worker message too large: {e}") from None
            if not line:
                code = await proc.wait()
                detail = stderr_tail.decode("utf-8", errors="replace").strip()
                msg = f"Script worker exited unexpectedly with code {code}"
                raise SandboxCrashedError(f"{msg}: {detail}" if detail else msg)
            try:
                message = json.loads(line)
            except ValueError:
                _log.debug("ignoring non-JSON worker output", extra=session.log_extra)
                continue
            if not isinstance(message, dict):
                continue
            kind = message.get("type")
            if kind == "log":
                session.record_log(message.get("level"), message.get("args"))
            elif kind == "rpc:request":
                dispatcher.submit(message, send)
            elif kind == "error":
                raise SandboxCrashedError(str(message.get("error") or "Script worker crashed"))
            elif kind == "done":
                return message


async def _drain_stderr(proc: asyncio.subprocess.Process, tail: bytearray) -> None:
    assert proc.stderr is not None
    while True:
        chunk = await proc.stderr.read(4096)
        if not chunk:
            return
        tail.extend(chunk)
        del tail[:-_STDERR_TAIL_BYTES]


def _kill(proc: asyncio.subprocess.Process) -> None:
    with contextlib.suppress(ProcessLookupError):
        proc.kill()


async def _teardown(proc: asyncio.subprocess.Process) -> None:
    """terminate(), then kill() after the grace period."""
    if proc.stdin is not None and not proc.stdin.is_closing():
        proc.stdin.close()
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=settings.SCRIPT_KILL_GRACE_MS / 1000)
    except asyncio.TimeoutError:
        _kill(proc)
        await proc.wait()


# ---------------------------------------------------------------------------
# Same thread: embedded V8
# ---------------------------------------------------------------------------


class InProcessRuntime:
    """
    Runs WORKER_SOURCE in a mini-racer context.

    All V8 calls happen on one dedicated thread; messages cross as JSON text
    through __vd_deliver / __vd_drain. Each eval carries the remaining budget
    as its V8 timeout, so a busy loop is interrupted inside the engine.
    """

    path = ExecutionPathEnum.IN_PROCESS

    def __init__(self, *, env: Any, variables: Any, timeout_ms: int | None = None) -> None:
        self._env = env
        self._variables = variables
        self.timeout_ms = timeout_ms or settings.SCRIPT_INPROCESS_TIMEOUT_MS

    async def run(self, session: SandboxSession) -> None:
        from py_mini_racer import JSEvalException, JSTimeoutException

        session.start()
        loop = asyncio.get_running_loop()
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"vd-{session.id}")
        deadline = loop.time() + self.timeout_ms / 1000
        ctx: Any = None

        async def js(code: str) -> Any:
            remaining = max(deadline - loop.time(), 0.001)
            try:
                return await loop.run_in_executor(pool, lambda: ctx.eval(code, timeout_sec=remaining))
            except JSTimeoutException:
                raise ScriptTimeoutError(self.timeout_ms) from None
            except JSEvalException as e:
                raise SandboxCrashedError(str(e) or "Script engine error") from None

        dispatcher = RpcDispatcher(
            env=self._env,
            variables=self._variables,
            modified_variables=session.modified_variables,
            session_id=session.id,
        )
        supervisor = TimeoutSupervisor(self.timeout_ms + settings.SCRIPT_KILL_GRACE_MS)
        try:
            ctx = await loop.run_in_executor(pool, _new_context)
            session.mark_running()
            report = await supervisor.run(self._drive(js, session, dispatcher))
        except ScriptTimeoutError as e:
            session.time_out(e)
        except SandboxCrashedError as e:
            session.crash(e)
        else:
            session.complete(report)
        finally:
            if ctx is not None:
                pool.submit(ctx.close)
            pool.shutdown(wait=False)

    async def _drive(
        self,
        js: Callable[[str], Awaitable[Any]],
        session: SandboxSession,
        dispatcher: RpcDispatcher,
    ) -> dict[str, Any]:
        async def deliver(message: dict[str, Any]) -> None:
            await js(f"__vd_deliver({json.dumps(to_json_text(message))})")

        await deliver(start_message(session.request))
        while True:
            messages = json.loads(await js("__vd_drain()"))
            if not messages:
                await asyncio.sleep(_POLL_INTERVAL_S)
                continue
            for message in messages:
                kind = message.get("type") if isinstance(message, dict) else None
                if kind == "log":
                    session.record_log(message.get("level"), message.get("args"))
                elif kind == "rpc:request":
                    response = await dispatcher.handle(message)
                    if response is not None:
                        await deliver(response)
                elif kind == "done":
                    return message


def _new_context() -> Any:
    from py_mini_racer import MiniRacer

    ctx = MiniRacer()
    ctx.eval(IN_PROCESS_SHIM)
    return ctx
