"""
Host side of the RPC bridge (worker and in-process paths).

The sandbox sends {"type": "rpc:request", "id", "method", "args"}; the host
answers with exactly one {"type": "rpc:response", "id", "result"} or
{"type": "rpc:response", "id", "error"}. Only env:get, variables:get and
variables:set are served. Distinct calls are answered independently, in
whatever order their host-side lookups finish.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from voiden_scripting.engines.script.normalize import jsonify
from voiden_scripting.models_script import RpcMethodEnum
from voiden_scripting.schemas_script import RpcCall, RpcResult

_log = logging.getLogger(__name__)

Send = Callable[[dict[str, Any]], Awaitable[None]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def response_message(result: RpcResult) -> dict[str, Any]:
    """rpc:response wire message. A None result is omitted so the guest sees undefined."""
    msg: dict[str, Any] = {"type": "rpc:response", "id": result.id}
    if result.error is not None:
        msg["error"] = result.error
    elif result.result is not None:
        msg["result"] = result.result
    return msg


class RpcDispatcher:
    """
    Serves one session's RPC calls against the caller's env / variables API.

    variables:set updates the caller's store, a session overlay (so a later
    variables:get in the same script sees the value even when the store is
    write-only) and the modified-variables accumulator.
    """

    def __init__(
        self,
        *,
        env: Any,
        variables: Any,
        modified_variables: dict[str, Any],
        session_id: str | None = None,
    ) -> None:
        self._env = env
        self._variables = variables
        self._modified = modified_variables
        self._overlay: dict[str, Any] = {}
        self._session_id = session_id
        self._pending: dict[int, asyncio.Task[None]] = {}
        self._answered: set[int] = set()

    @property
    def pending_ids(self) -> list[int]:
        return list(self._pending)

    async def handle(self, message: dict[str, Any]) -> dict[str, Any] | None:
        """Answer one request. Returns None for a duplicate or malformed id."""
        try:
            call = RpcCall.model_validate(
                {k: message.get(k) for k in ("id", "method", "args")}
            )
        except ValidationError:
            call_id = message.get("id")
            if not isinstance(call_id, int) or isinstance(call_id, bool):
                _log.warning("dropping rpc request without integer id", extra={"session_id": self._session_id})
                return None
            if call_id in self._answered:
                return None
            self._answered.add(call_id)
            return response_message(
                RpcResult(id=call_id, error=f"Unknown RPC method: {message.get('method')}")
            )
        if call.id in self._answered:
            _log.debug("duplicate rpc id %s ignored", call.id, extra={"session_id": self._session_id})
            return None
        self._answered.add(call.id)
        try:
            result = await self._dispatch(call)
        except Exception as e:
            return response_message(RpcResult(id=call.id, error=str(e) or type(e).__name__))
        return response_message(RpcResult(id=call.id, result=jsonify(result)))

    def submit(self, message: dict[str, Any], send: Send) -> None:
        """Handle a request concurrently; send() receives the single response."""
        call_id = message.get("id")
        if isinstance(call_id, int) and call_id in self._pending:
            return

        async def _run() -> None:
            try:
                response = await self.handle(message)
                if response is not None:
                    await send(response)
            finally:
                if isinstance(call_id, int):
                    self._pending.pop(call_id, None)

        task = asyncio.ensure_future(_run())
        if isinstance(call_id, int):
            self._pending[call_id] = task

    def discard_all(self) -> None:
        """Cancel in-flight calls; their responses are never sent."""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()

    async def _dispatch(self, call: RpcCall) -> Any:
        key = call.args[0] if call.args else None
        if call.method == RpcMethodEnum.ENV_GET:
            return await maybe_await(self._env.get(key))
        if call.method == RpcMethodEnum.VARIABLES_GET:
            if key in self._overlay:
                return self._overlay[key]
            return await maybe_await(self._variables.get(key))
        value = jsonify(call.args[1]) if len(call.args) > 1 else None
        await maybe_await(self._variables.set(key, value))
        self._overlay[key] = value
        self._modified[key] = value
        return None
