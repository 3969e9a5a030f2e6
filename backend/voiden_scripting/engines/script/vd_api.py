"""
Builds the caller-side `vd` API from pipeline state and applies results back.

Pipeline state is the loose dict a request pipeline carries around
(headers as entry lists, response timing under timing.duration, ...). The
builders turn it into RequestState / ResponseState snapshots; the apply_*
functions write a script's modifications back in canonical list form.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from voiden_scripting.models_script import ScriptLanguageEnum
from voiden_scripting.schemas_script import RequestState, ResponseState

from .normalize import normalize_collection, to_plain
from .rpc import maybe_await

_log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# env / variables APIs
# ---------------------------------------------------------------------------


class NullEnvApi:
    async def get(self, key: str) -> Any:
        return None


class NullVariablesApi:
    async def get(self, key: str) -> Any:
        return None

    async def set(self, key: str, value: Any) -> None:
        return None


class DictEnvApi:
    """env API over a fixed mapping."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data = dict(data or {})

    async def get(self, key: str) -> Any:
        return self.data.get(key)


class DictVariablesApi:
    """variables API over an in-memory table. set() writes through."""

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})

    async def get(self, key: str) -> Any:
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self.data[key] = value


class HostEnvApi:
    """Resolves env.get(key) against the host's active environment on each call."""

    def __init__(self, host: Any) -> None:
        self.host = host

    async def get(self, key: str) -> Any:
        return (await resolve_active_env(self.host)).get(key)


class HostVariablesApi:
    """variables.get/set against the host's persisted variable store."""

    def __init__(self, host: Any) -> None:
        self.host = host

    async def get(self, key: str) -> Any:
        data = await maybe_await(self.host.read_variables())
        return (data or {}).get(key)

    async def set(self, key: str, value: Any) -> None:
        persist = getattr(self.host, "persist_project_variables", None)
        if callable(persist):
            await maybe_await(persist({key: value}))
        else:
            _log.debug("host cannot persist variables, dropping %s", key)


async def resolve_active_env(host: Any) -> dict[str, str]:
    """host.load_env() -> data[activeEnv], {} when nothing is active."""
    loaded = await maybe_await(host.load_env())
    if not isinstance(loaded, dict):
        return {}
    data = loaded.get("data") or {}
    active = loaded.get("activeEnv")
    values = data.get(active) if active is not None else None
    if not isinstance(values, dict):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in values.items()}


@dataclass
class VdApi:
    """What a caller hands to execute_script: request, response, env, variables."""

    request: RequestState | dict[str, Any] | None = None
    response: ResponseState | dict[str, Any] | None = None
    env: Any = field(default_factory=NullEnvApi)
    variables: Any = field(default_factory=NullVariablesApi)


# ---------------------------------------------------------------------------
# Pipeline state <-> snapshots
# ---------------------------------------------------------------------------


def _enabled_entries(value: Any) -> list[dict[str, Any]]:
    return [e for e in normalize_collection(value) if e["enabled"]]


def build_vd_request(request_state: Any) -> RequestState:
    """RequestState from pipeline state. Disabled entries are dropped."""
    state = to_plain(request_state) or {}
    return RequestState(
        url=state.get("url") or "",
        method=state.get("method") or "GET",
        headers=_enabled_entries(state.get("headers")),
        query_params=_enabled_entries(state.get("queryParams")),
        path_params=_enabled_entries(state.get("pathParams")),
        body=state.get("body"),
    )


def apply_vd_request_to_state(vd_request: RequestState | dict[str, Any], request_state: dict[str, Any]) -> None:
    """Write a (possibly script-modified) request back into pipeline state."""
    if isinstance(vd_request, RequestState):
        data = vd_request.model_dump(by_alias=True)
    else:
        data = vd_request
    request_state["url"] = data.get("url") or ""
    request_state["method"] = data.get("method") or "GET"
    for name in ("headers", "queryParams", "pathParams"):
        request_state[name] = normalize_collection(data.get(name))
    request_state["body"] = data.get("body")


def build_vd_response(response_state: Any) -> ResponseState:
    """ResponseState from pipeline state: headers as a map, time/size from timing."""
    state = to_plain(response_state) or {}
    headers = {e["key"]: e["value"] for e in normalize_collection(state.get("headers"))}
    timing = state.get("timing") or {}
    return ResponseState(
        status=state.get("status"),
        status_text=state.get("statusText"),
        headers=headers,
        body=state.get("body"),
        time=timing.get("duration") or 0,
        size=state.get("bytesContent") or 0,
    )


def apply_vd_response_to_state(
    vd_response: ResponseState | dict[str, Any], response_state: dict[str, Any]
) -> None:
    if isinstance(vd_response, ResponseState):
        data = vd_response.model_dump(by_alias=True)
    else:
        data = vd_response
    response_state["status"] = data.get("status")
    response_state["statusText"] = data.get("statusText")
    response_state["headers"] = [
        {"key": e["key"], "value": e["value"]} for e in normalize_collection(data.get("headers"))
    ]
    response_state["body"] = data.get("body")


# ---------------------------------------------------------------------------
# Helpers exposed to other pipeline components
# ---------------------------------------------------------------------------


def create_pre_script_block(
    script_body: str, language: ScriptLanguageEnum | str = ScriptLanguageEnum.JAVASCRIPT
) -> dict[str, Any]:
    """Editor block for a pre-send script."""
    return {"type": "pre_script", "attrs": {"body": script_body, "language": ScriptLanguageEnum(language).value}}


def create_post_script_block(
    script_body: str, language: ScriptLanguageEnum | str = ScriptLanguageEnum.JAVASCRIPT
) -> dict[str, Any]:
    """Editor block for a post-response script."""
    return {"type": "post_script", "attrs": {"body": script_body, "language": ScriptLanguageEnum(language).value}}


class ScriptingHelpers:
    """Programmatic entry for other components: run a script against loose pipeline state."""

    def __init__(self, host: Any = None) -> None:
        self.host = host

    async def execute_script(
        self,
        script_body: str,
        request_state: Any = None,
        response_state: Any = None,
        language: ScriptLanguageEnum | str = ScriptLanguageEnum.JAVASCRIPT,
    ) -> Any:
        from voiden_scripting.engines.executor import ScriptExecutor

        api = VdApi(
            request=build_vd_request(request_state) if request_state else RequestState(),
            response=build_vd_response(response_state) if response_state else None,
        )
        return await ScriptExecutor(host=self.host).execute(script_body, api, language)

    create_pre_script_block = staticmethod(create_pre_script_block)
    create_post_script_block = staticmethod(create_post_script_block)
