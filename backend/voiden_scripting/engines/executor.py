"""
ScriptExecutor: execute(script_body, api, language) -> ScriptExecutionResult.

Picks the isolation unit, runs one SandboxSession and replays modified
variables into the caller's store. Never raises: every failure mode comes
back as a structured result.

    javascript  host.execute_node -> node worker child -> embedded V8
    python      host.execute_python (mandatory; exitCode -1 without it)
"""

import logging
from typing import Any

from voiden_scripting.core.host import (
    BridgeUnavailableError,
    detect_node_path,
    get_default_host,
    host_capability,
)
from voiden_scripting.engines.script.rpc import maybe_await
from voiden_scripting.engines.script.runtimes import (
    InProcessRuntime,
    NodeBridgeRuntime,
    PythonBridgeRuntime,
    WorkerRuntime,
)
from voiden_scripting.engines.script.session import (
    SandboxSession,
    bridge_unavailable_result,
)
from voiden_scripting.engines.script.vd_api import (
    NullEnvApi,
    NullVariablesApi,
    VdApi,
    resolve_active_env,
)
from voiden_scripting.models_script import ScriptLanguageEnum
from voiden_scripting.schemas_script import (
    RequestState,
    ResponseState,
    ScriptExecutionRequest,
    ScriptExecutionResult,
)

_log = logging.getLogger(__name__)

_BRIDGES = (NodeBridgeRuntime, PythonBridgeRuntime)


def _coerce_api(api: VdApi | dict[str, Any] | None) -> VdApi:
    if isinstance(api, VdApi):
        return api
    data = dict(api or {})
    return VdApi(
        request=data.get("request"),
        response=data.get("response"),
        env=data.get("env") or NullEnvApi(),
        variables=data.get("variables") or NullVariablesApi(),
    )


def _request_state(value: Any) -> RequestState:
    if isinstance(value, RequestState):
        return value.model_copy(deep=True)
    return RequestState.model_validate(value or {})


def _response_state(value: Any) -> ResponseState | None:
    if value is None:
        return None
    if isinstance(value, ResponseState):
        return value.model_copy(deep=True)
    return ResponseState.model_validate(value)


class ScriptExecutor:
    """
    Runs user scripts against a host.

    host supplies load_env / read_variables and the optional execute_node /
    execute_python bridges; None means the process-wide LocalScriptHost.
    """

    def __init__(self, host: Any = None) -> None:
        self._host = host

    @property
    def host(self) -> Any:
        return self._host if self._host is not None else get_default_host()

    async def execute(
        self,
        script_body: str,
        api: VdApi | dict[str, Any] | None,
        language: ScriptLanguageEnum | str = ScriptLanguageEnum.JAVASCRIPT,
    ) -> ScriptExecutionResult:
        try:
            return await self._execute(script_body, _coerce_api(api), ScriptLanguageEnum(language))
        except Exception as e:
            _log.exception("script execution failed outside the sandbox")
            return ScriptExecutionResult(
                success=False,
                error=f"Script execution failed: {e}",
                exit_code=1,
            )

    async def _execute(
        self, script_body: str, api: VdApi, language: ScriptLanguageEnum
    ) -> ScriptExecutionResult:
        host = self.host
        runtime = self.select_runtime(host, api, language)
        if runtime is None:
            return bridge_unavailable_result(
                BridgeUnavailableError("Python execution bridge unavailable")
            )

        env_vars: dict[str, str] = {}
        variables: dict[str, Any] = {}
        if isinstance(runtime, _BRIDGES):
            env_vars, variables = await self._pre_resolve(host)

        request = ScriptExecutionRequest(
            script_body=script_body or "",
            language=language,
            request=_request_state(api.request),
            response=_response_state(api.response),
            env_vars=env_vars,
            variables=variables,
        )
        session = SandboxSession(request, runtime.path)
        _log.debug(
            "running %s script via %s",
            language.value,
            runtime.path.value,
            extra=session.log_extra,
        )
        await runtime.run(session)
        result = session.finalize()

        if isinstance(runtime, _BRIDGES):
            await self._replay_variables(api, result.modified_variables)
        return result

    def select_runtime(self, host: Any, api: VdApi, language: ScriptLanguageEnum) -> Any:
        """The runtime for this call, or None when Python has no bridge."""
        if language == ScriptLanguageEnum.PYTHON:
            call = host_capability(host, "execute_python")
            return PythonBridgeRuntime(call) if call is not None else None

        call = host_capability(host, "execute_node")
        if call is not None:
            return NodeBridgeRuntime(call)
        node = detect_node_path()
        if node is not None:
            return WorkerRuntime(env=api.env, variables=api.variables, node_path=node)
        return InProcessRuntime(env=api.env, variables=api.variables)

    async def _pre_resolve(self, host: Any) -> tuple[dict[str, str], dict[str, Any]]:
        """Active env and persisted variables for the one-shot bridges."""
        try:
            env_vars = await resolve_active_env(host)
        except Exception:
            _log.warning("failed to load environment for script", exc_info=True)
            env_vars = {}
        try:
            variables = await maybe_await(host.read_variables())
        except Exception:
            _log.warning("failed to read variables for script", exc_info=True)
            variables = {}
        return env_vars, dict(variables or {})

    async def _replay_variables(self, api: VdApi, modified: dict[str, Any]) -> None:
        for key, value in modified.items():
            try:
                await maybe_await(api.variables.set(key, value))
            except Exception:
                _log.warning("failed to replay variable %s", key, exc_info=True)


async def execute_script(
    script_body: str,
    api: VdApi | dict[str, Any] | None,
    language: ScriptLanguageEnum | str = ScriptLanguageEnum.JAVASCRIPT,
    *,
    host: Any = None,
) -> ScriptExecutionResult:
    """Run one script. Always resolves to a ScriptExecutionResult."""
    return await ScriptExecutor(host=host).execute(script_body, api, language)
