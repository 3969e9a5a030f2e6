"""
Scripting schemas: request/response snapshots, logs, assertions, results, RPC.

Field names are snake_case in Python and camelCase on the wire
(alias_generator=to_camel). Dump with by_alias=True for wire JSON.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from voiden_scripting.models_script import (
    RpcMethodEnum,
    ScriptLanguageEnum,
    ScriptLogLevelEnum,
    ScriptPhaseEnum,
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class KVEntry(_CamelModel):
    """One header / query / path parameter."""

    key: str = Field(..., min_length=1)
    value: str = ""
    enabled: bool = True


class RequestState(_CamelModel):
    """Mutable request snapshot handed to a script. Extra fields are kept."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    url: str = ""
    method: str = "GET"
    headers: list[KVEntry] = Field(default_factory=list)
    query_params: list[KVEntry] = Field(default_factory=list)
    path_params: list[KVEntry] = Field(default_factory=list)
    body: Any = None

    @field_validator("headers", "query_params", "path_params", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> list[dict[str, Any]]:
        # engines.script imports this module; resolve lazily
        from voiden_scripting.engines.script.normalize import normalize_collection

        return normalize_collection(v)


class ResponseState(_CamelModel):
    """Response snapshot for post-receive scripts."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    status: int | None = None
    status_text: str | None = None
    headers: Any = None
    body: Any = None
    time: float | None = None
    size: int | None = None


class ScriptLog(_CamelModel):
    level: ScriptLogLevelEnum = ScriptLogLevelEnum.LOG
    args: list[Any] = Field(default_factory=list)


class Assertion(_CamelModel):
    passed: bool
    message: str = ""
    condition: str = ""
    actual_value: Any = None
    operator: str = ""
    expected_value: Any = None
    reason: str | None = None


class ScriptExecutionResult(_CamelModel):
    """Outcome of one sandbox session. Always well-formed."""

    success: bool
    logs: list[ScriptLog] = Field(default_factory=list)
    assertions: list[Assertion] = Field(default_factory=list)
    cancelled: bool = False
    error: str | None = None
    exit_code: int = 0
    modified_request: RequestState | None = None
    modified_response: ResponseState | None = None
    modified_variables: dict[str, Any] = Field(default_factory=dict)


class ScriptExecutionRequest(_CamelModel):
    """Everything one session needs. Built once per invocation."""

    script_body: str
    language: ScriptLanguageEnum = ScriptLanguageEnum.JAVASCRIPT
    request: RequestState = Field(default_factory=RequestState)
    response: ResponseState | None = None
    env_vars: dict[str, str] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)


class RpcCall(_CamelModel):
    id: int
    method: RpcMethodEnum
    args: list[Any] = Field(default_factory=list)


class RpcResult(_CamelModel):
    id: int
    result: Any = None
    error: str | None = None


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------


class ScriptValidationError(_CamelModel):
    line: int
    column: int
    method: str | None = None
    message: str
    severity: str = "error"


class ScriptValidateIn(_CamelModel):
    script_body: str
    language: ScriptLanguageEnum = ScriptLanguageEnum.JAVASCRIPT


class ScriptValidateOut(_CamelModel):
    valid: bool
    errors: list[ScriptValidationError] = Field(default_factory=list)


class ScriptLogEntry(_CamelModel):
    id: int
    phase: ScriptPhaseEnum
    timestamp: int
    logs: list[ScriptLog] = Field(default_factory=list)
    error: str | None = None
    exit_code: int | None = None


class ScriptExecuteIn(_CamelModel):
    """Body of POST /scripts/execute. env and variables come from the host."""

    script_body: str
    language: ScriptLanguageEnum = ScriptLanguageEnum.JAVASCRIPT
    request: RequestState = Field(default_factory=RequestState)
    response: ResponseState | None = None
    phase: ScriptPhaseEnum | None = None


class Message(BaseModel):
    message: str
