"""
Script endpoints: execute, validate, and the pre/post script log panel.

Endpoints: execute (POST), validate (POST), logs list (GET), clear all
(DELETE), clear one (DELETE /logs/{entry_id}).
"""

import logging

from fastapi import APIRouter, HTTPException

from voiden_scripting.api.deps import LogStoreDep, ScriptHostDep
from voiden_scripting.engines.executor import ScriptExecutor
from voiden_scripting.engines.script.validate import (
    validate_python_script,
    validate_script,
)
from voiden_scripting.engines.script.vd_api import (
    HostEnvApi,
    HostVariablesApi,
    VdApi,
)
from voiden_scripting.models_script import ScriptLanguageEnum
from voiden_scripting.schemas_script import (
    Message,
    ScriptExecuteIn,
    ScriptExecutionResult,
    ScriptLogEntry,
    ScriptValidateIn,
    ScriptValidateOut,
    ScriptValidationError,
)

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/scripts", tags=["scripts"])


@router.post("/execute", response_model=ScriptExecutionResult, response_model_by_alias=True)
async def execute(
    body: ScriptExecuteIn, host: ScriptHostDep, store: LogStoreDep
) -> ScriptExecutionResult:
    """
    Run one script against the given request / response snapshot.

    env and variables resolve through the script host. With `phase` set the
    logs are also recorded in the log panel.
    """
    api = VdApi(
        request=body.request,
        response=body.response,
        env=HostEnvApi(host),
        variables=HostVariablesApi(host),
    )
    result = await ScriptExecutor(host=host).execute(body.script_body, api, body.language)
    if body.phase is not None:
        store.push(body.phase, result.logs, result.error, result.exit_code)
    return result


@router.post("/validate", response_model=ScriptValidateOut, response_model_by_alias=True)
def validate(body: ScriptValidateIn) -> ScriptValidateOut:
    """Static checks only; nothing is executed."""
    if body.language == ScriptLanguageEnum.PYTHON:
        raw = validate_python_script(body.script_body)
    else:
        raw = validate_script(body.script_body)
    errors = [ScriptValidationError.model_validate(e) for e in raw]
    return ScriptValidateOut(
        valid=not any(e.severity == "error" for e in errors),
        errors=errors,
    )


@router.get("/logs", response_model=list[ScriptLogEntry], response_model_by_alias=True)
def list_logs(store: LogStoreDep) -> list[ScriptLogEntry]:
    return store.get_entries()


@router.delete("/logs")
def clear_logs(store: LogStoreDep) -> Message:
    store.clear()
    return Message(message="Script logs cleared")


@router.delete("/logs/{entry_id}")
def clear_log(entry_id: int, store: LogStoreDep) -> Message:
    if not store.clear_by_id(entry_id):
        raise HTTPException(status_code=404, detail="Log entry not found")
    _log.debug("cleared script log entry %s", entry_id)
    return Message(message="Script log entry deleted")
