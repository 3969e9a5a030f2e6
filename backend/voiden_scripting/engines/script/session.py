"""
SandboxSession: one isolated, timeout-bounded script execution.

State machine:

    IDLE -> STARTING -> RUNNING -> COMPLETED          -> FINALIZING -> DONE
                               \-> TIMED_OUT          /
                               \-> CRASHED_INTERNALLY /

Only COMPLETED can finalize with success=True. The session owns everything
produced during the run (streamed logs, modified variables, the final `done`
report) and turns it into one ScriptExecutionResult in finalize().
"""

import itertools
import logging
from typing import Any

from voiden_scripting.models_script import ExecutionPathEnum, SessionStateEnum
from voiden_scripting.schemas_script import (
    RequestState,
    ResponseState,
    ScriptExecutionRequest,
    ScriptExecutionResult,
)

_log = logging.getLogger(__name__)

_ids = itertools.count(1)

S = SessionStateEnum

_TRANSITIONS: dict[SessionStateEnum, frozenset[SessionStateEnum]] = {
    S.IDLE: frozenset({S.STARTING}),
    S.STARTING: frozenset({S.RUNNING, S.TIMED_OUT, S.CRASHED_INTERNALLY}),
    S.RUNNING: frozenset({S.COMPLETED, S.TIMED_OUT, S.CRASHED_INTERNALLY}),
    S.COMPLETED: frozenset({S.FINALIZING}),
    S.TIMED_OUT: frozenset({S.FINALIZING}),
    S.CRASHED_INTERNALLY: frozenset({S.FINALIZING}),
    S.FINALIZING: frozenset({S.DONE}),
    S.DONE: frozenset(),
}


class IllegalSessionTransition(RuntimeError):
    """A session was driven out of order (e.g. completed twice)."""


class ScriptRuntimeError(RuntimeError):
    """The user script threw. Carries the stack (or message) text."""


class SandboxCrashedError(RuntimeError):
    """The isolation unit failed outside the script's own error handling."""


def _failure_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class SandboxSession:
    def __init__(
        self, request: ScriptExecutionRequest, path: ExecutionPathEnum
    ) -> None:
        self.id = f"s{next(_ids)}"
        self.request = request
        self.path = path
        self.state = S.IDLE
        self.streamed_logs: list[dict[str, Any]] = []
        self.modified_variables: dict[str, Any] = {}
        self.failure: BaseException | None = None
        self._report: dict[str, Any] | None = None
        self._exit_code: int | None = None

    @property
    def log_extra(self) -> dict[str, Any]:
        return {"session_id": self.id, "path": self.path.value}

    def _transition(self, new: SessionStateEnum) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise IllegalSessionTransition(f"{self.state.value} -> {new.value}")
        _log.debug("session %s: %s -> %s", self.id, self.state.value, new.value, extra=self.log_extra)
        self.state = new

    # -- driving ------------------------------------------------------------

    def start(self) -> None:
        self._transition(S.STARTING)

    def mark_running(self) -> None:
        if self.state == S.STARTING:
            self._transition(S.RUNNING)

    def record_log(self, level: str | None, args: list[Any] | None) -> None:
        """A log entry streamed out of the sandbox while it runs."""
        self.streamed_logs.append({"level": level or "log", "args": list(args or [])})

    def complete(self, report: dict[str, Any], *, error_prefix: str | None = None) -> None:
        """
        The sandbox delivered its final report (`done` message or bridge result).

        A failed report is recorded as ScriptRuntimeError; error_prefix marks
        which bridge produced it ("Script execution failed: ...").
        """
        self.mark_running()
        self._transition(S.COMPLETED)
        self._report = report
        if "exitCode" in report and isinstance(report["exitCode"], int):
            self._exit_code = report["exitCode"]
        error = report.get("error")
        if error or not report.get("success"):
            text = str(error) if error else "Script execution failed"
            if error_prefix and error:
                text = f"{error_prefix}: {text}"
            self.failure = ScriptRuntimeError(text)

    def time_out(self, exc: TimeoutError) -> None:
        self._transition(S.TIMED_OUT)
        self.failure = exc
        _log.info("session %s timed out", self.id, extra=self.log_extra)

    def crash(self, exc: BaseException) -> None:
        self._transition(S.CRASHED_INTERNALLY)
        self.failure = exc
        _log.warning("session %s crashed: %s", self.id, exc, extra=self.log_extra)

    # -- aggregation ----------------------------------------------------------

    def _default_request(self) -> dict[str, Any]:
        return self.request.request.model_dump(by_alias=True)

    def finalize(self) -> ScriptExecutionResult:
        """Assemble the result. Partial progress survives every failure mode."""
        outcome = self.state
        self._transition(S.FINALIZING)
        try:
            if outcome == S.COMPLETED and self._report is not None:
                result = self._from_report(self._report)
            else:
                result = ScriptExecutionResult(
                    success=False,
                    logs=self.streamed_logs,
                    cancelled=False,
                    error=_failure_text(self.failure) if self.failure else "Script execution failed",
                    exit_code=1,
                    modified_variables=self.modified_variables,
                )
        finally:
            self._transition(S.DONE)
        return result

    def _from_report(self, report: dict[str, Any]) -> ScriptExecutionResult:
        success = self.failure is None
        logs = report.get("logs")
        if not isinstance(logs, list):
            logs = self.streamed_logs
        modified = dict(self.modified_variables)
        if isinstance(report.get("modifiedVariables"), dict):
            modified.update(report["modifiedVariables"])
        mod_request = report.get("modifiedRequest")
        mod_response = report.get("modifiedResponse")
        exit_code = self._exit_code if self._exit_code is not None else (0 if success else 1)
        if not success and exit_code == 0:
            exit_code = 1
        return ScriptExecutionResult(
            success=success,
            logs=logs,
            assertions=report.get("assertions") or [],
            cancelled=bool(report.get("cancelled")),
            error=_failure_text(self.failure) if self.failure else None,
            exit_code=exit_code,
            modified_request=RequestState.model_validate(
                mod_request if isinstance(mod_request, dict) else self._default_request()
            ),
            modified_response=ResponseState.model_validate(mod_response)
            if isinstance(mod_response, dict)
            else self.request.response,
            modified_variables=modified,
        )


def bridge_unavailable_result(exc: BaseException) -> ScriptExecutionResult:
    """exitCode -1: the host has no bridge for this language."""
    return ScriptExecutionResult(
        success=False,
        logs=[],
        cancelled=False,
        error=_failure_text(exc),
        exit_code=-1,
    )
