"""
Script engine: sandbox sessions for JavaScript and Python user scripts.

Exports: ScriptContext, SandboxSession, evaluate, build_assertion,
normalize_collection, validate_script, validate_python_script, VdApi and the
vd request/response builders.
"""

from .assertions import build_assertion, evaluate
from .context import ScriptContext
from .normalize import normalize_collection
from .session import SandboxSession
from .validate import validate_python_script, validate_script
from .vd_api import (
    ScriptingHelpers,
    VdApi,
    apply_vd_request_to_state,
    apply_vd_response_to_state,
    build_vd_request,
    build_vd_response,
)

__all__ = [
    "ScriptContext",
    "SandboxSession",
    "ScriptingHelpers",
    "VdApi",
    "apply_vd_request_to_state",
    "apply_vd_response_to_state",
    "build_assertion",
    "build_vd_request",
    "build_vd_response",
    "evaluate",
    "normalize_collection",
    "validate_python_script",
    "validate_script",
]
