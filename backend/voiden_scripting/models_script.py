"""
Scripting enums.

ScriptLanguageEnum, ScriptLogLevelEnum, RpcMethodEnum, SessionStateEnum,
ExecutionPathEnum, ScriptPhaseEnum.
"""

from enum import Enum


class ScriptLanguageEnum(str, Enum):
    """Guest language of a user script."""

    JAVASCRIPT = "javascript"
    PYTHON = "python"


class ScriptLogLevelEnum(str, Enum):
    """Level of one script log entry. `warning` is accepted as an alias of warn."""

    LOG = "log"
    INFO = "info"
    DEBUG = "debug"
    WARN = "warn"
    ERROR = "error"


class RpcMethodEnum(str, Enum):
    """Host capabilities a running sandbox may call back into."""

    ENV_GET = "env:get"
    VARIABLES_GET = "variables:get"
    VARIABLES_SET = "variables:set"


class SessionStateEnum(str, Enum):
    """Lifecycle of one sandbox session."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    CRASHED_INTERNALLY = "crashed_internally"
    FINALIZING = "finalizing"
    DONE = "done"


class ExecutionPathEnum(str, Enum):
    """Isolation unit chosen for one execution."""

    NODE_BRIDGE = "node_bridge"
    WORKER = "worker"
    IN_PROCESS = "in_process"
    PYTHON_BRIDGE = "python_bridge"


class ScriptPhaseEnum(str, Enum):
    """Pipeline phase a script ran in: pre-send or post-receive."""

    PRE = "pre"
    POST = "post"
