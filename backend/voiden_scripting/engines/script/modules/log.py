"""
Log module for scripts: log(levelOrMessage, *args).

A recognized level keyword as first argument (log, info, debug, warn, error;
`warning` means warn) sets the level of the remaining arguments; otherwise
everything is logged at `log` level. Entries are script data, collected into
`logs`, not routed to the host logger.
"""

from types import SimpleNamespace
from typing import Any

from voiden_scripting.engines.script.normalize import jsonify, split_log_args


def make_log_module(*, logs: list[dict[str, Any]]) -> Any:
    """Build the `log` object: log(*args) and emit(level, args)."""

    def emit(level: str, args: list[Any]) -> None:
        logs.append({"level": level, "args": [jsonify(a) for a in args]})

    def log(*args: Any) -> None:
        level, payload = split_log_args(args)
        emit(level, payload)

    return SimpleNamespace(log=log, emit=emit)
