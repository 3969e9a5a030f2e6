"""
Variables module for scripts: get, set.

`set` updates the session's live table (so a later `get` sees the value) and
records the key into `modified`, which the host replays into the persistent
variable store once the session ends.
"""

from types import SimpleNamespace
from typing import Any

from voiden_scripting.engines.script.normalize import jsonify


def make_variables_module(
    *,
    variables: dict[str, Any],
    modified: dict[str, Any],
) -> Any:
    """Build the `variables` object over a session-owned table."""

    def get(key: Any, default: Any = None) -> Any:
        v = variables.get(str(key))
        return default if v is None else v

    def set(key: Any, value: Any) -> None:
        serialized = jsonify(value)
        variables[str(key)] = serialized
        modified[str(key)] = serialized

    return SimpleNamespace(get=get, set=set)
