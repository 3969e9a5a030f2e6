"""
Env module for scripts: get.

Values are the active environment, resolved by the host before the session
starts. Environment variables are read-only; use `variables` for state a
script wants to keep.
"""

from types import SimpleNamespace
from typing import Any


def make_env_module(*, env_vars: dict[str, str] | None = None) -> Any:
    """Build the `env` object: get(key) -> str | None."""
    data = dict(env_vars or {})

    def get(key: Any, default: Any = None) -> Any:
        v = data.get(str(key))
        return default if v is None else v

    return SimpleNamespace(get=get)
