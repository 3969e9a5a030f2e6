"""
RestrictedPython sandbox for Python scripts.

Allowed: safe builtins plus list, dict, set, enumerate, min, max, sum, any,
all, map, filter; json/datetime symbols; `import` of whitelisted stdlib
modules; print() (captured as a log entry); the `voiden` / `vd` object.

Blocked: open, exec, eval, compile, getattr on private names, attribute
writes on anything but script proxies, imports outside the whitelist.
"""

import builtins
import json
import operator
from collections.abc import Callable, Iterable
from datetime import date, datetime, time, timedelta
from typing import Any

from RestrictedPython import compile_restricted
from RestrictedPython.Eval import default_guarded_getitem, default_guarded_getiter
from RestrictedPython.Guards import (
    full_write_guard,
    guarded_iter_unpack_sequence,
    guarded_unpack_sequence,
    safe_builtins,
    safer_getattr,
)

_CONVENIENCE_BUILTINS = (
    "list",
    "dict",
    "set",
    "frozenset",
    "enumerate",
    "min",
    "max",
    "sum",
    "any",
    "all",
    "map",
    "filter",
    "reversed",
)

_INPLACE_OPS: dict[str, Callable[[Any, Any], Any]] = {
    "+=": operator.iadd,
    "-=": operator.isub,
    "*=": operator.imul,
    "/=": operator.itruediv,
    "//=": operator.ifloordiv,
    "%=": operator.imod,
    "**=": operator.ipow,
    "<<=": operator.ilshift,
    ">>=": operator.irshift,
    "&=": operator.iand,
    "|=": operator.ior,
    "^=": operator.ixor,
}


def _inplacevar(op: str, x: Any, y: Any) -> Any:
    fn = _INPLACE_OPS.get(op)
    if fn is None:
        raise SyntaxError(f"Unsupported augmented assignment: {op}")
    return fn(x, y)


def _apply(f: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    return f(*args, **kwargs)


class _PrintToLog:
    """print() target: each call becomes one `log` entry via sink(args)."""

    def __init__(self, sink: Callable[[list[Any]], None]) -> None:
        self._sink = sink

    def __call__(self, _getattr: Any = None) -> "_PrintToLog":
        return self

    def _call_print(self, *objects: Any, **kwargs: Any) -> None:
        self._sink(list(objects))


def make_guarded_import(allowed: Iterable[str]) -> Callable[..., Any]:
    """__import__ that only resolves top-level names in allowed."""
    allowed_set = frozenset(allowed)

    def _guarded_import(
        name: str,
        globals: Any = None,
        locals: Any = None,
        fromlist: Any = (),
        level: int = 0,
    ) -> Any:
        if level != 0 or name.split(".")[0] not in allowed_set:
            raise ImportError(f"import of '{name}' is not allowed in scripts")
        return builtins.__import__(name, globals, locals, fromlist, level)

    return _guarded_import


def _make_safe_builtins(allowed_modules: Iterable[str]) -> dict[str, Any]:
    safe = dict(safe_builtins)
    safe["__import__"] = make_guarded_import(allowed_modules)
    return safe


def _make_guard_globals() -> dict[str, Any]:
    """Guards required by RestrictedPython's rewritten bytecode."""
    return {
        "_getattr_": safer_getattr,
        "_getiter_": default_guarded_getiter,
        "_getitem_": default_guarded_getitem,
        "_iter_unpack_sequence_": guarded_iter_unpack_sequence,
        "_unpack_sequence_": guarded_unpack_sequence,
        "_write_": full_write_guard,
        "_inplacevar_": _inplacevar,
        "_apply_": _apply,
        "__metaclass__": type,
    }


def _make_extra_globals() -> dict[str, Any]:
    """Extra safe symbols: json, datetime, date, time, timedelta."""
    return {
        "json": json,
        "datetime": datetime,
        "date": date,
        "time": time,
        "timedelta": timedelta,
    }


def compile_script(script: str, filename: str = "<script>") -> Any:
    """
    Compile script with RestrictedPython. Raises SyntaxError on failure.

    Returns a code object suitable for exec(bytecode, globals).
    """
    code = compile_restricted(script, filename, "exec")
    if code is None:
        raise SyntaxError("RestrictedPython: compile failed")
    return code


def build_restricted_globals(
    context_dict: dict[str, Any],
    *,
    print_sink: Callable[[list[Any]], None] | None = None,
    allowed_modules: Iterable[str] = (),
) -> dict[str, Any]:
    """
    Build the globals dict for exec(compiled, globals): safe builtins, guards,
    extras (json, datetime) and context (voiden, vd).
    """
    safe = _make_safe_builtins(allowed_modules)
    g: dict[str, Any] = {
        "__builtins__": safe,
        "__name__": "script",
    }
    g.update(_make_guard_globals())
    g.update(_make_extra_globals())
    if print_sink is not None:
        g["_print_"] = _PrintToLog(print_sink)
    for name in _CONVENIENCE_BUILTINS:
        obj = safe.get(name, getattr(builtins, name, None))
        if obj is not None:
            g[name] = obj
    g.update(context_dict)
    return g
