"""
ScriptContext: the `voiden` / `vd` object a Python script sees.

request, response  attribute/item proxies over session-owned copies; the
                   request's headers / queryParams / pathParams stay list-like
                   and every push/append/assignment goes through
                   normalize_collection
env.get            pre-resolved lookup
variables.get/set  live table + modified-variable tracking
log, assert_, cancel
"""

from typing import Any

from voiden_scripting.engines.script.assertions import build_assertion
from voiden_scripting.engines.script.normalize import (
    COLLECTION_FIELDS,
    jsonify,
    normalize_collection,
    normalize_request_collections,
    to_plain,
)

from .modules import make_env_module, make_log_module, make_variables_module


def _wrap(value: Any) -> Any:
    value = to_plain(value) if isinstance(value, (ScriptObject, ScriptList)) else value
    if isinstance(value, dict):
        return ScriptObject(value)
    if isinstance(value, (list, tuple)):
        return ScriptList(value)
    return value


def _unwrap(value: Any) -> Any:
    if isinstance(value, (ScriptObject, ScriptList)):
        return value.to_plain()
    if isinstance(value, dict):
        return {k: _unwrap(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_unwrap(v) for v in value]
    return value


class ScriptObject:
    """Dict proxy with attribute access (obj.url) and item access (obj["url"])."""

    _guarded_writes = True

    def __init__(
        self, data: dict[str, Any], collection_fields: tuple[str, ...] = ()
    ) -> None:
        object.__setattr__(self, "_collection_fields", collection_fields)
        object.__setattr__(self, "_data", {})
        for k, v in data.items():
            self[k] = v

    def __getattr__(self, key: str) -> Any:
        if key.startswith("_"):
            raise AttributeError(key)
        try:
            return self._data[key]
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key: str, value: Any) -> None:
        self[key] = value

    def __delattr__(self, key: str) -> None:
        self._data.pop(key, None)

    def __getitem__(self, key: str) -> Any:
        return self._data.get(key)

    def __setitem__(self, key: str, value: Any) -> None:
        key = str(key)
        if key in self._collection_fields:
            self._data[key] = ScriptList(normalize_collection(_unwrap(value)), kv=True)
            return
        self._data[key] = _wrap(value)

    def __delitem__(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Any:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return repr(self.to_plain())

    def get(self, key: str, default: Any = None) -> Any:
        v = self._data.get(key)
        return default if v is None else v

    def keys(self) -> list[str]:
        return list(self._data.keys())

    def values(self) -> list[Any]:
        return list(self._data.values())

    def items(self) -> list[tuple[str, Any]]:
        return list(self._data.items())

    def to_plain(self) -> dict[str, Any]:
        return {k: _unwrap(v) for k, v in self._data.items()}


class ScriptList:
    """
    List proxy with JS-friendly push().

    A kv list (request headers / queryParams / pathParams) only ever holds
    canonical entries: push("K", "v"), push({"key": "K", "value": "v"}),
    push({"K": "v"}) and append/extend/item assignment are all normalized.
    """

    _guarded_writes = True

    def __init__(self, values: Any = None, *, kv: bool = False) -> None:
        self._kv = kv
        self._items: list[Any] = []
        if values:
            self._add(list(values))

    def _entries(self, value: Any) -> list[Any]:
        plain = _unwrap(value)
        if isinstance(plain, dict):
            return [_wrap(e) for e in normalize_collection(plain)]
        if isinstance(plain, list):
            return [_wrap(e) for e in normalize_collection(plain)]
        return []

    def _add(self, values: list[Any]) -> None:
        for v in values:
            if self._kv:
                self._items.extend(self._entries(v))
            else:
                self._items.append(_wrap(v))

    def push(self, *values: Any) -> int:
        if (
            self._kv
            and len(values) == 2
            and isinstance(values[0], str)
            and not isinstance(_unwrap(values[1]), (dict, list))
        ):
            self._items.extend(self._entries({"key": values[0], "value": values[1]}))
            return len(self._items)
        self._add(list(values))
        return len(self._items)

    def append(self, value: Any) -> None:
        self._add([value])

    def extend(self, values: Any) -> None:
        self._add(list(values))

    def insert(self, index: int, value: Any) -> None:
        for offset, item in enumerate(self._entries(value) if self._kv else [_wrap(value)]):
            self._items.insert(index + offset, item)

    def pop(self, index: int = -1) -> Any:
        return self._items.pop(index)

    def remove(self, value: Any) -> None:
        self._items.remove(value)

    def clear(self) -> None:
        self._items.clear()

    def index(self, value: Any) -> int:
        return self._items.index(value)

    @property
    def length(self) -> int:
        return len(self._items)

    def __iter__(self) -> Any:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, value: object) -> bool:
        return value in self._items

    def __getitem__(self, index: Any) -> Any:
        return self._items[index]

    def __setitem__(self, index: int, value: Any) -> None:
        if self._kv:
            entries = self._entries(value)
            if len(entries) != 1:
                raise ValueError("a collection entry needs exactly one non-empty key")
            self._items[index] = entries[0]
            return
        self._items[index] = _wrap(value)

    def __delitem__(self, index: Any) -> None:
        del self._items[index]

    def __repr__(self) -> str:
        return repr(self.to_plain())

    def to_plain(self) -> list[Any]:
        return [_unwrap(v) for v in self._items]


class _Vd:
    """The object bound to both `voiden` and `vd` inside the script."""

    _guarded_writes = True

    def __init__(self, ctx: "ScriptContext") -> None:
        object.__setattr__(self, "_ctx", ctx)
        object.__setattr__(self, "env", ctx.env)
        object.__setattr__(self, "variables", ctx.variables)
        self.request = ctx.request_data
        self.response = ctx.response_data

    def __setattr__(self, key: str, value: Any) -> None:
        if key == "request":
            data = _unwrap(value) if value is not None else {}
            object.__setattr__(self, key, ScriptObject(data, COLLECTION_FIELDS))
        elif key == "response":
            object.__setattr__(self, key, _wrap(_unwrap(value)))
        else:
            raise AttributeError(f"vd.{key} is read-only")

    def log(self, *args: Any) -> None:
        self._ctx.log_module.log(*args)

    def assert_(self, actual: Any, operator: Any, expected: Any, message: Any = "") -> None:
        self._ctx.assertions.append(build_assertion(actual, operator, expected, message))

    def cancel(self) -> None:
        self._ctx.cancelled = True


class ScriptContext:
    """
    Session-owned state of one Python script run: the vd object plus the
    logs, assertions, cancel flag and modified variables it accumulates.
    """

    def __init__(
        self,
        *,
        request: dict[str, Any] | None = None,
        response: dict[str, Any] | None = None,
        env_vars: dict[str, str] | None = None,
        variables: dict[str, Any] | None = None,
    ) -> None:
        self.logs: list[dict[str, Any]] = []
        self.assertions: list[dict[str, Any]] = []
        self.cancelled = False
        self.modified_variables: dict[str, Any] = {}
        self.request_data = normalize_request_collections(dict(request or {}))
        self.response_data = response

        self.env = make_env_module(env_vars=env_vars)
        self.variables = make_variables_module(
            variables=dict(variables or {}), modified=self.modified_variables
        )
        self.log_module = make_log_module(logs=self.logs)
        self.vd = _Vd(self)

    def print_sink(self, args: list[Any]) -> None:
        """print(...) inside a script lands here as one `log` entry."""
        self.log_module.emit("log", args)

    def to_dict(self) -> dict[str, Any]:
        """Namespace for exec(compiled, globals): voiden, vd."""
        return {"voiden": self.vd, "vd": self.vd}

    def modified_request(self) -> dict[str, Any]:
        return jsonify(normalize_request_collections(to_plain(self.vd.request)))

    def modified_response(self) -> Any:
        return jsonify(_unwrap(self.vd.response))

    def outcome(self, *, success: bool, error: str | None = None) -> dict[str, Any]:
        """Wire-shaped result (camelCase) written back to the host."""
        out: dict[str, Any] = {
            "success": success,
            "logs": self.logs,
            "assertions": self.assertions,
            "cancelled": self.cancelled,
            "modifiedRequest": self.modified_request(),
            "modifiedResponse": self.modified_response(),
            "modifiedVariables": self.modified_variables,
        }
        if error is not None:
            out["error"] = error
        return out
