"""Python evaluator vs the JavaScript port in WORKER_SOURCE: identical records for the same inputs."""

import json
import shutil
import subprocess
from typing import Any

import pytest

from voiden_scripting.engines.script.assertions import OPERATOR_SYNONYMS, build_assertion
from voiden_scripting.engines.script.normalize import normalize_collection
from voiden_scripting.engines.script.wrappers import WORKER_SOURCE

NODE = shutil.which("node")
pytestmark = pytest.mark.skipif(NODE is None, reason="node binary not available")

# Loads WORKER_SOURCE into a vm context and runs its helpers over the JSON cases on stdin.
_DRIVER = """
const vm = require('vm');
const chunks = [];
process.stdin.on('data', (c) => chunks.push(c));
process.stdin.on('end', () => {
  const ctx = vm.createContext({ self: { postMessage() {} }, __input: Buffer.concat(chunks).toString('utf-8') });
  vm.runInContext(%s, ctx);
  const out = vm.runInContext(`
    (() => {
      const cases = JSON.parse(__input);
      return JSON.stringify({
        assertions: cases.assertions.map((c) => _buildAssertion(c[0], c[1], c[2], c[3])),
        collections: cases.collections.map((c) => _toCollectionArray(c)),
      });
    })()
  `, ctx);
  process.stdout.write(out);
});
"""

VALUES: list[Any] = [
    0,
    -0.0,
    1,
    1.5,
    0.00001,
    1e-7,
    1e20,
    1e21,
    0.1 + 0.2,
    "1",
    "1.0",
    " 12 ",
    "",
    "abc",
    "1e3",
    "0x1F",
    "0b102",
    "0o17",
    "Infinity",
    "0.00001",
    True,
    False,
    None,
    [1, 2],
    [1, None, "a"],
    {"a": 1},
    {"a": [1, {"b": None}]},
]

OPERATORS = sorted(OPERATOR_SYNONYMS) + [" Greater Than ", "EQ", "bogus", 5]

PATTERN_CASES: list[tuple[Any, Any]] = [
    ("abc", "^a.c$"),
    ("abc", "["),
    ("abc", "("),
    ("value 0.00001", 0.00001),
    ("1e-7 here", 1e-7),
    ([1, 2], "1,2"),
    ({"a": 1}, "object"),
    (None, "null"),
]

MESSAGES: list[Any] = [None, "", "msg", 0, 42, 0.00001, [1], {"a": 1}]

COLLECTIONS: list[Any] = [
    [{"key": "A", "value": "1", "enabled": True}],
    [{"key": " k ", "value": 1.0}, {"key": "", "value": "x"}, 1, {"key": "n", "value": None, "enabled": 0}],
    {"key": "one", "value": 0.00001},
    {"A": 0.00001, "B": 1e21, "C": -0.0, "D": [1, None, 2], "E": {"x": 1}, "F": True, "G": None},
    {"key": "k", "value": "v", "enabled": False},
    None,
    "text",
]


def _cases() -> dict[str, list[Any]]:
    assertions: list[list[Any]] = []
    for op in OPERATORS:
        for actual in VALUES:
            for expected in VALUES:
                assertions.append([actual, op, expected, None])
    for actual, expected in PATTERN_CASES:
        for op in ("contains", "matches"):
            assertions.append([actual, op, expected, None])
    for message in MESSAGES:
        assertions.append([1, "==", 1, message])
    return {"assertions": assertions, "collections": COLLECTIONS}


def _run_worker_source(cases: dict[str, list[Any]]) -> dict[str, Any]:
    driver = _DRIVER % json.dumps(WORKER_SOURCE)
    proc = subprocess.run(
        [NODE, "-e", driver],
        input=json.dumps(cases),
        capture_output=True,
        text=True,
        encoding="utf-8",
        timeout=60,
        check=True,
    )
    return json.loads(proc.stdout)


class TestCrossRuntimeParity:
    @pytest.fixture(scope="class")
    def results(self) -> tuple[dict[str, list[Any]], dict[str, Any]]:
        # both sides read the same decoded JSON so inputs match exactly
        cases = json.loads(json.dumps(_cases()))
        return cases, _run_worker_source(cases)

    def test_assertion_records_match(self, results: tuple[dict, dict]) -> None:
        cases, js = results
        mismatches = []
        for case, js_record in zip(cases["assertions"], js["assertions"]):
            py_record = build_assertion(*case)
            if py_record != js_record:
                mismatches.append((case, py_record, js_record))
        assert len(js["assertions"]) == len(cases["assertions"])
        assert mismatches == []

    def test_collections_match(self, results: tuple[dict, dict]) -> None:
        cases, js = results
        for case, js_entries in zip(cases["collections"], js["collections"]):
            assert normalize_collection(case) == js_entries, case
