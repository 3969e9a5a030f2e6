"""Unit tests for engines.script.normalize (collections, levels, JSON values)."""

import math

from voiden_scripting.engines.script.normalize import (
    js_string,
    jsonify,
    normalize_collection,
    normalize_level,
    normalize_request_collections,
    split_log_args,
    to_json_text,
)
from voiden_scripting.schemas_script import KVEntry


class TestNormalizeCollection:
    def test_canonical_list_is_fixed_point(self) -> None:
        entries = [{"key": "A", "value": "1", "enabled": True}]
        assert normalize_collection(entries) == entries
        assert normalize_collection(normalize_collection(entries)) == entries

    def test_map_form(self) -> None:
        assert normalize_collection({"A": "1", "B": "2"}) == [
            {"key": "A", "value": "1", "enabled": True},
            {"key": "B", "value": "2", "enabled": True},
        ]

    def test_single_entry(self) -> None:
        assert normalize_collection({"key": "X-Id", "value": 7}) == [
            {"key": "X-Id", "value": "7", "enabled": True}
        ]

    def test_enabled_defaults_true_and_false_is_kept(self) -> None:
        out = normalize_collection([{"key": "a", "value": "1"}, {"key": "b", "value": "2", "enabled": False}])
        assert [e["enabled"] for e in out] == [True, False]

    def test_empty_keys_dropped(self) -> None:
        out = normalize_collection([{"key": "  ", "value": "x"}, {"key": "", "value": "y"}, {"value": "z"}])
        assert out == []

    def test_keys_trimmed(self) -> None:
        assert normalize_collection([{"key": " A ", "value": "1"}])[0]["key"] == "A"

    def test_non_collection_is_empty(self) -> None:
        assert normalize_collection(None) == []
        assert normalize_collection("nope") == []
        assert normalize_collection(42) == []

    def test_non_dict_list_items_skipped(self) -> None:
        assert normalize_collection(["a", 1, {"key": "k", "value": "v"}]) == [
            {"key": "k", "value": "v", "enabled": True}
        ]

    def test_values_use_js_string(self) -> None:
        out = normalize_collection({"a": True, "b": None, "c": 1.0, "d": 2.5})
        assert [e["value"] for e in out] == ["true", "", "1", "2.5"]

    def test_pydantic_entries_accepted(self) -> None:
        out = normalize_collection([KVEntry(key="A", value="1")])
        assert out == [{"key": "A", "value": "1", "enabled": True}]

    def test_request_collections_in_place(self) -> None:
        req = {"url": "u", "headers": {"A": "1"}}
        out = normalize_request_collections(req)
        assert out is req
        assert req["headers"] == [{"key": "A", "value": "1", "enabled": True}]
        assert req["queryParams"] == []
        assert req["pathParams"] == []


class TestLogLevels:
    def test_known_levels(self) -> None:
        for level in ("log", "info", "debug", "warn", "error"):
            assert normalize_level(level) == level

    def test_warning_alias_and_case(self) -> None:
        assert normalize_level("warning") == "warn"
        assert normalize_level("INFO") == "info"

    def test_unknown(self) -> None:
        assert normalize_level("hello") is None
        assert normalize_level(3) is None

    def test_split_with_level(self) -> None:
        assert split_log_args(("warning", "x")) == ("warn", ["x"])

    def test_split_without_level(self) -> None:
        assert split_log_args(("hello", 1)) == ("log", ["hello", 1])

    def test_split_empty(self) -> None:
        assert split_log_args(()) == ("log", [])


class TestJsonValues:
    def test_js_string_primitives(self) -> None:
        assert js_string(None) == "null"
        assert js_string(True) == "true"
        assert js_string(3.0) == "3"
        assert js_string(float("nan")) == "NaN"
        assert js_string(float("-inf")) == "-Infinity"
        assert js_string([1, None, "a"]) == "1,,a"
        assert js_string({"a": 1}) == "[object Object]"

    def test_jsonify(self) -> None:
        assert jsonify({"a": (1, 2.0), 3: math.nan}) == {"a": [1, 2], "3": None}
        assert jsonify(KVEntry(key="k")) == {"key": "k", "value": "", "enabled": True}

    def test_jsonify_unknown_object_falls_back_to_str(self) -> None:
        class Thing:
            def __str__(self) -> str:
                return "thing"

        assert jsonify(Thing()) == "thing"

    def test_to_json_text_compact(self) -> None:
        assert to_json_text({"a": [1, 2.0], "b": "é"}) == '{"a":[1,2],"b":"é"}'

    def test_js_string_number_layout(self) -> None:
        cases = {
            0.00001: "0.00001",
            0.000001: "0.000001",
            1e-7: "1e-7",
            1.5e-7: "1.5e-7",
            -0.00012: "-0.00012",
            0.1 + 0.2: "0.30000000000000004",
            123.456: "123.456",
            1e20: "100000000000000000000",
            1.2345678901234568e20: "123456789012345680000",
            1e21: "1e+21",
            2.5e25: "2.5e+25",
            -0.0: "0",
            10**22: "1e+22",
        }
        for value, expected in cases.items():
            assert js_string(value) == expected, value

    def test_small_floats_in_collections(self) -> None:
        assert normalize_collection({"A": 0.00001}) == [{"key": "A", "value": "0.00001", "enabled": True}]

    def test_to_json_text_numbers(self) -> None:
        assert to_json_text([0.00001, 1e21, 1e-7, -0.0, 1e20]) == "[0.00001,1e+21,1e-7,0,100000000000000000000]"
        assert to_json_text({"n": None, "t": True}) == '{"n":null,"t":true}'
