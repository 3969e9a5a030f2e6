"""Unit tests for engines.script.assertions (operators, comparison rules, records)."""

import pytest

from voiden_scripting.engines.script.assertions import (
    CANONICAL_OPERATORS,
    UnsupportedAssertionOperator,
    build_assertion,
    canonical_operator,
    evaluate,
    normalize_operator,
)


class TestOperatorNormalization:
    def test_canonical_is_idempotent(self) -> None:
        for op in CANONICAL_OPERATORS:
            assert normalize_operator(op) == op
            assert normalize_operator(normalize_operator(op)) == op

    @pytest.mark.parametrize(
        "synonym, expected",
        [
            ("eq", "=="),
            ("Equal", "=="),
            ("neq", "!="),
            ("NotEqual", "!="),
            ("greater", ">"),
            ("greaterThan", ">"),
            ("gte", ">="),
            ("less", "<"),
            ("lessthan", "<"),
            ("lte", "<="),
            ("includes", "contains"),
            ("regex", "matches"),
            (" not equal ", "!="),
        ],
    )
    def test_synonyms(self, synonym: str, expected: str) -> None:
        assert normalize_operator(synonym) == expected

    def test_unknown(self) -> None:
        assert normalize_operator("bogus") is None
        assert normalize_operator(None) is None

    def test_canonical_operator_raises(self) -> None:
        with pytest.raises(UnsupportedAssertionOperator) as exc_info:
            canonical_operator("bogus")
        assert exc_info.value.operator == "bogus"
        assert str(exc_info.value) == "Unsupported operator: bogus"


class TestEvaluate:
    def test_loose_equality_coerces(self) -> None:
        assert evaluate(5, "==", "5") is True
        assert evaluate(True, "==", 1) is True
        assert evaluate("", "==", 0) is True
        assert evaluate(None, "==", 0) is False
        assert evaluate(None, "==", None) is True

    def test_strict_equality(self) -> None:
        assert evaluate(5, "===", 5.0) is True
        assert evaluate(5, "===", "5") is False
        assert evaluate(True, "===", 1) is False
        assert evaluate({"a": [1]}, "===", {"a": [1]}) is True

    def test_negations(self) -> None:
        assert evaluate(1, "!=", 2) is True
        assert evaluate(1, "!==", "1") is True
        assert evaluate(1, "!=", "1") is False

    def test_containers_never_equal_primitives(self) -> None:
        assert evaluate([1], "==", 1) is False

    def test_relational(self) -> None:
        assert evaluate(10, ">", 9) is True
        assert evaluate("10", ">", 9) is True
        assert evaluate("b", ">", "a") is True
        assert evaluate("10", "<", "9") is True
        assert evaluate(None, ">=", 0) is True
        assert evaluate("abc", "<", 1) is False

    def test_contains(self) -> None:
        assert evaluate("hello world", "contains", "world") is True
        assert evaluate([1, 2, 3], "contains", 2) is True
        assert evaluate([{"a": 1}], "contains", {"a": 1}) is True
        assert evaluate(123, "contains", 2) is False
        assert evaluate(None, "contains", "x") is False

    def test_matches(self) -> None:
        assert evaluate("abc123", "matches", r"\d+") is True
        assert evaluate(200, "matches", "^2") is True
        assert evaluate("abc", "matches", "(") is False

    def test_truthiness(self) -> None:
        for falsy in (None, False, 0, "", float("nan")):
            assert evaluate(falsy, "falsy", None) is True
        for truthy in ([], {}, "0", 1):
            assert evaluate(truthy, "truthy", None) is True


class TestBuildAssertion:
    def test_synonym_recorded_as_canonical(self) -> None:
        record = build_assertion(5, "equal", 5)
        assert record["passed"] is True
        assert record["operator"] == "=="
        assert record["condition"] == "5 == 5"
        assert record["message"] == ""
        assert "reason" not in record

    def test_unsupported_operator_recorded_not_raised(self) -> None:
        record = build_assertion(5, "bogus", 5, "check")
        assert record["passed"] is False
        assert record["reason"].startswith("Unsupported operator")
        assert record["operator"] == "bogus"
        assert record["message"] == "check"

    def test_values_jsonified(self) -> None:
        record = build_assertion(1.0, "===", (1, 2))
        assert record["actualValue"] == 1
        assert record["expectedValue"] == [1, 2]
        assert record["condition"] == "1 === [1,2]"

    def test_falsy_message_is_empty(self) -> None:
        assert build_assertion(1, "==", 1, 0)["message"] == ""
        assert build_assertion(1, "==", 1, 42)["message"] == "42"

    def test_small_float_uses_js_number_text(self) -> None:
        record = build_assertion("0.00001", "contains", 0.00001)
        assert record["passed"] is True
        assert record["condition"] == '"0.00001" contains 0.00001'
        assert build_assertion("v=1e-7", "matches", 1e-7)["passed"] is True
