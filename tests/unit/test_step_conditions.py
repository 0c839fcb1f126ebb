"""Tests for the step condition language."""

import pytest

from tool_composer.workflow.conditions import (
    ConditionSyntaxError,
    compile_condition,
    compare,
    evaluate_condition,
    tokenize,
    TokenType,
)


VARIABLES = {
    "input": {"count": 10, "mode": "fast", "flag": True, "empty": ""},
    "search": {"results": [1, 2, 3], "status": "ok", "score": "7.5"},
    "missing_value": None,
}


class TestTruthinessOperands:
    def test_bare_path_is_truthiness_check(self):
        assert evaluate_condition("input.flag", VARIABLES) is True
        assert evaluate_condition("input.empty", VARIABLES) is False

    def test_unknown_path_is_falsy(self):
        assert evaluate_condition("nothing.here", VARIABLES) is False

    def test_bare_input_refers_to_input_variable(self):
        assert evaluate_condition("input", VARIABLES) is True
        assert evaluate_condition("input", {"input": {}}) is False

    def test_literals(self):
        assert evaluate_condition("true", {}) is True
        assert evaluate_condition("false", {}) is False
        assert evaluate_condition("null", {}) is False


class TestComparisons:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("input.count > 5", True),
            ("input.count < 5", False),
            ("input.count >= 10", True),
            ("input.count <= 9", False),
            ("search.results.length == 3", True),
            ("search.score > 7", True),  # numeric string is cast
            ('input.mode == "fast"', True),
            ("input.mode == 'slow'", False),
            ("input.mode == fast", True),  # unquoted right-hand side is a raw string
            ("input.mode != fast", False),
            ("search.status == in progress", False),
        ],
    )
    def test_comparison_operators(self, expression, expected):
        assert evaluate_condition(expression, VARIABLES) is expected

    def test_loose_equality_casts_numbers(self):
        assert evaluate_condition('input.count == "10"', VARIABLES) is True

    def test_strict_equality_respects_types(self):
        assert evaluate_condition('input.count === "10"', VARIABLES) is False
        assert evaluate_condition("input.count === 10", VARIABLES) is True
        assert evaluate_condition('input.count !== "10"', VARIABLES) is True

    def test_null_comparisons(self):
        assert evaluate_condition("missing_value == null", VARIABLES) is True
        assert evaluate_condition("nothing.here == null", VARIABLES) is True
        assert evaluate_condition("missing_value == 0", VARIABLES) is False

    def test_ordering_against_non_numeric_is_false(self):
        assert evaluate_condition("input.mode > 1", VARIABLES) is False
        assert evaluate_condition("missing_value < 1", VARIABLES) is False

    def test_booleans(self):
        assert compare("==", True, 1) is True
        assert compare("===", True, 1) is False
        assert compare("===", True, True) is True


class TestBooleanOperators:
    def test_and_or_not(self):
        assert evaluate_condition("input.flag and input.count > 5", VARIABLES) is True
        assert evaluate_condition("input.empty or input.flag", VARIABLES) is True
        assert evaluate_condition("not input.flag", VARIABLES) is False
        assert evaluate_condition("not not input.flag", VARIABLES) is True

    def test_and_binds_tighter_than_or(self):
        # true or (false and false)
        assert evaluate_condition("input.flag or input.empty and input.empty", VARIABLES) is True

    def test_parentheses_override_precedence(self):
        # (true or false) and false
        assert evaluate_condition("(input.flag or input.empty) and input.empty", VARIABLES) is False

    def test_not_applies_to_comparison(self):
        assert evaluate_condition("not input.count > 50", VARIABLES) is True


class TestMalformedExpressions:
    @pytest.mark.parametrize(
        "expression",
        ["", "(input.flag", "input.flag)", "input.count >", "and input.flag", "input.mode == 'open", "a = b"],
    )
    def test_malformed_expressions_evaluate_false(self, expression):
        assert evaluate_condition(expression, VARIABLES) is False

    def test_compile_raises_syntax_error_with_position(self):
        with pytest.raises(ConditionSyntaxError) as exc_info:
            compile_condition("input.count > > 3")

        assert exc_info.value.position == 14


def test_tokenize_reads_operators_greedily():
    tokens = tokenize("a !== 'b c'")

    assert [t.type for t in tokens] == [TokenType.WORD, TokenType.OPERATOR, TokenType.STRING, TokenType.END]
    assert tokens[1].value == "!=="
    assert tokens[2].value == "b c"


def test_compiled_conditions_are_cached():
    assert compile_condition("input.count > 1") is compile_condition("input.count > 1")


class TestUnquotedRightHandSide:
    STATUS = {"input": {"status": "in progress", "owner": "Ada Lovelace", "done": False}}

    def test_multi_word_raw_string(self):
        assert evaluate_condition("input.status == in progress", self.STATUS) is True
        assert evaluate_condition("input.status != in progress", self.STATUS) is False

    def test_raw_string_stops_at_boolean_operators(self):
        assert evaluate_condition("input.status == in progress and input.owner == Ada Lovelace", self.STATUS) is True
        assert evaluate_condition("input.status == in review or input.done == false", self.STATUS) is True

    def test_raw_string_stops_at_closing_paren(self):
        assert evaluate_condition("(input.status == in progress) and not input.done", self.STATUS) is True

    def test_raw_string_keeps_inner_spacing(self):
        assert compile_condition("input.status ==  in   progress ").right.value == "in   progress"


class TestPathologicalExpressions:
    def test_deep_nesting_evaluates_false(self):
        expression = "(" * 3000 + "input.flag" + ")" * 3000

        assert evaluate_condition(expression, VARIABLES) is False

    def test_oversized_integer_literal_evaluates_false(self):
        # Beyond the interpreter's int/str conversion limit
        expression = "input.count == " + "9" * 5000

        assert evaluate_condition(expression, VARIABLES) is False

    def test_long_not_chain_evaluates_false(self):
        assert evaluate_condition("not " * 5000 + "input.flag", VARIABLES) is False
