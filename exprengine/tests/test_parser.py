"""
Tests for the recursive-descent parser
"""

import math
import pytest
from exprengine.ast_nodes import binary, call, negate, number, variable
from exprengine.evaluator import evaluate, EvaluationContext
from exprengine.exceptions import (
    DepthExceededError,
    ExpressionSyntaxError,
    NumericRangeError,
    UnsafeFunctionError,
    ValidationError,
)
from exprengine.parser import parse_detailed, parse_expression, parse_tokens
from exprengine.tokenizer import tokenize


def value_of(expression: str, **variables: float) -> float:
    """Parse and evaluate in one step"""
    return evaluate(parse_expression(expression), EvaluationContext(variables=variables))


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("2^3^2", 512),
        ("2 ** 3", 8),
        ("10 - 4 - 3", 3),
        ("64 / 4 / 2", 8),
        ("-2^2", 4),
        ("2^-1", 0.5),
        ("--3", 3),
        ("+3", 3),
        ("2 * -3", -6),
        ("max(1, 5, 3)", 5),
    ],
)
def test_precedence_and_associativity(expression, expected):
    """Test operator precedence and associativity"""
    assert value_of(expression) == pytest.approx(expected)


def test_parse_structure():
    """Test the tree built for a simple expression"""
    assert parse_expression("x + 2 * y") == binary(
        "+", variable("x"), binary("*", number(2), variable("y"))
    )


def test_power_is_right_associative():
    """Test that a ^ b ^ c groups as a ^ (b ^ c)"""
    assert parse_expression("a ^ b ^ c") == binary(
        "^", variable("a"), binary("^", variable("b"), variable("c"))
    )


def test_unary_minus_binds_tighter_than_power():
    """Test that -x ^ 2 is (-x) ^ 2"""
    assert parse_expression("-x ^ 2") == binary("^", negate(variable("x")), number(2))


def test_constants_resolved_case_insensitively():
    """Test that pi, e and euler become numbers in any case"""
    assert parse_expression("PI") == number(math.pi)
    assert parse_expression("Pi") == number(math.pi)
    assert parse_expression("E") == number(math.e)
    assert parse_expression("euler") == number(math.e)


def test_function_names_case_insensitive():
    """Test that function names are lower-cased"""
    assert parse_expression("SIN(x)") == call("sin", variable("x"))
    assert parse_expression("Sqrt(4)") == call("sqrt", number(4))


def test_variable_names_case_sensitive():
    """Test that variable names keep their case"""
    assert parse_expression("X") == variable("X")
    assert parse_expression("X") != parse_expression("x")
    assert parse_expression("x + X") == binary("+", variable("x"), variable("X"))


@pytest.mark.parametrize("expression", ["eval(x)", "exec(1)", "system(1)", "open(x)"])
def test_unsafe_function_rejected(expression):
    """Test that calls outside the allow-list raise UnsafeFunctionError"""
    with pytest.raises(UnsafeFunctionError) as exc_info:
        parse_expression(expression)

    assert exc_info.value.position == 0


def test_unsafe_function_node_cannot_be_built():
    """Test that the AST itself refuses disallowed function names"""
    with pytest.raises(UnsafeFunctionError):
        call("eval", variable("x"))


def test_missing_closing_parenthesis():
    """Test the parser's own check for an unclosed group"""
    with pytest.raises(ExpressionSyntaxError) as exc_info:
        parse_tokens(tokenize("(1 + 2"))

    assert "closing parenthesis" in exc_info.value.message.lower()


def test_unbalanced_input_rejected_by_validator():
    """Test that parse_expression fails early on unbalanced input"""
    with pytest.raises(ValidationError):
        parse_expression("(1 + 2")


def test_unexpected_token():
    """Test a stray closing parenthesis"""
    with pytest.raises(ExpressionSyntaxError) as exc_info:
        parse_tokens(tokenize("1 + )"))

    assert "unexpected token" in exc_info.value.message.lower()
    assert exc_info.value.position == 4


def test_unexpected_trailing_token():
    """Test leftover tokens after a complete expression"""
    with pytest.raises(ExpressionSyntaxError) as exc_info:
        parse_expression("1 2")

    assert "trailing" in exc_info.value.message.lower()


def test_unexpected_end_of_input():
    """Test an expression that stops after an operator"""
    with pytest.raises(ExpressionSyntaxError):
        parse_expression("1 +")


def test_empty_token_list():
    """Test that an empty token list is a syntax error"""
    with pytest.raises(ExpressionSyntaxError) as exc_info:
        parse_tokens([])

    assert exc_info.value.details["reason"] == "empty_expression"


def test_malformed_number():
    """Test that a numeric run with two decimal points is rejected"""
    with pytest.raises(ExpressionSyntaxError) as exc_info:
        parse_expression("1.2.3")

    assert "numeric literal" in exc_info.value.message


@pytest.mark.parametrize("expression", ["9007199254740993", "1e400", "1e16"])
def test_number_out_of_range(expression):
    """Test literals that are non-finite or beyond exact float range"""
    with pytest.raises(NumericRangeError):
        parse_expression(expression)


def test_largest_safe_integer_accepted():
    """Test the upper end of the accepted literal range"""
    assert parse_expression("9007199254740991") == number(2**53 - 1)


def test_parse_depth_limit():
    """Test that deeply nested parentheses are rejected"""
    with pytest.raises(DepthExceededError):
        parse_expression("(" * 60 + "1" + ")" * 60)


def test_parse_depth_within_limit():
    """Test nesting just under the limit"""
    assert parse_expression("(" * 40 + "1" + ")" * 40) == number(1)


def test_unary_chain_height_limit():
    """Test that long unary chains are bounded by the tree height cap"""
    with pytest.raises(DepthExceededError):
        parse_expression("-" * 150 + "1")


def test_operator_chain_height_limit():
    """Test that long left-associative chains are bounded by the tree height cap"""
    with pytest.raises(DepthExceededError):
        parse_expression("x" + "+x" * 120)


def test_custom_limits():
    """Test explicit depth and height limits"""
    tokens = tokenize("((1))")
    with pytest.raises(DepthExceededError):
        parse_tokens(tokens, max_depth=2)

    with pytest.raises(DepthExceededError):
        parse_tokens(tokenize("1 + 2 + 3"), max_height=2)


def test_function_arguments():
    """Test calls with zero, one and many arguments"""
    assert parse_expression("max()") == call("max")
    assert parse_expression("pow(x, 2)") == call("pow", variable("x"), number(2))
    assert parse_expression("min(1, x, sin(y))") == call(
        "min", number(1), variable("x"), call("sin", variable("y"))
    )


def test_multi_letter_variables_need_allow_list():
    """Test that multi-letter names parse only when allowed"""
    with pytest.raises(ValidationError):
        parse_expression("rate * 2")

    assert parse_expression("rate * 2", allowed_variables=["rate"]) == binary(
        "*", variable("rate"), number(2)
    )


def test_parse_detailed_reports_metadata():
    """Test variables, functions and complexity in ParseResult"""
    result = parse_detailed("x + sin(y)")

    assert result.is_valid
    assert not result.is_empty
    assert result.variables == {"x", "y"}
    assert result.functions == {"sin"}
    # '+' 1, x 1, sin 2, y 1
    assert result.complexity == 5
    assert result.errors == []


def test_parse_detailed_empty():
    """Test the empty pseudo-status"""
    result = parse_detailed("   ")

    assert result.is_valid
    assert result.is_empty
    assert result.ast is None


@pytest.mark.parametrize("expression", ["eval(x)", "foo + 1", "1 +", "(1"])
def test_parse_detailed_never_raises(expression):
    """Test that expression errors are reported, not raised"""
    result = parse_detailed(expression)

    assert not result.is_valid
    assert result.ast is None
    assert result.errors
