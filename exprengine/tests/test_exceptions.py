"""
Tests for structured exceptions
"""

import pytest
from exprengine.exceptions import (
    DivisionByZeroError,
    DomainError,
    ExpressionSyntaxError,
    ExpressionError,
    UndefinedVariableError,
    UnsafeFunctionError,
    describe_error,
)


def test_to_dict_includes_expression_and_position():
    """Test the JSON error body"""
    exc = ExpressionSyntaxError(
        "Missing closing parenthesis", expression="(1 + 2", position=6
    )

    data = exc.to_dict()

    assert data["code"] == "syntax_error"
    assert data["kind"] == "ExpressionSyntaxError"
    assert data["title"] == "Syntax Error"
    assert data["message"] == "Missing closing parenthesis"
    assert data["details"] == {"expression": "(1 + 2", "position": 6}


def test_to_dict_does_not_mutate_details():
    """Test that building the body leaves the exception's details intact"""
    exc = DomainError(
        "Square root of negative number", expression="sqrt(-1)", details={"a": 1}
    )
    exc.to_dict()

    assert exc.details == {"a": 1}


def test_undefined_variable_message():
    """Test that the variable name is kept on the exception"""
    exc = UndefinedVariableError("rate")

    assert exc.name == "rate"
    assert exc.message == "Undefined variable: rate"
    assert exc.code == "undefined_variable"


def test_str_representation():
    """Test the log-friendly string form"""
    exc = UnsafeFunctionError("Unsafe function: eval", expression="eval(1)", position=0)

    assert str(exc) == (
        "[unsafe_function] Unsafe function: eval | Position: 0 | Expression: eval(1)"
    )


@pytest.mark.parametrize(
    "exc, title",
    [
        (DivisionByZeroError("Division by zero"), "Division by Zero"),
        (UndefinedVariableError("x"), "Undefined Variable"),
        (UnsafeFunctionError("Unsafe function: exec"), "Function Not Allowed"),
        (DomainError("Result is not finite"), "Domain Error"),
    ],
)
def test_describe_error_titles(exc, title):
    """Test the title chosen for each error kind"""
    description = describe_error(exc)

    assert description["title"] == title
    assert description["kind"] == type(exc).__name__
    assert description["message"] == exc.message


def test_describe_error_foreign_exception():
    """Test that unknown exceptions get the generic title and a sanitized message"""
    description = describe_error(RuntimeError('File "/srv/app/x.py", line 3 in run'))

    assert description["code"] == ExpressionError.code
    assert description["kind"] == "RuntimeError"
    assert description["title"] == "Calculation Error"
    assert "/srv/app" not in description["message"]


def test_describe_error_empty_message():
    """Test that an exception without text still gets a message"""
    assert describe_error(KeyError())["message"] == "KeyError"
