"""
Tests for sampling, numeric limits and step-by-step evaluation
"""

import math
import numpy as np
import pytest
import exprengine.analysis as analysis
from exprengine.analysis import (
    evaluate_at,
    evaluate_with_steps,
    numeric_limit,
    sample_expression,
)
from exprengine.evaluator import EvaluationContext
from exprengine.config import get_settings
from exprengine.exceptions import DomainError
from exprengine.parser import parse_expression


def test_sample_expression_values():
    """Test sampling on an evenly spaced grid"""
    xs, ys = sample_expression(parse_expression("x^2"), "x", -2, 2, 5)

    np.testing.assert_allclose(xs, [-2, -1, 0, 1, 2])
    np.testing.assert_allclose(ys, [4, 1, 0, 1, 4])


def test_sample_expression_undefined_points_are_nan():
    """Test that failing points become NaN instead of raising"""
    _, ys = sample_expression(parse_expression("1/x"), "x", -1, 1, 5)

    assert math.isnan(ys[2])
    assert ys[0] == pytest.approx(-1.0)
    assert ys[4] == pytest.approx(1.0)

    _, ys = sample_expression(parse_expression("sqrt(x)"), "x", -1, 1, 3)
    assert math.isnan(ys[0])
    assert ys[2] == pytest.approx(1.0)


def test_sample_expression_uses_other_variables():
    """Test that fixed variables are available at every point"""
    _, ys = sample_expression(parse_expression("a * x"), "x", 0, 2, 3, {"a": 3})

    np.testing.assert_allclose(ys, [0, 3, 6])


def test_sample_expression_point_cap(monkeypatch):
    """Test that the number of points is capped by settings"""
    monkeypatch.setattr(get_settings(), "max_sample_points", 10)
    xs, ys = sample_expression(parse_expression("x"), "x", 0, 1, 1000)

    assert len(xs) == 10
    assert len(ys) == 10


def test_sample_expression_rejects_infinite_range():
    """Test that the sampling range must be finite"""
    with pytest.raises(DomainError):
        sample_expression(parse_expression("x"), "x", 0, math.inf, 10)


def test_limit_removable_singularity():
    """Test sin(x)/x as x -> 0"""
    result = numeric_limit(parse_expression("sin(x)/x"), "x", 0)

    assert result.exists
    assert result.value == pytest.approx(1.0)
    assert result.message == "1"


def test_limit_of_rational_function():
    """Test (x^2 - 1)/(x - 1) as x -> 1"""
    result = numeric_limit(parse_expression("(x^2 - 1)/(x - 1)"), "x", 1)

    assert result.exists
    assert result.value == pytest.approx(2.0)


def test_limit_jump_discontinuity():
    """Test abs(x)/x as x -> 0"""
    result = numeric_limit(parse_expression("abs(x)/x"), "x", 0)

    assert not result.exists
    assert result.value is None
    assert "jump discontinuity" in result.message


def test_limit_at_infinity():
    """Test limits towards +/- infinity"""
    ast = parse_expression("1/x")

    positive = numeric_limit(ast, "x", "inf")
    negative = numeric_limit(ast, "x", "-∞")

    assert positive.exists
    assert positive.value == pytest.approx(0.0, abs=1e-6)
    assert negative.exists
    assert negative.value == pytest.approx(0.0, abs=1e-6)


def test_limit_evaluation_failure():
    """Test a limit whose sample points cannot be evaluated"""
    result = numeric_limit(parse_expression("sqrt(x)"), "x", -5)

    assert not result.exists
    assert "could not be numerically determined" in result.message


def test_limit_invalid_point():
    """Test an unparseable limit point"""
    with pytest.raises(DomainError):
        numeric_limit(parse_expression("x"), "x", "soon")


def test_steps_with_substitution():
    """Test the step trace for a simple expression"""
    result = evaluate_with_steps(parse_expression("2 + 3 * x"), {"x": 2})

    assert result.result == 8.0
    assert [s.type for s in result.steps] == ["evaluation", "substitution", "evaluation"]
    assert [s.id for s in result.steps] == [0, 1, 2]
    assert result.steps[0].expression == "2 + 3 * x"
    assert result.steps[1].description == "Substitute values: x = 2"
    assert result.steps[-1].result == 8.0


def test_steps_with_simplification():
    """Test that a simplification step appears only when it changes the text"""
    result = evaluate_with_steps(parse_expression("x * 1 + 0"), {"x": 5})

    assert [s.type for s in result.steps] == [
        "evaluation",
        "simplification",
        "substitution",
        "evaluation",
    ]
    assert result.steps[1].expression == "x"
    assert result.result == 5.0


def test_steps_symbolic_result():
    """Test that unbound variables leave a symbolic final result"""
    result = evaluate_with_steps(parse_expression("x + 2 * 3"))

    assert result.result == "x + 6"
    assert [s.type for s in result.steps] == ["evaluation", "simplification", "evaluation"]


def record_contexts(monkeypatch):
    """Capture the context of every point evaluation"""
    contexts = []
    original = analysis.evaluate

    def recording(ast, context=None):
        contexts.append(context)
        return original(ast, context)

    monkeypatch.setattr(analysis, "evaluate", recording)
    return contexts


def test_evaluate_at_copies_function_table(monkeypatch):
    """Test each point gets its own variables and functions"""
    contexts = record_contexts(monkeypatch)
    base = EvaluationContext(variables={"a": 2.0})

    assert evaluate_at(parse_expression("a * x"), base, "x", 3.0) == 6.0

    assert base.variables == {"a": 2.0}
    assert contexts[0].variables == {"a": 2.0, "x": 3.0}
    assert contexts[0].functions is not base.functions
    assert contexts[0].functions == base.functions


def test_sample_points_do_not_share_function_tables(monkeypatch):
    """Test a function table change at one point does not leak to the next"""
    contexts = record_contexts(monkeypatch)

    sample_expression(parse_expression("sin(x)"), "x", 0, 1, 4)

    assert len(contexts) == 4
    assert len({id(c.functions) for c in contexts}) == 4
    contexts[0].functions.pop("sin")
    assert "sin" in contexts[1].functions
