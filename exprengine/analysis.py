"""
Numeric analysis helpers for the expression engine
Sampling over a range for graphing, two-sided numeric limits and
step-by-step evaluation traces
"""

import math
import logging
from typing import Dict, List, Optional, Tuple, Union

import numpy as np
from pydantic import BaseModel

from exprengine.ast_nodes import AnyNode
from exprengine.codegen import format_number, generate_code
from exprengine.config import get_settings
from exprengine.constants import LIMIT_DELTA, LIMIT_TOLERANCE_FACTOR
from exprengine.evaluator import EvaluationContext, evaluate, evaluate_symbolic
from exprengine.exceptions import DomainError, ExpressionError
from exprengine.simplifier import simplify_ast

logger = logging.getLogger(__name__)


class LimitResult(BaseModel):
    """Outcome of a numeric limit estimate"""

    value: Optional[float] = None
    exists: bool
    message: str


class SolutionStep(BaseModel):
    """One entry in a step-by-step evaluation trace"""

    id: int
    type: str  # "evaluation", "simplification" or "substitution"
    description: str
    expression: str
    result: Optional[Union[float, str]] = None


class StepResult(BaseModel):
    """Final result plus the steps that produced it"""

    result: Union[float, str]
    steps: List[SolutionStep]


def evaluate_at(
    ast: AnyNode, base: EvaluationContext, variable: str, value: float
) -> float:
    """
    Evaluate with one variable rebound

    Each call gets its own variables and function table; model_copy alone
    would share the base context's dictionaries.
    """
    context = base.model_copy(
        update={
            "variables": {**base.variables, variable: float(value)},
            "functions": dict(base.functions),
        }
    )
    return evaluate(ast, context)


# ============================================================================
# Sampling
# ============================================================================


def sample_expression(
    ast: AnyNode,
    variable: str,
    start: float,
    stop: float,
    num: int = 100,
    variables: Optional[Dict[str, float]] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate an expression on an evenly spaced grid

    Args:
        ast: Root node
        variable: Variable swept over the grid
        start: First grid point
        stop: Last grid point
        num: Number of points (capped by settings.max_sample_points)
        variables: Values for the other variables

    Returns:
        Tuple of (xs, ys); points where evaluation fails are NaN in ys
    """
    if not (math.isfinite(start) and math.isfinite(stop)):
        raise DomainError("Sampling range must be finite")

    settings = get_settings()
    num = max(1, min(int(num), settings.max_sample_points))

    base = EvaluationContext(variables=dict(variables or {}))
    xs = np.linspace(start, stop, num)
    ys = np.empty_like(xs)

    failures = 0
    for i, x in enumerate(xs):
        try:
            ys[i] = evaluate_at(ast, base, variable, x)
        except ExpressionError:
            ys[i] = np.nan
            failures += 1

    if failures:
        logger.debug(f"{failures} of {num} sample points could not be evaluated")
    return xs, ys


# ============================================================================
# Limits
# ============================================================================


def _limit_target(approaching: Union[float, str]) -> float:
    if isinstance(approaching, str):
        text = approaching.strip().lower().replace("∞", "inf")
        if text in ("inf", "+inf", "infinity", "+infinity"):
            return math.inf
        if text in ("-inf", "-infinity"):
            return -math.inf
        try:
            return float(text)
        except ValueError as e:
            raise DomainError(f"Invalid limit point: {approaching}") from e
    return float(approaching)


def numeric_limit(
    ast: AnyNode,
    variable: str,
    approaching: Union[float, str],
    variables: Optional[Dict[str, float]] = None,
) -> LimitResult:
    """
    Approximate a limit numerically

    Finite points are sampled LIMIT_DELTA to either side and the two values
    must agree within LIMIT_DELTA * LIMIT_TOLERANCE_FACTOR. Infinite points
    are sampled once at +/- 1 / LIMIT_DELTA.

    Args:
        ast: Root node
        variable: Variable approaching the limit point
        approaching: Limit point; a number, or 'inf' / '-inf' / '∞' / '-∞'
        variables: Values for the other variables

    Returns:
        LimitResult; exists is False when the two sides disagree or fail
    """
    target = _limit_target(approaching)
    if math.isnan(target):
        raise DomainError("Limit point must be a number")

    base = EvaluationContext(variables=dict(variables or {}))

    if math.isinf(target):
        far_point = math.copysign(1.0 / LIMIT_DELTA, target)
        side = "large" if target > 0 else "large negative"
        try:
            value = evaluate_at(ast, base, variable, far_point)
        except ExpressionError as e:
            return LimitResult(
                exists=False,
                message=f"Cannot evaluate at {side} values: {e.message}",
            )
        return LimitResult(value=value, exists=True, message=f"{value:.7g}")

    before_point, after_point = target - LIMIT_DELTA, target + LIMIT_DELTA
    try:
        before = evaluate_at(ast, base, variable, before_point)
        after = evaluate_at(ast, base, variable, after_point)
    except ExpressionError as e:
        return LimitResult(
            exists=False,
            message=f"Limit could not be numerically determined: {e.message}",
        )

    if abs(before - after) < LIMIT_DELTA * LIMIT_TOLERANCE_FACTOR:
        value = (before + after) / 2
        return LimitResult(value=value, exists=True, message=f"{value:.7g}")

    return LimitResult(
        exists=False,
        message=(
            f"Limit may not exist or is a jump discontinuity (approaching "
            f"{before:.7g} from the left, {after:.7g} from the right)"
        ),
    )


# ============================================================================
# Step-by-step evaluation
# ============================================================================


def evaluate_with_steps(
    ast: AnyNode, variables: Optional[Dict[str, float]] = None
) -> StepResult:
    """
    Evaluate an expression and record how the result was reached

    Steps: the input rendering, the simplified rendering (only when it
    differs), the substitution (only when variables are given) and the final
    evaluation. An unbound variable leaves a symbolic final result.
    """
    variables = dict(variables or {})
    steps: List[SolutionStep] = []

    def add_step(type_: str, description: str, expression: str, result=None):
        steps.append(
            SolutionStep(
                id=len(steps),
                type=type_,
                description=description,
                expression=expression,
                result=result,
            )
        )

    original = generate_code(ast)
    add_step("evaluation", "Original expression", original)

    simplified_ast = simplify_ast(ast)
    simplified = generate_code(simplified_ast)
    if simplified != original:
        add_step("simplification", "Simplified expression", simplified)

    if variables:
        substitutions = ", ".join(
            f"{name} = {format_number(float(value))}"
            for name, value in variables.items()
        )
        add_step(
            "substitution",
            f"Substitute values: {substitutions}",
            simplified,
            substitutions,
        )

    result = evaluate_symbolic(simplified_ast, variables)
    add_step("evaluation", "Final result", simplified, result)

    return StepResult(result=result, steps=steps)
