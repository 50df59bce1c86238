"""
Equation solving for the expression engine
Rearranges 'lhs = rhs' into 'lhs - (rhs)' and finds real roots on an interval
by scanning for sign changes and refining each bracket with Brent's method
"""

import math
import logging
from typing import Dict, Iterable, List, Optional

import numpy as np
from pydantic import BaseModel
from scipy.optimize import brentq

from exprengine.analysis import evaluate_at, sample_expression
from exprengine.ast_nodes import AnyNode, binary, free_variables
from exprengine.codegen import generate_code
from exprengine.constants import (
    DEFAULT_ROOT_SAMPLES,
    ROOT_DEDUP_TOLERANCE,
    ROOT_RESIDUAL_TOLERANCE,
)
from exprengine.evaluator import EvaluationContext
from exprengine.exceptions import (
    ExpressionError,
    ExpressionSyntaxError,
    SolverError,
    ValidationError,
)
from exprengine.parser import parse_tokens
from exprengine.tokenizer import TokenKind, tokenize
from exprengine.validation import validate_expression

logger = logging.getLogger(__name__)

_EQUALS = frozenset({"=", "=="})


class SolveResult(BaseModel):
    """Roots of a rearranged equation on an interval"""

    equation: str
    variable: str
    lower: float
    upper: float
    roots: List[float]
    message: str


def rearrange_equation(
    text: str, allowed_variables: Optional[Iterable[str]] = None
) -> AnyNode:
    """
    Turn 'lhs = rhs' into the expression 'lhs - (rhs)'

    Args:
        text: Equation with exactly one top-level '=' (or '==')
        allowed_variables: Multi-letter variable names to accept

    Returns:
        AST whose roots are the equation's solutions

    Raises:
        ValidationError: If the security validator rejects the input
        ExpressionSyntaxError: Unless there is exactly one top-level '='
    """
    validation = validate_expression(text, allowed_variables)
    if not validation.is_valid:
        raise ValidationError(
            "; ".join(validation.blocked) or "Equation rejected",
            details={"blocked": validation.blocked},
        )
    source = validation.sanitized
    tokens = tokenize(source)

    depth = 0
    splits: List[int] = []
    for index, token in enumerate(tokens):
        if token.kind is TokenKind.LEFT_PAREN:
            depth += 1
        elif token.kind is TokenKind.RIGHT_PAREN:
            depth -= 1
        elif depth == 0 and token.kind is TokenKind.OPERATOR and token.text in _EQUALS:
            splits.append(index)

    if len(splits) != 1:
        raise ExpressionSyntaxError(
            f"Equation must contain exactly one '=', found {len(splits)}",
            expression=source or None,
            details={"equals_count": len(splits)},
        )

    split = splits[0]
    lhs = parse_tokens(tokens[:split], source)
    rhs = parse_tokens(tokens[split + 1 :], source)
    return binary("-", lhs, rhs)


def _dedupe(roots: List[float]) -> List[float]:
    unique: List[float] = []
    for root in sorted(roots):
        if unique and abs(root - unique[-1]) <= ROOT_DEDUP_TOLERANCE * max(1.0, abs(root)):
            continue
        unique.append(root)
    return unique


def find_roots(
    ast: AnyNode,
    variable: str,
    lower: float,
    upper: float,
    samples: int = DEFAULT_ROOT_SAMPLES,
    variables: Optional[Dict[str, float]] = None,
) -> List[float]:
    """
    Find real roots of an expression on [lower, upper]

    Args:
        ast: Expression whose zeros are wanted
        variable: Variable to solve for
        lower: Interval start
        upper: Interval end
        samples: Grid size used to bracket sign changes
        variables: Values for the other variables

    Returns:
        Sorted, de-duplicated roots

    Raises:
        SolverError: If the interval is empty or not finite
    """
    if not (math.isfinite(lower) and math.isfinite(upper)):
        raise SolverError("Search interval must be finite")
    if lower >= upper:
        raise SolverError(
            f"Lower bound must be less than upper bound, got [{lower}, {upper}]",
            details={"lower": lower, "upper": upper},
        )

    base = EvaluationContext(variables=dict(variables or {}))

    def f(x: float) -> float:
        return evaluate_at(ast, base, variable, x)

    xs, ys = sample_expression(ast, variable, lower, upper, max(samples, 2), variables)

    roots: List[float] = []
    for i in range(len(xs)):
        if ys[i] == 0.0:
            roots.append(float(xs[i]))
            continue
        if i + 1 >= len(xs):
            break
        a, b = ys[i], ys[i + 1]
        if not (np.isfinite(a) and np.isfinite(b)) or b == 0.0:
            continue
        if np.sign(a) == np.sign(b):
            continue

        try:
            root = brentq(f, xs[i], xs[i + 1], xtol=1e-12)
            residual = abs(f(root))
        except (ValueError, RuntimeError, ExpressionError) as e:
            logger.debug(f"Bracket [{xs[i]}, {xs[i + 1]}] skipped: {e}")
            continue

        # A sign change across a pole converges to the pole, not a root
        if residual <= ROOT_RESIDUAL_TOLERANCE:
            roots.append(float(root))

    return _dedupe(roots)


def solve_equation(
    text: str,
    variable: str,
    lower: float = -10.0,
    upper: float = 10.0,
    samples: int = DEFAULT_ROOT_SAMPLES,
    variables: Optional[Dict[str, float]] = None,
) -> SolveResult:
    """
    Solve 'lhs = rhs' for one variable on an interval

    Raises:
        SolverError: If the interval is invalid or the equation does not
            reference the variable
        ExpressionError: If the equation cannot be parsed
    """
    variables = dict(variables or {})
    allowed = {variable, *variables}
    ast = rearrange_equation(text, allowed)

    if variable not in free_variables(ast):
        raise SolverError(
            f"Equation does not contain variable '{variable}'",
            expression=text,
            details={"variable": variable},
        )

    roots = find_roots(ast, variable, lower, upper, samples, variables)
    if roots:
        message = f"Found {len(roots)} root(s) in [{lower}, {upper}]"
    else:
        message = f"No real roots found in [{lower}, {upper}]"
    logger.info(message)

    return SolveResult(
        equation=generate_code(ast),
        variable=variable,
        lower=lower,
        upper=upper,
        roots=roots,
        message=message,
    )
