"""
Taylor series expansion for the expression engine
Coefficients come from repeated symbolic differentiation evaluated at the
expansion point; the series itself is returned as a simplified polynomial
"""

import math
import logging
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from exprengine.analysis import evaluate_at
from exprengine.ast_nodes import AnyNode, VariableNode, binary, number
from exprengine.codegen import generate_code
from exprengine.constants import MAX_SERIES_ORDER, MAX_SERIES_VARIABLES
from exprengine.differentiator import Differentiator, differentiate_ast
from exprengine.evaluator import EvaluationContext, evaluate
from exprengine.exceptions import DomainError
from exprengine.simplifier import simplify_ast

logger = logging.getLogger(__name__)


class TaylorSeries(BaseModel):
    """
    Single-variable expansion

    Attributes:
        coefficients: c_n = f^(n)(center) / n! for n = 0..order
        expression: Rendered polynomial sum of c_n * (variable - center)^n
    """

    variable: str
    center: float
    order: int
    coefficients: List[float]
    expression: str


class SeriesTerm(BaseModel):
    """One non-zero term of a multivariable expansion"""

    powers: Dict[str, int]
    coefficient: float


class MultivariableSeries(BaseModel):
    """Expansion in several variables up to a total order"""

    variables: List[str]
    point: Dict[str, float]
    order: int
    terms: List[SeriesTerm]
    expression: str


def _check_order(order: int) -> None:
    if not 0 <= order <= MAX_SERIES_ORDER:
        raise DomainError(
            f"Series expansion order must be between 0 and {MAX_SERIES_ORDER}",
            details={"order": order},
        )


def _shifted(name: str, center: float) -> AnyNode:
    """(name - center), written without a negative literal"""
    if not math.isfinite(center):
        raise DomainError(f"Expansion point for '{name}' must be a finite number")
    node = VariableNode(name=name)
    if center == 0:
        return node
    if center > 0:
        return binary("-", node, number(center))
    return binary("+", node, number(-center))


def _monomial(factors: Sequence[Tuple[AnyNode, int]]) -> Optional[AnyNode]:
    result: Optional[AnyNode] = None
    for base, power in factors:
        if power == 0:
            continue
        factor = base if power == 1 else binary("^", base, number(power))
        result = factor if result is None else binary("*", result, factor)
    return result


def _polynomial(terms: Sequence[Tuple[float, Optional[AnyNode]]]) -> AnyNode:
    """Sum coefficient * monomial terms, subtracting negative coefficients"""
    result: Optional[AnyNode] = None
    for coefficient, monomial in terms:
        if coefficient == 0:
            continue
        if result is None:
            term = number(coefficient)
            if monomial is not None:
                term = binary("*", term, monomial)
            result = term
            continue

        term = number(abs(coefficient))
        if monomial is not None:
            term = binary("*", term, monomial)
        result = binary("-" if coefficient < 0 else "+", result, term)

    return simplify_ast(result) if result is not None else number(0)


def taylor_series(
    ast: AnyNode,
    variable: str,
    center: float = 0.0,
    order: int = 5,
    variables: Optional[Dict[str, float]] = None,
) -> TaylorSeries:
    """
    Expand an expression around a point

    Args:
        ast: Root node
        variable: Expansion variable
        center: Expansion point
        order: Highest power kept (0 to MAX_SERIES_ORDER)
        variables: Values for the other variables

    Returns:
        TaylorSeries with coefficients and the rendered polynomial

    Raises:
        DomainError: On an invalid order or center
        DifferentiationError: If a derivative cannot be taken
        ExpressionError: If a derivative cannot be evaluated at the center
    """
    _check_order(order)
    shift = _shifted(variable, center)

    differentiator = Differentiator(variable)
    base = EvaluationContext(variables=dict(variables or {}))
    derivative = simplify_ast(ast)
    coefficients: List[float] = []

    for n in range(order + 1):
        if n > 0:
            derivative = simplify_ast(differentiator.derive(derivative))
        value = evaluate_at(derivative, base, variable, center)
        coefficients.append(value / math.factorial(n))

    polynomial = _polynomial(
        [(c, _monomial([(shift, n)])) for n, c in enumerate(coefficients)]
    )
    logger.debug(f"Taylor expansion of order {order} about {variable} = {center}")

    return TaylorSeries(
        variable=variable,
        center=center,
        order=order,
        coefficients=coefficients,
        expression=generate_code(polynomial),
    )


def _multi_indices(count: int, order: int) -> Iterator[Tuple[int, ...]]:
    """Exponent tuples of length count whose sum is at most order"""
    if count == 0:
        yield ()
        return
    for power in range(order + 1):
        for rest in _multi_indices(count - 1, order - power):
            yield (power,) + rest


def multivariable_taylor_series(
    ast: AnyNode,
    variables: Sequence[str],
    point: Dict[str, float],
    order: int = 2,
    values: Optional[Dict[str, float]] = None,
) -> MultivariableSeries:
    """
    Expand an expression in several variables up to a total order

    Each term is the mixed partial derivative at the point divided by the
    product of the factorials of its exponents. Zero terms are dropped.

    Args:
        ast: Root node
        variables: Expansion variables, in output order
        point: Expansion point; needs a value for every expansion variable
        order: Highest total degree kept (0 to MAX_SERIES_ORDER)
        values: Values for any other variables

    Raises:
        DomainError: On an invalid order, variable list or point
        DifferentiationError: If a partial derivative cannot be taken
        ExpressionError: If a partial derivative cannot be evaluated at the point
    """
    _check_order(order)
    names = list(variables)
    if not names or len(set(names)) != len(names):
        raise DomainError("Expansion variables must be non-empty and distinct")
    if len(names) > MAX_SERIES_VARIABLES:
        raise DomainError(
            f"At most {MAX_SERIES_VARIABLES} expansion variables are supported"
        )
    missing = [name for name in names if name not in point]
    if missing:
        raise DomainError(
            f"Expansion point is missing values for: {', '.join(missing)}",
            details={"missing": missing},
        )

    shifts = [_shifted(name, point[name]) for name in names]
    context = EvaluationContext(
        variables={**(values or {}), **{name: point[name] for name in names}}
    )

    partials: Dict[Tuple[int, ...], AnyNode] = {
        tuple(0 for _ in names): simplify_ast(ast)
    }

    def partial(powers: Tuple[int, ...]) -> AnyNode:
        if powers not in partials:
            axis = next(i for i, p in enumerate(powers) if p > 0)
            parent = powers[:axis] + (powers[axis] - 1,) + powers[axis + 1 :]
            partials[powers] = simplify_ast(
                differentiate_ast(partial(parent), names[axis])
            )
        return partials[powers]

    indices = sorted(
        _multi_indices(len(names), order),
        key=lambda p: (sum(p), tuple(-k for k in p)),
    )

    terms: List[SeriesTerm] = []
    polynomial_terms: List[Tuple[float, Optional[AnyNode]]] = []
    for powers in indices:
        value = evaluate(partial(powers), context)
        coefficient = value / math.prod(math.factorial(k) for k in powers)
        if coefficient == 0:
            continue
        terms.append(
            SeriesTerm(powers=dict(zip(names, powers)), coefficient=coefficient)
        )
        polynomial_terms.append((coefficient, _monomial(list(zip(shifts, powers)))))

    logger.debug(
        f"Multivariable expansion of order {order} in {len(names)} variable(s): "
        f"{len(terms)} term(s)"
    )

    return MultivariableSeries(
        variables=names,
        point={name: point[name] for name in names},
        order=order,
        terms=terms,
        expression=generate_code(_polynomial(polynomial_terms)),
    )
