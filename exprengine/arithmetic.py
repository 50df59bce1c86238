"""
Arithmetic primitives shared by the evaluator and the simplifier
Every operator and function result passes through the same domain checks,
so constant folding can never produce a value evaluation would reject
"""

import sys
import math
from types import MappingProxyType
from typing import Callable, Mapping, Optional, Sequence

from exprengine.constants import FUNCTION_ARITY, UNARY_MINUS
from exprengine.exceptions import (
    ArityError,
    DivisionByZeroError,
    DomainError,
    ExpressionError,
    UnknownFunctionError,
)

EPSILON = sys.float_info.epsilon


def _ensure_finite(value: float, source: str) -> float:
    if not math.isfinite(value):
        raise DomainError(
            f"Non-finite result from {source}", details={"source": source}
        )
    return value


def power(base: float, exponent: float) -> float:
    """
    Raise base to exponent

    0^0 is 1. Zero to a negative power is a division by zero; a negative
    base with a non-integer exponent has no real result.
    """
    if base == 0:
        if exponent == 0:
            return 1.0
        if exponent < 0:
            raise DivisionByZeroError("Zero raised to a negative power")
    if base < 0 and not float(exponent).is_integer():
        raise DomainError(
            "Negative base with non-integer exponent",
            details={"base": base, "exponent": exponent},
        )

    try:
        result = math.pow(base, exponent)
    except OverflowError as e:
        raise DomainError("Result of exponentiation is too large") from e
    except ValueError as e:
        raise DomainError(f"Math domain error in exponentiation: {e}") from e
    return _ensure_finite(result, "^")


def _log(x: float, base: Optional[float] = None) -> float:
    if base is None:
        return math.log(x)
    if base <= 0 or base == 1:
        raise DomainError(f"Invalid logarithm base: {base}")
    return math.log(x, base)


def _round_half_up(x: float) -> float:
    return float(math.floor(x + 0.5))


# Read-only; evaluation contexts take their own copies
SAFE_FUNCTIONS: Mapping[str, Callable[..., float]] = MappingProxyType(
    {
        # Trigonometric
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "asin": math.asin,
        "acos": math.acos,
        "atan": math.atan,
        # Hyperbolic
        "sinh": math.sinh,
        "cosh": math.cosh,
        "tanh": math.tanh,
        # Exponential and logarithmic
        "log": _log,
        "ln": math.log,
        "log10": math.log10,
        "exp": math.exp,
        "sqrt": math.sqrt,
        # Rounding and magnitude
        "abs": math.fabs,
        "ceil": lambda x: float(math.ceil(x)),
        "floor": lambda x: float(math.floor(x)),
        "round": _round_half_up,
        # Aggregates
        "max": max,
        "min": min,
        "pow": power,
    }
)


def apply_operator(operator: str, left: Optional[float], right: float) -> float:
    """
    Apply a binary operator, or unary minus when operator is 'unary-'

    Raises:
        DivisionByZeroError: On |divisor| below machine epsilon
        DomainError: On a non-finite result
    """
    if operator == UNARY_MINUS:
        return -right
    if operator == "+":
        result = left + right
    elif operator == "-":
        result = left - right
    elif operator == "*":
        result = left * right
    elif operator == "/":
        if abs(right) < EPSILON:
            raise DivisionByZeroError(
                "Division by zero", details={"divisor": right}
            )
        result = left / right
    elif operator == "^":
        return power(left, right)
    else:
        raise ExpressionError(f"Unsupported operator: {operator}")
    return _ensure_finite(result, operator)


def check_arity(name: str, count: int) -> None:
    """Raise ArityError if a known function is called with the wrong argument count"""
    limits = FUNCTION_ARITY.get(name)
    if limits is None:
        return
    low, high = limits
    if count < low or (high is not None and count > high):
        if high is None:
            expected = f"at least {low}"
        elif low == high:
            expected = str(low)
        else:
            expected = f"{low} to {high}"
        raise ArityError(
            f"{name}() takes {expected} argument(s), got {count}",
            details={"function": name, "expected": expected, "received": count},
        )


def apply_function(
    name: str, args: Sequence[float], functions: Mapping[str, Callable[..., float]]
) -> float:
    """
    Call a function from a function table with domain checks

    Args:
        name: Lower-cased function name
        args: Evaluated arguments
        functions: Function table (normally an EvaluationContext's)

    Raises:
        UnknownFunctionError: If name is not in the table
        ArityError: On a wrong argument count
        DomainError: On a math domain failure or non-finite result
    """
    func = functions.get(name)
    if func is None:
        raise UnknownFunctionError(
            f"Unknown function: {name}", details={"function": name}
        )
    check_arity(name, len(args))

    try:
        result = func(*args)
    except ExpressionError:
        raise
    except ZeroDivisionError as e:
        raise DivisionByZeroError(f"Division by zero in {name}") from e
    except (ValueError, OverflowError) as e:
        raise DomainError(
            f"Math domain error in {name}: {e}", details={"function": name}
        ) from e
    except TypeError as e:
        raise ArityError(
            f"Invalid arguments for {name}: {e}", details={"function": name}
        ) from e

    try:
        value = float(result)
    except (TypeError, ValueError) as e:
        raise DomainError(f"Function {name} returned a non-numeric value") from e
    return _ensure_finite(value, name)
