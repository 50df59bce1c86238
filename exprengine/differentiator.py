"""
Symbolic differentiation for the expression engine
Produces the partial derivative of an AST with respect to one variable.
differentiate_ast leaves its result unsimplified; differentiate_n simplifies
after every step.
"""

import logging
from typing import Callable, Dict

from exprengine.ast_nodes import (
    AnyNode,
    FunctionNode,
    NumberNode,
    OperatorNode,
    VariableNode,
    binary,
    call,
    free_variables,
    negate,
    number,
)
from exprengine.constants import MAX_DERIVATIVE_ORDER, UNARY_MINUS
from exprengine.exceptions import DifferentiationError
from exprengine.simplifier import simplify_ast

logger = logging.getLogger(__name__)


def _depends_on(node: AnyNode, variable: str) -> bool:
    return variable in free_variables(node)


# ============================================================================
# Single-argument chain rule table: f(u) -> f'(u), multiplied by u' below
# ============================================================================


def _one_minus_square(u: AnyNode) -> AnyNode:
    return binary("-", number(1), binary("^", u, number(2)))


_OUTER_DERIVATIVES: Dict[str, Callable[[AnyNode], AnyNode]] = {
    "sin": lambda u: call("cos", u),
    "cos": lambda u: negate(call("sin", u)),
    "tan": lambda u: binary("/", number(1), binary("^", call("cos", u), number(2))),
    "asin": lambda u: binary("/", number(1), call("sqrt", _one_minus_square(u))),
    "acos": lambda u: negate(
        binary("/", number(1), call("sqrt", _one_minus_square(u)))
    ),
    "atan": lambda u: binary(
        "/", number(1), binary("+", number(1), binary("^", u, number(2)))
    ),
    "sinh": lambda u: call("cosh", u),
    "cosh": lambda u: call("sinh", u),
    "tanh": lambda u: binary("/", number(1), binary("^", call("cosh", u), number(2))),
    "exp": lambda u: call("exp", u),
    "ln": lambda u: binary("/", number(1), u),
    "log": lambda u: binary("/", number(1), u),
    "log10": lambda u: binary("/", number(1), binary("*", u, call("ln", number(10)))),
    "sqrt": lambda u: binary("/", number(1), binary("*", number(2), call("sqrt", u))),
    "abs": lambda u: binary("/", u, call("abs", u)),
}

# Piecewise constant: derivative is zero wherever it exists
_STEP_FUNCTIONS = frozenset({"ceil", "floor", "round"})


class Differentiator:
    """Recursive derivative builder for one variable"""

    def __init__(self, variable: str):
        self.variable = variable

    def derive(self, node: AnyNode) -> AnyNode:
        if isinstance(node, NumberNode):
            return number(0)

        if isinstance(node, VariableNode):
            # Case-sensitive: X and x are different variables
            return number(1) if node.name == self.variable else number(0)

        if isinstance(node, OperatorNode):
            return self._derive_operator(node)

        if isinstance(node, FunctionNode):
            return self._derive_function(node)

        raise DifferentiationError(
            f"Cannot differentiate node type: {type(node).__name__}"
        )

    def _derive_operator(self, node: OperatorNode) -> AnyNode:
        if node.operator == UNARY_MINUS:
            return negate(self.derive(node.right))

        u, v = node.left, node.right

        if node.operator in ("+", "-"):
            return binary(node.operator, self.derive(u), self.derive(v))

        if node.operator == "*":
            # (u * v)' = u' * v + u * v'
            return binary(
                "+",
                binary("*", self.derive(u), v),
                binary("*", u, self.derive(v)),
            )

        if node.operator == "/":
            # (u / v)' = (u' * v - u * v') / v^2
            return binary(
                "/",
                binary(
                    "-",
                    binary("*", self.derive(u), v),
                    binary("*", u, self.derive(v)),
                ),
                binary("^", v, number(2)),
            )

        return self._derive_power(u, v)

    def _derive_power(self, u: AnyNode, v: AnyNode) -> AnyNode:
        if not _depends_on(v, self.variable):
            # (u^n)' = n * u^(n - 1) * u'
            return binary(
                "*",
                binary("*", v, binary("^", u, binary("-", v, number(1)))),
                self.derive(u),
            )

        if not _depends_on(u, self.variable):
            # (a^v)' = a^v * ln(a) * v'
            return binary(
                "*",
                binary("*", binary("^", u, v), call("ln", u)),
                self.derive(v),
            )

        # (u^v)' = u^v * (v' * ln(u) + v * u' / u)
        return binary(
            "*",
            binary("^", u, v),
            binary(
                "+",
                binary("*", self.derive(v), call("ln", u)),
                binary("/", binary("*", v, self.derive(u)), u),
            ),
        )

    def _derive_function(self, node: FunctionNode) -> AnyNode:
        name, args = node.name, node.args

        if name in _STEP_FUNCTIONS:
            return number(0)

        if name == "pow" and len(args) == 2:
            return self._derive_power(args[0], args[1])

        if name == "log" and len(args) == 2:
            # log(u, b) = ln(u) / ln(b)
            return self.derive(binary("/", call("ln", args[0]), call("ln", args[1])))

        outer = _OUTER_DERIVATIVES.get(name)
        if outer is None or len(args) != 1:
            raise DifferentiationError(
                f"Cannot differentiate {name}() with {len(args)} argument(s)",
                details={"function": name},
            )

        # Chain rule: f(u)' = f'(u) * u'
        return binary("*", outer(args[0]), self.derive(args[0]))


def differentiate_ast(ast: AnyNode, variable: str) -> AnyNode:
    """
    Differentiate an AST with respect to one variable

    Args:
        ast: Root node
        variable: Variable name (matched case-sensitively)

    Returns:
        Unsimplified derivative tree

    Raises:
        DifferentiationError: For max/min or an unsupported call shape
    """
    logger.debug(f"Differentiating with respect to {variable}")
    return Differentiator(variable).derive(ast)


def differentiate_n(ast: AnyNode, variable: str, order: int) -> AnyNode:
    """
    Take the order-th derivative, simplifying after every step

    Simplifying in between keeps the tree from growing with each pass; the
    result is therefore always simplified, unlike differentiate_ast.

    Args:
        ast: Root node
        variable: Variable name (matched case-sensitively)
        order: Number of derivatives to take (0 returns ast simplified)

    Raises:
        DifferentiationError: If order is out of range or a step fails
    """
    if not 0 <= order <= MAX_DERIVATIVE_ORDER:
        raise DifferentiationError(
            f"Derivative order must be between 0 and {MAX_DERIVATIVE_ORDER}, got {order}",
            details={"order": order},
        )

    differentiator = Differentiator(variable)
    result = simplify_ast(ast)
    for _ in range(order):
        result = simplify_ast(differentiator.derive(result))
    logger.debug(f"Computed derivative of order {order} with respect to {variable}")
    return result
