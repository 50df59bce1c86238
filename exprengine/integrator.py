"""
Symbolic integration for the expression engine
Antiderivatives by linearity, the power rule and a short table of elementary
functions of the bare variable. Anything else raises IntegrationError; there
is no substitution or integration by parts.
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
from exprengine.codegen import generate_code
from exprengine.constants import UNARY_MINUS
from exprengine.exceptions import IntegrationError
from exprengine.simplifier import simplify_ast

logger = logging.getLogger(__name__)


# f(x) -> F(x) for functions applied directly to the integration variable
_ANTIDERIVATIVES: Dict[str, Callable[[AnyNode], AnyNode]] = {
    "sin": lambda x: negate(call("cos", x)),
    "cos": lambda x: call("sin", x),
    "sinh": lambda x: call("cosh", x),
    "cosh": lambda x: call("sinh", x),
    "exp": lambda x: call("exp", x),
    "ln": lambda x: binary("-", binary("*", x, call("ln", x)), x),
    "log": lambda x: binary("-", binary("*", x, call("ln", x)), x),
    "sqrt": lambda x: binary(
        "/", binary("*", number(2), binary("^", x, number(1.5))), number(3)
    ),
}


class Integrator:
    """Recursive antiderivative builder for one variable"""

    def __init__(self, variable: str):
        self.variable = variable
        self._x = VariableNode(name=variable)

    def _depends_on(self, node: AnyNode) -> bool:
        return self.variable in free_variables(node)

    def _unsupported(self, node: AnyNode) -> IntegrationError:
        return IntegrationError(
            f"No antiderivative rule for {generate_code(node)}",
            details={"variable": self.variable},
        )

    def integrate(self, node: AnyNode) -> AnyNode:
        if not self._depends_on(node):
            # c -> c * x
            return binary("*", node, self._x)

        if isinstance(node, VariableNode):
            return binary("/", binary("^", self._x, number(2)), number(2))

        if isinstance(node, OperatorNode):
            return self._integrate_operator(node)

        if isinstance(node, FunctionNode):
            return self._integrate_function(node)

        raise self._unsupported(node)

    def _integrate_operator(self, node: OperatorNode) -> AnyNode:
        if node.operator == UNARY_MINUS:
            return negate(self.integrate(node.right))

        u, v = node.left, node.right

        if node.operator in ("+", "-"):
            return binary(node.operator, self.integrate(u), self.integrate(v))

        if node.operator == "*":
            if not self._depends_on(u):
                return binary("*", u, self.integrate(v))
            if not self._depends_on(v):
                return binary("*", self.integrate(u), v)

        elif node.operator == "/":
            if not self._depends_on(v):
                return binary("/", self.integrate(u), v)
            # c / x -> c * ln|x|
            if v == self._x:
                return binary("*", u, call("ln", call("abs", self._x)))

        elif node.operator == "^":
            return self._integrate_power(u, v, node)

        raise self._unsupported(node)

    def _integrate_power(self, u: AnyNode, v: AnyNode, node: AnyNode) -> AnyNode:
        if u == self._x and isinstance(v, NumberNode):
            if v.value == -1:
                return call("ln", call("abs", self._x))
            # x^n -> x^(n + 1) / (n + 1)
            raised = v.value + 1
            return binary("/", binary("^", self._x, number(raised)), number(raised))

        if v == self._x and not self._depends_on(u):
            # a^x -> a^x / ln(a)
            return binary("/", binary("^", u, self._x), call("ln", u))

        raise self._unsupported(node)

    def _integrate_function(self, node: FunctionNode) -> AnyNode:
        name, args = node.name, node.args

        if name == "pow" and len(args) == 2:
            return self._integrate_power(args[0], args[1], node)

        rule = _ANTIDERIVATIVES.get(name)
        if rule is not None and len(args) == 1 and args[0] == self._x:
            return rule(self._x)

        raise self._unsupported(node)


def integrate_ast(ast: AnyNode, variable: str) -> AnyNode:
    """
    Indefinite integral of an AST with respect to one variable

    The input is simplified first so constant exponents are plain numbers.
    No constant of integration is added.

    Args:
        ast: Root node
        variable: Variable name (matched case-sensitively)

    Returns:
        Simplified antiderivative tree

    Raises:
        IntegrationError: If some part of the tree has no supported rule
    """
    logger.debug(f"Integrating with respect to {variable}")
    result = Integrator(variable).integrate(simplify_ast(ast))
    return simplify_ast(result)
