"""
Code generator for the expression engine
Renders an AST back to expression text with minimal parentheses, such that
parsing the output yields a tree that evaluates identically
"""

import math
from typing import List

from exprengine.ast_nodes import (
    AnyNode,
    FunctionNode,
    NumberNode,
    OperatorNode,
    VariableNode,
)
from exprengine.constants import ATOM_PRECEDENCE, OPERATOR_PRECEDENCE, UNARY_MINUS

_LEFT_ASSOCIATIVE = frozenset({"+", "-", "*", "/"})


def format_number(value: float) -> str:
    """
    Format a float for display

    Exact pi and e render by name; integral values drop the trailing '.0';
    everything else uses the shortest repr that round-trips.
    """
    if value == math.pi:
        return "pi"
    if value == math.e:
        return "e"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _precedence(node: AnyNode) -> int:
    if isinstance(node, OperatorNode):
        return OPERATOR_PRECEDENCE[node.operator]
    return ATOM_PRECEDENCE


def _is_negative(node: AnyNode) -> bool:
    """Unary minus or a negative literal; both render with a leading '-'"""
    if isinstance(node, OperatorNode):
        return node.operator == UNARY_MINUS
    return isinstance(node, NumberNode) and format_number(node.value).startswith("-")


def _wrap(text: str) -> str:
    return f"({text})"


class CodeGenerator:
    """Precedence-aware AST printer"""

    def generate(self, node: AnyNode) -> str:
        if isinstance(node, NumberNode):
            return format_number(node.value)

        if isinstance(node, VariableNode):
            return node.name

        if isinstance(node, FunctionNode):
            args: List[str] = [self.generate(arg) for arg in node.args]
            return f"{node.name}({', '.join(args)})"

        if node.operator == UNARY_MINUS:
            return self._generate_unary(node)
        return self._generate_binary(node)

    def _generate_unary(self, node: OperatorNode) -> str:
        operand = self.generate(node.right)
        if isinstance(node.right, OperatorNode) or _is_negative(node.right):
            operand = _wrap(operand)
        return f"-{operand}"

    def _generate_binary(self, node: OperatorNode) -> str:
        op = node.operator
        precedence = OPERATOR_PRECEDENCE[op]

        left = self.generate(node.left)
        left_precedence = _precedence(node.left)
        if left_precedence < precedence or (op == "^" and left_precedence <= precedence):
            left = _wrap(left)
        elif op == "^" and _is_negative(node.left):
            left = _wrap(left)

        right = self.generate(node.right)
        right_precedence = _precedence(node.right)
        if right_precedence < precedence:
            right = _wrap(right)
        elif right_precedence == precedence and op in _LEFT_ASSOCIATIVE:
            right = _wrap(right)
        elif _is_negative(node.right):
            right = _wrap(right)

        return f"{left} {op} {right}"


def generate_code(ast: AnyNode) -> str:
    """
    Render an AST as expression text

    Args:
        ast: Root node

    Returns:
        Expression string accepted by parse_expression
    """
    return CodeGenerator().generate(ast)
