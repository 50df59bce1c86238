"""
Algebraic simplifier for the expression engine
Bottom-up constant folding and identity rewriting, repeated to a fixed point
"""

import logging
from typing import Optional

from exprengine.arithmetic import SAFE_FUNCTIONS, apply_function, apply_operator
from exprengine.ast_nodes import (
    AnyNode,
    FunctionNode,
    NumberNode,
    OperatorNode,
    is_number,
    negate,
)
from exprengine.config import get_settings
from exprengine.constants import MAX_SAFE_INTEGER, UNARY_MINUS
from exprengine.exceptions import ExpressionError

logger = logging.getLogger(__name__)


def _folded(value: float) -> Optional[NumberNode]:
    # Literals beyond the safe integer range would not parse back in
    if abs(value) > MAX_SAFE_INTEGER:
        return None
    return NumberNode(value=value)


def _fold_operator(node: OperatorNode) -> Optional[NumberNode]:
    """Fold an operator whose operands are all numbers, or None if it cannot"""
    if not is_number(node.right):
        return None
    if node.left is not None and not is_number(node.left):
        return None
    left = node.left.value if node.left is not None else None
    try:
        value = apply_operator(node.operator, left, node.right.value)
    except ExpressionError:
        # Left in place so evaluation reports the error with full context
        return None
    return _folded(value)


def _fold_function(node: FunctionNode) -> Optional[NumberNode]:
    if not node.args or not all(is_number(a) for a in node.args):
        return None
    try:
        value = apply_function(node.name, [a.value for a in node.args], SAFE_FUNCTIONS)
    except ExpressionError:
        return None
    return _folded(value)


def _rewrite_unary(operand: AnyNode) -> AnyNode:
    # --x -> x
    if isinstance(operand, OperatorNode) and operand.operator == UNARY_MINUS:
        return operand.right
    # -(number) -> number
    if isinstance(operand, NumberNode):
        return NumberNode(value=-operand.value)
    return negate(operand)


def _rewrite_binary(op: str, left: AnyNode, right: AnyNode) -> AnyNode:
    """Apply identity rules to a binary operator with simplified operands"""
    right_is_negation = (
        isinstance(right, OperatorNode) and right.operator == UNARY_MINUS
    )

    if op == "+":
        if is_number(right, 0):
            return left
        if is_number(left, 0):
            return right
        if right_is_negation:
            return OperatorNode(operator="-", left=left, right=right.right)
    elif op == "-":
        if is_number(right, 0):
            return left
        if is_number(left, 0):
            return _rewrite_unary(right)
        if right_is_negation:
            return OperatorNode(operator="+", left=left, right=right.right)
    elif op == "*":
        if is_number(left, 0) or is_number(right, 0):
            return NumberNode(value=0.0)
        if is_number(right, 1):
            return left
        if is_number(left, 1):
            return right
    elif op == "/":
        if is_number(right, 1):
            return left
    elif op == "^":
        if is_number(right, 1):
            return left
        if is_number(right, 0):
            return NumberNode(value=1.0)

    return OperatorNode(operator=op, left=left, right=right)


def _simplify_once(node: AnyNode) -> AnyNode:
    """One bottom-up rewrite pass"""
    if isinstance(node, FunctionNode):
        rebuilt = FunctionNode(
            name=node.name, args=tuple(_simplify_once(a) for a in node.args)
        )
        folded = _fold_function(rebuilt)
        return folded if folded is not None else rebuilt

    if isinstance(node, OperatorNode):
        right = _simplify_once(node.right)
        if node.operator == UNARY_MINUS:
            return _rewrite_unary(right)

        left = _simplify_once(node.left)
        rebuilt = OperatorNode(operator=node.operator, left=left, right=right)
        folded = _fold_operator(rebuilt)
        if folded is not None:
            return folded
        return _rewrite_binary(node.operator, left, right)

    return node


def simplify_ast(ast: AnyNode, max_iterations: Optional[int] = None) -> AnyNode:
    """
    Simplify an AST until no rule applies or the iteration cap is reached

    Args:
        ast: Root node
        max_iterations: Pass limit (defaults to settings.simplify_max_iterations)

    Returns:
        Simplified tree (the input itself if nothing changed)
    """
    if max_iterations is None:
        max_iterations = get_settings().simplify_max_iterations

    current = ast
    for iteration in range(max_iterations):
        simplified = _simplify_once(current)
        if simplified == current:
            logger.debug(f"Simplification converged after {iteration + 1} pass(es)")
            return current
        current = simplified

    logger.debug(f"Simplification stopped at iteration cap {max_iterations}")
    return current
