"""
Expression evaluator for the expression engine
Walks the AST against an explicit context; nothing is ever executed as code
"""

import math
import time
import asyncio
import logging
from typing import Callable, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from exprengine.arithmetic import SAFE_FUNCTIONS, apply_function, apply_operator
from exprengine.ast_nodes import (
    AnyNode,
    FunctionNode,
    NumberNode,
    OperatorNode,
    VariableNode,
    children,
    free_variables,
    substitute,
)
from exprengine.codegen import generate_code
from exprengine.config import get_settings
from exprengine.exceptions import (
    DepthExceededError,
    EvaluationTimeoutError,
    ExpressionError,
    UndefinedVariableError,
)
from exprengine.simplifier import simplify_ast

logger = logging.getLogger(__name__)


class EvaluationContext(BaseModel):
    """
    Variable bindings, function table and limits for one evaluation

    The function table defaults to a fresh copy of the safe functions, so a
    caller may add or remove entries without affecting anyone else.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    variables: Dict[str, float] = Field(default_factory=dict)
    functions: Dict[str, Callable[..., float]] = Field(
        default_factory=lambda: dict(SAFE_FUNCTIONS)
    )
    max_depth: int = Field(default_factory=lambda: get_settings().eval_max_depth, gt=0)
    timeout_ms: int = Field(
        default_factory=lambda: get_settings().eval_timeout_ms, gt=0
    )

    @field_validator("variables")
    @classmethod
    def validate_variables(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Variable values must be finite"""
        for name, value in v.items():
            if not math.isfinite(value):
                raise ValueError(f"Variable '{name}' must be a finite number")
        return v


class SafeExpressionEvaluator:
    """
    Evaluate an AST against an EvaluationContext

    Every node visit checks the walk depth and the deadline, so a walk
    running in a worker thread stops on its own after a timeout.
    """

    def __init__(self, context: EvaluationContext):
        self.context = context
        self._deadline = 0.0

    def evaluate(self, ast: AnyNode) -> float:
        """Evaluate a whole tree, starting the deadline clock"""
        self._deadline = time.monotonic() + self.context.timeout_ms / 1000.0
        return self.eval_node(ast, 1)

    def eval_node(self, node: AnyNode, depth: int) -> float:
        """
        Recursively evaluate an AST node

        Args:
            node: AST node to evaluate
            depth: Depth of node in the walk (root is 1)

        Returns:
            Finite float result

        Raises:
            ExpressionError: If evaluation fails
        """
        if depth > self.context.max_depth:
            raise DepthExceededError(
                f"Evaluation depth exceeds maximum of {self.context.max_depth}",
                details={"max_depth": self.context.max_depth},
            )
        if time.monotonic() > self._deadline:
            raise EvaluationTimeoutError(
                f"Evaluation exceeded {self.context.timeout_ms} ms",
                details={"timeout_ms": self.context.timeout_ms},
            )

        if isinstance(node, NumberNode):
            return node.value

        if isinstance(node, VariableNode):
            if node.name in self.context.variables:
                return self.context.variables[node.name]
            raise UndefinedVariableError(node.name, expression=node.name)

        if isinstance(node, OperatorNode):
            return self._eval_operator(node, depth)

        if isinstance(node, FunctionNode):
            return self._eval_call(node, depth)

        raise ExpressionError(f"Unsupported node type: {type(node).__name__}")

    def _eval_operator(self, node: OperatorNode, depth: int) -> float:
        """Evaluate operator; operands left then right, no short-circuit"""
        left = None
        if node.left is not None:
            left = self.eval_node(node.left, depth + 1)
        right = self.eval_node(node.right, depth + 1)
        return apply_operator(node.operator, left, right)

    def _eval_call(self, node: FunctionNode, depth: int) -> float:
        """Evaluate function call"""
        args = [self.eval_node(arg, depth + 1) for arg in node.args]
        return apply_function(node.name, args, self.context.functions)


def evaluate(ast: AnyNode, context: Optional[EvaluationContext] = None) -> float:
    """
    Evaluate an AST synchronously

    Args:
        ast: Root node
        context: Bindings and limits (a default context when omitted)

    Returns:
        Finite float result
    """
    if context is None:
        context = EvaluationContext()
    return SafeExpressionEvaluator(context).evaluate(ast)


def evaluate_symbolic(
    ast: AnyNode,
    variables: Optional[Dict[str, float]] = None,
    context: Optional[EvaluationContext] = None,
) -> Union[float, str]:
    """
    Substitute known variables and simplify what remains

    Args:
        ast: Root node
        variables: Known variable values
        context: Function table and limits for the fully bound case

    Returns:
        Float when every variable is bound, otherwise the rendered partial
        expression

    Raises:
        ExpressionError: If the bound part of the tree cannot be evaluated
    """
    bindings = dict(variables or {})
    mapping = {name: NumberNode(value=value) for name, value in bindings.items()}
    substituted = substitute(ast, mapping)
    if context is None:
        context = EvaluationContext(variables=bindings)

    if not free_variables(substituted):
        return evaluate(substituted, context)

    # A subtree without variables fails whatever the unbound names are later
    # set to, so its error is raised now rather than hidden in the string
    stack = [substituted]
    while stack:
        node = stack.pop()
        if not free_variables(node):
            if not isinstance(node, NumberNode):
                evaluate(node, context)
            continue
        stack.extend(children(node))

    return generate_code(simplify_ast(substituted))


async def evaluate_ast(
    ast: AnyNode,
    context: Optional[EvaluationContext] = None,
    allow_symbolic: bool = False,
) -> Union[float, str]:
    """
    Evaluate an AST in a worker thread under the context's timeout

    Args:
        ast: Root node
        context: Bindings and limits (a default context when omitted)
        allow_symbolic: Return a partially simplified expression string
            instead of failing on undefined variables

    Returns:
        Float result, or an expression string in symbolic mode

    Raises:
        EvaluationTimeoutError: If the walk exceeds context.timeout_ms
        ExpressionError: Any other evaluation failure
    """
    if context is None:
        context = EvaluationContext()

    try:
        return await asyncio.wait_for(
            asyncio.to_thread(evaluate, ast, context),
            timeout=context.timeout_ms / 1000.0,
        )
    except asyncio.TimeoutError as e:
        logger.warning(f"Evaluation timed out after {context.timeout_ms} ms")
        raise EvaluationTimeoutError(
            f"Evaluation exceeded {context.timeout_ms} ms",
            details={"timeout_ms": context.timeout_ms},
        ) from e
    except UndefinedVariableError as e:
        if not allow_symbolic:
            raise
        logger.debug(f"Falling back to symbolic result: {e.message}")
        return evaluate_symbolic(ast, context.variables, context)
