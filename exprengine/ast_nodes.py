"""
AST node models for the expression engine
Frozen pydantic models form a tagged union; every transformation builds new
trees instead of mutating existing ones.
"""

from typing import Annotated, Dict, Iterator, Literal, Optional, Set, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from exprengine.constants import SAFE_FUNCTION_NAMES, UNARY_MINUS
from exprengine.exceptions import UnsafeFunctionError


class _Node(BaseModel):
    model_config = ConfigDict(frozen=True)


class NumberNode(_Node):
    """Numeric literal or resolved constant"""

    type: Literal["number"] = "number"
    value: float = Field(..., allow_inf_nan=False)


class VariableNode(_Node):
    """Identifier resolved at evaluation time (case preserved)"""

    type: Literal["variable"] = "variable"
    name: str


class FunctionNode(_Node):
    """Call to an allow-listed function"""

    type: Literal["function"] = "function"
    name: str
    args: Tuple["ASTNode", ...] = ()

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """
        Lower-case the name and enforce the allow-list

        Raises:
            UnsafeFunctionError: If the function is not allow-listed
        """
        name = v.lower()
        if name not in SAFE_FUNCTION_NAMES:
            raise UnsafeFunctionError(f"Unsafe function: {v}", expression=v)
        return name


class OperatorNode(_Node):
    """Binary operator, or unary minus when left is None"""

    type: Literal["operator"] = "operator"
    operator: Literal["+", "-", "*", "/", "^", "unary-"]
    left: Optional["ASTNode"] = None
    right: "ASTNode"

    @model_validator(mode="after")
    def check_operands(self) -> "OperatorNode":
        """Unary minus takes only a right operand; binary operators take both"""
        if self.operator == UNARY_MINUS and self.left is not None:
            raise ValueError("Unary minus must not have a left operand")
        if self.operator != UNARY_MINUS and self.left is None:
            raise ValueError(f"Operator '{self.operator}' requires a left operand")
        return self

    @property
    def is_unary(self) -> bool:
        return self.operator == UNARY_MINUS


ASTNode = Annotated[
    Union[NumberNode, VariableNode, FunctionNode, OperatorNode],
    Field(discriminator="type"),
]

FunctionNode.model_rebuild()
OperatorNode.model_rebuild()

AnyNode = Union[NumberNode, VariableNode, FunctionNode, OperatorNode]


# ============================================================================
# Constructors
# ============================================================================


def number(value: float) -> NumberNode:
    return NumberNode(value=value)


def variable(name: str) -> VariableNode:
    return VariableNode(name=name)


def call(name: str, *args: AnyNode) -> FunctionNode:
    return FunctionNode(name=name, args=args)


def binary(operator: str, left: AnyNode, right: AnyNode) -> OperatorNode:
    return OperatorNode(operator=operator, left=left, right=right)


def negate(operand: AnyNode) -> OperatorNode:
    return OperatorNode(operator=UNARY_MINUS, right=operand)


def is_number(node: AnyNode, value: Optional[float] = None) -> bool:
    """Check whether node is a NumberNode, optionally holding exactly value"""
    if not isinstance(node, NumberNode):
        return False
    return value is None or node.value == value


# ============================================================================
# Inspection
# ============================================================================


def children(node: AnyNode) -> Tuple[AnyNode, ...]:
    """Direct children of a node, left to right"""
    if isinstance(node, FunctionNode):
        return node.args
    if isinstance(node, OperatorNode):
        if node.left is None:
            return (node.right,)
        return (node.left, node.right)
    return ()


def iter_nodes(node: AnyNode) -> Iterator[AnyNode]:
    """Pre-order traversal without recursion"""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(children(current)))


def free_variables(node: AnyNode) -> Set[str]:
    """Names of all variables referenced in the tree"""
    return {n.name for n in iter_nodes(node) if isinstance(n, VariableNode)}


def referenced_functions(node: AnyNode) -> Set[str]:
    """Names of all functions called in the tree"""
    return {n.name for n in iter_nodes(node) if isinstance(n, FunctionNode)}


def complexity(node: AnyNode) -> int:
    """
    Weighted node count

    Leaves count 1, operators 1 plus their operands, function calls 2 plus
    their arguments.
    """
    total = 0
    for n in iter_nodes(node):
        total += 2 if isinstance(n, FunctionNode) else 1
    return total


def ast_height(node: AnyNode) -> int:
    """Number of nodes on the longest root-to-leaf path"""
    height = 0
    stack = [(node, 1)]
    while stack:
        current, level = stack.pop()
        height = max(height, level)
        stack.extend((child, level + 1) for child in children(current))
    return height


def substitute(node: AnyNode, mapping: Dict[str, AnyNode]) -> AnyNode:
    """
    Replace variables by subtrees

    Args:
        node: Tree to rewrite
        mapping: Variable name to replacement subtree

    Returns:
        New tree; untouched subtrees are shared with the input
    """
    if isinstance(node, VariableNode):
        return mapping.get(node.name, node)
    if isinstance(node, FunctionNode):
        return FunctionNode(
            name=node.name, args=tuple(substitute(a, mapping) for a in node.args)
        )
    if isinstance(node, OperatorNode):
        left = substitute(node.left, mapping) if node.left is not None else None
        return OperatorNode(
            operator=node.operator, left=left, right=substitute(node.right, mapping)
        )
    return node
