"""
Recursive-descent parser for the expression engine
Builds an immutable AST from tokens with bounded nesting depth

Grammar (lowest to highest binding):
    expression     := additive
    additive       := multiplicative (('+' | '-') multiplicative)*
    multiplicative := power (('*' | '/') power)*
    power          := unary (('^' | '**') power)?     right associative
    unary          := ('-' | '+') unary | primary
    primary        := NUMBER | IDENT '(' [args] ')' | IDENT | '(' expression ')'
"""

import re
import math
import logging
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel

from exprengine.ast_nodes import (
    ASTNode,
    AnyNode,
    FunctionNode,
    NumberNode,
    OperatorNode,
    VariableNode,
    complexity,
    free_variables,
    referenced_functions,
)
from exprengine.config import get_settings
from exprengine.constants import (
    MAX_SAFE_INTEGER,
    OPERATOR_ALIASES,
    SAFE_CONSTANTS,
    SAFE_FUNCTION_NAMES,
    UNARY_MINUS,
)
from exprengine.exceptions import (
    DepthExceededError,
    ExpressionError,
    ExpressionSyntaxError,
    NumericRangeError,
    UnsafeFunctionError,
    ValidationError,
)
from exprengine.tokenizer import Token, TokenKind, tokenize
from exprengine.validation import sanitize_error, validate_expression

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r"^(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")


class ParseResult(BaseModel):
    """Detailed outcome of parsing an expression"""

    ast: Optional[ASTNode] = None
    variables: Set[str] = set()
    functions: Set[str] = set()
    complexity: int = 0
    is_valid: bool = False
    is_empty: bool = False
    errors: List[str] = []
    warnings: List[str] = []


class ExpressionParser:
    """
    Recursive-descent parser over a token list

    Nesting is bounded two ways: a depth counter on entry to every
    parenthesized or argument expression, and a cap on the height of the
    tree being built. Unary and power chains are consumed iteratively.
    """

    def __init__(
        self,
        tokens: List[Token],
        source: str = "",
        max_depth: Optional[int] = None,
        max_height: Optional[int] = None,
    ):
        settings = get_settings()
        self.tokens = tokens
        self.source = source
        self.pos = 0
        self.depth = 0
        self.max_depth = max_depth if max_depth is not None else settings.max_parse_depth
        self.max_height = (
            max_height if max_height is not None else settings.max_ast_height
        )
        # Every node built here stays referenced until parse() returns,
        # so id() is stable for the lifetime of this table
        self._heights: Dict[int, int] = {}

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    def _peek(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def _at_operator(self, *symbols: str) -> bool:
        token = self._peek()
        if token is None or token.kind is not TokenKind.OPERATOR:
            return False
        return OPERATOR_ALIASES.get(token.text, token.text) in symbols

    def _end_position(self) -> int:
        if self.tokens:
            last = self.tokens[-1]
            return last.position + len(last.text)
        return 0

    def _syntax_error(self, message: str, token: Optional[Token]) -> ExpressionSyntaxError:
        position = token.position if token is not None else self._end_position()
        details = {"token": token.text} if token is not None else {}
        return ExpressionSyntaxError(
            message, expression=self.source or None, position=position, details=details
        )

    # ------------------------------------------------------------------
    # Height tracking
    # ------------------------------------------------------------------

    def _height(self, node: AnyNode) -> int:
        return self._heights.get(id(node), 1)

    def _track(self, node: AnyNode, *kids: AnyNode) -> AnyNode:
        height = 1 + max((self._height(k) for k in kids), default=0)
        if height > self.max_height:
            raise DepthExceededError(
                f"Expression tree exceeds maximum height of {self.max_height}",
                expression=self.source or None,
                details={"max_height": self.max_height},
            )
        self._heights[id(node)] = height
        return node

    # ------------------------------------------------------------------
    # Grammar rules
    # ------------------------------------------------------------------

    def parse(self) -> AnyNode:
        """
        Parse the full token list

        Raises:
            ExpressionSyntaxError: On empty input or malformed grammar
            UnsafeFunctionError: On a function outside the allow-list
            DepthExceededError: When nesting exceeds the configured limits
            NumericRangeError: On a literal outside the safe numeric range
        """
        if not self.tokens:
            raise ExpressionSyntaxError(
                "Empty expression", details={"reason": "empty_expression"}
            )

        node = self._expression()

        token = self._peek()
        if token is not None:
            raise self._syntax_error(
                f"Unexpected trailing token '{token.text}'", token
            )
        return node

    def _expression(self) -> AnyNode:
        self.depth += 1
        try:
            if self.depth > self.max_depth:
                raise DepthExceededError(
                    f"Expression nesting exceeds maximum depth of {self.max_depth}",
                    expression=self.source or None,
                    position=self._peek().position if self._peek() else None,
                    details={"max_depth": self.max_depth},
                )
            return self._additive()
        finally:
            self.depth -= 1

    def _additive(self) -> AnyNode:
        node = self._multiplicative()
        while self._at_operator("+", "-"):
            op = self._advance().text
            right = self._multiplicative()
            node = self._track(
                OperatorNode(operator=op, left=node, right=right), node, right
            )
        return node

    def _multiplicative(self) -> AnyNode:
        node = self._power()
        while self._at_operator("*", "/"):
            op = self._advance().text
            right = self._power()
            node = self._track(
                OperatorNode(operator=op, left=node, right=right), node, right
            )
        return node

    def _power(self) -> AnyNode:
        operands = [self._unary()]
        while self._at_operator("^"):
            self._advance()
            operands.append(self._unary())

        # Fold from the right: a ^ b ^ c == a ^ (b ^ c)
        node = operands.pop()
        while operands:
            left = operands.pop()
            node = self._track(
                OperatorNode(operator="^", left=left, right=node), left, node
            )
        return node

    def _unary(self) -> AnyNode:
        negations = 0
        while self._at_operator("-", "+"):
            if self._advance().text == "-":
                negations += 1

        node = self._primary()
        for _ in range(negations):
            node = self._track(OperatorNode(operator=UNARY_MINUS, right=node), node)
        return node

    def _primary(self) -> AnyNode:
        token = self._peek()
        if token is None:
            raise self._syntax_error("Unexpected end of expression", None)

        if token.kind is TokenKind.NUMBER:
            self._advance()
            return self._track(self._number(token))

        if token.kind is TokenKind.IDENTIFIER:
            self._advance()
            nxt = self._peek()
            if nxt is not None and nxt.kind is TokenKind.LEFT_PAREN:
                return self._call(token)
            lowered = token.text.lower()
            if lowered in SAFE_CONSTANTS:
                return self._track(NumberNode(value=SAFE_CONSTANTS[lowered]))
            return self._track(VariableNode(name=token.text))

        if token.kind is TokenKind.LEFT_PAREN:
            self._advance()
            node = self._expression()
            closing = self._peek()
            if closing is None or closing.kind is not TokenKind.RIGHT_PAREN:
                raise self._syntax_error("Missing closing parenthesis", closing)
            self._advance()
            return node

        raise self._syntax_error(f"Unexpected token '{token.text}'", token)

    def _call(self, name_token: Token) -> AnyNode:
        name = name_token.text.lower()
        if name not in SAFE_FUNCTION_NAMES:
            raise UnsafeFunctionError(
                f"Unsafe function: {name_token.text}",
                expression=self.source or None,
                position=name_token.position,
                details={"function": name_token.text},
            )

        self._advance()  # '('
        args: List[AnyNode] = []
        closing = self._peek()
        if closing is not None and closing.kind is TokenKind.RIGHT_PAREN:
            self._advance()
            return self._track(FunctionNode(name=name, args=()))

        while True:
            args.append(self._expression())
            token = self._peek()
            if token is not None and token.kind is TokenKind.COMMA:
                self._advance()
                continue
            if token is None or token.kind is not TokenKind.RIGHT_PAREN:
                raise self._syntax_error("Missing closing parenthesis", token)
            self._advance()
            break

        return self._track(FunctionNode(name=name, args=tuple(args)), *args)

    def _number(self, token: Token) -> NumberNode:
        if not _NUMBER_RE.match(token.text):
            raise self._syntax_error(
                f"Malformed numeric literal '{token.text}'", token
            )

        value = float(token.text)
        if not math.isfinite(value) or abs(value) > MAX_SAFE_INTEGER:
            raise NumericRangeError(
                f"Number out of safe range: {token.text}",
                expression=self.source or None,
                position=token.position,
                details={"limit": MAX_SAFE_INTEGER},
            )
        return NumberNode(value=value)


# ============================================================================
# Public API
# ============================================================================


def parse_tokens(
    tokens: List[Token],
    source: str = "",
    max_depth: Optional[int] = None,
    max_height: Optional[int] = None,
) -> AnyNode:
    """
    Parse a token list into an AST

    Args:
        tokens: Output of tokenize()
        source: Original text, used for error context only
        max_depth: Parse depth limit (defaults to settings)
        max_height: AST height limit (defaults to settings)

    Returns:
        Root AST node
    """
    return ExpressionParser(tokens, source, max_depth, max_height).parse()


def _validated_source(text: str, allowed_variables: Optional[Iterable[str]]) -> str:
    """Run the security validator and return the sanitized text"""
    result = validate_expression(text, allowed_variables)
    if not result.is_valid:
        raise ValidationError(
            "; ".join(result.blocked) or "Expression rejected",
            details={"blocked": result.blocked, "warnings": result.warnings},
        )
    return result.sanitized


def parse_expression(
    text: str, allowed_variables: Optional[Iterable[str]] = None
) -> AnyNode:
    """
    Validate, tokenize and parse an expression

    Args:
        text: Raw expression text
        allowed_variables: Multi-letter variable names to accept

    Returns:
        Root AST node

    Raises:
        ValidationError: If the security validator rejects the input
        ExpressionError: Any tokenizer or parser failure
    """
    sanitized = _validated_source(text, allowed_variables)
    tokens = tokenize(sanitized)
    ast = parse_tokens(tokens, sanitized)
    logger.debug(f"Parsed expression with complexity {complexity(ast)}")
    return ast


def parse_detailed(
    text: str, allowed_variables: Optional[Iterable[str]] = None
) -> ParseResult:
    """
    Parse an expression and report variables, functions and complexity

    Never raises for expression errors; failures are returned as sanitized
    messages in ParseResult.errors.
    """
    validation = validate_expression(text, allowed_variables)
    if validation.is_empty:
        return ParseResult(is_valid=True, is_empty=True, warnings=validation.warnings)
    if not validation.is_valid:
        return ParseResult(errors=validation.blocked, warnings=validation.warnings)

    try:
        ast = parse_tokens(tokenize(validation.sanitized), validation.sanitized)
    except ExpressionError as e:
        logger.info(f"Parse failed: {e.code}")
        return ParseResult(errors=[sanitize_error(e.message)], warnings=validation.warnings)

    return ParseResult(
        ast=ast,
        variables=free_variables(ast),
        functions=referenced_functions(ast),
        complexity=complexity(ast),
        is_valid=True,
        warnings=validation.warnings,
    )
