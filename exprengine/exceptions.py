"""
Structured exception classes for the expression engine
Every failure in the pipeline is raised as a typed ExpressionError subclass
carrying enough structure for the UI to pick a title without re-parsing text
"""

from typing import Optional, Dict, Any

from exprengine.types import ErrorDescriptionDict, ErrorResponseDict
from exprengine.validation import sanitize_error


class ExpressionError(Exception):
    """
    Base class for all expression pipeline failures

    Attributes:
        code: Error code for programmatic handling
        title: Short human-readable title for the error kind
        message: Human-readable error message
        expression: The expression (or fragment) that failed
        position: Character offset in the sanitized expression, if known
        details: Additional error details
    """

    code = "expression_error"
    title = "Calculation Error"

    def __init__(
        self,
        message: str,
        expression: Optional[str] = None,
        position: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.expression = expression
        self.position = position
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        """Error kind name, stable across releases"""
        return type(self).__name__

    def to_dict(self) -> ErrorResponseDict:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code,
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "details": self.details.copy() if self.details else {},
        }
        if self.expression:
            result["details"]["expression"] = self.expression
        if self.position is not None:
            result["details"]["position"] = self.position
        return result

    def __str__(self) -> str:
        """String representation for logging"""
        parts = [f"[{self.code}] {self.message}"]
        if self.position is not None:
            parts.append(f"Position: {self.position}")
        if self.expression:
            parts.append(f"Expression: {self.expression}")
        return " | ".join(parts)


class ValidationError(ExpressionError):
    """Input rejected by the security validator before parsing"""

    code = "validation_error"
    title = "Invalid Input"


class LexError(ExpressionError):
    """Unrecognized character or too many tokens"""

    code = "lex_error"
    title = "Unrecognized Input"


class ExpressionSyntaxError(ExpressionError):
    """Malformed grammar: unmatched parentheses, unexpected or trailing tokens"""

    code = "syntax_error"
    title = "Syntax Error"


class UnsafeFunctionError(ExpressionError):
    """Function name is not on the allow-list"""

    code = "unsafe_function"
    title = "Function Not Allowed"


class DepthExceededError(ExpressionError):
    """Parse or evaluation nesting too deep"""

    code = "depth_exceeded"
    title = "Expression Too Complex"


class NumericRangeError(ExpressionError):
    """Numeric literal is non-finite or beyond the exactly representable range"""

    code = "range_error"
    title = "Number Out of Range"


class UndefinedVariableError(ExpressionError):
    """Variable has no binding in the evaluation context"""

    code = "undefined_variable"
    title = "Undefined Variable"

    def __init__(self, name: str, **kwargs):
        self.name = name
        super().__init__(f"Undefined variable: {name}", **kwargs)


class UnknownFunctionError(ExpressionError):
    """Function has no implementation in the evaluation context"""

    code = "unknown_function"
    title = "Unknown Function"


class ArityError(ExpressionError):
    """Function called with the wrong number of arguments"""

    code = "invalid_arguments"
    title = "Invalid Arguments"


class DivisionByZeroError(ExpressionError):
    """Division by (near) zero"""

    code = "division_by_zero"
    title = "Division by Zero"


class DomainError(ExpressionError):
    """Non-finite result or argument outside a function's domain"""

    code = "domain_error"
    title = "Domain Error"


class EvaluationTimeoutError(ExpressionError):
    """Evaluation did not finish within the time budget"""

    code = "timeout"
    title = "Calculation Timed Out"


class DifferentiationError(ExpressionError):
    """Expression has no symbolic derivative under the supported rules"""

    code = "differentiation_error"
    title = "Cannot Differentiate"


class IntegrationError(ExpressionError):
    """Expression has no antiderivative under the supported rules"""

    code = "integration_error"
    title = "Cannot Integrate"


class SolverError(ExpressionError):
    """Equation cannot be solved with the given inputs"""

    code = "solver_error"
    title = "No Solution Found"


def describe_error(exc: BaseException) -> ErrorDescriptionDict:
    """
    Map any exception to the structure the UI boundary consumes

    Args:
        exc: Exception raised by the pipeline or by a caller

    Returns:
        Dictionary with 'code', 'kind', 'title' and 'message' keys
    """
    if isinstance(exc, ExpressionError):
        return {
            "code": exc.code,
            "kind": exc.kind,
            "title": exc.title,
            "message": exc.message,
        }

    return {
        "code": ExpressionError.code,
        "kind": type(exc).__name__,
        "title": ExpressionError.title,
        "message": sanitize_error(exc),
    }
