"""
Pydantic models for the expression engine HTTP service
Defines request and response payloads for each endpoint
"""

import math
from pydantic import BaseModel, Field, field_validator
from typing import List, Dict, Optional, Any, Union

from exprengine.constants import MAX_DERIVATIVE_ORDER, MAX_SERIES_ORDER


class ExpressionRequest(BaseModel):
    """
    Expression plus variable bindings

    Attributes:
        expression: Raw expression text as typed by the user
        variables: Variable values; their names are also accepted as
            multi-letter identifiers by the validator
    """

    expression: str = Field(..., description="Expression text")
    variables: Dict[str, float] = Field(
        default_factory=dict, description="Variable name to value"
    )

    @field_validator("variables")
    @classmethod
    def validate_variables(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Reject non-finite variable values"""
        for name, value in v.items():
            if not math.isfinite(value):
                raise ValueError(f"Variable '{name}' must be a finite number")
        return v


class ParseResponse(BaseModel):
    """
    Parse result

    Attributes:
        is_valid: Whether the expression parsed
        is_empty: Whether the input was blank
        expression: Canonical rendering of the parsed tree
        ast: Tree as nested dictionaries
        variables: Free variables, sorted
        functions: Functions called, sorted
        complexity: Weighted node count
    """

    is_valid: bool
    is_empty: bool = False
    expression: Optional[str] = None
    ast: Optional[Dict[str, Any]] = None
    variables: List[str] = []
    functions: List[str] = []
    complexity: int = 0
    errors: List[str] = []
    warnings: List[str] = []


class EvaluateRequest(ExpressionRequest):
    """
    Evaluation request

    Attributes:
        allow_symbolic: Return a simplified expression instead of failing
            when some variables are unbound
        timeout_ms: Optional per-request time budget
    """

    allow_symbolic: bool = False
    timeout_ms: Optional[int] = Field(
        None, gt=0, le=60000, description="Evaluation timeout in milliseconds"
    )


class EvaluateResponse(BaseModel):
    """Evaluation result; symbolic is True when result is an expression string"""

    expression: str
    result: Union[float, str]
    symbolic: bool = False


class SimplifyResponse(BaseModel):
    """Original and simplified renderings"""

    expression: str
    simplified: str
    ast: Dict[str, Any]


class DifferentiateRequest(ExpressionRequest):
    """
    Differentiation request

    Attributes:
        variable: Variable to differentiate with respect to (case-sensitive)
        simplify: Simplify the derivative before returning it
        order: Number of times to differentiate; orders above one are
            always simplified
    """

    variable: str = Field(..., min_length=1)
    simplify: bool = True
    order: int = Field(1, ge=1, le=MAX_DERIVATIVE_ORDER)


class DifferentiateResponse(BaseModel):
    """Derivative of an expression"""

    expression: str
    variable: str
    order: int = 1
    derivative: str
    ast: Dict[str, Any]


class LimitRequest(ExpressionRequest):
    """
    Numeric limit request

    Attributes:
        variable: Variable approaching the limit point
        approaching: Number, or 'inf' / '-inf'
    """

    variable: str = Field(..., min_length=1)
    approaching: Union[float, str]


class SampleRequest(ExpressionRequest):
    """
    Sampling request for graphing

    Attributes:
        variable: Variable swept over [start, stop]
        start: First sample point
        stop: Last sample point
        num: Number of points
    """

    variable: str = Field(..., min_length=1)
    start: float = -10.0
    stop: float = 10.0
    num: int = Field(100, ge=1, description="Number of sample points")


class SampleResponse(BaseModel):
    """Sampled points; y is None where the expression is undefined"""

    variable: str
    x: List[float]
    y: List[Optional[float]]


class SolveRequest(BaseModel):
    """
    Equation solving request

    Attributes:
        equation: Equation text with exactly one '='
        variable: Variable to solve for
        lower: Search interval start
        upper: Search interval end
        samples: Grid size used to bracket roots
        variables: Values for the other variables
    """

    equation: str
    variable: str = Field(..., min_length=1)
    lower: float = -10.0
    upper: float = 10.0
    samples: int = Field(200, ge=2, le=10000)
    variables: Dict[str, float] = Field(default_factory=dict)


class IntegrateRequest(ExpressionRequest):
    """Indefinite integration request"""

    variable: str = Field(..., min_length=1)


class IntegrateResponse(BaseModel):
    """Antiderivative of an expression, without a constant of integration"""

    expression: str
    variable: str
    integral: str
    ast: Dict[str, Any]


class SeriesRequest(ExpressionRequest):
    """
    Taylor series request

    Attributes:
        variable: Expansion variable
        center: Expansion point
        order: Highest power kept
    """

    variable: str = Field(..., min_length=1)
    center: float = 0.0
    order: int = Field(5, ge=0, le=MAX_SERIES_ORDER)

    @field_validator("center")
    @classmethod
    def validate_center(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("Expansion point must be a finite number")
        return v


class MultivariableSeriesRequest(ExpressionRequest):
    """
    Multivariable Taylor series request

    Attributes:
        series_variables: Expansion variables, in output order
        point: Expansion point for each expansion variable
        order: Highest total degree kept
    """

    series_variables: List[str] = Field(..., min_length=1)
    point: Dict[str, float] = Field(default_factory=dict)
    order: int = Field(2, ge=0, le=MAX_SERIES_ORDER)
