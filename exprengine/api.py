"""
FastAPI application and endpoints for the expression engine
Includes security features, CORS, request size limits, and error handling
"""

# Standard library imports
import math
from typing import Dict, Any, Iterable

# Third-party imports
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

# Local application imports
from exprengine.analysis import (
    LimitResult,
    StepResult,
    evaluate_with_steps,
    numeric_limit,
    sample_expression,
)
from exprengine.ast_nodes import AnyNode
from exprengine.codegen import generate_code
from exprengine.config import get_settings
from exprengine.differentiator import differentiate_ast, differentiate_n
from exprengine.evaluator import EvaluationContext, evaluate_ast
from exprengine.exceptions import EvaluationTimeoutError, ExpressionError
from exprengine.integrator import integrate_ast
from exprengine.models import (
    DifferentiateRequest,
    DifferentiateResponse,
    EvaluateRequest,
    EvaluateResponse,
    ExpressionRequest,
    IntegrateRequest,
    IntegrateResponse,
    LimitRequest,
    MultivariableSeriesRequest,
    ParseResponse,
    SampleRequest,
    SampleResponse,
    SeriesRequest,
    SimplifyResponse,
    SolveRequest,
)
from exprengine.parser import parse_detailed, parse_expression
from exprengine.series import (
    MultivariableSeries,
    TaylorSeries,
    multivariable_taylor_series,
    taylor_series,
)
from exprengine.simplifier import simplify_ast
from exprengine.solver import SolveResult, solve_equation
from exprengine.validation import ValidationResult, validate_expression
from exprengine.utils.cache import get_cache, hash_expression
from exprengine.utils.logging_config import (
    setup_logging,
    get_logger,
    set_request_id,
)

logger = get_logger(__name__)

# Get configuration
settings = get_settings()

# Setup logging
setup_logging(settings)

# Create FastAPI app
app = FastAPI(
    title="Expression Engine API",
    version="1.0.0",
    description="Secure expression parsing, simplification, differentiation and evaluation",
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MAX_REQUEST_SIZE = settings.max_request_size


def check_request_size(request: Request) -> None:
    """Check if request size exceeds limit"""
    content_length = request.headers.get("content-length")
    if content_length:
        size = int(content_length)
        if size > MAX_REQUEST_SIZE:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Request size ({size} bytes) exceeds maximum ({MAX_REQUEST_SIZE} bytes)",
            )


def parse_cached(expression: str, allowed_variables: Iterable[str] = ()) -> AnyNode:
    """
    Parse an expression through the process-wide AST cache

    Args:
        expression: Raw expression text
        allowed_variables: Multi-letter variable names to accept

    Returns:
        Parsed AST (shared; ASTs are immutable)
    """
    allowed = set(allowed_variables)
    cache = get_cache()
    key = hash_expression(expression, allowed)
    ast = cache.get(key)
    if ast is None:
        ast = parse_expression(expression, allowed)
        cache.put(key, ast)
    return ast


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Middleware to add request ID to all requests"""
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def request_size_middleware(request: Request, call_next):
    """Middleware to check request size"""
    try:
        check_request_size(request)
    except HTTPException as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "code": f"http_{exc.status_code}",
                "message": exc.detail,
                "details": {"status_code": exc.status_code},
            },
        )
    return await call_next(request)


def add_debug_info(error_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add debug information (traceback) to error dict if DEBUG mode is enabled

    Args:
        error_dict: Error dictionary to add debug info to

    Returns:
        Modified error dictionary with debug info if enabled
    """
    if settings.debug and "traceback" not in error_dict.get("details", {}):
        import traceback
        if "details" not in error_dict:
            error_dict["details"] = {}
        error_dict["details"]["traceback"] = traceback.format_exc()
    return error_dict


@app.exception_handler(ExpressionError)
async def expression_error_handler(request: Request, exc: ExpressionError):
    """Handle expression pipeline errors with structured format"""
    logger.warning(f"Expression error: {exc.message}", extra={"code": exc.code})
    error_dict = add_debug_info(dict(exc.to_dict()))
    status_code = (
        status.HTTP_408_REQUEST_TIMEOUT
        if isinstance(exc, EvaluationTimeoutError)
        else status.HTTP_400_BAD_REQUEST
    )
    return JSONResponse(status_code=status_code, content=error_dict)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors with structured format"""
    logger.warning(f"Request validation error: {exc.errors()}")

    error_messages = []
    for error in exc.errors():
        loc = " -> ".join(str(x) for x in error.get("loc", []))
        msg = error.get("msg", "Validation error")
        error_messages.append(f"{loc}: {msg}")

    error_response: Dict[str, Any] = {
        "code": "request_validation_error",
        "message": "; ".join(error_messages),
        "details": {
            "errors": [
                {"loc": list(e.get("loc", [])), "msg": e.get("msg", "")}
                for e in exc.errors()
            ],
        },
    }

    error_response = add_debug_info(error_response)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with structured format"""
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")

    error_response: Dict[str, Any] = {
        "code": f"http_{exc.status_code}",
        "message": exc.detail if isinstance(exc.detail, str) else str(exc.detail),
        "details": {
            "status_code": exc.status_code,
        },
    }

    error_response = add_debug_info(error_response)

    return JSONResponse(status_code=exc.status_code, content=error_response)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions with structured format"""
    logger.exception("Unhandled exception", exc_info=exc)

    error_response: Dict[str, Any] = {
        "code": "internal_error",
        "message": str(exc) if settings.debug else "An internal error occurred",
        "details": {
            "exception_type": type(exc).__name__,
        },
    }

    error_response = add_debug_info(error_response)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


@app.get("/")
def read_root():
    """Root endpoint with API information"""
    logger.info("Root endpoint accessed")
    return {
        "message": "Expression Engine API",
        "version": "1.0.0",
        "endpoints": {
            "validate": "/validate",
            "parse": "/parse",
            "evaluate": "/evaluate",
            "simplify": "/simplify",
            "differentiate": "/differentiate",
            "integrate": "/integrate",
            "series": "/series",
            "series_multivariable": "/series/multivariable",
            "steps": "/steps",
            "limit": "/limit",
            "sample": "/sample",
            "solve": "/solve",
            "health": "/health",
            "cache_stats": "/cache/stats",
        },
    }


@app.get("/health")
def health_check():
    """Health check endpoint"""
    logger.debug("Health check requested")
    return {"status": "healthy"}


@app.get("/cache/stats")
def cache_stats():
    """Get cache statistics"""
    logger.debug("Cache stats requested")
    return get_cache().get_stats()


@app.post("/validate", response_model=ValidationResult)
def validate_endpoint(request: ExpressionRequest):
    """
    Run the security validator only

    Returns the sanitized text, blocked reasons and warnings.
    """
    result = validate_expression(request.expression, request.variables.keys())
    if not result.is_valid:
        logger.info(f"Validation rejected expression: {len(result.blocked)} issue(s)")
    return result


@app.post("/parse", response_model=ParseResponse)
def parse_endpoint(request: ExpressionRequest):
    """
    Parse an expression and describe it

    Never fails for expression errors; they are listed in 'errors'.
    """
    result = parse_detailed(request.expression, request.variables.keys())
    return ParseResponse(
        is_valid=result.is_valid,
        is_empty=result.is_empty,
        expression=generate_code(result.ast) if result.ast is not None else None,
        ast=result.ast.model_dump() if result.ast is not None else None,
        variables=sorted(result.variables),
        functions=sorted(result.functions),
        complexity=result.complexity,
        errors=result.errors,
        warnings=result.warnings,
    )


@app.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_endpoint(request: EvaluateRequest):
    """
    Evaluate an expression with the given variables

    With allow_symbolic, unbound variables yield a simplified expression
    string instead of an error.
    """
    ast = parse_cached(request.expression, request.variables.keys())

    context_args: Dict[str, Any] = {"variables": request.variables}
    if request.timeout_ms is not None:
        context_args["timeout_ms"] = request.timeout_ms
    context = EvaluationContext(**context_args)

    result = await evaluate_ast(ast, context, allow_symbolic=request.allow_symbolic)
    symbolic = isinstance(result, str)
    logger.info(f"Evaluation completed (symbolic={symbolic})")

    return EvaluateResponse(
        expression=generate_code(ast), result=result, symbolic=symbolic
    )


@app.post("/simplify", response_model=SimplifyResponse)
def simplify_endpoint(request: ExpressionRequest):
    """Simplify an expression algebraically"""
    ast = parse_cached(request.expression, request.variables.keys())
    simplified = simplify_ast(ast)
    return SimplifyResponse(
        expression=generate_code(ast),
        simplified=generate_code(simplified),
        ast=simplified.model_dump(),
    )


@app.post("/differentiate", response_model=DifferentiateResponse)
def differentiate_endpoint(request: DifferentiateRequest):
    """Differentiate an expression with respect to one variable"""
    allowed = {request.variable, *request.variables}
    ast = parse_cached(request.expression, allowed)
    if request.order > 1:
        derivative = differentiate_n(ast, request.variable, request.order)
    else:
        derivative = differentiate_ast(ast, request.variable)
        if request.simplify:
            derivative = simplify_ast(derivative)

    return DifferentiateResponse(
        expression=generate_code(ast),
        variable=request.variable,
        order=request.order,
        derivative=generate_code(derivative),
        ast=derivative.model_dump(),
    )


@app.post("/integrate", response_model=IntegrateResponse)
def integrate_endpoint(request: IntegrateRequest):
    """Indefinite integral by the power rule and elementary table"""
    allowed = {request.variable, *request.variables}
    ast = parse_cached(request.expression, allowed)
    integral = integrate_ast(ast, request.variable)
    return IntegrateResponse(
        expression=generate_code(ast),
        variable=request.variable,
        integral=generate_code(integral),
        ast=integral.model_dump(),
    )


@app.post("/series", response_model=TaylorSeries)
def series_endpoint(request: SeriesRequest):
    """Taylor expansion of an expression about a point"""
    allowed = {request.variable, *request.variables}
    ast = parse_cached(request.expression, allowed)
    others = {k: v for k, v in request.variables.items() if k != request.variable}
    return taylor_series(ast, request.variable, request.center, request.order, others)


@app.post("/series/multivariable", response_model=MultivariableSeries)
def multivariable_series_endpoint(request: MultivariableSeriesRequest):
    """Taylor expansion in several variables up to a total order"""
    allowed = {*request.series_variables, *request.variables}
    ast = parse_cached(request.expression, allowed)
    others = {
        k: v for k, v in request.variables.items() if k not in request.series_variables
    }
    return multivariable_taylor_series(
        ast, request.series_variables, request.point, request.order, others
    )


@app.post("/steps", response_model=StepResult)
def steps_endpoint(request: ExpressionRequest):
    """Evaluate an expression and return each step taken"""
    ast = parse_cached(request.expression, request.variables.keys())
    return evaluate_with_steps(ast, request.variables)


@app.post("/limit", response_model=LimitResult)
def limit_endpoint(request: LimitRequest):
    """Approximate a limit numerically"""
    allowed = {request.variable, *request.variables}
    ast = parse_cached(request.expression, allowed)
    return numeric_limit(ast, request.variable, request.approaching, request.variables)


@app.post("/sample", response_model=SampleResponse)
def sample_endpoint(request: SampleRequest):
    """
    Sample an expression over a range for graphing

    Undefined points come back as null.
    """
    allowed = {request.variable, *request.variables}
    ast = parse_cached(request.expression, allowed)
    others = {k: v for k, v in request.variables.items() if k != request.variable}
    xs, ys = sample_expression(
        ast, request.variable, request.start, request.stop, request.num, others
    )
    return SampleResponse(
        variable=request.variable,
        x=[float(x) for x in xs],
        y=[float(y) if math.isfinite(y) else None for y in ys],
    )


@app.post("/solve", response_model=SolveResult)
def solve_endpoint(request: SolveRequest):
    """Find real roots of an equation on an interval"""
    logger.info(
        f"Solve request received: variable={request.variable}, "
        f"interval=[{request.lower}, {request.upper}]"
    )
    others = {k: v for k, v in request.variables.items() if k != request.variable}
    return solve_equation(
        request.equation,
        request.variable,
        request.lower,
        request.upper,
        request.samples,
        others,
    )
