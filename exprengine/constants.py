"""
Shared constants for the expression engine
Centralizes allow-lists so the validator, parser and evaluator never disagree
"""

import math
import re
from types import MappingProxyType

# ============================================================================
# Safe Functions
# ============================================================================

# Function names allowed in expressions (matched case-insensitively)
SAFE_FUNCTION_NAMES = frozenset(
    {
        # Trigonometric
        "sin",
        "cos",
        "tan",
        "asin",
        "acos",
        "atan",
        # Hyperbolic
        "sinh",
        "cosh",
        "tanh",
        # Exponential and logarithmic
        "log",
        "ln",
        "log10",
        "exp",
        "sqrt",
        # Basic math
        "abs",
        "pow",
        "max",
        "min",
        # Rounding
        "ceil",
        "floor",
        "round",
    }
)

# (min_args, max_args); None means variadic
FUNCTION_ARITY = MappingProxyType(
    {
        "sin": (1, 1),
        "cos": (1, 1),
        "tan": (1, 1),
        "asin": (1, 1),
        "acos": (1, 1),
        "atan": (1, 1),
        "sinh": (1, 1),
        "cosh": (1, 1),
        "tanh": (1, 1),
        "log": (1, 2),
        "ln": (1, 1),
        "log10": (1, 1),
        "exp": (1, 1),
        "sqrt": (1, 1),
        "abs": (1, 1),
        "pow": (2, 2),
        "max": (1, None),
        "min": (1, None),
        "ceil": (1, 1),
        "floor": (1, 1),
        "round": (1, 1),
    }
)

# ============================================================================
# Safe Constants
# ============================================================================

# Constants resolved to numbers at parse time (matched case-insensitively)
SAFE_CONSTANTS = MappingProxyType(
    {
        "pi": math.pi,
        "e": math.e,
        "euler": math.e,
    }
)

# ============================================================================
# Operators
# ============================================================================

UNARY_MINUS = "unary-"

# Spelled alternatives accepted by the parser
OPERATOR_ALIASES = MappingProxyType({"**": "^"})

# Binding strength used by the code generator
OPERATOR_PRECEDENCE = MappingProxyType(
    {
        "+": 1,
        "-": 1,
        "*": 2,
        "/": 2,
        "^": 3,
        UNARY_MINUS: 4,
    }
)
ATOM_PRECEDENCE = 5

# ============================================================================
# Security
# ============================================================================

# Patterns that are never legitimate in a math expression
BLOCKED_PATTERNS = (
    ("dunder access", re.compile(r"__")),
    ("attribute access", re.compile(r"[A-Za-z_)\]]\s*\.\s*[A-Za-z_]")),
    ("import statement", re.compile(r"\bimport\b", re.IGNORECASE)),
    ("lambda expression", re.compile(r"\blambda\b", re.IGNORECASE)),
    ("constructor access", re.compile(r"\bconstructor\b", re.IGNORECASE)),
    ("prototype access", re.compile(r"\bprototype\b", re.IGNORECASE)),
    ("subscript or literal brackets", re.compile(r"[\[\]{}]")),
    ("string literal", re.compile(r"[\"'`]")),
    ("statement separator", re.compile(r";")),
    ("escape sequence", re.compile(r"\\")),
    ("assignment expression", re.compile(r":=")),
)

# Calculator glyphs normalized before tokenizing
SYMBOL_REPLACEMENTS = (
    ("π", "pi"),
    ("×", "*"),
    ("÷", "/"),
    ("−", "-"),
)

# Largest integer a float64 represents exactly
MAX_SAFE_INTEGER = 2**53 - 1

# ============================================================================
# Analysis and Solving
# ============================================================================

# Offset used to sample either side of a limit point
LIMIT_DELTA = 1e-7

# Left and right samples agree when closer than LIMIT_DELTA * this factor
LIMIT_TOLERANCE_FACTOR = 100

# Grid size used to bracket roots before refinement
DEFAULT_ROOT_SAMPLES = 200

# Roots closer than this are reported once
ROOT_DEDUP_TOLERANCE = 1e-9

# |f(root)| above this is treated as a pole, not a root
ROOT_RESIDUAL_TOLERANCE = 1e-6

# ============================================================================
# Calculus
# ============================================================================

# Highest derivative order computed in one request
MAX_DERIVATIVE_ORDER = 10

# Highest total order of a Taylor expansion
MAX_SERIES_ORDER = 7

# Most variables one multivariable expansion may use
MAX_SERIES_VARIABLES = 5
