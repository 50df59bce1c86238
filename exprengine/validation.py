"""
Security validation layer for the expression engine
Pre-screens raw user input before tokenization: length limits, blocked
injection patterns, balanced parentheses, identifier allow-listing and
whitespace normalization. Nothing in this module evaluates its input.
"""

import re
import logging
from typing import Iterable, List, Optional, Set, Union

from pydantic import BaseModel

from exprengine.config import get_settings
from exprengine.constants import (
    SAFE_FUNCTION_NAMES,
    SAFE_CONSTANTS,
    BLOCKED_PATTERNS,
    SYMBOL_REPLACEMENTS,
)

logger = logging.getLogger(__name__)


class ValidationResult(BaseModel):
    """Result of validating a raw expression"""

    is_valid: bool
    is_empty: bool = False
    sanitized: str = ""
    blocked: List[str] = []
    warnings: List[str] = []


_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_SQRT_GLYPH_RE = re.compile(r"√\s*([A-Za-z0-9_.]+)")
_OPERATOR_RE = re.compile(r"[+\-*/^]")
_UNUSUAL_CHARS_RE = re.compile(r"[^\w\s+\-*/^().,=<>!]")

# Numbers are matched first so the "e5" in "1e5" is never seen as a name
_NAME_SCAN_RE = re.compile(
    r"(?P<number>(?:\d|\.\d)[\d.]*(?:[eE][+-]?\d*)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?P<call>\s*\()?",
    re.ASCII,
)

_LONG_TOKEN_RE = re.compile(r"[a-zA-Z0-9_-]{20,}")
_PATH_RE = re.compile(r"(?:[A-Za-z]:)?(?:[\\/][\w.-]+){2,}")
_TRACE_RE = re.compile(r'File "[^"]*", line \d+[^\n]*')


# ============================================================================
# Sanitization
# ============================================================================


def _normalize_symbols(expression: str) -> str:
    """Replace calculator glyphs with their ASCII spelling"""
    expression = _SQRT_GLYPH_RE.sub(r"sqrt(\1)", expression)
    expression = expression.replace("√", "sqrt")
    for glyph, replacement in SYMBOL_REPLACEMENTS:
        expression = expression.replace(glyph, replacement)
    return expression


def sanitize_expression(expression: str, warnings: Optional[List[str]] = None) -> str:
    """
    Strip comments and control characters, normalize glyphs and whitespace

    Args:
        expression: Raw expression text
        warnings: Optional list that receives a note when comments are removed

    Returns:
        Sanitized expression with whitespace runs collapsed and trimmed
    """
    stripped = _BLOCK_COMMENT_RE.sub(" ", expression)
    stripped = _LINE_COMMENT_RE.sub(" ", stripped)
    if stripped != expression and warnings is not None:
        warnings.append("Comments were removed from the expression")

    sanitized = _CONTROL_CHARS_RE.sub("", stripped)
    sanitized = _normalize_symbols(sanitized)
    sanitized = _WHITESPACE_RE.sub(" ", sanitized).strip()
    return sanitized


def sanitize_error(error: Union[BaseException, str]) -> str:
    """
    Remove paths, token-like strings and traceback fragments from an error message

    Args:
        error: Any exception, or an already extracted message

    Returns:
        Message safe to show to an end user
    """
    message = str(error)
    if not message and isinstance(error, BaseException):
        message = type(error).__name__
    message = _TRACE_RE.sub("", message)
    message = _PATH_RE.sub("[PATH]", message)
    message = _LONG_TOKEN_RE.sub("[TOKEN]", message)
    return message.strip() or "An unknown error occurred"


# ============================================================================
# Checks
# ============================================================================


def _check_parentheses(expression: str) -> Optional[str]:
    """Return an error message if parentheses are unbalanced"""
    depth = 0
    for char in expression:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth < 0:
                return "Unmatched parentheses: ')' without matching '('"
    if depth > 0:
        return f"Unmatched parentheses: {depth} '(' not closed"
    return None


def _check_identifiers(
    expression: str,
    allowed_variables: Set[str],
    allow_multi_letter: bool,
    max_length: int,
) -> List[str]:
    """Return blocked entries for identifiers that are not allow-listed"""
    blocked: List[str] = []
    seen: Set[str] = set()

    for match in _NAME_SCAN_RE.finditer(expression):
        name = match.group("name")
        if name is None or name in seen:
            continue
        seen.add(name)

        if len(name) > max_length:
            blocked.append(f"Identifier too long: '{name[:20]}...'")
            continue

        # Names in call position are judged by the parser's function allow-list
        if match.group("call"):
            continue

        lowered = name.lower()
        if lowered in SAFE_CONSTANTS or lowered in SAFE_FUNCTION_NAMES:
            continue
        if len(name) == 1 or name in allowed_variables or allow_multi_letter:
            continue

        blocked.append(f"Unknown identifier: '{name}'")

    return blocked


def _collect_warnings(expression: str, warnings: List[str]) -> None:
    """Append performance and content warnings for a sanitized expression"""
    settings = get_settings()

    if len(_OPERATOR_RE.findall(expression)) > settings.operation_warning_threshold:
        warnings.append("Expression contains many operations - may impact performance")

    if expression.count("(") > settings.nesting_warning_threshold:
        warnings.append("Deep nesting detected - may impact performance")

    if _UNUSUAL_CHARS_RE.search(expression):
        warnings.append("Contains unusual characters")


def _log_security_event(event: str, expression: str, blocked: List[str]) -> None:
    """Log a rejected expression with long token-like strings redacted"""
    logger.warning(
        f"Security event: {event}",
        extra={
            "expression": _LONG_TOKEN_RE.sub("[REDACTED]", expression[:200]),
            "blocked": blocked,
        },
    )


# ============================================================================
# Public API
# ============================================================================


def validate_expression(
    raw: str, allowed_variables: Optional[Iterable[str]] = None
) -> ValidationResult:
    """
    Validate and sanitize a raw expression

    Rules:
    - Empty input is valid and flagged is_empty (nothing to parse yet)
    - Length must not exceed max_expression_length
    - No blocked injection patterns
    - Parentheses must balance
    - Identifiers must be known functions/constants, single-letter variables,
      or names listed in allowed_variables

    Args:
        raw: Expression text exactly as the user typed it
        allowed_variables: Extra multi-letter variable names to accept

    Returns:
        ValidationResult with sanitized text, blocked reasons and warnings
    """
    settings = get_settings()
    warnings: List[str] = []
    blocked: List[str] = []
    text = raw.strip() if raw else ""

    if not text:
        return ValidationResult(is_valid=True, is_empty=True)

    if len(text) > settings.max_expression_length:
        blocked.append("Length limit exceeded")
        _log_security_event("length_limit", text, blocked)
        return ValidationResult(
            is_valid=False,
            warnings=["Expression too long"],
            blocked=blocked,
        )

    for label, pattern in BLOCKED_PATTERNS:
        if pattern.search(text):
            blocked.append(f"Blocked pattern: {label}")

    if blocked:
        _log_security_event("blocked_pattern", text, blocked)
        return ValidationResult(is_valid=False, warnings=warnings, blocked=blocked)

    sanitized = sanitize_expression(text, warnings)
    if not sanitized:
        return ValidationResult(is_valid=True, is_empty=True, warnings=warnings)

    paren_error = _check_parentheses(sanitized)
    if paren_error:
        return ValidationResult(
            is_valid=False,
            sanitized=sanitized,
            warnings=warnings,
            blocked=[paren_error],
        )

    blocked = _check_identifiers(
        sanitized,
        set(allowed_variables or ()),
        settings.allow_multi_letter_variables,
        settings.max_identifier_length,
    )
    if blocked:
        _log_security_event("unknown_identifier", sanitized, blocked)
        return ValidationResult(
            is_valid=False,
            sanitized=sanitized,
            warnings=warnings,
            blocked=blocked,
        )

    _collect_warnings(sanitized, warnings)

    return ValidationResult(is_valid=True, sanitized=sanitized, warnings=warnings)
