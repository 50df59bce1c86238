"""
Type definitions for the expression engine
Provides TypedDict hints for structured dictionaries
"""

from typing import TypedDict, Dict, Any


class ErrorDescriptionDict(TypedDict):
    """
    Typed dictionary for the error summary shown at the UI boundary
    """
    code: str
    kind: str
    title: str
    message: str


class ErrorResponseDict(ErrorDescriptionDict):
    """
    Typed dictionary for structured error response bodies
    """
    details: Dict[str, Any]


class CacheStatsDict(TypedDict):
    """
    Typed dictionary for cache statistics
    """
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int
    hit_rate: float
