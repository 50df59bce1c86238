"""
Caching module for the expression engine
Implements an LRU cache of parsed ASTs keyed by expression text
"""

import hashlib
import json
from typing import Iterable, Optional
from collections import OrderedDict
import logging
import threading

from exprengine.ast_nodes import AnyNode
from exprengine.types import CacheStatsDict

logger = logging.getLogger(__name__)


def hash_expression(
    expression: str, allowed_variables: Optional[Iterable[str]] = None
) -> str:
    """
    Generate a cache key for an expression

    The allowed variables are part of the key because they change what the
    validator accepts for the same text.

    Args:
        expression: Raw expression text
        allowed_variables: Multi-letter variable names accepted with it

    Returns:
        Hexadecimal hash string
    """
    key_data = {
        "expression": expression.strip(),
        "allowed_variables": sorted(set(allowed_variables or ())),
    }
    key_json = json.dumps(key_data, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(key_json.encode("utf-8")).hexdigest()


class ExpressionCache:
    """
    Thread-safe LRU cache of parsed expressions

    ASTs are immutable, so cached trees are handed out without copying.
    """

    def __init__(self, max_size: int = 256):
        """
        Initialize cache with maximum size

        Args:
            max_size: Maximum number of cached expressions (default: 256)
        """
        self.max_size = max_size
        self._cache: OrderedDict[str, AnyNode] = OrderedDict()
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0, "evictions": 0}

    def get(self, key: str) -> Optional[AnyNode]:
        """
        Retrieve a cached AST

        Args:
            key: Result of hash_expression()

        Returns:
            Cached AST, or None if not cached
        """
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                self._stats["hits"] += 1
                logger.debug(f"Cache hit for expression hash: {key[:16]}...")
                return self._cache[key]
            self._stats["misses"] += 1
            logger.debug(f"Cache miss for expression hash: {key[:16]}...")
            return None

    def put(self, key: str, ast: AnyNode) -> None:
        """
        Store a parsed AST, evicting the least recently used entry when full

        Args:
            key: Result of hash_expression()
            ast: Parsed tree
        """
        with self._lock:
            if len(self._cache) >= self.max_size and key not in self._cache:
                oldest, _ = self._cache.popitem(last=False)
                self._stats["evictions"] += 1
                logger.debug(f"Cache eviction: removed expression hash {oldest[:16]}...")

            self._cache[key] = ast
            self._cache.move_to_end(key)

    def clear(self) -> None:
        """Clear all cached entries and statistics"""
        with self._lock:
            self._cache.clear()
            for name in self._stats:
                self._stats[name] = 0
            logger.info("Expression cache cleared")

    def get_stats(self) -> CacheStatsDict:
        """
        Get cache statistics

        Returns:
            Dictionary with size, max_size, hits, misses, evictions and
            hit_rate (percentage)
        """
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = self._stats["hits"] / total * 100 if total > 0 else 0.0
            return {
                "size": len(self._cache),
                "max_size": self.max_size,
                "hits": self._stats["hits"],
                "misses": self._stats["misses"],
                "evictions": self._stats["evictions"],
                "hit_rate": round(hit_rate, 2),
            }


_expression_cache: Optional[ExpressionCache] = None
_cache_lock = threading.Lock()


def get_cache() -> ExpressionCache:
    """
    Get the process-wide expression cache, creating it on first use

    Returns:
        Global ExpressionCache instance
    """
    global _expression_cache
    if _expression_cache is None:
        with _cache_lock:
            if _expression_cache is None:
                from exprengine.config import get_settings

                config = get_settings()
                _expression_cache = ExpressionCache(max_size=config.cache_max_size)
                logger.info(
                    f"Initialized expression cache with max_size={config.cache_max_size}"
                )
    return _expression_cache
