"""
Tests for caching functionality
"""

from exprengine.ast_nodes import number, variable
from exprengine.utils.cache import hash_expression, ExpressionCache, get_cache


def test_hash_expression_consistency():
    """Test that hash_expression produces consistent hashes for identical input"""
    hash1 = hash_expression("x * 2 + 1", ["rate"])
    hash2 = hash_expression("x * 2 + 1", ["rate"])

    # Same expression should produce same hash
    assert hash1 == hash2
    assert len(hash1) == 64  # SHA256 produces 64-character hex string


def test_hash_expression_different_expressions():
    """Test that different expressions produce different hashes"""
    assert hash_expression("x + 1") != hash_expression("x + 2")


def test_hash_expression_allowed_variables():
    """Test that allowed variables are part of the key but not their order"""
    assert hash_expression("rate * 2") != hash_expression("rate * 2", ["rate"])
    assert hash_expression("a + b", ["rate", "time"]) == hash_expression(
        "a + b", ["time", "rate", "rate"]
    )


def test_hash_expression_strips_whitespace():
    """Test that surrounding whitespace does not change the key"""
    assert hash_expression("  x + 1\n") == hash_expression("x + 1")


def test_cache_basic_operations():
    """Test basic cache get/put operations"""
    cache = ExpressionCache(max_size=10)
    key = hash_expression("x")

    # Cache miss
    assert cache.get(key) is None

    # Store and retrieve
    cache.put(key, variable("x"))
    assert cache.get(key) == variable("x")

    stats = cache.get_stats()
    assert stats["size"] == 1
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


def test_cache_lru_eviction():
    """Test that least recently used entries are evicted first"""
    cache = ExpressionCache(max_size=2)
    cache.put("a", number(1))
    cache.put("b", number(2))

    # Touch "a" so "b" becomes the oldest entry
    assert cache.get("a") == number(1)
    cache.put("c", number(3))

    assert cache.get("b") is None
    assert cache.get("a") == number(1)
    assert cache.get("c") == number(3)
    assert cache.get_stats()["evictions"] == 1


def test_cache_put_existing_key_does_not_evict():
    """Test that overwriting a key keeps the cache size unchanged"""
    cache = ExpressionCache(max_size=2)
    cache.put("a", number(1))
    cache.put("b", number(2))
    cache.put("a", number(10))

    stats = cache.get_stats()
    assert stats["size"] == 2
    assert stats["evictions"] == 0
    assert cache.get("a") == number(10)


def test_cache_clear():
    """Test clearing cache"""
    cache = ExpressionCache(max_size=10)
    cache.put("a", number(1))
    cache.get("a")
    cache.get("missing")

    cache.clear()

    stats = cache.get_stats()
    assert stats["size"] == 0
    assert stats["hits"] == 0
    assert stats["misses"] == 0
    assert stats["hit_rate"] == 0.0


def test_get_cache_singleton():
    """Test that get_cache returns the same instance"""
    cache1 = get_cache()
    cache2 = get_cache()

    assert cache1 is cache2
