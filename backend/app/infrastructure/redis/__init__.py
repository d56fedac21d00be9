"""
Redis Infrastructure Module

Pooled Redis connections and circuit breaker protection for the cache store.
"""

from .connection_factory import RedisConnectionFactory
from .circuit_breaker import (
    CacheCircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)

__all__ = [
    "RedisConnectionFactory",
    "CacheCircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
]
