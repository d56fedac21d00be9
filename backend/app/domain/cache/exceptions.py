"""
Cache Infrastructure Exceptions

Every failure of the cache store surfaces as a CacheStoreException subclass.
Read paths downgrade these to a direct load; administrative operations report
them as failed results.
"""

from typing import Optional, Any, Dict


class CacheStoreException(Exception):
    """Base exception for cache store failures."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or "CACHE_STORE_ERROR"
        self.details = details or {}
        super().__init__(self.message)


class CacheConnectionException(CacheStoreException):
    """Raised when the cache store cannot be reached."""

    def __init__(
        self,
        message: str = "Cache store connection failed",
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="CACHE_CONNECTION_ERROR", details=details
        )
        if original_error:
            self.__cause__ = original_error


class CacheOperationTimeoutException(CacheStoreException):
    """Raised when a cache operation times out."""

    def __init__(self, operation: str, key: Optional[str] = None):
        details = {"operation": operation}
        if key:
            details["key"] = key

        super().__init__(
            message=f"Cache operation '{operation}' timed out",
            error_code="CACHE_TIMEOUT_ERROR",
            details=details,
        )


class CacheSerializationException(CacheStoreException):
    """Raised when a value cannot be encoded for, or decoded from, the store."""

    def __init__(self, key: str, original_error: Optional[Exception] = None):
        details = {"key": key}
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=f"Cache value for '{key}' could not be (de)serialized",
            error_code="CACHE_SERIALIZATION_ERROR",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class CacheCircuitOpenException(CacheStoreException):
    """Raised when the cache circuit breaker rejects a call."""

    def __init__(
        self, message: str = "Cache circuit breaker is open - store unavailable"
    ):
        super().__init__(
            message=message,
            error_code="CACHE_CIRCUIT_BREAKER_OPEN",
            details={"service_status": "unavailable"},
        )


class CacheRegionNotFoundException(CacheStoreException):
    """Raised when a named cache region does not exist."""

    def __init__(self, region: str):
        super().__init__(
            message=f"Cache not found: {region}",
            error_code="CACHE_REGION_NOT_FOUND",
            details={"region": region},
        )
        self.region = region
