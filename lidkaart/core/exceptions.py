"""
Offline Cache Exceptions

Domain-specific exceptions for the offline cache policy engine,
its cache stores and its network fetchers.
"""

from typing import Optional, Any, Dict
from fastapi import HTTPException


class OfflineCacheException(Exception):
    """Base exception for offline cache errors.

    Carries a machine readable error code and structured details so the
    HTTP adapter can report the failure without losing context.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class NetworkUnavailableException(OfflineCacheException):
    """Raised when a network fetch fails before any response is received."""

    def __init__(
        self,
        url: str,
        message: str = "Network request failed",
        original_error: Optional[Exception] = None,
    ):
        details = {"url": url}
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=message, error_code="NETWORK_UNAVAILABLE", details=details
        )
        # Preserve exception context for debugging (exception chaining)
        if original_error:
            self.__cause__ = original_error


class CacheStoreException(OfflineCacheException):
    """Raised when a cache store read, write or purge fails."""

    def __init__(
        self,
        operation: str,
        namespace: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"operation": operation}
        if namespace:
            details["namespace"] = namespace
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(
            message=f"Cache store operation '{operation}' failed",
            error_code="CACHE_STORE_ERROR",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class InstallationError(OfflineCacheException):
    """Raised when pre-populating the static namespace fails."""

    def __init__(
        self,
        url: str,
        status_code: Optional[int] = None,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {"url": url}
        if status_code is not None:
            details["status_code"] = status_code
        if original_error:
            details["original_error"] = str(original_error)

        super().__init__(
            message=f"Failed to pre-cache static asset: {url}",
            error_code="INSTALLATION_FAILED",
            details=details,
        )
        if original_error:
            self.__cause__ = original_error


class EngineStateException(OfflineCacheException):
    """Raised when a lifecycle operation is invoked in the wrong state."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            message=f"Cannot {operation} while engine is {state}",
            error_code="ENGINE_STATE_ERROR",
            details={"operation": operation, "state": state},
        )


# HTTP Exceptions for API layer
class OfflineCacheHTTPException(HTTPException):
    """HTTP exception wrapper for offline cache errors."""

    def __init__(self, cache_exception: OfflineCacheException, status_code: int = 503):
        self.cache_exception = cache_exception
        super().__init__(
            status_code=status_code,
            detail={
                "error": cache_exception.error_code,
                "message": cache_exception.message,
                "details": cache_exception.details,
            },
        )
