"""
Edge Cache Exceptions

Every failure in the cache core surfaces to the caller of the invoking
method. Nothing here is retried; the original exception is kept as
``__cause__`` when one exists.
"""

from typing import Any, Dict, List, Optional


class EdgeCacheError(Exception):
    """Base exception for all cache errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class InvalidKeyError(EdgeCacheError, ValueError):
    """No cache key could be derived from the given request."""

    def __init__(self, source: Any = None):
        super().__init__(
            "Invalid cache key from request.",
            details={"source_type": type(source).__name__},
        )
        self.source = source


class StoreError(EdgeCacheError):
    """The object store failed on get/put/list/delete."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error is not None:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__
        super().__init__(message, details=details)
        self.operation = operation
        self.key = key
        if original_error is not None:
            self.__cause__ = original_error


class PartialDeleteError(StoreError):
    """
    Some chunks (or keys) of a bulk delete failed.

    The keys in ``deleted`` are gone from the origin store and have already
    been purged from the edge; the keys in ``failed`` may still be present.
    """

    def __init__(self, deleted: List[str], failed: Dict[str, str]):
        super().__init__(
            f"Bulk delete incomplete: {len(deleted)} deleted, {len(failed)} failed",
            operation="delete_batch",
        )
        self.deleted = deleted
        self.failed = failed
        self.details["deleted"] = len(deleted)
        self.details["failed"] = len(failed)


class PurgeError(EdgeCacheError):
    """The edge purge API call failed after origin deletion completed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        deleted: Optional[List[str]] = None,
        original_error: Optional[BaseException] = None,
    ):
        details: Dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        if original_error is not None:
            details["original_error"] = str(original_error)
        super().__init__(message, details=details)
        self.status_code = status_code
        self.deleted = deleted or []
        if original_error is not None:
            self.__cause__ = original_error
