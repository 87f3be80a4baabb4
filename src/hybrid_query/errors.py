"""
Exception taxonomy for the query engine.

Everything raised to callers derives from QueryEngineError so the HTTP
layer can map errors to responses without knowing provider SDKs:

- ValidationError / ConfigurationError: caller-correctable
- CapacityExceededError, QueryTimeoutError: transient
- EmbeddingError / BackendError: dependency failures
- PartialFailure: informational, attached to a degraded result
"""

from typing import Dict, List, Optional


class QueryEngineError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(QueryEngineError):
    """Malformed input: bad query shape, bad filter, wrong vector dimension."""


class ConfigurationError(ValidationError):
    """A backend or service was configured with missing or invalid fields."""


class CapacityExceededError(QueryEngineError):
    """The admission gate is full; the query was rejected, not queued."""

    def __init__(self, message: str, retry_after: float = 1.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class QueryTimeoutError(QueryEngineError):
    """The query deadline expired before any branch produced results."""

    def __init__(self, message: str, timeout: float) -> None:
        super().__init__(message)
        self.timeout = timeout


class QueryCancelledError(QueryEngineError):
    """The query was cancelled through QueryProcessor.cancel()."""


class EmbeddingError(QueryEngineError):
    """The embedding client failed to produce a vector."""


class EmbeddingUnavailableError(EmbeddingError):
    """No embedding client is configured."""


class BackendError(QueryEngineError):
    """
    A vector backend or data source failed.

    Attributes:
        provider: Backend provider or branch name that failed
        failed_ids: Record ids that were not written (partial upserts)
        errors: Per-branch errors when every fan-out branch failed
    """

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        failed_ids: Optional[List[str]] = None,
        errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.failed_ids = failed_ids or []
        self.errors = errors or {}


class PartialFailure(QueryEngineError):
    """Some fan-out branches failed but a result was still produced."""

    def __init__(self, message: str, errors: Dict[str, Exception]) -> None:
        super().__init__(message)
        self.errors = errors


class CacheError(QueryEngineError):
    """A cache operation failed."""
