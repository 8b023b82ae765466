"""
Unified exception hierarchy for nexusrag.
Single source of the typed errors every component raises.
"""

from typing import Dict, Any, Optional, List
from datetime import datetime

from nexusrag.core.id_generator import generate_id
from nexusrag.core.utils.datetime_utils import utc_now, format_iso


class NexusRAGError(Exception):
    """
    Base error of the retrieval core.

    Features:
    1. Structured serialization
    2. Rich context
    3. Resolution suggestions
    4. Unique ID for tracking
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.id: str = generate_id()
        self.timestamp: datetime = utc_now()
        self.message: str = message
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[BaseException] = cause
        self.suggestions: List[str] = []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize for callers that report errors upstream.

        Returns:
            {
                "error_id": "hex32chars",
                "code": "ProviderUnavailableError",
                "message": "Embedding provider call failed",
                "timestamp": "2024-01-20T10:30:00Z",
                "context": {...}
            }
        """
        result: Dict[str, Any] = {
            "error_id": self.id,
            "code": self.code,
            "message": self.message,
            "timestamp": format_iso(self.timestamp),
            "context": self.context,
        }

        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}

        if self.suggestions:
            result["suggestions"] = self.suggestions

        return result

    def add_suggestion(self, suggestion: str) -> None:
        """
        Add a resolution hint, ignoring blanks and duplicates.

        Example:
            error = StoreError("Cannot open database")
            error.add_suggestion("Check that the data directory is writable")
        """
        if not suggestion or not isinstance(suggestion, str):
            return

        if suggestion not in self.suggestions:
            self.suggestions.append(suggestion)

    def is_retryable(self) -> bool:
        """Whether the caller may retry the failed operation as-is."""
        return False


# ============================================================================
# External providers (embedding, language model)
# ============================================================================


class ProviderUnavailableError(NexusRAGError):
    """
    An embedding or LLM call failed, timed out, or was short-circuited.

    Non-fatal for search legs, fatal for indexing.
    """

    def is_retryable(self) -> bool:
        return True


class CircuitOpenError(ProviderUnavailableError):
    """Call rejected by an open circuit breaker without reaching the provider."""

    pass


class DimensionMismatchError(NexusRAGError):
    """
    Provider returned a vector of unexpected size.

    Deployment misconfiguration: never retryable.
    """

    pass


# ============================================================================
# Persistence
# ============================================================================


class StoreError(NexusRAGError):
    """Persistence layer failure (connection, query, constraint)."""

    def is_retryable(self) -> bool:
        """Store errors are sometimes transient (locks, timeouts)."""
        return True


class StoreBusyError(StoreError):
    """Database temporarily locked. Retryable with backoff by the caller."""

    def is_retryable(self) -> bool:
        return True


class StoreCorruptError(StoreError):
    """Database file is corrupt. Requires manual intervention."""

    def is_retryable(self) -> bool:
        return False


class StoreConstraintError(StoreError):
    """Constraint violation (UNIQUE, CHECK, FOREIGN KEY). Data or logic error."""

    def is_retryable(self) -> bool:
        return False


# ============================================================================
# Configuration and input
# ============================================================================


class ConfigurationError(NexusRAGError):
    """Invalid or missing configuration."""

    pass


class ValidationError(NexusRAGError):
    """Invalid caller input."""

    pass


class NotFoundError(NexusRAGError):
    """Requested record does not exist."""

    pass
