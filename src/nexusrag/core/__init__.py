"""
nexusrag core module.

Infrastructure shared by every other package: configuration, persistence,
errors, logging, tracing, and the circuit breaker.
"""

from nexusrag.core.config import Settings, ConfigValidator
from nexusrag.core.database import DatabaseManager, FetchType, QueryResult
from nexusrag.core.circuit_breaker import CircuitBreaker, CircuitState
from nexusrag.core.exceptions import (
    NexusRAGError,
    ProviderUnavailableError,
    CircuitOpenError,
    DimensionMismatchError,
    StoreError,
    StoreBusyError,
    StoreCorruptError,
    StoreConstraintError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
)
from nexusrag.core.logging import AsyncLogger, PerformanceLogger, logger
from nexusrag.core.tracing import tracer, metrics, LocalTracer, MetricsCollector
from nexusrag.core.id_generator import generate_id

__all__ = [
    "Settings",
    "ConfigValidator",
    "DatabaseManager",
    "FetchType",
    "QueryResult",
    "CircuitBreaker",
    "CircuitState",
    "NexusRAGError",
    "ProviderUnavailableError",
    "CircuitOpenError",
    "DimensionMismatchError",
    "StoreError",
    "StoreBusyError",
    "StoreCorruptError",
    "StoreConstraintError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "AsyncLogger",
    "PerformanceLogger",
    "logger",
    "tracer",
    "metrics",
    "LocalTracer",
    "MetricsCollector",
    "generate_id",
]
