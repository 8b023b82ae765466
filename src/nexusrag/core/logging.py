"""
Simple asynchronous logging for nexusrag, built on loguru.
"""

import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from loguru import logger as loguru_logger

DEFAULT_LOG_FILE = ".nexusrag/logs/debug.log"


class AsyncLogger:
    """
    Non-blocking logger with a flat format.

    Format: timestamp | level | component | message
    Context is passed as keyword arguments and lands in the record's extra dict.
    """

    # Single file sink shared by every instance
    _handler_id: Optional[int] = None

    def __init__(self, component: str, debug_mode: bool = False):
        self.component = component
        self.debug_mode = debug_mode
        self._setup_async_handler()

    def _setup_async_handler(self):
        AsyncLogger._register_file_sink()

    @staticmethod
    def _register_file_sink(log_file: Optional[str] = None, level: Optional[str] = None):
        """
        Register the shared file sink once.

        - enqueue=True keeps the caller from blocking on I/O
        - rotation at 10MB, rotated files zipped
        """
        if AsyncLogger._handler_id is None:
            path = Path(log_file or os.getenv("NEXUSRAG_LOG_FILE", DEFAULT_LOG_FILE))
            path.parent.mkdir(parents=True, exist_ok=True)
            AsyncLogger._handler_id = loguru_logger.add(
                str(path),
                format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {extra[component]} | {message}",
                level=(level or os.getenv("NEXUSRAG_LOG_LEVEL", "DEBUG")).upper(),
                rotation="10 MB",
                compression="zip",
                enqueue=True,
            )

    @classmethod
    def configure(cls, log_file: Optional[str] = None, level: Optional[str] = None):
        """Re-register the shared file sink with settings from configuration."""
        if cls._handler_id is not None:
            loguru_logger.remove(cls._handler_id)
            cls._handler_id = None
        cls._register_file_sink(log_file, level)

    def log(self, level: str, message: str, **context):
        """Send a record to loguru bound to this component."""
        loguru_logger.bind(component=self.component, **context).log(level, message)

    def debug(self, message: str, **context):
        self.log("DEBUG", message, **context)

    def info(self, message: str, **context):
        self.log("INFO", message, **context)

    def warning(self, message: str, **context):
        self.log("WARNING", message, **context)

    def error(self, message: str, include_trace: Optional[bool] = None, **context):
        """
        Log at ERROR level with optional stack trace.

        Args:
            message: Error message
            include_trace: Attach the current traceback (None = follow debug_mode)
            **context: Additional context
        """
        should_include_trace = include_trace if include_trace is not None else self.debug_mode

        if should_include_trace:
            import traceback

            context["stack_trace"] = traceback.format_exc()

        self.log("ERROR", message, **context)


class PerformanceLogger:
    """Logs operation durations."""

    def __init__(self, component: str = "performance"):
        self.logger = AsyncLogger(component)

    @contextmanager
    def measure(self, operation: str, **context):
        """
        Time the wrapped block.

        Usage:
        ```
        with perf_logger.measure("replace_chunks", source_id=source_id):
            await store.replace_chunks(...)
        ```
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.logger.info(
                "Operation completed", operation=operation, duration_ms=duration * 1000, **context
            )


def _get_debug_mode() -> bool:
    return os.getenv("NEXUSRAG_DEBUG", "false").lower() == "true"


logger = AsyncLogger("nexusrag", debug_mode=_get_debug_mode())
