"""Structured logging configuration for the legislator site worker."""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

# Attributes every LogRecord carries; anything else came in through `extra`
STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON."""
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for field_name, value in vars(record).items():
            if field_name not in STANDARD_RECORD_ATTRS and field_name not in log_entry:
                log_entry[field_name] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ExecutionLogger:
    """Logger bound to one request and one component."""

    def __init__(self, request_id: str, component: str = "main"):
        """Initialize request logger.

        Args:
            request_id: Unique identifier for the request being served
            component: Component name (e.g., 'index_cards', 'chat_gateway')
        """
        self.request_id = request_id
        self.component = component
        self.logger = logging.getLogger(f"legislator_worker.{component}")
        self.start_time: datetime | None = None

    def _log_with_context(
        self, level: int, message: str, exc_info: bool = False, **kwargs
    ) -> None:
        extra = {
            "request_id": self.request_id,
            "component": self.component,
            **kwargs,
        }
        self.logger.log(level, message, extra=extra, exc_info=exc_info)

    def info(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log an error with the active exception's stack trace."""
        self._log_with_context(logging.ERROR, message, exc_info=True, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self._log_with_context(logging.DEBUG, message, **kwargs)

    def log_request_start(self, **kwargs) -> None:
        """Log request start with timestamp."""
        self.start_time = datetime.now(UTC)
        self.info(
            f"Starting {self.component} request",
            request_start=self.start_time.isoformat(),
            **kwargs,
        )

    def log_request_end(self, status_code: int, **kwargs) -> None:
        """Log request end with status and duration."""
        end_time = datetime.now(UTC)
        duration_ms = None
        if self.start_time:
            duration_ms = int((end_time - self.start_time).total_seconds() * 1000)

        self.info(
            f"Completed {self.component} request",
            status_code=status_code,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_source_fetch(self, source: str, items_count: int, success: bool = True) -> None:
        """Log the outcome of one upstream source fetch."""
        level = logging.INFO if success else logging.ERROR
        self._log_with_context(
            level,
            f"Source {source}: {items_count} items",
            source=source,
            items_count=items_count,
            success=success,
        )

    def log_tool_call(self, tool_name: str, success: bool = True, **kwargs) -> None:
        """Log a chat tool execution."""
        level = logging.INFO if success else logging.WARNING
        self._log_with_context(
            level,
            f"Tool {tool_name} {'completed' if success else 'failed'}",
            tool_name=tool_name,
            success=success,
            **kwargs,
        )

    def log_metrics(self, metrics: dict[str, Any]) -> None:
        self.info("Request metrics", metrics=metrics)


def setup_structured_logging(log_level: str = "INFO") -> None:
    """Setup structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    package_logger = logging.getLogger("legislator_worker")
    package_logger.setLevel(getattr(logging, log_level.upper()))
    package_logger.propagate = True

    # botocore and urllib3 are chatty at DEBUG
    for noisy in ("botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def create_execution_logger(
    component: str, request_id: str | None = None
) -> ExecutionLogger:
    """Create a request-scoped logger for a component.

    Args:
        component: Component name
        request_id: Optional request ID (will generate one if not provided)

    Returns:
        ExecutionLogger instance
    """
    if not request_id:
        request_id = f"req_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"

    return ExecutionLogger(request_id, component)
