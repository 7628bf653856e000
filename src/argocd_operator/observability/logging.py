"""
Structured logging for the Argo CD operator.

Every reconciliation pass gets a short correlation ID kept in a context
variable, so all log lines of the pass, including those of the secret steps
and rollouts it triggers, can be tied together. Lines are emitted as JSON
with the structured ``extra`` fields the operator attaches.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Record attributes copied into JSON output when present
STRUCTURED_FIELDS = (
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "duration",
    "error_type",
    "step",
    "outcome",
    "mutated",
    "secret_name",
    "workload",
    "workload_kind",
    "bundle",
)

QUIET_LOGGERS = ("kopf", "kubernetes", "urllib3", "aiohttp.access")


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(corr_id: str) -> str:
    correlation_id.set(corr_id)
    return corr_id


class CorrelationIDFilter(logging.Filter):
    """Stamp records with the correlation ID of the current pass."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or set_correlation_id(
            generate_correlation_id()
        )
        return True


class StructuredFormatter(logging.Formatter):
    """Format records as single-line JSON documents."""

    def format(self, record: logging.LogRecord) -> str:
        document: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        document.update(
            (field, getattr(record, field))
            for field in STRUCTURED_FIELDS
            if hasattr(record, field)
        )
        if record.exc_info:
            document["exception"] = self.formatException(record.exc_info)
        return json.dumps(document, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    enable_json_formatting: bool = True,
    correlation_id_enabled: bool = True,
) -> None:
    """
    Replace the root handlers with a single stream handler.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        enable_json_formatting: Emit JSON instead of plain text lines
        correlation_id_enabled: Attach correlation IDs to every record
    """
    handler = logging.StreamHandler()
    if enable_json_formatting:
        handler.setFormatter(StructuredFormatter())
    else:
        prefix = "%(asctime)s - "
        if correlation_id_enabled:
            prefix += "%(correlation_id)s - "
        handler.setFormatter(
            logging.Formatter(prefix + "%(name)s - %(levelname)s - %(message)s")
        )
    if correlation_id_enabled:
        handler.addFilter(CorrelationIDFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger for reconciliation events.

    Each method emits one line with a fixed ``operation`` field so passes
    and step outcomes can be filtered without parsing messages.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def _emit(
        self, level: int, message: str, operation: str, exc_info: bool = False, **fields
    ) -> None:
        self.logger.log(
            level,
            message,
            extra={"operation": operation, **fields},
            exc_info=exc_info,
        )

    def log_reconciliation_start(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        correlation_id: str | None = None,
    ) -> str:
        """Start a new correlation scope for a pass and log it."""
        corr_id = set_correlation_id(correlation_id or generate_correlation_id())
        self._emit(
            logging.INFO,
            f"Reconciling {resource_type} {namespace}/{resource_name}",
            "reconcile_start",
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )
        return corr_id

    def log_reconciliation_success(
        self, resource_type: str, resource_name: str, namespace: str, duration: float
    ) -> None:
        self._emit(
            logging.INFO,
            f"Reconciled {resource_type} {namespace}/{resource_name} in {duration:.2f}s",
            "reconcile_success",
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
            duration=duration,
        )

    def log_reconciliation_error(
        self,
        resource_type: str,
        resource_name: str,
        namespace: str,
        error: Exception,
        duration: float,
    ) -> None:
        self._emit(
            logging.ERROR,
            f"Reconciliation of {resource_type} {namespace}/{resource_name} failed: {error}",
            "reconcile_error",
            exc_info=True,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
            error_type=type(error).__name__,
            duration=duration,
        )

    def log_step_outcome(
        self,
        step: str,
        namespace: str,
        resource_name: str,
        outcome: str,
        mutated: bool,
        reason: str | None = None,
    ) -> None:
        """Log a secret step; quiet steps that changed nothing go to DEBUG."""
        message = f"Secret step {step} for {namespace}/{resource_name}: {outcome}"
        if reason:
            message = f"{message} ({reason})"
        self._emit(
            logging.INFO if mutated or reason else logging.DEBUG,
            message,
            "secret_step",
            step=step,
            namespace=namespace,
            resource_name=resource_name,
            outcome=outcome,
            mutated=mutated,
        )
