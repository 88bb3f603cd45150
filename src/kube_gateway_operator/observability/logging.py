"""
Structured logging for the kube-gateway operator.

Log records are emitted as one JSON object per line. Every record written
while a GateServer is reconciled carries the same correlation ID, so the
lines of one reconcile can be pulled out of an interleaved log stream.
"""

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

# Requests to these paths come from probes and scrapers
PROBE_PATHS = ("/healthz", "/ready", "/metrics")

# Record attributes copied into the JSON line when present
STRUCTURED_FIELDS = (
    "resource_type",
    "resource_name",
    "namespace",
    "operation",
    "action",
    "duration",
    "error_type",
    "kind",
    "phase",
    "reason",
    "cleanup_step",
    "handler_type",
    "handler_phase",
    "failed_deletions",
)

NOISY_LOGGERS = (
    "kopf",
    "kubernetes",
    "urllib3",
    "aiohttp.access",
    "aiohttp.server",
    "aiohttp.web",
)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


def set_correlation_id(corr_id: str) -> str:
    correlation_id.set(corr_id)
    return corr_id


def get_correlation_id() -> str:
    return correlation_id.get()


class ProbeAccessFilter(logging.Filter):
    """Drop access log lines produced by probe and scrape requests."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        return not any(path in message for path in PROBE_PATHS)


class CorrelationIDFilter(logging.Filter):
    """Stamp records with the correlation ID of the running reconcile."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or set_correlation_id(
            generate_correlation_id()
        )
        return True


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", ""),
        }
        payload.update(
            (name, getattr(record, name))
            for name in STRUCTURED_FIELDS
            if hasattr(record, name)
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_structured_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    correlation_ids: bool = True,
    log_health_probes: bool = False,
) -> None:
    """
    Route all logging through a single stderr handler.

    Args:
        log_level: Root log level name
        json_logs: Emit JSON lines instead of plain text
        correlation_ids: Stamp records with the reconcile correlation ID
        log_health_probes: Keep access log lines of probe requests
    """
    handler = logging.StreamHandler()

    if json_logs:
        handler.setFormatter(StructuredFormatter())
    else:
        prefix = "%(asctime)s - %(correlation_id)s" if correlation_ids else "%(asctime)s"
        handler.setFormatter(
            logging.Formatter(f"{prefix} - %(name)s - %(levelname)s - %(message)s")
        )

    if correlation_ids:
        handler.addFilter(CorrelationIDFilter())
    if not log_health_probes:
        handler.addFilter(ProbeAccessFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class OperatorLogger:
    """
    Logger bound to one kind of resource.

    Wraps a stdlib logger with helpers for the events every reconcile goes
    through, so those lines share field names across the operator.
    """

    def __init__(self, name: str, resource_type: str = "gateserver"):
        self.logger = logging.getLogger(name)
        self.resource_type = resource_type

    def _fields(self, name: str, namespace: str, **extra) -> dict:
        return {
            "resource_type": self.resource_type,
            "resource_name": name,
            "namespace": namespace,
            **extra,
        }

    def begin(self, name: str, namespace: str) -> str:
        """Start a reconcile under a fresh correlation ID and return it."""
        corr_id = set_correlation_id(generate_correlation_id())
        self.logger.info(
            f"Reconciling {self.resource_type} {namespace}/{name}",
            extra=self._fields(name, namespace, operation="reconcile_start"),
        )
        return corr_id

    def finished(
        self,
        name: str,
        namespace: str,
        duration: float,
        action: str = "",
        phase: str = "",
    ) -> None:
        self.logger.info(
            f"Reconciled {self.resource_type} {namespace}/{name} ({action or 'noop'})",
            extra=self._fields(
                name,
                namespace,
                operation="reconcile_success",
                action=action,
                duration=duration,
                phase=phase,
            ),
        )

    def failed(
        self, name: str, namespace: str, error: Exception, duration: float
    ) -> None:
        self.logger.error(
            f"Reconcile of {self.resource_type} {namespace}/{name} failed: {error}",
            extra=self._fields(
                name,
                namespace,
                operation="reconcile_error",
                error_type=type(error).__name__,
                duration=duration,
            ),
            exc_info=error,
        )

    def dependent_step(
        self, step: str, kind: str, name: str, namespace: str, **details
    ) -> None:
        """Record what happened to one dependent during teardown."""
        self.logger.info(
            f"{kind} {name} of {namespace}: {step}",
            extra=self._fields(name, namespace, kind=kind, cleanup_step=step, **details),
        )

    def debug(self, message: str, **fields) -> None:
        self.logger.debug(message, extra=fields)

    def info(self, message: str, **fields) -> None:
        self.logger.info(message, extra=fields)

    def warning(self, message: str, **fields) -> None:
        self.logger.warning(message, extra=fields)

    def error(self, message: str, exc_info: bool = False, **fields) -> None:
        self.logger.error(message, exc_info=exc_info, extra=fields)
