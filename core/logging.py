import logging
import os
import sys

import structlog
from opentelemetry.instrumentation.logging import LoggingInstrumentor

JSON_ENVIRONMENTS = ("test", "production")


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """JSON for test and production, colored console output otherwise"""
    if os.getenv("ENVIRONMENT", "development") in JSON_ENVIRONMENTS:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def configure_logging():
    """Set up structlog over stdlib logging with OTEL trace context injection.

    Safe to call more than once; the CLI backfill and the web app both call it.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.ExceptionPrettyPrinter(),
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Backfill progress goes to stdout so it can be piped next to the exit code
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(get_log_level())

    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()

    instrumentor = LoggingInstrumentor()
    if not instrumentor.is_instrumented_by_opentelemetry:
        instrumentor.instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    # gift card tax rate backfill
    BACKFILL_SKIPPED = "backfill.skipped"
    BACKFILL_STARTED = "backfill.started"
    BACKFILL_BATCH_STARTED = "backfill.batch_started"
    BACKFILL_BATCH_FINISHED = "backfill.batch_finished"
    BACKFILL_CONVERGED = "backfill.converged"
    BACKFILL_PARTIAL = "backfill.partial"
    BACKFILL_COMPLETED = "backfill.completed"
    BACKFILL_FAILED = "backfill.failed"

    # stripe provider
    PAYMENT_ATTEMPT = "payment.attempt"
    PAYMENT_SUCCESS = "payment.success"
    PAYMENT_FAILURE = "payment.failure"
    PAYMENT_ALREADY_CAPTURED = "payment.already_captured"
    PAYMENT_SESSION_UPDATED = "payment_session.updated"
    WEBHOOK_RECEIVED = "webhook.received"


# Configure logging when module is imported
configure_logging()
