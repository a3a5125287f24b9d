"""
Prometheus metrics for the storefront commerce service.

Exposes the FastAPI request metrics at /metrics plus counters for
webhook traffic and backfill progress.
"""

import structlog
from prometheus_client import REGISTRY, Counter, push_to_gateway
from prometheus_fastapi_instrumentator import Instrumentator

log = structlog.get_logger(__name__)

webhook_events_total = Counter(
    "storefront_webhook_events_total",
    "Stripe webhook events handled",
    ["type"],
)

backfill_rows_updated_total = Counter(
    "storefront_backfill_rows_updated_total",
    "Rows updated by data backfills",
    ["migration"],
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
    )
    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def push_metrics(gateway: str, job: str, registry=REGISTRY) -> bool:
    """Push the registry to a Prometheus Pushgateway for processes nobody scrapes.

    A failed push is logged and reported as False; it never fails the job.
    """
    try:
        push_to_gateway(gateway, job=job, registry=registry)
    except OSError as e:
        log.warning("metrics.push_failed", gateway=gateway, job=job, error=str(e))
        return False
    log.info("metrics.pushed", gateway=gateway, job=job)
    return True
