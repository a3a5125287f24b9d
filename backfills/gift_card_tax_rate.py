"""
Gift card tax rate backfill

Copies each region's tax_rate onto the gift cards of that region whose
tax_rate is still null. The whole run happens in one transaction and is
safe to repeat: a second run finds nothing to do.

Usage:
    python scripts/gift_card_tax_rate_migration.py
    python scripts/gift_card_tax_rate_migration.py --batch-size 500
    python scripts/gift_card_tax_rate_migration.py --dry-run
"""

import argparse
import math
from dataclasses import dataclass, field
from typing import Literal

import structlog
from opentelemetry import trace
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from core.logging import BusinessEvents
from core.metrics import backfill_rows_updated_total, push_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.models import GiftCard, Region
from db.session import build_engine, manual_session

MIGRATION_NAME = "gift-card-tax-rate-migration"
BATCH_SIZE = 1000

log = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class BatchReport:
    number: int
    offset: int
    fetched: int
    updated: int


@dataclass
class BackfillResult:
    status: Literal["no_work", "converged", "partial"]
    total: int = 0
    # rows written, or rows a dry run would write
    updated: int = 0
    skipped: int = 0
    unconverged: int = 0
    dry_run: bool = False
    batches: list[BatchReport] = field(default_factory=list)

    @property
    def converged(self) -> bool:
        return self.status != "partial"


def count_missing_tax_rates(session: Session) -> int:
    """Number of gift cards whose tax_rate is still null."""
    return session.scalar(
        select(func.count(GiftCard.id)).where(GiftCard.tax_rate.is_(None))
    )


def fetch_batch(session: Session, after_id: str | None, batch_size: int):
    """Next page of (gift card id, region tax rate) pairs, keyed on gift card id."""
    stmt = (
        select(GiftCard.id, Region.tax_rate.label("region_tax_rate"))
        .join(Region, GiftCard.region_id == Region.id)
        .where(GiftCard.tax_rate.is_(None))
        .order_by(GiftCard.id)
        .limit(batch_size)
    )
    if after_id is not None:
        stmt = stmt.where(GiftCard.id > after_id)
    return session.execute(stmt).all()


def migrate(
    session: Session,
    batch_size: int = BATCH_SIZE,
    dry_run: bool = False,
    tracer: trace.Tracer = tracer,
) -> BackfillResult:
    """
    Backfill gift_cards.tax_rate from regions.tax_rate in fixed-size batches.

    The caller owns the transaction; nothing here commits.

    Args:
        session: Session with an open (or autobegun) transaction
        batch_size: Maximum number of gift cards handled per batch
        dry_run: Read and report without issuing any UPDATE
        tracer: Tracer for the run and per-batch spans

    Returns:
        BackfillResult describing what was done and whether every
        backfillable row converged
    """
    if batch_size < 1:
        raise ValueError("batch_size must be a positive integer")

    bound = log.bind(migration=MIGRATION_NAME, dry_run=dry_run)

    total = count_missing_tax_rates(session)
    total_batches = math.ceil(total / batch_size)

    if total_batches == 0:
        bound.info(
            BusinessEvents.BACKFILL_SKIPPED,
            message="No records to update, skipping migration!",
        )
        return BackfillResult(status="no_work", dry_run=dry_run)

    bound.info(
        BusinessEvents.BACKFILL_STARTED,
        message=f"Running migration for {total} GiftCards",
        records=total,
        batches=total_batches,
        batch_size=batch_size,
    )

    result = BackfillResult(status="converged", total=total, dry_run=dry_run)
    last_id = None

    with tracer.start_as_current_span(
        "backfill.run", attributes={"migration": MIGRATION_NAME, "records": total}
    ):
        for batch in range(1, total_batches + 1):
            offset = (batch - 1) * batch_size
            bound.info(
                BusinessEvents.BACKFILL_BATCH_STARTED,
                message=f"Starting batch {batch} of {total_batches}",
                batch=batch,
                batches=total_batches,
                offset=offset,
            )

            with tracer.start_as_current_span(
                "backfill.batch", attributes={"batch": batch, "offset": offset}
            ):
                rows = fetch_batch(session, last_id, batch_size)
                if not rows:
                    # Remaining null rows have no region to copy from
                    break
                last_id = rows[-1].id

                values = [
                    {"id": row.id, "tax_rate": row.region_tax_rate}
                    for row in rows
                    if row.region_tax_rate is not None
                ]
                if values and not dry_run:
                    # Bulk UPDATE by primary key; returns once every row is applied
                    session.execute(update(GiftCard), values)
                    backfill_rows_updated_total.labels(migration=MIGRATION_NAME).inc(
                        len(values)
                    )

            result.updated += len(values)
            result.skipped += len(rows) - len(values)
            result.batches.append(
                BatchReport(
                    number=batch, offset=offset, fetched=len(rows), updated=len(values)
                )
            )
            bound.info(
                BusinessEvents.BACKFILL_BATCH_FINISHED,
                message=f"Finished batch {batch} of {total_batches}",
                batch=batch,
                batches=total_batches,
                updated=len(values),
            )

    if dry_run:
        # Nothing was written; report what a real run would leave behind
        result.unconverged = total - result.updated
    else:
        result.unconverged = count_missing_tax_rates(session)

    if result.unconverged == 0:
        bound.info(
            BusinessEvents.BACKFILL_CONVERGED,
            message=f"successfully ran for {total} GiftCards",
            records=total,
        )
        return result

    result.status = "partial"
    bound.info(
        BusinessEvents.BACKFILL_PARTIAL,
        message=f"{result.unconverged} GiftCards have no tax_rate set",
        unconverged=result.unconverged,
        hints=[
            "1. Check if all GiftCards have a region associated with it",
            "If not, they need to be associated with a region & re-run migration",
            "2. Check if regions have a tax_rate added for it",
            "If regions intentionally have no tax_rate, this can be ignored",
            "If not, add a tax_rate to region & re-run migration",
        ],
    )
    return result


def run(
    settings: Settings,
    batch_size: int = BATCH_SIZE,
    dry_run: bool = False,
    engine=None,
    tracer: trace.Tracer = tracer,
) -> BackfillResult:
    """Run the backfill in a single transaction against the configured database."""
    owns_engine = engine is None
    if owns_engine:
        engine = build_engine(settings.db)
    try:
        with manual_session(engine) as session:
            result = migrate(
                session, batch_size=batch_size, dry_run=dry_run, tracer=tracer
            )
            if dry_run:
                session.rollback()
            return result
    finally:
        if owns_engine:
            engine.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=MIGRATION_NAME,
        description="Backfill gift card tax rates from their region's tax rate.",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=BATCH_SIZE,
        help=f"Gift cards per batch (default: {BATCH_SIZE})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be updated without writing",
    )
    return parser


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    settings = settings if settings is not None else Settings()
    provider = init_tracer(MIGRATION_NAME)
    try:
        return _run_and_report(settings, args, provider.get_tracer(__name__))
    finally:
        # Flush batched spans before the process exits
        provider.shutdown()


def _run_and_report(settings: Settings, args, run_tracer: trace.Tracer) -> int:
    try:
        result = run(
            settings,
            batch_size=args.batch_size,
            dry_run=args.dry_run,
            tracer=run_tracer,
        )
    except Exception as e:
        log.error(
            BusinessEvents.BACKFILL_FAILED,
            migration=MIGRATION_NAME,
            error=str(e),
            exc_info=True,
        )
        return 1
    finally:
        if settings.PROMETHEUS_PUSHGATEWAY_URL:
            push_metrics(settings.PROMETHEUS_PUSHGATEWAY_URL, job=MIGRATION_NAME)

    log.info(
        BusinessEvents.BACKFILL_COMPLETED,
        migration=MIGRATION_NAME,
        message="Database migration completed",
        status=result.status,
        updated=result.updated,
        unconverged=result.unconverged,
    )
    return 0
