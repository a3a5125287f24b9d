"""
Tests for the gift card tax rate backfill
"""

from unittest.mock import ANY, patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
    InMemorySpanExporter,
)
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from backfills.gift_card_tax_rate import (
    BackfillResult,
    MIGRATION_NAME,
    main,
    migrate,
    run,
)
from core.logging import BusinessEvents
from core.settings import DatabaseSettings, Settings
from db.models import Base, GiftCard
from tests.factories import add_gift_cards, add_region


@pytest.fixture
def span_exporter():
    """In-memory spans for the CLI, which would otherwise build its own provider."""
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch(
        "backfills.gift_card_tax_rate.init_tracer", return_value=provider
    ) as mock_init:
        yield exporter
    mock_init.assert_called_once_with(MIGRATION_NAME)


def tax_rates(session) -> dict[str, float | None]:
    rows = session.execute(select(GiftCard.id, GiftCard.tax_rate)).all()
    return {row.id: row.tax_rate for row in rows}


def test_no_records_short_circuits(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_gift_cards(test_db_session, 3, "reg_fr", tax_rate=0.2)

    with patch("backfills.gift_card_tax_rate.fetch_batch") as fetch:
        result = migrate(test_db_session)

    assert result.status == "no_work"
    assert result.batches == []
    assert result.converged
    fetch.assert_not_called()


def test_empty_table_short_circuits(test_db_session):
    result = migrate(test_db_session)
    assert result.status == "no_work"
    assert result.total == 0


@pytest.mark.slow
def test_batches_cover_all_rows_in_order(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_gift_cards(test_db_session, 2500, "reg_fr")

    result = migrate(test_db_session, batch_size=1000)

    assert [b.number for b in result.batches] == [1, 2, 3]
    assert [b.offset for b in result.batches] == [0, 1000, 2000]
    assert [b.fetched for b in result.batches] == [1000, 1000, 500]
    assert result.updated == 2500
    assert result.status == "converged"
    assert set(tax_rates(test_db_session).values()) == {0.2}


def test_gift_cards_take_their_region_tax_rate(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_region(test_db_session, "reg_de", 0.19)
    fr = add_gift_cards(test_db_session, 4, "reg_fr", prefix="fr")
    de = add_gift_cards(test_db_session, 3, "reg_de", prefix="de")

    result = migrate(test_db_session, batch_size=2)

    rates = tax_rates(test_db_session)
    assert all(rates[gc] == 0.2 for gc in fr)
    assert all(rates[gc] == 0.19 for gc in de)
    assert result.status == "converged"
    assert result.unconverged == 0
    assert len(result.batches) == 4


def test_rows_without_a_source_rate_stay_null(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_region(test_db_session, "reg_us", None)
    fr = add_gift_cards(test_db_session, 2, "reg_fr", prefix="fr")
    us = add_gift_cards(test_db_session, 3, "reg_us", prefix="us")
    orphans = add_gift_cards(test_db_session, 2, None, prefix="orphan")

    result = migrate(test_db_session, batch_size=10)

    rates = tax_rates(test_db_session)
    assert all(rates[gc] == 0.2 for gc in fr)
    assert all(rates[gc] is None for gc in us + orphans)
    assert result.status == "partial"
    assert not result.converged
    assert result.unconverged == 5
    assert result.updated == 2
    assert result.skipped == 3


def test_skipped_rows_do_not_hide_later_rows(test_db_session):
    # Null-rate rows sort first and stay null; paging must still reach the rest
    add_region(test_db_session, "reg_a", None)
    add_region(test_db_session, "reg_b", 0.07)
    add_gift_cards(test_db_session, 5, "reg_a", prefix="a")
    b = add_gift_cards(test_db_session, 5, "reg_b", prefix="b")

    result = migrate(test_db_session, batch_size=2)

    rates = tax_rates(test_db_session)
    assert all(rates[gc] == 0.07 for gc in b)
    assert result.updated == 5
    assert result.unconverged == 5


def test_second_run_is_a_no_op(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_gift_cards(test_db_session, 3, "reg_fr", prefix="fr")
    already_set = add_gift_cards(test_db_session, 2, "reg_fr", prefix="set", tax_rate=0.05)

    first = migrate(test_db_session)
    test_db_session.commit()
    before = tax_rates(test_db_session)

    second = migrate(test_db_session)
    test_db_session.commit()

    assert first.status == "converged"
    assert second.status == "no_work"
    assert tax_rates(test_db_session) == before
    assert all(before[gc] == 0.05 for gc in already_set)


def test_dry_run_writes_nothing(test_db_session):
    add_region(test_db_session, "reg_fr", 0.2)
    add_gift_cards(test_db_session, 3, "reg_fr")
    add_gift_cards(test_db_session, 1, None, prefix="orphan")

    result = migrate(test_db_session, batch_size=2, dry_run=True)

    assert result.dry_run
    assert result.updated == 3
    assert result.unconverged == 1
    assert result.status == "partial"
    assert set(tax_rates(test_db_session).values()) == {None}


def test_batch_size_must_be_positive(test_db_session):
    with pytest.raises(ValueError):
        migrate(test_db_session, batch_size=0)


def test_partial_run_logs_guidance(test_db_session):
    add_region(test_db_session, "reg_us", None)
    add_gift_cards(test_db_session, 2, "reg_us")

    with patch("backfills.gift_card_tax_rate.log") as mock_log:
        migrate(test_db_session)

    mock_log.bind.assert_called_once_with(migration=MIGRATION_NAME, dry_run=False)
    calls = mock_log.bind.return_value.info.call_args_list
    events = [c.args[0] for c in calls]
    assert events[0] == BusinessEvents.BACKFILL_STARTED
    assert events[-1] == BusinessEvents.BACKFILL_PARTIAL
    assert calls[-1].kwargs["unconverged"] == 2
    assert len(calls[-1].kwargs["hints"]) == 5


def test_run_commits_once(test_db_engine, mock_settings):
    Session = sessionmaker(bind=test_db_engine)
    with Session() as session:
        add_region(session, "reg_fr", 0.2)
        add_gift_cards(session, 3, "reg_fr")

    result = run(mock_settings, batch_size=2, engine=test_db_engine)

    assert result.status == "converged"
    with Session() as session:
        assert set(tax_rates(session).values()) == {0.2}


def test_run_rolls_back_everything_on_failure(test_db_engine, mock_settings):
    Session = sessionmaker(bind=test_db_engine)
    with Session() as session:
        add_region(session, "reg_fr", 0.2)
        add_gift_cards(session, 3, "reg_fr")

    # The final re-count fails after every batch has been applied
    with patch(
        "backfills.gift_card_tax_rate.count_missing_tax_rates",
        side_effect=[3, RuntimeError("connection lost")],
    ):
        with pytest.raises(RuntimeError, match="connection lost"):
            run(mock_settings, batch_size=1, engine=test_db_engine)

    with Session() as session:
        assert set(tax_rates(session).values()) == {None}


def test_run_dry_run_leaves_database_untouched(test_db_engine, mock_settings):
    Session = sessionmaker(bind=test_db_engine)
    with Session() as session:
        add_region(session, "reg_fr", 0.2)
        add_gift_cards(session, 2, "reg_fr")

    result = run(mock_settings, dry_run=True, engine=test_db_engine)

    assert result.updated == 2
    with Session() as session:
        assert set(tax_rates(session).values()) == {None}


def test_main_exits_zero_on_partial_convergence(mock_settings, span_exporter):
    partial = BackfillResult(status="partial", total=5, updated=3, unconverged=2)
    with patch("backfills.gift_card_tax_rate.run", return_value=partial) as mock_run:
        code = main(["--batch-size", "10"], settings=mock_settings)

    assert code == 0
    mock_run.assert_called_once_with(
        mock_settings, batch_size=10, dry_run=False, tracer=ANY
    )


def test_main_passes_dry_run_flag(mock_settings, span_exporter):
    with patch(
        "backfills.gift_card_tax_rate.run",
        return_value=BackfillResult(status="no_work"),
    ) as mock_run:
        assert main(["--dry-run"], settings=mock_settings) == 0

    assert mock_run.call_args.kwargs["dry_run"] is True


def test_main_exits_non_zero_on_error(mock_settings, span_exporter):
    # A fresh in-memory database has no gift_cards table
    with patch("backfills.gift_card_tax_rate.log") as mock_log:
        code = main([], settings=mock_settings)

    assert code == 1
    assert mock_log.error.call_args.args[0] == BusinessEvents.BACKFILL_FAILED


def file_settings(tmp_path, **overrides) -> Settings:
    return Settings(
        db=DatabaseSettings(URL=f"sqlite:///{tmp_path / 'storefront.db'}"),
        **overrides,
    )


def seed_file_database(settings: Settings, cards: int):
    engine = create_engine(settings.db.url_string)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    with Session() as session:
        add_region(session, "reg_fr", 0.2)
        add_gift_cards(session, cards, "reg_fr")
    engine.dispose()


def test_main_records_run_and_batch_spans(tmp_path, span_exporter):
    settings = file_settings(tmp_path)
    seed_file_database(settings, 3)

    assert main(["--batch-size", "2"], settings=settings) == 0

    spans = span_exporter.get_finished_spans()
    run_spans = [s for s in spans if s.name == "backfill.run"]
    batch_spans = [s for s in spans if s.name == "backfill.batch"]
    assert len(run_spans) == 1
    assert run_spans[0].attributes["records"] == 3
    assert [s.attributes["batch"] for s in batch_spans] == [1, 2]
    assert all(s.parent.span_id == run_spans[0].context.span_id for s in batch_spans)


def test_main_shuts_down_tracer_provider(mock_settings):
    with (
        patch("backfills.gift_card_tax_rate.init_tracer") as mock_init,
        patch(
            "backfills.gift_card_tax_rate.run",
            side_effect=RuntimeError("connection lost"),
        ),
    ):
        assert main([], settings=mock_settings) == 1

    mock_init.return_value.shutdown.assert_called_once()


def test_main_pushes_metrics_when_gateway_configured(tmp_path, span_exporter):
    settings = file_settings(tmp_path, PROMETHEUS_PUSHGATEWAY_URL="pushgateway:9091")
    seed_file_database(settings, 2)

    with patch("backfills.gift_card_tax_rate.push_metrics") as mock_push:
        assert main([], settings=settings) == 0

    mock_push.assert_called_once_with("pushgateway:9091", job=MIGRATION_NAME)


def test_main_skips_push_without_gateway(mock_settings, span_exporter):
    with (
        patch(
            "backfills.gift_card_tax_rate.run",
            return_value=BackfillResult(status="no_work"),
        ),
        patch("backfills.gift_card_tax_rate.push_metrics") as mock_push,
    ):
        assert main([], settings=mock_settings) == 0

    mock_push.assert_not_called()
