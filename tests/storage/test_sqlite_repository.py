from datetime import datetime, timedelta, timezone

import pytest

from storage import SQLiteRepository


@pytest.mark.asyncio
async def test_persist_scan_cycle_and_execution(tmp_path):
    db_path = tmp_path / "test.db"
    repository = SQLiteRepository(db_path=db_path)

    scan_id = await repository.record_scan_cycle_start(["WETH/USDC", "WETH/DAI"], 19_000_000)
    assert isinstance(scan_id, int)

    record_id = await repository.record_execution(
        scan_cycle_id=scan_id,
        pair="WETH/USDC",
        route="Uniswap V2 -> Sushiswap",
        outcome="success",
        amount_in=10**18,
        profit_bps=160,
        expected_profit=16040000000000000,
        live_expected_profit=16040000000000000,
        realized_profit=14000000000000000,
        tx_hash="0xabc",
        block_number=19_000_001,
        gas_used=210_000,
    )

    await repository.record_scan_cycle_finish(scan_id, 1, 1)

    records = await repository.fetch_recent_executions()
    assert len(records) == 1
    record = records[0]
    assert record.id == record_id
    assert record.scan_cycle_id == scan_id
    assert record.realized_profit == 14000000000000000
    assert record.reason is None

    cycle = await repository.fetch_scan_cycle(scan_id)
    assert cycle.pairs == ["WETH/USDC", "WETH/DAI"]
    assert cycle.block_number == 19_000_000
    assert cycle.finished_at is not None
    assert cycle.opportunities_found == 1
    assert cycle.executions_attempted == 1

    await repository.close()


@pytest.mark.asyncio
async def test_amounts_beyond_sqlite_integer_range_survive(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "big.db")
    huge = 2**200

    await repository.record_execution(
        scan_cycle_id=None,
        pair="WETH/DAI",
        route="Sushiswap -> Uniswap V2",
        outcome="skipped",
        amount_in=huge,
        profit_bps=90,
        expected_profit=huge - 1,
        reason="Insufficient profit after slippage",
    )

    record = (await repository.fetch_recent_executions())[0]
    assert record.amount_in == huge
    assert record.expected_profit == huge - 1
    assert record.live_expected_profit is None
    await repository.close()


@pytest.mark.asyncio
async def test_fetch_filters_and_orders_newest_first(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "filters.db")
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    for minutes, pair, outcome in (
        (0, "WETH/USDC", "success"),
        (1, "WETH/DAI", "reverted"),
        (2, "WETH/USDC", "skipped"),
    ):
        await repository.record_execution(
            scan_cycle_id=None,
            pair=pair,
            route="A -> B",
            outcome=outcome,
            amount_in=10**18,
            profit_bps=100,
            expected_profit=10**16,
            recorded_at=start + timedelta(minutes=minutes),
        )

    usdc = await repository.fetch_recent_executions(pair="weth/usdc")
    assert [record.outcome for record in usdc] == ["skipped", "success"]

    reverted = await repository.fetch_recent_executions(outcome="reverted")
    assert [record.pair for record in reverted] == ["WETH/DAI"]

    latest = await repository.fetch_recent_executions(limit=1)
    assert latest[0].outcome == "skipped"
    await repository.close()


@pytest.mark.asyncio
async def test_unknown_scan_cycle_is_none(tmp_path):
    repository = SQLiteRepository(db_path=tmp_path / "empty.db")
    assert await repository.fetch_scan_cycle(42) is None
    await repository.close()
