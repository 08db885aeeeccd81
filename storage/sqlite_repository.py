"""SQLite-backed persistence layer for scan cycles and execution results."""
from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from storage.models import ExecutionRecord, ScanCycleRecord

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _serialize_list(values: Iterable[str]) -> str:
    return ",".join(values)


def _int_or_none(value: Optional[str]) -> Optional[int]:
    return int(value) if value is not None else None


def _text_or_none(value: Optional[int]) -> Optional[str]:
    # Token amounts can exceed SQLite's 64-bit INTEGER range.
    return str(value) if value is not None else None


class SQLiteRepository:
    """Provides async-friendly helpers for persisting arbitrage activity."""

    def __init__(self, db_path: Path | str = Path("data/arbitrage_history.db")) -> None:
        self.db_path = Path(db_path)
        if self.db_path != Path(":memory:"):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._connection = sqlite3.connect(
            str(self.db_path),
            detect_types=sqlite3.PARSE_DECLTYPES,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._configure()
        self._create_schema()

    def _configure(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.DatabaseError:
                pass
            cursor.execute("PRAGMA foreign_keys=ON;")
            cursor.close()

    def _create_schema(self) -> None:
        statements = [
            """
            CREATE TABLE IF NOT EXISTS scan_cycle (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                started_at TEXT NOT NULL,
                finished_at TEXT,
                block_number INTEGER,
                pairs TEXT NOT NULL,
                opportunities_found INTEGER NOT NULL DEFAULT 0,
                executions_attempted INTEGER NOT NULL DEFAULT 0
            );
            """,
            """
            CREATE TABLE IF NOT EXISTS execution_record (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                scan_cycle_id INTEGER,
                recorded_at TEXT NOT NULL,
                pair TEXT NOT NULL,
                route TEXT NOT NULL,
                outcome TEXT NOT NULL,
                amount_in TEXT NOT NULL,
                profit_bps INTEGER NOT NULL,
                expected_profit TEXT NOT NULL,
                live_expected_profit TEXT,
                realized_profit TEXT,
                tx_hash TEXT,
                block_number INTEGER,
                gas_used INTEGER,
                reason TEXT,
                FOREIGN KEY (scan_cycle_id) REFERENCES scan_cycle(id) ON DELETE SET NULL
            );
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_execution_record_pair_time
                ON execution_record(pair, recorded_at);
            """,
            """
            CREATE INDEX IF NOT EXISTS idx_execution_record_outcome
                ON execution_record(outcome);
            """,
        ]

        with self._lock:
            cursor = self._connection.cursor()
            for statement in statements:
                cursor.execute(statement)
            self._connection.commit()
            cursor.close()

    async def record_scan_cycle_start(self, pairs: Iterable[str], block_number: Optional[int] = None) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_scan_cycle_start_sync,
            list(pairs),
            block_number,
        )

    def _record_scan_cycle_start_sync(self, pairs: list[str], block_number: Optional[int]) -> int:
        started_at = datetime.now(timezone.utc).strftime(ISO_FORMAT)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO scan_cycle (started_at, block_number, pairs)
                VALUES (?, ?, ?)
                """,
                (started_at, block_number, _serialize_list(pairs)),
            )
            self._connection.commit()
            cycle_id = cursor.lastrowid
            cursor.close()
        return cycle_id

    async def record_scan_cycle_finish(
        self,
        scan_cycle_id: int,
        opportunities_found: int,
        executions_attempted: int = 0,
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            self._record_scan_cycle_finish_sync,
            scan_cycle_id,
            opportunities_found,
            executions_attempted,
        )

    def _record_scan_cycle_finish_sync(
        self,
        scan_cycle_id: int,
        opportunities_found: int,
        executions_attempted: int,
    ) -> None:
        finished_at = datetime.now(timezone.utc).strftime(ISO_FORMAT)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE scan_cycle
                SET finished_at = ?, opportunities_found = ?, executions_attempted = ?
                WHERE id = ?
                """,
                (finished_at, opportunities_found, executions_attempted, scan_cycle_id),
            )
            self._connection.commit()
            cursor.close()

    async def fetch_scan_cycle(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._fetch_scan_cycle_sync, scan_cycle_id)

    def _fetch_scan_cycle_sync(self, scan_cycle_id: int) -> Optional[ScanCycleRecord]:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("SELECT * FROM scan_cycle WHERE id = ?", (scan_cycle_id,))
            row = cursor.fetchone()
            cursor.close()
        if row is None:
            return None
        return ScanCycleRecord(
            id=row["id"],
            started_at=datetime.strptime(row["started_at"], ISO_FORMAT),
            finished_at=datetime.strptime(row["finished_at"], ISO_FORMAT) if row["finished_at"] else None,
            block_number=row["block_number"],
            pairs=row["pairs"].split(",") if row["pairs"] else [],
            opportunities_found=row["opportunities_found"],
            executions_attempted=row["executions_attempted"],
        )

    async def record_execution(
        self,
        *,
        scan_cycle_id: Optional[int],
        pair: str,
        route: str,
        outcome: str,
        amount_in: int,
        profit_bps: int,
        expected_profit: int,
        live_expected_profit: Optional[int] = None,
        realized_profit: Optional[int] = None,
        tx_hash: Optional[str] = None,
        block_number: Optional[int] = None,
        gas_used: Optional[int] = None,
        reason: Optional[str] = None,
        recorded_at: Optional[datetime] = None,
    ) -> int:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._record_execution_sync,
            scan_cycle_id,
            pair,
            route,
            outcome,
            amount_in,
            profit_bps,
            expected_profit,
            live_expected_profit,
            realized_profit,
            tx_hash,
            block_number,
            gas_used,
            reason,
            recorded_at or datetime.now(timezone.utc),
        )

    def _record_execution_sync(
        self,
        scan_cycle_id: Optional[int],
        pair: str,
        route: str,
        outcome: str,
        amount_in: int,
        profit_bps: int,
        expected_profit: int,
        live_expected_profit: Optional[int],
        realized_profit: Optional[int],
        tx_hash: Optional[str],
        block_number: Optional[int],
        gas_used: Optional[int],
        reason: Optional[str],
        recorded_at: datetime,
    ) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO execution_record (
                    scan_cycle_id,
                    recorded_at,
                    pair,
                    route,
                    outcome,
                    amount_in,
                    profit_bps,
                    expected_profit,
                    live_expected_profit,
                    realized_profit,
                    tx_hash,
                    block_number,
                    gas_used,
                    reason
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    scan_cycle_id,
                    recorded_at.strftime(ISO_FORMAT),
                    pair,
                    route,
                    outcome,
                    str(amount_in),
                    profit_bps,
                    str(expected_profit),
                    _text_or_none(live_expected_profit),
                    _text_or_none(realized_profit),
                    tx_hash,
                    block_number,
                    gas_used,
                    reason,
                ),
            )
            record_id = cursor.lastrowid
            self._connection.commit()
            cursor.close()
        return record_id

    async def fetch_recent_executions(
        self,
        *,
        limit: int = 10,
        pair: Optional[str] = None,
        outcome: Optional[str] = None,
    ) -> list[ExecutionRecord]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            self._fetch_recent_executions_sync,
            limit,
            pair.upper() if pair else None,
            outcome,
        )

    def _fetch_recent_executions_sync(
        self,
        limit: int,
        pair: Optional[str],
        outcome: Optional[str],
    ) -> list[ExecutionRecord]:
        query = """
            SELECT * FROM execution_record
            WHERE (? IS NULL OR UPPER(pair) = ?)
              AND (? IS NULL OR outcome = ?)
            ORDER BY recorded_at DESC, id DESC
            LIMIT ?
        """
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(query, (pair, pair, outcome, outcome, limit))
            rows = cursor.fetchall()
            cursor.close()

        records: list[ExecutionRecord] = []
        for row in rows:
            records.append(
                ExecutionRecord(
                    id=row["id"],
                    scan_cycle_id=row["scan_cycle_id"],
                    recorded_at=datetime.strptime(row["recorded_at"], ISO_FORMAT),
                    pair=row["pair"],
                    route=row["route"],
                    outcome=row["outcome"],
                    amount_in=int(row["amount_in"]),
                    profit_bps=row["profit_bps"],
                    expected_profit=int(row["expected_profit"]),
                    live_expected_profit=_int_or_none(row["live_expected_profit"]),
                    realized_profit=_int_or_none(row["realized_profit"]),
                    tx_hash=row["tx_hash"],
                    block_number=row["block_number"],
                    gas_used=row["gas_used"],
                    reason=row["reason"],
                )
            )
        return records

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close_sync)

    def _close_sync(self) -> None:
        with self._lock:
            self._connection.commit()
            self._connection.close()


__all__ = ["SQLiteRepository", "ScanCycleRecord", "ExecutionRecord"]
