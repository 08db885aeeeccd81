"""Dataclasses representing stored scan and execution records."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class ScanCycleRecord:
    id: int
    started_at: datetime
    finished_at: Optional[datetime]
    block_number: Optional[int]
    pairs: list[str]
    opportunities_found: int
    executions_attempted: int


@dataclass(slots=True)
class ExecutionRecord:
    id: int
    scan_cycle_id: Optional[int]
    recorded_at: datetime
    pair: str
    route: str
    outcome: str
    amount_in: int
    profit_bps: int
    expected_profit: int
    live_expected_profit: Optional[int]
    realized_profit: Optional[int]
    tx_hash: Optional[str]
    block_number: Optional[int]
    gas_used: Optional[int]
    reason: Optional[str]
