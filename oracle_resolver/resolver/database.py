"""SQLite database for resolver state and the resolution audit trail."""

from __future__ import annotations

import aiosqlite
import logging
import time
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/resolver.db"

CREATE_TABLES_SQL = """
-- Markets this resolver has confirmed on-chain
CREATE TABLE IF NOT EXISTS resolved_markets (
    market_id INTEGER PRIMARY KEY,
    outcome TEXT NOT NULL,
    outcome_code INTEGER NOT NULL,
    confidence REAL NOT NULL,
    evidence_hash TEXT NOT NULL,
    tx_hash TEXT NOT NULL,
    block_number INTEGER,
    resolved_at INTEGER NOT NULL
);

-- Every inference, admitted or deferred
CREATE TABLE IF NOT EXISTS resolution_attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp INTEGER NOT NULL,
    market_id INTEGER NOT NULL,
    trigger TEXT,
    outcome TEXT NOT NULL,
    confidence REAL NOT NULL,
    admitted INTEGER NOT NULL DEFAULT 0,
    reasoning TEXT,
    evidence TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_attempts_market ON resolution_attempts(market_id);
CREATE INDEX IF NOT EXISTS idx_attempts_timestamp ON resolution_attempts(timestamp);
"""


class Database:
    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    async def init_schema(self) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            await db.executescript(CREATE_TABLES_SQL)
            await db.commit()

    async def reset(self) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("DROP TABLE IF EXISTS resolved_markets")
            await db.execute("DROP TABLE IF EXISTS resolution_attempts")
            await db.commit()
        await self.init_schema()

    # ── Resolved markets ─────────────────────────────────────────────

    async def record_resolution(
        self,
        market_id: int,
        *,
        outcome: str,
        outcome_code: int,
        confidence: float,
        evidence_hash: str,
        tx_hash: str,
        block_number: Optional[int],
    ) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT OR REPLACE INTO resolved_markets
                    (market_id, outcome, outcome_code, confidence,
                     evidence_hash, tx_hash, block_number, resolved_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    market_id, outcome, outcome_code, confidence,
                    evidence_hash, tx_hash, block_number, int(time.time()),
                ),
            )
            await db.commit()

    async def get_resolved_market_ids(self) -> set[int]:
        async with aiosqlite.connect(self.db_path) as db:
            async with db.execute("SELECT market_id FROM resolved_markets") as cursor:
                rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def get_resolution(self, market_id: int) -> Optional[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM resolved_markets WHERE market_id = ?", (market_id,)
            ) as cursor:
                row = await cursor.fetchone()
        return dict(row) if row else None

    # ── Attempts ─────────────────────────────────────────────────────

    async def record_attempt(
        self,
        market_id: int,
        *,
        trigger: str,
        outcome: str,
        confidence: float,
        admitted: bool,
        reasoning: str = "",
        evidence: Optional[str] = None,
    ) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO resolution_attempts
                    (timestamp, market_id, trigger, outcome, confidence,
                     admitted, reasoning, evidence)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    int(time.time()), market_id, trigger, outcome, confidence,
                    int(admitted), reasoning, evidence,
                ),
            )
            await db.commit()

    async def get_attempts(self, market_id: int) -> list[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM resolution_attempts WHERE market_id = ? ORDER BY id",
                (market_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [dict(r) for r in rows]
