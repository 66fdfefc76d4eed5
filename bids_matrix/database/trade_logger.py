"""Trade Logger — append-only execution records with PostgreSQL persistence.

Every automaton writes exactly one TradeLogEntry when it reaches a terminal
state. Entries stay in memory; when a DSN is configured they are also written
to the `trade_logs` table, either live (after start()) or in one batch via
flush_to_db_sync().
"""

from __future__ import annotations

import logging
from collections import Counter

from bids_matrix.core.data_types import TradeLogEntry
from bids_matrix.core.types import TradeLogStatus

logger = logging.getLogger(__name__)

INSERT_TRADE_LOG = """
    INSERT INTO trade_logs (
        symbol, quantity, status, entry_price,
        take_profit_price, stop_loss_price,
        parent_order_id, tp_order_id, sl_order_id,
        attempts, filled_quantity, reason, executed_at_ns
    ) VALUES (
        %(symbol)s, %(quantity)s, %(status)s, %(entry_price)s,
        %(take_profit_price)s, %(stop_loss_price)s,
        %(parent_order_id)s, %(tp_order_id)s, %(sl_order_id)s,
        %(attempts)s, %(filled_quantity)s, %(reason)s, %(executed_at_ns)s
    )
"""


class TradeLogger:
    """Append-only trade log.

    Falls back to in-memory storage when PostgreSQL is unavailable.
    """

    def __init__(self, dsn: str | None = None) -> None:
        self._dsn = dsn or None
        self._conn = None
        self._entries: list[TradeLogEntry] = []
        self._unpersisted: list[TradeLogEntry] = []

    @property
    def entries(self) -> list[TradeLogEntry]:
        return list(self._entries)

    @property
    def pending(self) -> list[TradeLogEntry]:
        """Entries not yet written to PostgreSQL, in log order."""
        return list(self._unpersisted)

    def __len__(self) -> int:
        return len(self._entries)

    async def start(self) -> None:
        """Open an async connection for live writes."""
        if self._dsn:
            try:
                import psycopg
                self._conn = await psycopg.AsyncConnection.connect(self._dsn)
                logger.info("TradeLogger connected to PostgreSQL")
            except Exception:
                logger.warning("Could not connect to PostgreSQL — using in-memory storage")
                self._conn = None

    async def stop(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def log(self, entry: TradeLogEntry) -> None:
        """Append an entry (non-blocking, memory only)."""
        self._entries.append(entry)
        self._unpersisted.append(entry)
        logger.info(
            "Trade log: %s %s qty=%d entry=%.2f attempts=%d%s",
            entry.symbol, entry.status.value, entry.quantity, entry.entry_price,
            entry.attempts, f" ({entry.reason})" if entry.reason else "",
        )

    async def record(self, entry: TradeLogEntry) -> None:
        """Append an entry and write it through when connected."""
        self.log(entry)
        if self._conn:
            await self._write_entry(entry)

    async def _write_entry(self, entry: TradeLogEntry) -> None:
        try:
            async with self._conn.cursor() as cur:
                await cur.execute(INSERT_TRADE_LOG, entry.to_record())
            await self._conn.commit()
            self._unpersisted = [e for e in self._unpersisted if e is not entry]
        except Exception:
            logger.exception("Failed to write trade log for %s to PostgreSQL", entry.symbol)

    def flush_to_db_sync(self) -> int:
        """Synchronously write entries not yet persisted.

        Returns number of records written.
        """
        pending = list(self._unpersisted)
        if not self._dsn:
            logger.info("No DSN — skipping DB flush (%d entries in memory)", len(self._entries))
            return 0
        if not pending:
            return 0

        count = 0
        try:
            import psycopg
            with psycopg.connect(self._dsn) as conn:
                with conn.cursor() as cur:
                    for entry in pending:
                        cur.execute(INSERT_TRADE_LOG, entry.to_record())
                        count += 1
                conn.commit()
            written = {id(e) for e in pending}
            self._unpersisted = [e for e in self._unpersisted if id(e) not in written]
            logger.info("Flushed %d trade logs to PostgreSQL", count)
        except Exception:
            logger.exception("Failed to flush trade logs to PostgreSQL")
            return 0
        return count

    def get_trade_summary(self) -> dict:
        """Counts by status and filling rate."""
        if not self._entries:
            return {"total": 0, "by_status": {}, "filling_rate": 0.0, "avg_attempts": 0.0}

        by_status = Counter(e.status.value for e in self._entries)
        live = [e for e in self._entries if e.status != TradeLogStatus.DRY_RUN]
        filling = by_status.get(TradeLogStatus.FILLING.value, 0)
        return {
            "total": len(self._entries),
            "by_status": dict(by_status),
            "filling_rate": round(filling / len(live) * 100, 1) if live else 0.0,
            "avg_attempts": round(sum(e.attempts for e in self._entries) / len(self._entries), 2),
            "symbols": sorted({e.symbol for e in self._entries}),
        }

    def clear(self) -> None:
        self._entries = []
        self._unpersisted = []
