"""Trading Session — selection, fan-out of automatons, join and summary.

One automaton per intent, all launched together with asyncio.gather. Each
automaton is wrapped so that an unexpected collaborator error becomes a FAILED
entry for that symbol only.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from bids_matrix.config.config_manager import ExecutionConfig, SelectionConfig
from bids_matrix.core.data_types import Event, OrderIntent, Recommendation, TradeLogEntry, WindowStats
from bids_matrix.core.errors import NoDataForWindow
from bids_matrix.core.event_bus import EventBus
from bids_matrix.core.types import EventType, TradeLogStatus
from bids_matrix.database.trade_logger import TradeLogger
from bids_matrix.execution.execution_manager import ExecutionManager
from bids_matrix.execution.order_automaton import OrderAutomaton, SleepFn
from bids_matrix.risk.candidate_selector import CandidateSelector
from bids_matrix.risk.equity_aggregator import RiskSummary, summarize_returns
from bids_matrix.strategy.outcome_model import evaluate
from bids_matrix.structure.excursion_calculator import ExcursionCalculator

logger = logging.getLogger(__name__)


@dataclass
class SessionReport:
    """Outcome of one trading session."""

    intents: list[OrderIntent]
    entries: list[TradeLogEntry] = field(default_factory=list)
    dry_run: bool = False
    aborted_reason: str = ""
    take_profit_pct: float = 0.0
    stop_loss_pct: float = 0.0
    risk: RiskSummary | None = None

    @property
    def by_status(self) -> dict[str, int]:
        return dict(Counter(e.status.value for e in self.entries))

    @property
    def filling(self) -> list[TradeLogEntry]:
        return [e for e in self.entries if e.status == TradeLogStatus.FILLING]

    @property
    def capital_committed(self) -> float:
        return sum(e.entry_price * e.quantity for e in self.filling)

    @property
    def max_planned_gain(self) -> float:
        return sum((e.take_profit_price - e.entry_price) * e.quantity for e in self.filling)

    @property
    def max_planned_loss(self) -> float:
        return sum((e.entry_price - e.stop_loss_price) * e.quantity for e in self.filling)

    def risk_summary(self, returns: Iterable[float]) -> RiskSummary:
        """Aggregate realised per-trade returns and keep them on the report."""
        self.risk = summarize_returns(returns)
        return self.risk

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "aborted_reason": self.aborted_reason,
            "intents": [
                {"symbol": i.symbol, "quantity": i.quantity, "reference_price": i.reference_price}
                for i in self.intents
            ],
            "entries": [e.to_record() for e in self.entries],
            "by_status": self.by_status,
            "capital_committed": round(self.capital_committed, 2),
            "max_planned_gain": round(self.max_planned_gain, 2),
            "max_planned_loss": round(self.max_planned_loss, 2),
            "risk": self.risk.to_dict() if self.risk else None,
        }


def dedupe_intents(intents: Iterable[OrderIntent]) -> list[OrderIntent]:
    """Keep the first intent per symbol."""
    seen: set[str] = set()
    unique = []
    for intent in intents:
        if intent.symbol in seen:
            logger.warning("Dropping duplicate intent for %s", intent.symbol)
            continue
        seen.add(intent.symbol)
        unique.append(intent)
    return unique


class TradingSession:
    """Runs one day's selection and execution."""

    def __init__(
        self,
        gateway,
        provider,
        selection: SelectionConfig | None = None,
        execution: ExecutionConfig | None = None,
        trade_logger: TradeLogger | None = None,
        event_bus: EventBus | None = None,
        sleep: SleepFn = asyncio.sleep,
        calculator: ExcursionCalculator | None = None,
    ) -> None:
        self._gateway = gateway
        self._provider = provider
        self._selection = selection or SelectionConfig()
        self._execution = execution or ExecutionConfig()
        self._trade_logger = trade_logger if trade_logger is not None else TradeLogger()
        self._event_bus = event_bus
        self._sleep = sleep
        self._calculator = calculator or ExcursionCalculator()
        self._selector = CandidateSelector(self._selection, self._calculator)
        self._manager = ExecutionManager(self._execution)

    @property
    def trade_logger(self) -> TradeLogger:
        return self._trade_logger

    async def select(self, recs: list[Recommendation]) -> list[OrderIntent]:
        portfolio_value = await self._gateway.get_portfolio_value()
        logger.info("Portfolio value: %s", portfolio_value)
        return await self._selector.select(recs, self._provider, portfolio_value)

    def make_automaton(self, intent: OrderIntent) -> OrderAutomaton:
        return OrderAutomaton(
            intent,
            gateway=self._gateway,
            provider=self._provider,
            config=self._execution,
            trade_logger=self._trade_logger,
            event_bus=self._event_bus,
            execution_manager=self._manager,
            sleep=self._sleep,
        )

    async def _run_isolated(self, automaton: OrderAutomaton) -> TradeLogEntry:
        try:
            return await automaton.run()
        except Exception as e:
            logger.exception("Automaton for %s crashed", automaton.intent.symbol)
            return await automaton.fail(f"unexpected error: {e}")

    async def execute(self, intents: list[OrderIntent], dry_run: bool = False) -> list[TradeLogEntry]:
        """Fan out one automaton per symbol and wait for all terminal states."""
        intents = dedupe_intents(intents)
        if dry_run:
            return [self._dry_run_entry(intent) for intent in intents]

        automatons = [self.make_automaton(intent) for intent in intents]
        entries = await asyncio.gather(*(self._run_isolated(a) for a in automatons))
        return list(entries)

    def _dry_run_entry(self, intent: OrderIntent) -> TradeLogEntry:
        limit = self._manager.limit_price(intent.reference_price, 1)
        tp_price, sl_price = self._manager.bracket_prices(limit)
        entry = TradeLogEntry(
            symbol=intent.symbol,
            quantity=intent.quantity,
            status=TradeLogStatus.DRY_RUN,
            entry_price=limit,
            take_profit_price=tp_price,
            stop_loss_price=sl_price,
            reason="dry run",
        )
        self._trade_logger.log(entry)
        return entry

    async def run(
        self,
        recs: list[Recommendation],
        dry_run: bool = False,
        force: bool = False,
    ) -> SessionReport:
        """Select and execute. Live runs require execution.enabled (or force)."""
        report = SessionReport(
            intents=[],
            dry_run=dry_run,
            take_profit_pct=self._execution.take_profit_pct,
            stop_loss_pct=self._execution.stop_loss_pct,
        )
        if not dry_run and not (self._execution.enabled or force):
            report.aborted_reason = "trading disabled"
            logger.warning("Trading disabled in config — nothing executed (use force or dry run)")
            return report

        report.intents = await self.select(recs)
        if not report.intents:
            report.aborted_reason = "no candidates"
            logger.info("No order intents — session ends")
            return report

        report.entries = await self.execute(report.intents, dry_run=dry_run)
        logger.info("Session complete: %s", report.by_status)

        if self._event_bus is not None:
            await self._event_bus.publish(Event(
                type=EventType.SESSION_COMPLETED,
                timestamp_ns=time.time_ns(),
                source="session",
                payload=report.by_status,
            ))
        return report

    async def realise(self, report: SessionReport, day: date) -> RiskSummary | None:
        """Summarise a completed session's filling entries as planned TP/SL outcomes.

        Each entry is replayed from its entry price against the primary window's
        peak and trough for the day. Entries without a price path are skipped.
        """
        filling = report.filling
        if not filling:
            return None

        paths = await asyncio.gather(
            *(self._provider.fetch_price_path(e.symbol, day) for e in filling),
            return_exceptions=True,
        )
        returns = []
        for entry, path in zip(filling, paths):
            if isinstance(path, Exception) or path is None or len(path) == 0:
                logger.warning("No price path for %s on %s, left out of session risk", entry.symbol, day)
                continue
            try:
                stats = self._calculator.compute_window(path, self._calculator.primary_window)
            except NoDataForWindow:
                logger.warning("No %s window for %s on %s", self._calculator.primary_window.name, entry.symbol, day)
                continue
            outcome = evaluate(
                WindowStats(entry.entry_price, stats.peak_high, stats.trough_before_peak),
                report.take_profit_pct,
                report.stop_loss_pct,
            )
            returns.append(outcome.clamped_return_pct)

        summary = report.risk_summary(returns)
        logger.info(
            "Session risk: %d trades, total %.2f%%, max drawdown %.2f%%",
            summary.trade_count, summary.total_return, summary.max_drawdown,
        )
        return summary
