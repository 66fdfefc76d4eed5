"""Tests for OrderAutomaton — exhaustion, fill on retry, failures, events."""

import pytest

from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.config.config_manager import ExecutionConfig
from bids_matrix.core.data_types import OrderIntent
from bids_matrix.core.event_bus import EventBus
from bids_matrix.core.types import AutomatonState, EventType, TradeLogStatus
from bids_matrix.execution.order_automaton import OrderAutomaton

INTENT = OrderIntent(symbol="XYZ", quantity=10, reference_price=100.0)


def make_automaton(broker, exec_config, trade_logger, zero_sleep, event_bus=None, intent=INTENT):
    return OrderAutomaton(
        intent,
        gateway=broker,
        provider=broker,
        config=exec_config,
        trade_logger=trade_logger,
        event_bus=event_bus,
        sleep=zero_sleep,
    )


class TestOrderAutomaton:
    @pytest.mark.asyncio
    async def test_exhausted_after_max_attempts(self, broker, exec_config, trade_logger, zero_sleep):
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        entry = await automaton.run()

        assert automaton.state == AutomatonState.EXHAUSTED
        assert entry.status == TradeLogStatus.EXHAUSTED
        assert entry.attempts == exec_config.max_attempts
        assert len(broker.orders_for("XYZ")) == exec_config.max_attempts
        assert len(broker.cancelled) == exec_config.max_attempts
        assert broker.brackets == []
        assert trade_logger.entries == [entry]

    @pytest.mark.asyncio
    async def test_limit_prices_follow_buffer_tiers(self, broker, exec_config, trade_logger, zero_sleep):
        await make_automaton(broker, exec_config, trade_logger, zero_sleep).run()
        prices = [o.limit_price for o in broker.orders_for("XYZ")]
        assert prices == [100.1] * 4 + [100.3] * 3 + [100.5] * 3

    @pytest.mark.asyncio
    async def test_fill_on_attempt_3(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, fill_plans={"XYZ": {3: 4}})
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        entry = await automaton.run()

        assert automaton.state == AutomatonState.ACTIVE
        assert entry.status == TradeLogStatus.FILLING
        assert entry.attempts == 3
        assert entry.filled_quantity == 4
        # No order after attempt 3, and the partially filled order is kept
        orders = broker.orders_for("XYZ")
        assert len(orders) == 3
        assert len(broker.cancelled) == 2
        assert not orders[-1].cancelled
        # Exactly one bracket around the filling order's limit price
        assert len(broker.brackets) == 1
        bracket = broker.brackets[0]
        assert bracket.entry_price == 100.1
        assert bracket.quantity == 10
        assert entry.tp_order_id == bracket.ids.tp_order_id
        assert entry.take_profit_price == pytest.approx(101.1)
        assert entry.stop_loss_price == pytest.approx(97.1)
        assert entry.parent_order_id == orders[-1].order_id

    @pytest.mark.asyncio
    async def test_one_outstanding_order(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, fill_plans={"XYZ": {6: 10}})
        await make_automaton(broker, exec_config, trade_logger, zero_sleep).run()
        assert broker.max_outstanding("XYZ") == 1

    @pytest.mark.asyncio
    async def test_waits(self, broker, trade_logger, zero_sleep):
        cfg = ExecutionConfig(max_attempts=2, wait_seconds=10.0, cancel_pause_seconds=1.0)
        await make_automaton(broker, cfg, trade_logger, zero_sleep).run()
        assert zero_sleep.waits == [10.0, 1.0, 10.0, 1.0]

    @pytest.mark.asyncio
    async def test_placement_failure(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, reject_orders={"XYZ"})
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        entry = await automaton.run()

        assert automaton.state == AutomatonState.FAILED
        assert entry.status == TradeLogStatus.FAILED
        assert entry.attempts == 1
        assert "rejected" in entry.reason
        assert broker.orders == []

    @pytest.mark.asyncio
    async def test_bracket_failure_still_filling(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, reject_brackets={"XYZ"})
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        entry = await automaton.run()

        assert automaton.state == AutomatonState.ACTIVE
        assert entry.status == TradeLogStatus.FILLING
        assert entry.tp_order_id is None and entry.sl_order_id is None
        assert "Bracket placement failed" in entry.reason
        assert broker.cancelled == []

    @pytest.mark.asyncio
    async def test_live_price_fallback(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={})
        intent = OrderIntent(symbol="XYZ", quantity=10, reference_price=50.0)
        await make_automaton(broker, exec_config, trade_logger, zero_sleep, intent=intent).run()
        assert broker.orders_for("XYZ")[0].limit_price == 50.05

    @pytest.mark.asyncio
    async def test_transitions(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, fill_plans={"XYZ": {2: 10}})
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        seen = []
        automaton.register_transition_callback(lambda old, new: seen.append(new))
        await automaton.run()
        assert seen == [
            AutomatonState.QUOTING, AutomatonState.OBSERVING, AutomatonState.RETRYING,
            AutomatonState.QUOTING, AutomatonState.OBSERVING, AutomatonState.FILLING,
            AutomatonState.ACTIVE,
        ]

    @pytest.mark.asyncio
    async def test_events_published(self, exec_config, trade_logger, zero_sleep):
        broker = PaperBroker(live_prices={"XYZ": 100.0}, fill_plans={"XYZ": {2: 10}})
        bus = EventBus()
        await make_automaton(broker, exec_config, trade_logger, zero_sleep, event_bus=bus).run()
        types = [e.type for e in bus.history]
        assert types == [
            EventType.ORDER_PLACED, EventType.ORDER_CANCELLED,
            EventType.ORDER_PLACED, EventType.ORDER_FILLING, EventType.BRACKET_ATTACHED,
        ]
        assert all(e.payload["symbol"] == "XYZ" for e in bus.history)

    @pytest.mark.asyncio
    async def test_run_is_idempotent_once_terminal(self, broker, exec_config, trade_logger, zero_sleep):
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        first = await automaton.run()
        second = await automaton.run()
        assert first is second
        assert len(trade_logger) == 1

    @pytest.mark.asyncio
    async def test_terminal_state_is_final(self, broker, exec_config, trade_logger, zero_sleep):
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        await automaton.run()
        with pytest.raises(RuntimeError):
            automaton.transition_to(AutomatonState.QUOTING)

    @pytest.mark.asyncio
    async def test_bracket_call_raising_keeps_filled_entry(self, exec_config, trade_logger, zero_sleep):
        class BracketCrashBroker(PaperBroker):
            async def place_bracket_exit(self, *args, **kwargs):
                raise ConnectionResetError("gateway dropped")

        broker = BracketCrashBroker(live_prices={"XYZ": 100.0}, fill_plans={"XYZ": {1: 4}})
        automaton = make_automaton(broker, exec_config, trade_logger, zero_sleep)
        entry = await automaton.run()

        assert automaton.state == AutomatonState.ACTIVE
        assert entry.status == TradeLogStatus.FILLING
        assert entry.filled_quantity == 4
        assert entry.entry_price == pytest.approx(100.1)
        assert entry.parent_order_id == broker.orders_for("XYZ")[0].order_id
        assert entry.take_profit_price > entry.entry_price > entry.stop_loss_price
        assert "gateway dropped" in entry.reason
        assert broker.cancelled == []
