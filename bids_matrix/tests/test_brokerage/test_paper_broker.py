"""Tests for PaperBroker — scripted fills, rejections, audit trail."""

import pytest

from bids_matrix.brokerage.gateway import BrokerageGateway, MarketDataProvider
from bids_matrix.brokerage.paper_broker import PaperBroker
from bids_matrix.core.errors import BracketPlacementFailed, OrderPlacementFailed


class TestPaperBroker:
    def test_implements_protocols(self):
        broker = PaperBroker()
        assert isinstance(broker, BrokerageGateway)
        assert isinstance(broker, MarketDataProvider)

    @pytest.mark.asyncio
    async def test_default_fill_on_first_attempt(self):
        broker = PaperBroker()
        order_id = await broker.place_limit_buy("XYZ", 10, 100.1)
        status = await broker.get_order_status(order_id)
        assert status.status == "Filled"
        assert status.filled_qty == 10
        assert status.avg_fill_price == 100.1

    @pytest.mark.asyncio
    async def test_fill_plan_partial(self):
        broker = PaperBroker(fill_plans={"XYZ": {2: 3}})
        first = await broker.place_limit_buy("XYZ", 10, 100.1)
        assert (await broker.get_order_status(first)).filled_qty == 0
        await broker.cancel_order(first)
        assert (await broker.get_order_status(first)).status == "Cancelled"
        second = await broker.place_limit_buy("XYZ", 10, 100.1)
        status = await broker.get_order_status(second)
        assert status.status == "PartiallyFilled"
        assert status.remaining_qty == 7

    @pytest.mark.asyncio
    async def test_never_fills(self, broker):
        order_id = await broker.place_limit_buy("XYZ", 10, 100.1)
        assert (await broker.get_order_status(order_id)).status == "Submitted"

    @pytest.mark.asyncio
    async def test_rejections(self):
        broker = PaperBroker(reject_orders={"BAD"}, reject_brackets={"XYZ"})
        with pytest.raises(OrderPlacementFailed):
            await broker.place_limit_buy("BAD", 10, 10.0)
        with pytest.raises(OrderPlacementFailed):
            await broker.place_limit_buy("XYZ", 0, 10.0)
        with pytest.raises(BracketPlacementFailed):
            await broker.place_bracket_exit("XYZ", 10, 10.0, 1.0, 3.0)
        assert broker.orders == []

    @pytest.mark.asyncio
    async def test_bracket_is_oca_pair(self):
        broker = PaperBroker()
        ids = await broker.place_bracket_exit("XYZ", 10, 100.0, 1.0, 3.0)
        assert ids.tp_order_id != ids.sl_order_id
        placed = broker.brackets[0]
        assert placed.bracket.take_profit.price == 101.0
        assert placed.bracket.stop_loss.price == 97.0
        assert placed.bracket.oca_group == "OCA_XYZ"

    @pytest.mark.asyncio
    async def test_market_data(self, sample_path):
        broker = PaperBroker(live_prices={"XYZ": 10.5})
        broker.add_price_path(sample_path)
        assert await broker.fetch_live_price("XYZ") == 10.5
        assert await broker.fetch_live_price("NONE") is None
        assert await broker.fetch_price_path("XYZ", sample_path.day) is sample_path
        broker.set_live_price("XYZ", None)
        assert await broker.fetch_live_price("XYZ") is None

    @pytest.mark.asyncio
    async def test_portfolio_value(self):
        assert await PaperBroker(portfolio_value=None).get_portfolio_value() is None
        assert await PaperBroker().get_portfolio_value() == 100_000.0
