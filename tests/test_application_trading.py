"""
Tests for the trading application layer (use cases).

Use cases are wired exactly as the API wires them, on an in-memory
SQLite database, with a fixed clock during New York market hours.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from app.application.trading.dtos import (
    CreatePortfolioCommand,
    ExecuteTradeCommand,
    MarketTickCommand,
    PlaceBracketOrderCommand,
    PlaceOrderCommand,
)
from app.core.config import settings
from app.domain.trading.entities import (
    OrderSide,
    OrderStatus,
    OrderType,
    StockQuote,
    TimeInForce,
)
from app.domain.trading.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    MarketClosedError,
    OrderNotCancellableError,
    OrderNotFoundError,
    PatternDayTradeError,
    PortfolioNotFoundError,
    RiskLimitExceededError,
    SymbolNotFoundError,
)
from app.infrastructure.trading.order_repository import OrderRepositoryAdapter
from app.infrastructure.trading.portfolio_repository import PortfolioRepositoryAdapter
from app.infrastructure.trading.snapshot_repository import SnapshotRepositoryAdapter
from app.infrastructure.trading.stock_quote_repository import StockQuoteRepositoryAdapter
from app.interfaces.trading.dependencies import (
    _executor,
    _processor,
    get_assign_strategy_use_case,
    get_cancel_order_use_case,
    get_create_portfolio_use_case,
    get_delete_portfolio_use_case,
    get_execute_trade_use_case,
    get_expire_orders_use_case,
    get_get_portfolio_use_case,
    get_list_orders_use_case,
    get_list_portfolios_use_case,
    get_list_trades_use_case,
    get_place_bracket_order_use_case,
    get_place_order_use_case,
    get_portfolio_performance_use_case,
    get_process_market_tick_use_case,
)


def _create(engine, clock, cash: str = "100000", **kwargs):
    return get_create_portfolio_use_case(engine, clock).execute(
        CreatePortfolioCommand(name="Test", initial_cash=Decimal(cash), **kwargs)
    )


def _tick(engine, clock, price: str, symbol: str = "AAPL", volume: int = 0):
    return get_process_market_tick_use_case(engine, clock).execute(
        MarketTickCommand(symbol=symbol, price=Decimal(price), volume=volume)
    )


def _trade(engine, clock, portfolio, side: OrderSide, quantity: int, symbol: str = "AAPL"):
    return get_execute_trade_use_case(engine, clock).execute(
        ExecuteTradeCommand(
            portfolio_id=portfolio.id, symbol=symbol, side=side, quantity=quantity
        )
    )


def _order(engine, clock, portfolio, order_type: OrderType, side=OrderSide.BUY, quantity=10, **kwargs):
    return get_place_order_use_case(engine, clock).execute(
        PlaceOrderCommand(
            portfolio_id=portfolio.id,
            symbol="AAPL",
            side=side,
            order_type=order_type,
            quantity=quantity,
            **kwargs,
        )
    )


def _reload(engine, order):
    return OrderRepositoryAdapter(engine).get(order.id)


def _portfolio(engine, clock, portfolio):
    return get_get_portfolio_use_case(engine).execute(portfolio.id)


# =====================================================================
# Portfolios
# =====================================================================


class TestPortfolioUseCases:
    def test_create_writes_opening_snapshot(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        snapshots = SnapshotRepositoryAdapter(engine).list_for_portfolio(portfolio.id)
        assert len(snapshots) == 1
        assert snapshots[0].total_value == Decimal("100000")
        assert snapshots[0].taken_at == clock.now

    def test_create_rejects_non_positive_cash(self, engine, clock) -> None:
        with pytest.raises(InvalidOrderError):
            _create(engine, clock, cash="0")

    def test_get_and_list(self, engine, clock) -> None:
        first = _create(engine, clock)
        _create(engine, clock, cash="5000")

        loaded = _portfolio(engine, clock, first)
        assert loaded.name == "Test"
        assert loaded.current_cash == Decimal("100000")
        assert len(get_list_portfolios_use_case(engine).execute()) == 2

    def test_get_unknown_raises(self, engine, clock) -> None:
        with pytest.raises(PortfolioNotFoundError):
            get_get_portfolio_use_case(engine).execute(uuid4())

    def test_delete_removes_portfolio_and_children(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 10)

        get_delete_portfolio_use_case(engine).execute(portfolio.id)

        with pytest.raises(PortfolioNotFoundError):
            _portfolio(engine, clock, portfolio)
        assert SnapshotRepositoryAdapter(engine).list_for_portfolio(portfolio.id) == []
        with pytest.raises(PortfolioNotFoundError):
            get_delete_portfolio_use_case(engine).execute(portfolio.id)

    def test_assign_strategy_by_value(self, engine, clock) -> None:
        portfolio = _create(engine, clock, cash="30000")
        updated, profile = get_assign_strategy_use_case(engine).execute(portfolio.id)
        assert profile.id == "day-trading-conservative"
        assert _portfolio(engine, clock, updated).assigned_strategy == "day-trading-conservative"


# =====================================================================
# Immediate trades
# =====================================================================


class TestExecuteTrade:
    def test_buy_fills_with_slippage_and_commission(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")

        trade = _trade(engine, clock, portfolio, OrderSide.BUY, 50)

        assert trade.price == Decimal("100.0500")
        assert trade.commission == Decimal("5.25")
        loaded = _portfolio(engine, clock, portfolio)
        assert loaded.current_cash == Decimal("94992.25")
        assert loaded.positions["AAPL"].quantity == 50
        assert loaded.positions["AAPL"].current_price == Decimal("100")

    def test_sell_realizes_pnl(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 50)
        clock.advance(days=1)
        _tick(engine, clock, "110")

        trade = _trade(engine, clock, portfolio, OrderSide.SELL, 50)

        assert trade.realized_pnl > 0
        loaded = _portfolio(engine, clock, portfolio)
        assert "AAPL" not in loaded.positions
        assert loaded.realized_pnl == trade.realized_pnl
        assert loaded.day_trade_count == 0

    def test_unknown_symbol(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(SymbolNotFoundError):
            _trade(engine, clock, portfolio, OrderSide.BUY, 1, symbol="ZZZZ")

    def test_risk_limit_reports_adjusted_quantity(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        with pytest.raises(RiskLimitExceededError) as exc_info:
            _trade(engine, clock, portfolio, OrderSide.BUY, 200)
        assert exc_info.value.adjusted_quantity == 100

    def test_assigned_strategy_loosens_position_limit(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        get_assign_strategy_use_case(engine).execute(portfolio.id)
        trade = _trade(engine, clock, portfolio, OrderSide.BUY, 200)
        assert trade.quantity == 200

    def test_oversell_rejected(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        with pytest.raises(InsufficientPositionError):
            _trade(engine, clock, portfolio, OrderSide.SELL, 1)

    def test_market_hours_enforced_when_configured(self, engine, clock, monkeypatch) -> None:
        monkeypatch.setattr(settings, "enforce_market_hours", True)
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        clock.now = datetime(2025, 1, 18, 15, 0)
        with pytest.raises(MarketClosedError):
            _trade(engine, clock, portfolio, OrderSide.BUY, 1)

    def test_pattern_day_trader_limit(self, engine, clock) -> None:
        portfolio = _create(engine, clock, cash="10000")
        _tick(engine, clock, "100")
        for _ in range(3):
            _trade(engine, clock, portfolio, OrderSide.BUY, 1)
            _trade(engine, clock, portfolio, OrderSide.SELL, 1)
        _trade(engine, clock, portfolio, OrderSide.BUY, 1)

        with pytest.raises(PatternDayTradeError):
            _trade(engine, clock, portfolio, OrderSide.SELL, 1)
        loaded = _portfolio(engine, clock, portfolio)
        assert loaded.day_trade_count == 3
        assert loaded.positions["AAPL"].quantity == 1

    def test_list_trades(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 5)
        _trade(engine, clock, portfolio, OrderSide.BUY, 5)
        assert len(get_list_trades_use_case(engine).execute(portfolio.id)) == 2
        assert len(get_list_trades_use_case(engine).execute(portfolio.id, limit=1)) == 1


# =====================================================================
# Orders
# =====================================================================


class TestPlaceOrder:
    def test_market_order_fills_immediately(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.MARKET)
        assert order.status == OrderStatus.EXECUTED
        assert _reload(engine, order).average_fill_price == Decimal("100.05")

    def test_market_order_requires_quote(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(SymbolNotFoundError):
            _order(engine, clock, portfolio, OrderType.MARKET)

    def test_limit_order_waits_then_fills(self, engine, clock) -> None:
        """A buy limit below the market rests until the price comes down."""
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))
        assert order.status == OrderStatus.PENDING

        result = _tick(engine, clock, "94")

        assert len(result.trades) == 1
        stored = _reload(engine, order)
        assert stored.status == OrderStatus.EXECUTED
        assert stored.average_fill_price == Decimal("94")
        assert _portfolio(engine, clock, portfolio).current_cash == Decimal("99059")

    def test_volume_caps_fill_size(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))

        _tick(engine, clock, "94", volume=50)
        stored = _reload(engine, order)
        assert stored.status == OrderStatus.PARTIALLY_FILLED
        assert stored.filled_quantity == 5

        _tick(engine, clock, "94", volume=50)
        assert _reload(engine, order).status == OrderStatus.EXECUTED

    def test_buy_pre_checks_cash(self, engine, clock) -> None:
        portfolio = _create(engine, clock, cash="1000")
        with pytest.raises(InsufficientFundsError):
            _order(engine, clock, portfolio, OrderType.LIMIT, quantity=100, limit_price=Decimal("50"))
        assert get_list_orders_use_case(engine).execute(portfolio_id=portfolio.id) == []

    def test_sell_pre_checks_position(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(InsufficientPositionError):
            _order(
                engine, clock, portfolio, OrderType.STOP_LOSS,
                side=OrderSide.SELL, stop_price=Decimal("95"),
            )

    def test_missing_prices_rejected(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(InvalidOrderError):
            _order(engine, clock, portfolio, OrderType.LIMIT)

    def test_expiry_only_for_gtc(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(InvalidOrderError):
            _order(
                engine, clock, portfolio, OrderType.LIMIT,
                limit_price=Decimal("95"), expires_at=clock.now + timedelta(days=1),
            )

    def test_stop_loss_sells_on_drop(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 50)
        order = _order(
            engine, clock, portfolio, OrderType.STOP_LOSS,
            side=OrderSide.SELL, quantity=50, stop_price=Decimal("95"),
        )
        assert order.status == OrderStatus.PENDING

        [trade] = _tick(engine, clock, "94").trades
        assert trade.side == OrderSide.SELL
        assert trade.price == Decimal("93.9530")
        assert "AAPL" not in _portfolio(engine, clock, portfolio).positions

    def test_trailing_stop_follows_price(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 50)
        order = _order(
            engine, clock, portfolio, OrderType.TRAILING_STOP,
            side=OrderSide.SELL, quantity=50, trail_amount=Decimal("5"),
        )
        assert _reload(engine, order).stop_price == Decimal("95")

        _tick(engine, clock, "110")
        assert _reload(engine, order).stop_price == Decimal("105")

        _tick(engine, clock, "106")
        assert _reload(engine, order).status == OrderStatus.PENDING

        [trade] = _tick(engine, clock, "104").trades
        assert trade.quantity == 50
        assert _reload(engine, order).status == OrderStatus.EXECUTED

    def test_stop_limit_triggers_before_filling(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(
            engine, clock, portfolio, OrderType.STOP_LIMIT,
            stop_price=Decimal("105"), limit_price=Decimal("106"),
        )

        _tick(engine, clock, "107")
        stored = _reload(engine, order)
        assert stored.status == OrderStatus.TRIGGERED
        assert stored.filled_quantity == 0

        _tick(engine, clock, "105.5")
        stored = _reload(engine, order)
        assert stored.status == OrderStatus.EXECUTED
        assert stored.average_fill_price == Decimal("105.5")

    def test_ioc_cancelled_when_not_fillable(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(
            engine, clock, portfolio, OrderType.LIMIT,
            limit_price=Decimal("90"), time_in_force=TimeInForce.IOC,
        )
        assert order.status == OrderStatus.CANCELLED
        assert order.cancellation_reason == "Order could not be filled immediately"

    def test_fok_cancelled_when_volume_too_thin(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100", volume=50)
        order = _order(engine, clock, portfolio, OrderType.MARKET, time_in_force=TimeInForce.FOK)
        assert order.status == OrderStatus.CANCELLED
        assert order.filled_quantity == 0
        assert get_list_trades_use_case(engine).execute(portfolio.id) == []

    def test_ioc_cancelled_when_volume_allows_no_shares(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100", volume=5)
        order = _order(engine, clock, portfolio, OrderType.MARKET, time_in_force=TimeInForce.IOC)

        stored = _reload(engine, order)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.filled_quantity == 0
        assert stored.cancellation_reason == "Immediate or cancel remainder cancelled"

        _tick(engine, clock, "100", volume=1_000_000)
        assert _reload(engine, order).status == OrderStatus.CANCELLED
        assert get_list_trades_use_case(engine).execute(portfolio.id) == []


class TestConcurrentFills:
    def test_stale_order_copy_is_not_filled_twice(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))
        first = _reload(engine, order)
        second = _reload(engine, order)
        quote = StockQuote(symbol="AAPL", price=Decimal("94"), updated_at=clock.now)
        processor = _processor(engine)

        assert processor.process(first, quote, clock.now) is not None
        assert processor.process(second, quote, clock.now) is None

        assert len(get_list_trades_use_case(engine).execute(portfolio.id)) == 1
        assert _portfolio(engine, clock, portfolio).positions["AAPL"].quantity == 10

    def test_fill_applies_to_stored_portfolio(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        first = PortfolioRepositoryAdapter(engine).get(portfolio.id)
        second = PortfolioRepositoryAdapter(engine).get(portfolio.id)
        executor = _executor(engine)

        executor.fill(
            first, OrderSide.BUY, "AAPL", 10, Decimal("100"), Decimal("100"), clock.now
        )
        executor.fill(
            second, OrderSide.BUY, "AAPL", 10, Decimal("100"), Decimal("100"), clock.now
        )

        loaded = _portfolio(engine, clock, portfolio)
        assert loaded.positions["AAPL"].quantity == 20
        # two fills of 1 000 plus 1.05 commission each
        assert loaded.current_cash == Decimal("97997.90")

    def test_fill_for_deleted_portfolio(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        get_delete_portfolio_use_case(engine).execute(portfolio.id)

        with pytest.raises(PortfolioNotFoundError):
            _executor(engine).fill(
                portfolio, OrderSide.BUY, "AAPL", 1, Decimal("100"), Decimal("100"), clock.now
            )


class TestBracketOrders:
    def _bracket(self, engine, clock, portfolio, **kwargs):
        values = dict(
            portfolio_id=portfolio.id,
            symbol="AAPL",
            side=OrderSide.BUY,
            quantity=10,
            take_profit_price=Decimal("110"),
            stop_loss_price=Decimal("95"),
        )
        values.update(kwargs)
        return get_place_bracket_order_use_case(engine, clock).execute(
            PlaceBracketOrderCommand(**values)
        )

    def test_take_profit_fill_cancels_stop_loss(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        entry, legs = self._bracket(engine, clock, portfolio)
        assert entry.status == OrderStatus.EXECUTED
        assert {leg.status for leg in legs} == {OrderStatus.PENDING}

        _tick(engine, clock, "111")

        children = {
            o.order_type: o for o in OrderRepositoryAdapter(engine).list_children(entry.id)
        }
        assert children[OrderType.TAKE_PROFIT].status == OrderStatus.EXECUTED
        assert children[OrderType.STOP_LOSS].status == OrderStatus.CANCELLED
        assert children[OrderType.STOP_LOSS].cancellation_reason == "OCO sibling order filled"

    def test_legs_wait_for_entry_and_cancel_with_it(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        entry, _ = self._bracket(
            engine, clock, portfolio, entry_type=OrderType.LIMIT, limit_price=Decimal("98")
        )
        assert entry.status == OrderStatus.PENDING

        _tick(engine, clock, "111")
        children = OrderRepositoryAdapter(engine).list_children(entry.id)
        assert all(c.status == OrderStatus.PENDING for c in children)

        get_cancel_order_use_case(engine, clock).execute(entry.id)
        children = OrderRepositoryAdapter(engine).list_children(entry.id)
        assert all(c.status == OrderStatus.CANCELLED for c in children)

    def test_inverted_prices_rejected(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        with pytest.raises(InvalidOrderError):
            self._bracket(
                engine, clock, portfolio,
                take_profit_price=Decimal("95"), stop_loss_price=Decimal("110"),
            )

    def test_entry_must_be_market_or_limit(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(InvalidOrderError):
            self._bracket(engine, clock, portfolio, entry_type=OrderType.STOP_LOSS)


class TestOrderLifecycle:
    def test_cancel(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))

        cancelled = get_cancel_order_use_case(engine, clock).execute(order.id)
        assert cancelled.status == OrderStatus.CANCELLED
        assert cancelled.cancelled_at == clock.now

        with pytest.raises(OrderNotCancellableError):
            get_cancel_order_use_case(engine, clock).execute(order.id)

    def test_cancel_unknown(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        with pytest.raises(OrderNotFoundError):
            get_cancel_order_use_case(engine, clock).execute(portfolio.id)

    def test_list_filters_by_status(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))
        _order(engine, clock, portfolio, OrderType.MARKET)

        use_case = get_list_orders_use_case(engine)
        assert len(use_case.execute(portfolio_id=portfolio.id)) == 2
        [pending] = use_case.execute(status=OrderStatus.PENDING)
        assert pending.order_type == OrderType.LIMIT

    def test_day_orders_expire_at_close(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))
        expire = get_expire_orders_use_case(engine, clock)

        assert expire.execute(datetime(2025, 1, 15, 20, 59)) == []
        [expired] = expire.execute(datetime(2025, 1, 15, 21, 0))
        assert expired.id == order.id
        assert _reload(engine, order).status == OrderStatus.EXPIRED

    def test_gtc_orders_expire_only_with_expiry(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        open_ended = _order(
            engine, clock, portfolio, OrderType.LIMIT,
            limit_price=Decimal("95"), time_in_force=TimeInForce.GTC,
        )
        dated = _order(
            engine, clock, portfolio, OrderType.LIMIT,
            limit_price=Decimal("95"), time_in_force=TimeInForce.GTC,
            expires_at=clock.now + timedelta(days=1),
        )

        expired = get_expire_orders_use_case(engine, clock).execute(clock.now + timedelta(days=2))

        assert [o.id for o in expired] == [dated.id]
        assert _reload(engine, open_ended).status == OrderStatus.PENDING


# =====================================================================
# Market ticks
# =====================================================================


class TestProcessMarketTick:
    def test_quote_stored_with_previous_close(self, engine, clock) -> None:
        _tick(engine, clock, "100", symbol="aapl")
        result = _tick(engine, clock, "105")
        assert result.symbol == "AAPL"
        quote = StockQuoteRepositoryAdapter(engine).get("AAPL")
        assert quote.previous_close == Decimal("100")
        assert quote.change_percent == Decimal("5.00")

    def test_invalid_tick(self, engine, clock) -> None:
        with pytest.raises(InvalidOrderError):
            _tick(engine, clock, "0")
        with pytest.raises(InvalidOrderError):
            _tick(engine, clock, "10", volume=-1)

    def test_holders_are_marked_and_snapshotted(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 10)
        before = len(SnapshotRepositoryAdapter(engine).list_for_portfolio(portfolio.id))

        result = _tick(engine, clock, "120")

        assert result.portfolios_marked == 1
        after = SnapshotRepositoryAdapter(engine).list_for_portfolio(portfolio.id)
        assert len(after) == before + 1
        assert _portfolio(engine, clock, portfolio).positions["AAPL"].current_price == Decimal("120")

    def test_reprocess_uses_stored_quotes(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        order = _order(engine, clock, portfolio, OrderType.LIMIT, limit_price=Decimal("95"))
        StockQuoteRepositoryAdapter(engine).upsert(
            StockQuote(symbol="AAPL", price=Decimal("94"), updated_at=clock.now)
        )

        trades = get_process_market_tick_use_case(engine, clock).reprocess_open_orders()

        assert len(trades) == 1
        assert _reload(engine, order).status == OrderStatus.EXECUTED


# =====================================================================
# Performance
# =====================================================================


class TestPortfolioPerformance:
    def test_round_trip_statistics(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        _tick(engine, clock, "100")
        _trade(engine, clock, portfolio, OrderSide.BUY, 50)
        clock.advance(days=1)
        _tick(engine, clock, "110")
        _trade(engine, clock, portfolio, OrderSide.SELL, 50)

        result = get_portfolio_performance_use_case(engine).execute(portfolio.id)

        assert result.snapshot_count == 4
        assert result.statistics.total_trades == 1
        assert result.statistics.winning_trades == 1
        assert result.realized_pnl > 0
        assert result.unrealized_pnl == 0
        assert result.metrics.total_return_pct > 0

    def test_new_portfolio_has_flat_metrics(self, engine, clock) -> None:
        portfolio = _create(engine, clock)
        result = get_portfolio_performance_use_case(engine).execute(portfolio.id)
        assert result.total_pnl == 0
        assert result.metrics.total_return_pct == 0.0
        assert result.statistics.total_trades == 0
