"""
Tests for the trading domain layer.

Covers entities, errors, simulated execution, the portfolio ledger and
pre-trade risk checks. No external dependencies or IO required.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from app.domain.trading.entities import (
    Order,
    OrderSide,
    OrderStatus,
    OrderType,
    Portfolio,
    Position,
    StockQuote,
)
from app.domain.trading.errors import (
    InsufficientFundsError,
    InsufficientPositionError,
    InvalidOrderError,
    PatternDayTradeError,
    SymbolNotFoundError,
)
from app.domain.trading.execution import ExecutionCosts, OrderExecutionService
from app.domain.trading.ledger import PortfolioLedger
from app.domain.trading.risk import RiskManagementService, RiskParameters

NOW = datetime(2025, 1, 15, 15, 0)


def _order(order_type: OrderType, side: OrderSide = OrderSide.BUY, quantity: int = 10, **prices) -> Order:
    return Order(
        portfolio_id=Portfolio(name="p").id,
        symbol="AAPL",
        order_type=order_type,
        side=side,
        quantity=quantity,
        **prices,
    )


# =====================================================================
# Entities and errors
# =====================================================================


class TestEntities:
    def test_portfolio_values_follow_positions(self) -> None:
        portfolio = Portfolio(name="p", initial_cash=Decimal("10000"), current_cash=Decimal("9000"))
        portfolio.positions["AAPL"] = Position(
            symbol="AAPL", quantity=10, average_price=Decimal("100"), current_price=Decimal("120")
        )

        assert portfolio.positions_value == Decimal("1200")
        assert portfolio.total_value == Decimal("10200")
        assert portfolio.total_pnl == Decimal("200")
        assert portfolio.total_return_pct == pytest.approx(2.0)

    def test_mark_to_market_ignores_unknown_symbols(self) -> None:
        portfolio = Portfolio(name="p")
        portfolio.positions["AAPL"] = Position(
            symbol="AAPL", quantity=1, average_price=Decimal("100"), current_price=Decimal("100")
        )
        portfolio.mark_to_market({"AAPL": Decimal("105"), "MSFT": Decimal("1")})
        assert portfolio.positions["AAPL"].current_price == Decimal("105")
        assert "MSFT" not in portfolio.positions

    def test_position_unrealized_pnl_pct(self) -> None:
        position = Position(
            symbol="AAPL", quantity=4, average_price=Decimal("50"), current_price=Decimal("45")
        )
        assert position.unrealized_pnl == Decimal("-20")
        assert position.unrealized_pnl_pct == pytest.approx(-10.0)

    def test_quote_change_without_previous_close_is_zero(self) -> None:
        quote = StockQuote(symbol="AAPL", price=Decimal("10"))
        assert quote.change == 0
        assert quote.change_percent == 0

    def test_quote_change_percent(self) -> None:
        quote = StockQuote(symbol="AAPL", price=Decimal("110"), previous_close=Decimal("100"))
        assert quote.change == Decimal("10")
        assert quote.change_percent == Decimal("10.00")

    def test_order_partial_then_full_fill(self) -> None:
        order = _order(OrderType.MARKET, quantity=10)
        order.record_fill(4, Decimal("10"), Decimal("1"), NOW)
        assert order.status == OrderStatus.PARTIALLY_FILLED
        assert order.remaining_quantity == 6
        assert order.is_open

        order.record_fill(6, Decimal("20"), Decimal("1"), NOW)
        assert order.status == OrderStatus.EXECUTED
        assert order.average_fill_price == Decimal("16.0000")
        assert order.commission == Decimal("2")
        assert order.executed_at == NOW
        assert not order.is_open


class TestDomainErrors:
    def test_symbol_not_found_error_message(self) -> None:
        err = SymbolNotFoundError("ZZZZ")
        assert "ZZZZ" in err.message
        assert err.symbol == "ZZZZ"

    def test_insufficient_funds_error_message(self) -> None:
        err = InsufficientFundsError(required="150.00", available="100.00")
        assert "150.00" in str(err)
        assert "100.00" in str(err)

    def test_insufficient_position_error_fields(self) -> None:
        err = InsufficientPositionError("AAPL", 10, 3)
        assert (err.symbol, err.requested, err.held) == ("AAPL", 10, 3)


# =====================================================================
# OrderExecutionService
# =====================================================================


class TestCommissionAndSlippage:
    def setup_method(self) -> None:
        self.service = OrderExecutionService()

    def test_commission_per_share_plus_percentage(self) -> None:
        # 100 * 0.005 + 5000 * 0.001
        assert self.service.commission(100, Decimal("50")) == Decimal("5.50")

    def test_commission_minimum(self) -> None:
        assert self.service.commission(1, Decimal("10")) == Decimal("1.00")

    def test_commission_maximum(self) -> None:
        assert self.service.commission(10_000, Decimal("100")) == Decimal("65.00")

    def test_slippage_moves_against_trader(self) -> None:
        assert self.service.apply_slippage(Decimal("100"), OrderSide.BUY) == Decimal("100.0500")
        assert self.service.apply_slippage(Decimal("100"), OrderSide.SELL) == Decimal("99.9500")

    def test_slippage_capped(self) -> None:
        assert self.service.apply_slippage(Decimal("2000"), OrderSide.BUY) == Decimal("2000.5000")

    def test_slippage_disabled(self) -> None:
        service = OrderExecutionService(ExecutionCosts(slippage_enabled=False))
        assert service.apply_slippage(Decimal("100"), OrderSide.BUY) == Decimal("100")


class TestOrderValidation:
    def setup_method(self) -> None:
        self.service = OrderExecutionService()

    @pytest.mark.parametrize(
        "order_type",
        [OrderType.LIMIT, OrderType.STOP_LOSS, OrderType.TAKE_PROFIT, OrderType.STOP_LIMIT],
    )
    def test_missing_price_rejected(self, order_type: OrderType) -> None:
        with pytest.raises(InvalidOrderError):
            self.service.validate_order(_order(order_type))

    def test_trailing_stop_needs_exactly_one_trail(self) -> None:
        with pytest.raises(InvalidOrderError):
            self.service.validate_order(_order(OrderType.TRAILING_STOP))
        with pytest.raises(InvalidOrderError):
            self.service.validate_order(
                _order(
                    OrderType.TRAILING_STOP,
                    trail_amount=Decimal("1"),
                    trail_percent=Decimal("5"),
                )
            )
        self.service.validate_order(_order(OrderType.TRAILING_STOP, trail_percent=Decimal("5")))

    def test_non_positive_quantity_rejected(self) -> None:
        with pytest.raises(InvalidOrderError):
            self.service.validate_order(_order(OrderType.MARKET, quantity=0))

    def test_negative_price_rejected(self) -> None:
        with pytest.raises(InvalidOrderError):
            self.service.validate_order(_order(OrderType.LIMIT, limit_price=Decimal("-1")))


class TestOrderEvaluation:
    def setup_method(self) -> None:
        self.service = OrderExecutionService(ExecutionCosts(slippage_enabled=False))

    def test_buy_limit_fills_at_or_below_limit(self) -> None:
        order = _order(OrderType.LIMIT, limit_price=Decimal("100"))
        decision = self.service.evaluate(order, Decimal("99"))
        assert decision.fill
        assert decision.fill_price == Decimal("99")
        assert not self.service.evaluate(order, Decimal("101")).fill

    def test_sell_limit_fills_at_or_above_limit(self) -> None:
        order = _order(OrderType.LIMIT, side=OrderSide.SELL, limit_price=Decimal("100"))
        assert self.service.evaluate(order, Decimal("101")).fill_price == Decimal("101")
        assert not self.service.evaluate(order, Decimal("99")).fill

    def test_sell_stop_loss_triggers_below_stop(self) -> None:
        order = _order(OrderType.STOP_LOSS, side=OrderSide.SELL, stop_price=Decimal("95"))
        assert not self.service.evaluate(order, Decimal("96")).fill
        decision = self.service.evaluate(order, Decimal("94"))
        assert decision.fill
        assert decision.fill_price == Decimal("94")

    def test_stop_fill_is_slipped(self) -> None:
        service = OrderExecutionService()
        order = _order(OrderType.STOP_LOSS, side=OrderSide.SELL, stop_price=Decimal("95"))
        assert service.evaluate(order, Decimal("94")).fill_price == Decimal("93.9530")

    def test_take_profit_fills_at_market_without_slippage(self) -> None:
        service = OrderExecutionService()
        order = _order(OrderType.TAKE_PROFIT, side=OrderSide.SELL, trigger_price=Decimal("110"))
        assert not service.evaluate(order, Decimal("109")).fill
        assert service.evaluate(order, Decimal("111")).fill_price == Decimal("111")

    def test_stop_limit_triggers_then_respects_limit(self) -> None:
        order = _order(OrderType.STOP_LIMIT, stop_price=Decimal("105"), limit_price=Decimal("106"))
        assert not self.service.evaluate(order, Decimal("104")).fill

        decision = self.service.evaluate(order, Decimal("105.5"))
        assert decision.triggered
        assert decision.fill
        assert decision.fill_price == Decimal("105.5")

    def test_triggered_stop_limit_waits_for_limit(self) -> None:
        order = _order(OrderType.STOP_LIMIT, stop_price=Decimal("105"), limit_price=Decimal("106"))
        order.status = OrderStatus.TRIGGERED
        decision = self.service.evaluate(order, Decimal("107"))
        assert not decision.fill
        assert not decision.triggered

    def test_trailing_stop_ratchets_up_only(self) -> None:
        order = _order(OrderType.TRAILING_STOP, side=OrderSide.SELL, trail_amount=Decimal("5"))
        assert self.service.update_trailing_stop(order, Decimal("100"))
        assert order.stop_price == Decimal("95.0000")

        assert self.service.update_trailing_stop(order, Decimal("110"))
        assert order.stop_price == Decimal("105.0000")

        assert not self.service.update_trailing_stop(order, Decimal("104"))
        assert order.stop_price == Decimal("105.0000")
        assert self.service.evaluate(order, Decimal("104")).fill

    def test_trailing_stop_percent_for_buy(self) -> None:
        order = _order(OrderType.TRAILING_STOP, trail_percent=Decimal("10"))
        self.service.update_trailing_stop(order, Decimal("200"))
        assert order.stop_price == Decimal("220.0000")
        self.service.update_trailing_stop(order, Decimal("150"))
        assert order.stop_price == Decimal("165.0000")

    def test_fill_quantity_capped_by_volume(self) -> None:
        order = _order(OrderType.MARKET, quantity=100)
        assert OrderExecutionService.fill_quantity(order, 0, 0.1) == 100
        assert OrderExecutionService.fill_quantity(order, 500, 0.1) == 50
        assert OrderExecutionService.fill_quantity(order, 5, 0.1) == 0


# =====================================================================
# PortfolioLedger
# =====================================================================


class TestPortfolioLedger:
    def setup_method(self) -> None:
        self.ledger = PortfolioLedger()
        self.portfolio = Portfolio(name="p")

    def test_buy_debits_cash_and_opens_position(self) -> None:
        trade = self.ledger.apply_buy(
            self.portfolio, "AAPL", 10, Decimal("100"), Decimal("1"), NOW
        )
        assert self.portfolio.current_cash == Decimal("98999")
        assert self.portfolio.positions["AAPL"].quantity == 10
        assert trade.side == OrderSide.BUY
        assert trade.realized_pnl is None

    def test_buys_average_the_cost(self) -> None:
        self.ledger.apply_buy(self.portfolio, "AAPL", 10, Decimal("100"), Decimal("0"), NOW)
        self.ledger.apply_buy(self.portfolio, "AAPL", 10, Decimal("110"), Decimal("0"), NOW)
        assert self.portfolio.positions["AAPL"].average_price == Decimal("105.0000")
        assert self.portfolio.positions["AAPL"].quantity == 20

    def test_sell_realizes_pnl_net_of_commission(self) -> None:
        self.ledger.apply_buy(self.portfolio, "AAPL", 10, Decimal("105"), Decimal("0"), NOW)
        later = NOW + timedelta(days=1)
        trade = self.ledger.apply_sell(
            self.portfolio, "AAPL", 5, Decimal("120"), Decimal("1"), later
        )
        assert trade.realized_pnl == Decimal("74.00")
        assert self.portfolio.realized_pnl == Decimal("74")
        assert self.portfolio.positions["AAPL"].quantity == 5

    def test_selling_whole_position_removes_it(self) -> None:
        self.ledger.apply_buy(self.portfolio, "AAPL", 3, Decimal("10"), Decimal("0"), NOW)
        self.ledger.apply_sell(
            self.portfolio, "AAPL", 3, Decimal("10"), Decimal("0"), NOW + timedelta(days=1)
        )
        assert "AAPL" not in self.portfolio.positions

    def test_oversell_rejected(self) -> None:
        with pytest.raises(InsufficientPositionError):
            self.ledger.apply_sell(self.portfolio, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)

    def test_insufficient_cash_leaves_portfolio_unchanged(self) -> None:
        with pytest.raises(InsufficientFundsError):
            self.ledger.apply_buy(
                self.portfolio, "AAPL", 1000, Decimal("100"), Decimal("1"), NOW
            )
        assert self.portfolio.current_cash == Decimal("100000")
        assert not self.portfolio.positions

    def test_non_positive_price_rejected(self) -> None:
        with pytest.raises(InvalidOrderError):
            self.ledger.apply_buy(self.portfolio, "AAPL", 1, Decimal("0"), Decimal("0"), NOW)

    def test_pattern_day_trader_limit_for_small_accounts(self) -> None:
        small = Portfolio(
            name="small", initial_cash=Decimal("10000"), current_cash=Decimal("10000")
        )
        for _ in range(3):
            self.ledger.apply_buy(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
            self.ledger.apply_sell(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        assert small.day_trade_count == 3

        self.ledger.apply_buy(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        cash_before = small.current_cash
        with pytest.raises(PatternDayTradeError):
            self.ledger.apply_sell(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        assert small.current_cash == cash_before
        assert small.positions["AAPL"].quantity == 1

    def test_day_trading_enabled_accounts_are_not_limited(self) -> None:
        small = Portfolio(
            name="small",
            initial_cash=Decimal("10000"),
            current_cash=Decimal("10000"),
            day_trading_enabled=True,
        )
        for _ in range(5):
            self.ledger.apply_buy(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
            self.ledger.apply_sell(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        assert small.day_trade_count == 5

    def test_overnight_sale_is_not_a_day_trade(self) -> None:
        self.ledger.apply_buy(self.portfolio, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        self.ledger.apply_sell(
            self.portfolio, "AAPL", 1, Decimal("10"), Decimal("0"), NOW + timedelta(days=1)
        )
        assert self.portfolio.day_trade_count == 0

    def test_day_trade_window_resets_after_five_business_days(self) -> None:
        self.portfolio.day_trade_count = 3
        self.portfolio.day_trade_window_start = (NOW - timedelta(days=14)).date()
        self.ledger.apply_buy(self.portfolio, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        self.ledger.apply_sell(self.portfolio, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
        assert self.portfolio.day_trade_count == 1
        assert self.portfolio.day_trade_window_start == NOW.date()

    def test_restricted_account_trades_again_after_window(self) -> None:
        small = Portfolio(
            name="small", initial_cash=Decimal("10000"), current_cash=Decimal("10000")
        )
        for _ in range(3):
            self.ledger.apply_buy(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)
            self.ledger.apply_sell(small, "AAPL", 1, Decimal("10"), Decimal("0"), NOW)

        # Tuesday 2025-01-21 is four business days after Wednesday 2025-01-15
        tuesday = NOW + timedelta(days=6)
        self.ledger.apply_buy(small, "AAPL", 1, Decimal("10"), Decimal("0"), tuesday)
        with pytest.raises(PatternDayTradeError):
            self.ledger.apply_sell(small, "AAPL", 1, Decimal("10"), Decimal("0"), tuesday)

        wednesday = NOW + timedelta(days=7)
        self.ledger.apply_buy(small, "MSFT", 1, Decimal("10"), Decimal("0"), wednesday)
        self.ledger.apply_sell(small, "MSFT", 1, Decimal("10"), Decimal("0"), wednesday)
        assert small.day_trade_count == 1
        assert small.day_trade_window_start == wednesday.date()


# =====================================================================
# RiskManagementService
# =====================================================================


class TestRiskManagement:
    def setup_method(self) -> None:
        self.risk = RiskManagementService()
        self.portfolio = Portfolio(name="p")

    def test_small_buy_allowed(self) -> None:
        result = self.risk.validate_trade(
            self.portfolio, OrderSide.BUY, "AAPL", 100, Decimal("50")
        )
        assert result.allowed
        assert result.warnings == []

    def test_oversized_buy_gets_adjusted_quantity(self) -> None:
        result = self.risk.validate_trade(
            self.portfolio, OrderSide.BUY, "AAPL", 300, Decimal("50")
        )
        assert not result.allowed
        assert result.adjusted_quantity == 200
        assert "exceeds limit" in result.reason

    def test_existing_holding_counts_toward_limit(self) -> None:
        self.portfolio.current_cash = Decimal("95000")
        self.portfolio.positions["AAPL"] = Position(
            symbol="AAPL", quantity=100, average_price=Decimal("50"), current_price=Decimal("50")
        )
        result = self.risk.validate_trade(
            self.portfolio, OrderSide.BUY, "AAPL", 150, Decimal("50")
        )
        assert not result.allowed
        assert result.adjusted_quantity == 100

    def test_sells_always_pass(self) -> None:
        result = self.risk.validate_trade(
            self.portfolio, OrderSide.SELL, "AAPL", 1_000_000, Decimal("50")
        )
        assert result.allowed

    def test_daily_loss_limit_blocks_buys(self) -> None:
        result = self.risk.validate_trade(
            self.portfolio,
            OrderSide.BUY,
            "AAPL",
            1,
            Decimal("50"),
            daily_realized_pnl=Decimal("-1000"),
        )
        assert not result.allowed
        assert result.reason.startswith("Daily loss limit reached")
        assert result.adjusted_quantity == 0

    def test_max_open_positions(self) -> None:
        risk = RiskManagementService(RiskParameters(max_open_positions=1))
        self.portfolio.positions["MSFT"] = Position(
            symbol="MSFT", quantity=1, average_price=Decimal("10"), current_price=Decimal("10")
        )
        result = risk.validate_trade(self.portfolio, OrderSide.BUY, "AAPL", 1, Decimal("10"))
        assert not result.allowed
        assert "open positions" in result.reason
        assert risk.validate_trade(
            self.portfolio, OrderSide.BUY, "MSFT", 1, Decimal("10")
        ).allowed

    def test_high_volatility_warns(self) -> None:
        result = self.risk.validate_trade(
            self.portfolio, OrderSide.BUY, "AAPL", 1, Decimal("10"), volatility=0.08
        )
        assert result.allowed
        assert len(result.warnings) == 1

    def test_emergency_stop(self) -> None:
        assert self.risk.check_emergency_stop(Decimal("89"), Decimal("100"))
        assert self.risk.check_emergency_stop(Decimal("90"), Decimal("100"))
        assert not self.risk.check_emergency_stop(Decimal("95"), Decimal("100"))
        assert not self.risk.check_emergency_stop(Decimal("10"), Decimal("0"))

    def test_stop_loss_and_take_profit_prices(self) -> None:
        assert RiskManagementService.stop_loss_price(Decimal("100")) == Decimal("95.00")
        assert RiskManagementService.take_profit_price(Decimal("100")) == Decimal("110.00")
        assert RiskManagementService.stop_loss_price(Decimal("100"), is_long=False) == Decimal("105.00")
        assert RiskManagementService.take_profit_price(Decimal("100"), is_long=False) == Decimal("90.00")
