"""
Domain service: strategy backtesting over stored daily bars.

A strategy is a list of named entry and exit components. The engine
replays bars chronologically (all symbols interleaved by date), turns
component signals into simulated fills with commission and slippage,
and records equity and drawdown after every trading date.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from typing import Any, Optional, Sequence

from app.domain.trading.entities import PriceBar, SizingMethod
from app.domain.trading.errors import InvalidOrderError, NoMarketDataError
from app.domain.trading.indicators import TechnicalIndicatorService
from app.domain.trading.performance import (
    PerformanceCalculator,
    ReturnMetrics,
    TradeStatistics,
)

logger = logging.getLogger(__name__)

SUPPORTED_COMPONENTS = (
    "price above",
    "price below",
    "rsi oversold",
    "rsi overbought",
    "volume spike",
)
DEFAULT_FIXED_SHARES = 100
DEFAULT_EQUITY_FRACTION = 0.10
NEUTRAL_RSI = 50.0


@dataclass(frozen=True)
class StrategyComponent:
    name: str
    category: str = "entry"
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BacktestStrategy:
    name: str
    components: list[StrategyComponent]
    sizing_method: SizingMethod = SizingMethod.FIXED
    sizing_value: Optional[float] = None


@dataclass(frozen=True)
class BacktestParams:
    start: date
    end: date
    initial_capital: float
    symbols: list[str]
    commission: float = 0.001
    slippage: float = 0.0005


@dataclass(frozen=True)
class BacktestTrade:
    symbol: str
    side: str
    date: date
    quantity: int
    price: float
    commission: float
    pnl: Optional[float] = None


@dataclass(frozen=True)
class CurvePoint:
    date: date
    value: float


@dataclass(frozen=True)
class BacktestReport:
    strategy_name: str
    initial_capital: float
    final_capital: float
    total_return_pct: float
    performance: ReturnMetrics
    statistics: TradeStatistics
    trades: list[BacktestTrade]
    equity_curve: list[CurvePoint]
    drawdown_curve: list[CurvePoint]

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible representation."""
        return {
            "strategy_name": self.strategy_name,
            "initial_capital": self.initial_capital,
            "final_capital": self.final_capital,
            "total_return_pct": self.total_return_pct,
            "performance": self.performance.to_dict(),
            "statistics": self.statistics.to_dict(),
            "trades": [
                {
                    "symbol": t.symbol,
                    "side": t.side,
                    "date": t.date.isoformat(),
                    "quantity": t.quantity,
                    "price": t.price,
                    "commission": t.commission,
                    "pnl": t.pnl,
                }
                for t in self.trades
            ],
            "equity_curve": [
                {"date": p.date.isoformat(), "value": p.value} for p in self.equity_curve
            ],
            "drawdown_curve": [
                {"date": p.date.isoformat(), "value": p.value}
                for p in self.drawdown_curve
            ],
        }


@dataclass
class _Holding:
    quantity: int
    entry_price: float
    last_price: float


class BacktestEngine:
    """Simulated long-only account used during a single backtest run."""

    def __init__(self, initial_capital: float, commission: float, slippage: float) -> None:
        self.cash = initial_capital
        self._commission = commission
        self._slippage = slippage
        self.holdings: dict[str, _Holding] = {}
        self.trades: list[BacktestTrade] = []
        self.equity_curve: list[CurvePoint] = []

    @property
    def equity(self) -> float:
        return self.cash + sum(h.quantity * h.last_price for h in self.holdings.values())

    def mark(self, symbol: str, price: float) -> None:
        holding = self.holdings.get(symbol)
        if holding is not None:
            holding.last_price = price

    def buy(self, symbol: str, quantity: int, price: float, on: date) -> Optional[BacktestTrade]:
        """Buy up to ``quantity`` shares, shrinking to what cash affords."""
        fill = price * (1 + self._slippage)
        per_share = fill * (1 + self._commission)
        affordable = math.floor(self.cash / per_share) if per_share > 0 else 0
        quantity = min(quantity, affordable)
        if quantity <= 0:
            return None

        value = quantity * fill
        commission = value * self._commission
        self.cash -= value + commission

        holding = self.holdings.get(symbol)
        if holding is None:
            self.holdings[symbol] = _Holding(quantity, fill, price)
        else:
            total = holding.quantity + quantity
            holding.entry_price = (holding.entry_price * holding.quantity + value) / total
            holding.quantity = total
            holding.last_price = price

        trade = BacktestTrade(symbol, "buy", on, quantity, fill, commission)
        self.trades.append(trade)
        return trade

    def sell(
        self, symbol: str, quantity: Optional[int], price: float, on: date
    ) -> Optional[BacktestTrade]:
        """Sell ``quantity`` shares (all when None), capped at the holding."""
        holding = self.holdings.get(symbol)
        if holding is None or holding.quantity == 0:
            return None

        quantity = holding.quantity if quantity is None else min(quantity, holding.quantity)
        if quantity <= 0:
            return None

        fill = price * (1 - self._slippage)
        value = quantity * fill
        commission = value * self._commission
        pnl = (fill - holding.entry_price) * quantity - commission
        self.cash += value - commission
        holding.quantity -= quantity
        holding.last_price = price
        if holding.quantity == 0:
            del self.holdings[symbol]

        trade = BacktestTrade(symbol, "sell", on, quantity, fill, commission, pnl)
        self.trades.append(trade)
        return trade

    def record_equity(self, on: date) -> None:
        self.equity_curve.append(CurvePoint(on, self.equity))


class BacktestService:
    """Runs component strategies against historical bars."""

    def __init__(
        self,
        indicators: Optional[TechnicalIndicatorService] = None,
        calculator: Optional[PerformanceCalculator] = None,
    ) -> None:
        self._indicators = indicators or TechnicalIndicatorService()
        self._calculator = calculator or PerformanceCalculator()

    def run(
        self,
        strategy: BacktestStrategy,
        params: BacktestParams,
        bars: Sequence[PriceBar],
    ) -> BacktestReport:
        """Replay ``bars`` through ``strategy``.

        Raises:
            InvalidOrderError: If the capital is not positive or the dates are reversed.
            NoMarketDataError: If no bars fall inside the requested window.
        """
        if params.initial_capital <= 0:
            raise InvalidOrderError("initial capital must be positive")
        if params.start > params.end:
            raise InvalidOrderError("start date must not be after end date")

        wanted = set(params.symbols)
        window = sorted(
            (
                b
                for b in bars
                if (not wanted or b.symbol in wanted) and params.start <= b.date <= params.end
            ),
            key=lambda b: (b.date, b.symbol),
        )
        if not window:
            raise NoMarketDataError(
                f"no bars for {sorted(wanted)} between {params.start} and {params.end}"
            )

        engine = BacktestEngine(params.initial_capital, params.commission, params.slippage)
        history: dict[str, list[PriceBar]] = {}

        for day, day_bars in groupby(window, key=lambda b: b.date):
            for bar in day_bars:
                series = history.setdefault(bar.symbol, [])
                series.append(bar)
                price = float(bar.close)
                engine.mark(bar.symbol, price)

                for component in strategy.components:
                    if component.category != "entry" or not self._fires(component, series):
                        continue
                    quantity = self._entry_size(strategy, engine.equity, price)
                    engine.buy(bar.symbol, quantity, price, day)

                for component in strategy.components:
                    if component.category != "exit" or not self._fires(component, series):
                        continue
                    size = component.parameters.get("size")
                    engine.sell(bar.symbol, int(size) if size else None, price, day)

            engine.record_equity(day)

        values = [p.value for p in engine.equity_curve]
        drawdowns = self._calculator.drawdown_curve(values)
        metrics = self._calculator.return_metrics([params.initial_capital] + values)
        statistics = self._calculator.trade_statistics(
            [t.pnl for t in engine.trades if t.pnl is not None]
        )
        final = engine.equity

        logger.info(
            "Backtest %s: %d bars, %d trades, final capital %.2f",
            strategy.name,
            len(window),
            len(engine.trades),
            final,
        )
        return BacktestReport(
            strategy_name=strategy.name,
            initial_capital=params.initial_capital,
            final_capital=final,
            total_return_pct=(final / params.initial_capital - 1) * 100,
            performance=metrics,
            statistics=statistics,
            trades=engine.trades,
            equity_curve=engine.equity_curve,
            drawdown_curve=[
                CurvePoint(p.date, dd) for p, dd in zip(engine.equity_curve, drawdowns)
            ],
        )

    def _fires(self, component: StrategyComponent, series: list[PriceBar]) -> bool:
        name = component.name.strip().lower()
        if name not in SUPPORTED_COMPONENTS:
            return False
        p = component.parameters
        bar = series[-1]
        price = float(bar.close)

        if name == "price above":
            return "value" in p and price > float(p["value"])
        if name == "price below":
            return "value" in p and price < float(p["value"])
        if name in ("rsi oversold", "rsi overbought"):
            closes = [float(b.close) for b in series]
            rsi = self._indicators.rsi(closes, int(p.get("period", 14)))
            if rsi is None:
                rsi = NEUTRAL_RSI
            if name == "rsi oversold":
                return rsi < float(p.get("threshold", 30))
            return rsi > float(p.get("threshold", 70))
        if name == "volume spike":
            if "threshold" in p:
                return bar.volume > float(p["threshold"])
            profile = self._indicators.volume_profile([b.volume for b in series])
            return profile is not None and profile.ratio > float(p.get("multiplier", 2.0))
        return False

    @staticmethod
    def _entry_size(strategy: BacktestStrategy, equity: float, price: float) -> int:
        if strategy.sizing_method == SizingMethod.PERCENTAGE:
            fraction = strategy.sizing_value or DEFAULT_EQUITY_FRACTION
            return max(0, math.floor(equity * fraction / price))
        return int(strategy.sizing_value or DEFAULT_FIXED_SHARES)
