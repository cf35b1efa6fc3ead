"""
Domain service: performance and risk metrics.

Computes return, risk-adjusted and trade statistics from an equity
series and a list of realized trade P&Ls.

- Returns are simple periodic returns of the value series
- Annualization uses 252 trading days
- Sharpe and Sortino use a 2% annual risk-free rate
- VaR and expected shortfall are historical, at 95% confidence

Empty or single-point series yield zeros.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Optional, Sequence

import numpy as np

TRADING_DAYS_PER_YEAR = 252
RISK_FREE_RATE = 0.02


def finite_or_none(value: float) -> Optional[float]:
    """Map inf / nan to None for JSON output."""
    if value is None or math.isinf(value) or math.isnan(value):
        return None
    return value


@dataclass(frozen=True)
class ReturnMetrics:
    total_return_pct: float = 0.0
    annualized_return_pct: float = 0.0
    volatility_pct: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    max_drawdown_pct: float = 0.0
    value_at_risk_pct: float = 0.0
    expected_shortfall_pct: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TradeStatistics:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["profit_factor"] = finite_or_none(self.profit_factor)
        return data


class PerformanceCalculator:
    """Calculates performance metrics with numpy."""

    def __init__(
        self,
        risk_free_rate: float = RISK_FREE_RATE,
        trading_days: int = TRADING_DAYS_PER_YEAR,
    ) -> None:
        self._rf = risk_free_rate
        self._days = trading_days

    @staticmethod
    def returns(values: Sequence[float]) -> np.ndarray:
        arr = np.asarray(values, dtype=float)
        if arr.size < 2:
            return np.array([], dtype=float)
        prev = arr[:-1]
        with np.errstate(divide="ignore", invalid="ignore"):
            r = np.where(prev != 0, np.diff(arr) / prev, 0.0)
        return r

    @staticmethod
    def drawdown_curve(values: Sequence[float]) -> list[float]:
        """Percent below the running peak at each point."""
        arr = np.asarray(values, dtype=float)
        if arr.size == 0:
            return []
        peaks = np.maximum.accumulate(arr)
        with np.errstate(divide="ignore", invalid="ignore"):
            dd = np.where(peaks > 0, (peaks - arr) / peaks * 100, 0.0)
        return [float(x) for x in dd]

    def max_drawdown_pct(self, values: Sequence[float]) -> float:
        curve = self.drawdown_curve(values)
        return max(curve) if curve else 0.0

    def volatility_pct(self, returns: np.ndarray) -> float:
        if returns.size < 2:
            return 0.0
        return float(np.std(returns) * math.sqrt(self._days) * 100)

    def sharpe_ratio(self, returns: np.ndarray) -> float:
        if returns.size < 2:
            return 0.0
        std = float(np.std(returns))
        if std == 0:
            return 0.0
        excess = float(np.mean(returns)) - self._rf / self._days
        return excess / std * math.sqrt(self._days)

    def sortino_ratio(self, returns: np.ndarray) -> float:
        if returns.size < 2:
            return 0.0
        daily_rf = self._rf / self._days
        downside = np.minimum(returns - daily_rf, 0.0)
        downside_dev = float(np.sqrt(np.mean(downside**2)))
        if downside_dev == 0:
            return 0.0
        return (float(np.mean(returns)) - daily_rf) / downside_dev * math.sqrt(self._days)

    @staticmethod
    def value_at_risk_pct(returns: np.ndarray, confidence: float = 0.95) -> float:
        """Historical VaR as a positive loss percentage."""
        if returns.size == 0:
            return 0.0
        cutoff = float(np.percentile(returns, (1 - confidence) * 100))
        return max(0.0, -cutoff * 100)

    @staticmethod
    def expected_shortfall_pct(returns: np.ndarray, confidence: float = 0.95) -> float:
        """Mean loss beyond the VaR cutoff, as a positive percentage."""
        if returns.size == 0:
            return 0.0
        cutoff = np.percentile(returns, (1 - confidence) * 100)
        tail = returns[returns <= cutoff]
        if tail.size == 0:
            return 0.0
        return max(0.0, -float(np.mean(tail)) * 100)

    def return_metrics(self, values: Sequence[float]) -> ReturnMetrics:
        """Compute every return and risk metric for an equity series."""
        arr = np.asarray(values, dtype=float)
        if arr.size < 2 or arr[0] <= 0:
            return ReturnMetrics()

        r = self.returns(arr)
        total = arr[-1] / arr[0] - 1
        growth = arr[-1] / arr[0]
        annualized = growth ** (self._days / r.size) - 1 if growth > 0 else -1.0
        max_dd = self.max_drawdown_pct(arr)
        calmar = (annualized * 100) / max_dd if max_dd > 0 else 0.0

        return ReturnMetrics(
            total_return_pct=float(total * 100),
            annualized_return_pct=float(annualized * 100),
            volatility_pct=self.volatility_pct(r),
            sharpe_ratio=self.sharpe_ratio(r),
            sortino_ratio=self.sortino_ratio(r),
            calmar_ratio=float(calmar),
            max_drawdown_pct=max_dd,
            value_at_risk_pct=self.value_at_risk_pct(r),
            expected_shortfall_pct=self.expected_shortfall_pct(r),
        )

    @staticmethod
    def trade_statistics(pnls: Sequence[float]) -> TradeStatistics:
        """Statistics over closed-trade P&Ls, in chronological order."""
        arr = np.asarray(pnls, dtype=float)
        if arr.size == 0:
            return TradeStatistics()

        wins = arr[arr > 0]
        losses = arr[arr < 0]
        gross_profit = float(wins.sum())
        gross_loss = float(-losses.sum())
        if gross_loss > 0:
            profit_factor = gross_profit / gross_loss
        elif gross_profit > 0:
            profit_factor = math.inf
        else:
            profit_factor = 0.0

        max_wins = max_losses = run_wins = run_losses = 0
        for pnl in arr:
            if pnl > 0:
                run_wins += 1
                run_losses = 0
            elif pnl < 0:
                run_losses += 1
                run_wins = 0
            else:
                run_wins = run_losses = 0
            max_wins = max(max_wins, run_wins)
            max_losses = max(max_losses, run_losses)

        return TradeStatistics(
            total_trades=int(arr.size),
            winning_trades=int(wins.size),
            losing_trades=int(losses.size),
            win_rate=float(wins.size / arr.size * 100),
            profit_factor=profit_factor,
            average_win=float(wins.mean()) if wins.size else 0.0,
            average_loss=float(losses.mean()) if losses.size else 0.0,
            largest_win=float(wins.max()) if wins.size else 0.0,
            largest_loss=float(losses.min()) if losses.size else 0.0,
            max_consecutive_wins=max_wins,
            max_consecutive_losses=max_losses,
        )
