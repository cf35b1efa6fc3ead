"""
Domain service: technical indicators.

Computes moving averages, RSI, MACD, Bollinger Bands, volume profile
and simple chart patterns from daily bars, and evaluates scanner
criteria against the result.

Pure computation on pandas Series. No IO.
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Optional, Sequence

import pandas as pd

from app.domain.trading.entities import PriceBar

logger = logging.getLogger(__name__)

MIN_BARS = 20
MACD_MIN_POINTS = 34
EQ_TOLERANCE = 0.01


@dataclass(frozen=True)
class MacdValues:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float
    position: float


@dataclass(frozen=True)
class VolumeProfile:
    average: float
    ratio: float


@dataclass(frozen=True)
class TechnicalIndicators:
    """Indicator values for the most recent bar of a series.

    Every value is None when there is not enough history to compute it.
    """

    rsi: Optional[float] = None
    macd: Optional[MacdValues] = None
    bollinger: Optional[BollingerBands] = None
    sma20: Optional[float] = None
    sma50: Optional[float] = None
    sma200: Optional[float] = None
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    volume: Optional[VolumeProfile] = None
    patterns: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.rsi is None and self.sma20 is None and not self.patterns

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _series(values: Sequence[float]) -> pd.Series:
    return pd.Series([float(v) for v in values], dtype="float64")


class TechnicalIndicatorService:
    """Calculates technical indicators over closing prices and volumes."""

    def sma(self, closes: Sequence[float], period: int) -> Optional[float]:
        if len(closes) < period:
            return None
        value = _series(closes).tail(period).mean()
        return round(float(value), 2)

    def ema(self, closes: Sequence[float], period: int) -> Optional[float]:
        """EMA seeded with the first price, alpha = 2 / (period + 1)."""
        if len(closes) < period:
            return None
        value = _series(closes).ewm(span=period, adjust=False).mean().iloc[-1]
        return round(float(value), 2)

    def rsi(self, closes: Sequence[float], period: int = 14) -> Optional[float]:
        """RSI from the simple mean of the last ``period`` gains and losses."""
        if len(closes) < period + 1:
            return None
        delta = _series(closes).diff().dropna()
        gains = delta.clip(lower=0).tail(period)
        losses = (-delta.clip(upper=0)).tail(period)
        avg_gain = gains.sum() / period
        avg_loss = losses.sum() / period
        if avg_loss == 0:
            return 100.0
        rs = avg_gain / avg_loss
        return round(float(100 - 100 / (1 + rs)), 2)

    def macd(
        self,
        closes: Sequence[float],
        fast: int = 12,
        slow: int = 26,
        signal: int = 9,
    ) -> Optional[MacdValues]:
        if len(closes) < MACD_MIN_POINTS:
            return None
        close = _series(closes)
        ema_fast = close.ewm(span=fast, adjust=False).mean()
        ema_slow = close.ewm(span=slow, adjust=False).mean()
        macd_line = ema_fast - ema_slow
        signal_line = macd_line.ewm(span=signal, adjust=False).mean()
        m = float(macd_line.iloc[-1])
        s = float(signal_line.iloc[-1])
        return MacdValues(
            macd=round(m, 4), signal=round(s, 4), histogram=round(m - s, 4)
        )

    def bollinger(
        self, closes: Sequence[float], period: int = 20, num_std: float = 2.0
    ) -> Optional[BollingerBands]:
        if len(closes) < period:
            return None
        recent = _series(closes).tail(period)
        middle = float(recent.mean())
        std = float(recent.std(ddof=0))
        upper = middle + num_std * std
        lower = middle - num_std * std
        width = upper - lower
        current = float(recent.iloc[-1])
        position = 0.5 if width == 0 else (current - lower) / width
        return BollingerBands(
            upper=round(upper, 2),
            middle=round(middle, 2),
            lower=round(lower, 2),
            position=round(position, 3),
        )

    def volume_profile(
        self, volumes: Sequence[float], period: int = 20
    ) -> Optional[VolumeProfile]:
        if len(volumes) < period:
            return None
        recent = _series(volumes).tail(period)
        average = float(recent.mean())
        if average == 0:
            return VolumeProfile(average=0.0, ratio=0.0)
        ratio = float(recent.iloc[-1]) / average
        return VolumeProfile(average=float(round(average)), ratio=round(ratio, 2))

    def detect_patterns(self, bars: Sequence[PriceBar]) -> list[str]:
        """Detect breakouts, moving-average crosses, gaps and volume surges."""
        patterns: list[str] = []
        if len(bars) < MIN_BARS:
            return patterns

        closes = [float(b.close) for b in bars]
        current = closes[-1]
        sma20 = self.sma(closes, 20)
        sma50 = self.sma(closes, 50)

        if sma20 is not None and current > sma20 * 1.02:
            patterns.append("Bullish Breakout")
        if sma20 is not None and current < sma20 * 0.98:
            patterns.append("Bearish Breakdown")

        if sma20 is not None and sma50 is not None:
            if sma20 > sma50 * 1.001:
                patterns.append("Golden Cross")
            if sma20 < sma50 * 0.999:
                patterns.append("Death Cross")

        previous_close = float(bars[-2].close)
        if previous_close > 0:
            gap_pct = (float(bars[-1].open) - previous_close) / previous_close * 100
            if gap_pct > 2:
                patterns.append("Gap Up")
            if gap_pct < -2:
                patterns.append("Gap Down")

        profile = self.volume_profile([b.volume for b in bars])
        if profile is not None and profile.ratio > 2:
            patterns.append("High Volume")

        return patterns

    def calculate(self, bars: Sequence[PriceBar]) -> TechnicalIndicators:
        """Compute every indicator for the latest bar.

        Args:
            bars: Daily bars for one symbol, sorted by date ascending.

        Returns:
            TechnicalIndicators; empty when fewer than 20 bars are given.
        """
        if len(bars) < MIN_BARS:
            logger.debug("Insufficient bars for indicators: %d", len(bars))
            return TechnicalIndicators()

        closes = [float(b.close) for b in bars]
        volumes = [float(b.volume) for b in bars]
        return TechnicalIndicators(
            rsi=self.rsi(closes),
            macd=self.macd(closes),
            bollinger=self.bollinger(closes),
            sma20=self.sma(closes, 20),
            sma50=self.sma(closes, 50),
            sma200=self.sma(closes, 200),
            ema20=self.ema(closes, 20),
            ema50=self.ema(closes, 50),
            volume=self.volume_profile(volumes),
            patterns=self.detect_patterns(bars),
        )

    def historical_volatility(
        self, closes: Sequence[float], period: int = 20
    ) -> Optional[float]:
        """Daily volatility: standard deviation of the last ``period`` returns."""
        if len(closes) < period + 1:
            return None
        returns = _series(closes).pct_change().dropna().tail(period)
        value = float(returns.std(ddof=0))
        return None if math.isnan(value) else value

    def evaluate_criterion(
        self,
        indicators: TechnicalIndicators,
        field_name: str,
        operator: str,
        value: float,
    ) -> bool:
        """Check a single scanner criterion such as ``rsi lt 30``.

        Unknown fields or operators and missing indicator values never match.
        """
        actual = self._resolve(indicators, field_name)
        if actual is None:
            return False
        if operator in ("gt", "above"):
            return actual > value
        if operator in ("lt", "below"):
            return actual < value
        if operator == "gte":
            return actual >= value
        if operator == "lte":
            return actual <= value
        if operator == "eq":
            return abs(actual - value) < EQ_TOLERANCE
        return False

    @staticmethod
    def _resolve(indicators: TechnicalIndicators, field_name: str) -> Optional[float]:
        macd = indicators.macd
        bands = indicators.bollinger
        volume = indicators.volume
        lookup = {
            "rsi": indicators.rsi,
            "macd.macd": macd.macd if macd else None,
            "macd.signal": macd.signal if macd else None,
            "macd.histogram": macd.histogram if macd else None,
            "bb.position": bands.position if bands else None,
            "sma20": indicators.sma20,
            "sma50": indicators.sma50,
            "sma200": indicators.sma200,
            "ema20": indicators.ema20,
            "ema50": indicators.ema50,
            "volume.ratio": volume.ratio if volume else None,
        }
        return lookup.get(field_name)
