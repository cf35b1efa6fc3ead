"""
Use case: Run one pass of rule-based automation for a portfolio.

Input: RunAutoTradingCommand (portfolio_id, symbols, execute)
Output: AutoTradingReport
Side effects: In execute mode places orders, which may fill immediately.
Failure cases: PortfolioNotFoundError. Per-trade failures are reported as
    rejected decisions instead of being raised.
"""

import logging
from typing import Any, Callable, Optional

from app.application.trading.dtos import (
    AutoTradeDecision,
    AutoTradingReport,
    PlaceOrderCommand,
    RunAutoTradingCommand,
)
from app.application.trading.manage_portfolios import load_portfolio
from app.application.trading.market_data import recent_bars
from app.application.trading.place_order import PlaceOrderUseCase
from app.application.trading.risk_policy import RiskPolicy
from app.application.trading.trade_executor import TradeExecutor
from app.domain.trading.entities import (
    OrderSide,
    OrderStatus,
    OrderType,
    Portfolio,
    PriceType,
    StockQuote,
    TimeInForce,
    utc_now,
)
from app.domain.trading.errors import TradingDomainError
from app.domain.trading.indicators import TechnicalIndicators, TechnicalIndicatorService
from app.domain.trading.market_hours import MarketHoursService
from app.domain.trading.ports import (
    PortfolioRepository,
    PriceHistoryRepository,
    SnapshotRepository,
    StockQuoteRepository,
    TradingRuleRepository,
)
from app.domain.trading.risk import RiskManagementService
from app.domain.trading.rules import ProposedTrade, RuleEngine, TradingContext

logger = logging.getLogger(__name__)

VOLUME_SPIKE_RATIO = 2.0

ORDER_TYPES = {
    PriceType.MARKET: OrderType.MARKET,
    PriceType.LIMIT: OrderType.LIMIT,
    PriceType.STOP: OrderType.STOP_LOSS,
}


def technical_snapshot(
    indicators: TechnicalIndicators, volatility: Optional[float]
) -> dict[str, Optional[float]]:
    """Flatten indicators into the ``technical.<name>`` fields rules can read."""
    macd = indicators.macd
    bands = indicators.bollinger
    volume = indicators.volume
    return {
        "rsi": indicators.rsi,
        "macd": macd.macd if macd else None,
        "macd_signal": macd.signal if macd else None,
        "macd_histogram": macd.histogram if macd else None,
        "bb_position": bands.position if bands else None,
        "bb_upper": bands.upper if bands else None,
        "bb_lower": bands.lower if bands else None,
        "sma20": indicators.sma20,
        "sma50": indicators.sma50,
        "sma200": indicators.sma200,
        "ema20": indicators.ema20,
        "ema50": indicators.ema50,
        "volume_ratio": volume.ratio if volume else None,
        "volatility": volatility,
    }


class RunAutoTradingUseCase:
    """Evaluates a portfolio's active rules per symbol and acts on the winners.

    A pass is halted up front when the portfolio's drawdown from its
    snapshot peak reaches the emergency stop limit.
    """

    def __init__(
        self,
        portfolio_repo: PortfolioRepository,
        rule_repo: TradingRuleRepository,
        quote_repo: StockQuoteRepository,
        history_repo: PriceHistoryRepository,
        snapshot_repo: SnapshotRepository,
        executor: TradeExecutor,
        engine: RuleEngine,
        indicators: TechnicalIndicatorService,
        risk_policy: RiskPolicy,
        market_hours: MarketHoursService,
        place_order: PlaceOrderUseCase,
        clock: Callable = utc_now,
    ) -> None:
        self._portfolios = portfolio_repo
        self._rules = rule_repo
        self._quotes = quote_repo
        self._history = history_repo
        self._snapshots = snapshot_repo
        self._executor = executor
        self._engine = engine
        self._indicators = indicators
        self._risk_policy = risk_policy
        self._market_hours = market_hours
        self._place_order = place_order
        self._clock = clock

    def execute(self, command: RunAutoTradingCommand) -> AutoTradingReport:
        now = self._clock()
        portfolio = self._load(command)
        risk = self._risk_policy.for_portfolio(portfolio)

        peak = max(
            [s.total_value for s in self._snapshots.list_for_portfolio(portfolio.id)]
            + [portfolio.total_value]
        )
        if risk.check_emergency_stop(portfolio.total_value, peak):
            reason = (
                f"Emergency stop: portfolio value {portfolio.total_value} is "
                f"{risk.parameters.emergency_drawdown_pct}% or more below peak {peak}"
            )
            logger.warning("Auto trading halted for portfolio %s: %s", portfolio.id, reason)
            return AutoTradingReport(
                portfolio_id=portfolio.id,
                halted=True,
                rules_evaluated=0,
                rules_triggered=0,
                halt_reason=reason,
            )

        rules = self._engine.prioritize(
            self._rules.list_rules(portfolio_id=portfolio.id, active_only=True)
        )
        symbols = [s.upper() for s in command.symbols] or self._quotes.list_symbols()
        quotes = self._quotes.get_many(symbols)
        market_open = self._market_hours.is_market_open(now)

        evaluated = 0
        triggered = 0
        decisions: list[AutoTradeDecision] = []
        for symbol in symbols:
            quote = quotes.get(symbol)
            if quote is None or not rules:
                continue
            context = self._context(portfolio, quote, market_open)
            fired = [r for r in rules if self._engine.evaluate_rule(r, context)]
            evaluated += len(rules)
            triggered += len(fired)

            for rule in self._engine.resolve_conflicts(fired):
                for proposal in self._engine.generate_trades(rule, context):
                    decision = self._decide(portfolio, risk, proposal, context, command.execute, now)
                    decisions.append(decision)
                    if decision.order_id is not None:
                        portfolio = self._load(command)

        report = AutoTradingReport(
            portfolio_id=portfolio.id,
            halted=False,
            rules_evaluated=evaluated,
            rules_triggered=triggered,
            decisions=decisions,
        )
        logger.info(
            "Auto trading for portfolio %s: %d evaluated, %d triggered, %d proposed, "
            "%d executed, %d rejected",
            portfolio.id,
            evaluated,
            triggered,
            report.proposed,
            report.executed,
            report.rejected,
        )
        return report

    def _load(self, command: RunAutoTradingCommand) -> Portfolio:
        return self._executor.mark_to_market(
            load_portfolio(self._portfolios, command.portfolio_id)
        )

    def _context(
        self, portfolio: Portfolio, quote: StockQuote, market_open: bool
    ) -> TradingContext:
        bars = recent_bars(self._history, quote.symbol)
        indicators = self._indicators.calculate(bars)
        volatility = self._indicators.historical_volatility([float(b.close) for b in bars])
        volume = indicators.volume
        return TradingContext(
            symbol=quote.symbol,
            current_price=quote.price,
            portfolio_value=portfolio.total_value,
            cash_balance=portfolio.current_cash,
            position=portfolio.positions.get(quote.symbol),
            technical=technical_snapshot(indicators, volatility),
            market_open=market_open,
            volume_spike=bool(volume and volume.ratio > VOLUME_SPIKE_RATIO),
        )

    def _decide(
        self,
        portfolio: Portfolio,
        risk: RiskManagementService,
        proposal: ProposedTrade,
        context: TradingContext,
        execute: bool,
        now,
    ) -> AutoTradeDecision:
        quantity = proposal.quantity
        base: dict[str, Any] = {
            "rule_name": proposal.rule_name,
            "symbol": proposal.symbol,
            "side": proposal.side,
            "price": proposal.price,
        }

        order_type = ORDER_TYPES[proposal.price_type]
        if proposal.side == OrderSide.BUY:
            # size at the price the placed order will be checked against
            check_price = (
                self._place_order.market_price(context.current_price, proposal.side)
                if order_type == OrderType.MARKET
                else proposal.price
            )
            check = risk.validate_trade(
                portfolio,
                proposal.side,
                proposal.symbol,
                quantity,
                check_price,
                daily_realized_pnl=self._executor.daily_realized_pnl(portfolio.id, now),
                volatility=context.technical.get("volatility"),
            )
            if not check.allowed:
                if not check.adjusted_quantity:
                    return AutoTradeDecision(
                        quantity=quantity, status="rejected", reason=check.reason, **base
                    )
                logger.info(
                    "Reducing %s buy from %d to %d shares: %s",
                    proposal.symbol,
                    quantity,
                    check.adjusted_quantity,
                    check.reason,
                )
                quantity = check.adjusted_quantity

        if not execute:
            return AutoTradeDecision(
                quantity=quantity, status="proposed", reason=proposal.reasoning, **base
            )

        try:
            order = self._place_order.execute(
                PlaceOrderCommand(
                    portfolio_id=portfolio.id,
                    symbol=proposal.symbol,
                    side=proposal.side,
                    order_type=order_type,
                    quantity=quantity,
                    limit_price=proposal.price if order_type == OrderType.LIMIT else None,
                    stop_price=proposal.price if order_type == OrderType.STOP_LOSS else None,
                    time_in_force=TimeInForce.DAY,
                )
            )
        except TradingDomainError as exc:
            logger.warning("Rule %s order rejected: %s", proposal.rule_name, exc.message)
            return AutoTradeDecision(
                quantity=quantity, status="rejected", reason=exc.message, **base
            )

        if order.status == OrderStatus.CANCELLED:
            return AutoTradeDecision(
                quantity=quantity,
                status="rejected",
                reason=order.cancellation_reason,
                order_id=order.id,
                **base,
            )
        status = "executed" if order.filled_quantity > 0 else "placed"
        return AutoTradeDecision(
            quantity=quantity,
            status=status,
            reason=proposal.reasoning,
            order_id=order.id,
            **base,
        )
