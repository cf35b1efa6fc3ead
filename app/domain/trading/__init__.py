"""
Trading bounded context: domain layer.

This module contains all domain logic for the trading context:
- Portfolio accounting and the pattern-day-trader rule
- Order triggering, fills and execution costs
- Risk checks and position sizing
- Rule-based automation
- Technical indicators, performance metrics and backtesting
- Exchange trading hours
"""
