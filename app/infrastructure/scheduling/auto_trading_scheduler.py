"""
Background scheduler for the paper-trading engine.

Uses APScheduler to run periodic tasks:
- **Order poll (interval)**: re-evaluate open orders against the latest quotes
- **Auto trading (interval)**: run active rules for every active portfolio
  while the market is open
- **Order expiry (16:05 New York, Mon-Fri)**: expire DAY orders after the close

Task callables are injected so the scheduler knows nothing about the
database or the use cases behind them.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.domain.trading.market_hours import EXCHANGE_TIMEZONE

logger = logging.getLogger(__name__)

TaskFn = Callable[[], dict[str, Any]]


class TaskStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class TaskResult:
    """Result of a scheduled task execution."""

    task_name: str
    status: TaskStatus
    started_at: str
    finished_at: Optional[str] = None
    duration_seconds: float = 0.0
    details: dict = field(default_factory=dict)
    error: Optional[str] = None


class AutoTradingScheduler:
    """Runs order polling, auto trading and expiry in background threads.

    Usage:
        scheduler = AutoTradingScheduler(poll_orders, run_auto_trading, expire_orders, is_market_open)
        scheduler.start()
        scheduler.run_now("expire_orders")
        scheduler.stop()
    """

    def __init__(
        self,
        poll_orders: TaskFn,
        run_auto_trading: TaskFn,
        expire_orders: TaskFn,
        is_market_open: Callable[[], bool],
        order_poll_seconds: int = 30,
        auto_trading_poll_seconds: int = 300,
        max_history: int = 200,
    ) -> None:
        self._tasks: dict[str, TaskFn] = {
            "poll_orders": poll_orders,
            "auto_trading": run_auto_trading,
            "expire_orders": expire_orders,
        }
        self._is_market_open = is_market_open
        self._order_poll_seconds = order_poll_seconds
        self._auto_trading_poll_seconds = auto_trading_poll_seconds
        self._task_history: list[TaskResult] = []
        self._max_history = max_history
        self._lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    @property
    def task_history(self) -> list[TaskResult]:
        with self._lock:
            return list(self._task_history)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._scheduler is not None:
            logger.warning("Scheduler already running.")
            return

        scheduler = BackgroundScheduler(
            timezone="UTC",
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        scheduler.add_job(
            self.run_now,
            IntervalTrigger(seconds=self._order_poll_seconds),
            args=["poll_orders"],
            id="poll_orders",
            name="Open order polling",
        )
        scheduler.add_job(
            self.run_now,
            IntervalTrigger(seconds=self._auto_trading_poll_seconds),
            args=["auto_trading"],
            id="auto_trading",
            name="Rule-based auto trading",
        )
        scheduler.add_job(
            self.run_now,
            CronTrigger(day_of_week="mon-fri", hour=16, minute=5, timezone=EXCHANGE_TIMEZONE),
            args=["expire_orders"],
            id="expire_orders",
            name="Post-close order expiry",
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("AutoTradingScheduler started with %d jobs.", len(scheduler.get_jobs()))

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        logger.info("AutoTradingScheduler stopped.")

    def run_now(self, task_name: str) -> TaskResult:
        """Execute a named task immediately (blocking).

        Args:
            task_name: One of 'poll_orders', 'auto_trading', 'expire_orders'.
        """
        started_at = datetime.now(timezone.utc).isoformat()
        fn = self._tasks.get(task_name)
        if fn is None:
            return TaskResult(
                task_name=task_name,
                status=TaskStatus.FAILED,
                started_at=started_at,
                error=f"Unknown task: {task_name}. Available: {list(self._tasks)}",
            )

        if task_name == "auto_trading" and not self._is_market_open():
            result = TaskResult(
                task_name=task_name,
                status=TaskStatus.SKIPPED,
                started_at=started_at,
                finished_at=started_at,
                details={"reason": "market closed"},
            )
            self._record_result(result)
            return result

        start = time.monotonic()
        try:
            details = fn()
            result = TaskResult(
                task_name=task_name,
                status=TaskStatus.COMPLETED,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc).isoformat(),
                duration_seconds=round(time.monotonic() - start, 2),
                details=details,
            )
        except Exception as exc:
            # failures are recorded, never raised into the worker thread
            logger.exception("Scheduled task %s failed.", task_name)
            result = TaskResult(
                task_name=task_name,
                status=TaskStatus.FAILED,
                started_at=started_at,
                finished_at=datetime.now(timezone.utc).isoformat(),
                duration_seconds=round(time.monotonic() - start, 2),
                error=str(exc),
            )

        self._record_result(result)
        return result

    def _record_result(self, result: TaskResult) -> None:
        with self._lock:
            self._task_history.append(result)
            if len(self._task_history) > self._max_history:
                self._task_history = self._task_history[-self._max_history:]
