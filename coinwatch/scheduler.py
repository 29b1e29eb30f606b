"""
Periodic alert checking.
"""

import logging
import threading
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from coinwatch.alerts.engine import AlertEvaluator, TickResult

logger = logging.getLogger(__name__)


class AlertScheduler:
    """
    Runs AlertEvaluator.run_tick on a fixed interval in a background thread.

    Ticks never overlap: at most one tick runs and at most one more waits
    behind it. Runs missed while the process was down are not replayed.
    """

    JOB_ID = "alert_check"

    def __init__(
        self,
        evaluator: AlertEvaluator,
        interval_seconds: float = 60,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        """
        Initialize alert scheduler.

        Args:
            evaluator: Evaluator whose tick is run
            interval_seconds: Seconds between tick starts
            scheduler: Optional APScheduler instance
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.evaluator = evaluator
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or BackgroundScheduler()
        self.last_result: Optional[TickResult] = None
        self._tick_lock = threading.Lock()

    def run_once(self) -> TickResult:
        """Run one tick now, waiting for any tick already in flight."""
        with self._tick_lock:
            result = self.evaluator.run_tick()
            self.last_result = result
            return result

    def start(self) -> None:
        """Schedule the periodic tick and start the scheduler thread."""
        self.scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=2,
            misfire_grace_time=None,
        )
        self.scheduler.start()
        logger.info(f"Alert checks scheduled every {self.interval_seconds}s")

    def shutdown(self, wait: bool = True) -> None:
        """Stop scheduling; with wait=True an in-flight tick is allowed to finish."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("Alert scheduler stopped")
