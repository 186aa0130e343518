"""Background timer that runs evaluation passes periodically."""

from __future__ import annotations

import logging
import threading

import schedule

from panel_alerts.evaluation.evaluator import Evaluator
from panel_alerts.models import EvaluationReport

logger = logging.getLogger(__name__)


class EvaluationScheduler:
    """Calls ``Evaluator.evaluate_all`` every *interval_seconds*.

    Uses a private ``schedule.Scheduler`` so several instances do not
    share the module-level job list. ``stop()`` sets the cancel event,
    which also stops an in-flight pass between rules.
    """

    def __init__(
        self,
        evaluator: Evaluator,
        interval_seconds: int = 60,
        poll_seconds: float = 1.0,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be positive, got {interval_seconds}"
            raise ValueError(msg)
        self._evaluator = evaluator
        self._interval = interval_seconds
        self._poll = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._consecutive_failures = 0
        self.last_report: EvaluationReport | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background thread. No-op when already running."""
        if self.running:
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self._interval).seconds.do(self.run_once)
        self._thread = threading.Thread(
            target=self._run_loop, name="alert-evaluation", daemon=True,
        )
        self._thread.start()
        logger.info("Alert evaluation scheduler started (every %ss)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the timer and cancel the running pass, if any."""
        self._stop.set()
        self._scheduler.clear()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Alert evaluation scheduler stopped")

    def run_once(self) -> EvaluationReport | None:
        """Run one pass now. Failures are logged, never raised."""
        try:
            report = self._evaluator.evaluate_all(cancel=self._stop)
        except Exception:
            self._consecutive_failures += 1
            logger.exception(
                "Alert evaluation pass failed (%d consecutive)",
                self._consecutive_failures,
            )
            return None
        self._consecutive_failures = 0
        self.last_report = report
        return report

    def _run_loop(self) -> None:
        self.run_once()
        while not self._stop.wait(self._poll):
            self._scheduler.run_pending()
