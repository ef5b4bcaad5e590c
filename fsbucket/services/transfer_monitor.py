from typing import Callable, Optional
from datetime import datetime, timedelta
from collections import deque

import config
from logger_config import setup_logger

logger = setup_logger()


class TransferMonitor:
    def __init__(
        self,
        failure_threshold: int = config.FAILURE_ALERT_THRESHOLD,
        window_seconds: int = config.FAILURE_WINDOW_SECONDS,
        alert_handler: Optional[Callable[[str], None]] = None,
    ):
        """
        Track transfer outcomes and alert when failures cluster.

        Args:
            failure_threshold: Number of failures within the window before raising an alert
            window_seconds: Time window in seconds to check for failures
            alert_handler: Optional callback to handle alerts. If None, logs at ERROR level
        """
        if failure_threshold <= 0:
            raise ValueError("Failure threshold must be positive")

        self._failure_threshold = failure_threshold
        self._window_seconds = window_seconds
        self._alert_handler = alert_handler or self._default_alert_handler
        self._total_successes = 0
        self._total_failures = 0
        self._failure_timestamps = deque()
        self._alerting = False

    def _clean_old_failures(self) -> None:
        """Remove failures outside the time window."""
        window_start = datetime.now() - timedelta(seconds=self._window_seconds)

        while self._failure_timestamps and self._failure_timestamps[0] < window_start:
            self._failure_timestamps.popleft()

        # Re-arm once the window has drained below the threshold
        if len(self._failure_timestamps) < self._failure_threshold:
            self._alerting = False

    def _default_alert_handler(self, message: str) -> None:
        logger.error(f"[ALERT] {message}")

    def record_success(self) -> None:
        self._total_successes += 1
        self._clean_old_failures()

    def record_failure(self, operation: str, path: str, reason: str) -> None:
        """
        Record a failed transfer.
        Alerts once when failures within the window reach the threshold, and
        again only after the window has dropped back below it.
        """
        self._failure_timestamps.append(datetime.now())
        self._total_failures += 1

        logger.warning(f"{operation} {path} failed: {reason}")

        self._clean_old_failures()

        if len(self._failure_timestamps) >= self._failure_threshold and not self._alerting:
            self._alerting = True
            self._alert_handler(
                f"{self._failure_threshold} transfer failures within {self._window_seconds}s, "
                f"last: {operation} {path} ({reason}). "
                f"Total successes: {self._total_successes}, total failures: {self._total_failures}"
            )

    @property
    def failures_in_window(self) -> int:
        self._clean_old_failures()
        return len(self._failure_timestamps)

    @property
    def stats(self) -> dict:
        self._clean_old_failures()
        return {
            'total_successes': self._total_successes,
            'total_failures': self._total_failures,
            'failures_in_window': len(self._failure_timestamps),
            'window_seconds': self._window_seconds
        }
