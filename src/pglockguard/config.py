"""
Configuration for lock acquisition.

The defaults reproduce the classic behaviour: each LOCK attempt may wait
five seconds, blockers are re-checked every five seconds, and a timed-out
attempt backs off for five times the fast-fail timeout (25 seconds).
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_FAST_FAIL_TIMEOUT = 5.0
DEFAULT_RETRY_MULTIPLIER = 5
DEFAULT_BLOCKING_CHECK_DURATION = 30.0

# Timeouts are sent to the server in whole milliseconds
MIN_FAST_FAIL_TIMEOUT = 0.001


@dataclass
class LockConfig:
    """Configuration for the lock acquisition coordinator.

    Attributes:
        fast_fail_timeout: Seconds a single LOCK TABLE attempt may wait before
            the server cancels it. Also the minimum transaction age used when
            scanning for blockers (default: 5.0)
        retry_multiplier: Backoff after a timed-out attempt, as a multiple of
            fast_fail_timeout (default: 5)
        poll_interval: Seconds between blocker scans while blockers are
            visible. None means "same as fast_fail_timeout" (default: None)
        blocking_check_duration: Minimum transaction age, in seconds, for the
            pre-migration blocking transactions report (default: 30.0)
        enable_tracing: Enable OpenTelemetry tracing if available (default: True)
    """

    fast_fail_timeout: float = DEFAULT_FAST_FAIL_TIMEOUT
    retry_multiplier: float = DEFAULT_RETRY_MULTIPLIER
    poll_interval: float | None = None
    blocking_check_duration: float = DEFAULT_BLOCKING_CHECK_DURATION
    enable_tracing: bool = True

    def __post_init__(self) -> None:
        """Validate timing values."""
        if self.fast_fail_timeout < MIN_FAST_FAIL_TIMEOUT:
            raise ValueError(
                f"fast_fail_timeout must be at least {MIN_FAST_FAIL_TIMEOUT}s, "
                f"got {self.fast_fail_timeout}"
            )
        if self.retry_multiplier < 0:
            raise ValueError(
                f"retry_multiplier must not be negative, got {self.retry_multiplier}"
            )
        if self.poll_interval is not None and self.poll_interval < 0:
            raise ValueError(f"poll_interval must not be negative, got {self.poll_interval}")
        if self.blocking_check_duration < 0:
            raise ValueError(
                f"blocking_check_duration must not be negative, got {self.blocking_check_duration}"
            )

    @property
    def retry_delay(self) -> float:
        """Seconds to sleep after a LOCK attempt times out."""
        return self.fast_fail_timeout * self.retry_multiplier

    @property
    def blocker_poll_interval(self) -> float:
        """Seconds to sleep between blocker scans."""
        if self.poll_interval is None:
            return self.fast_fail_timeout
        return self.poll_interval


__all__ = [
    "DEFAULT_BLOCKING_CHECK_DURATION",
    "DEFAULT_FAST_FAIL_TIMEOUT",
    "DEFAULT_RETRY_MULTIPLIER",
    "MIN_FAST_FAIL_TIMEOUT",
    "LockConfig",
]
