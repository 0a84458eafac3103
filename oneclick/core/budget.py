"""Wait/timeout budget shared by every sleep of one item.

An item may spend at most ``total_seconds`` sleeping across all of its
retries (site wait timers, captcha service polling, safety waits). The
budget is only checked before a sleep starts; a sleep in progress is never
interrupted.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from rich.console import Console

from oneclick.core.errors import ErrorKind
from oneclick.utils.logging import get_logger


def split_seconds(seconds: int) -> str:
    """Format a duration for display.

    Examples:
        >>> split_seconds(12345)
        '3h25m45s'
        >>> split_seconds(60)
        '1m'
    """
    hours, rest = divmod(int(seconds), 3600)
    minutes, secs = divmod(rest, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return "".join(parts)


class WaitBudget:
    """Remaining seconds an item is allowed to sleep.

    Attributes:
        total: Initial budget in seconds (None means unlimited).
        remaining: Seconds left (None means unlimited).
    """

    def __init__(
        self,
        total_seconds: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
        console: Optional[Console] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the budget.

        Args:
            total_seconds: Budget in seconds, None for unlimited.
            sleep: Blocking sleep function (injectable for tests).
            console: Console used for the countdown display. Defaults to a
                stderr console; the countdown is only shown on a terminal.
            logger: Optional logger instance.
        """
        if total_seconds is not None and total_seconds < 0:
            raise ValueError(f"Negative timeout budget: {total_seconds}")

        self.total = total_seconds
        self.remaining = total_seconds
        self._sleep = sleep
        self._console = console or Console(stderr=True)
        self._logger = logger or get_logger("budget")

    @property
    def unlimited(self) -> bool:
        return self.remaining is None

    @property
    def spent(self) -> int:
        """Seconds consumed so far (0 for an unlimited budget)."""
        if self.total is None or self.remaining is None:
            return 0
        return self.total - self.remaining

    def consume(self, seconds: int) -> ErrorKind:
        """Reserve ``seconds`` from the budget, then sleep.

        Args:
            seconds: Sleep duration.

        Returns:
            ErrorKind.OK after sleeping, or ErrorKind.MAX_WAIT_REACHED (without
            sleeping) if the budget cannot cover the whole duration.
        """
        seconds = int(seconds)
        if seconds <= 0:
            self._logger.debug("wait called with null duration")
            return ErrorKind.OK

        if self.remaining is not None:
            self._logger.debug(f"time left to timeout: {self.remaining} secs")
            if seconds > self.remaining:
                self._logger.info(
                    f"Timeout reached (asked to wait {seconds} seconds, "
                    f"but remaining time is {self.remaining})"
                )
                return ErrorKind.MAX_WAIT_REACHED
            self.remaining -= seconds

        self._wait(seconds)
        return ErrorKind.OK

    def _wait(self, seconds: int) -> None:
        message = f"Waiting {seconds} seconds..."

        if not self._console.is_terminal:
            self._logger.info(message)
            self._sleep(seconds)
            return

        left = seconds
        with self._console.status(message) as status:
            while left > 0:
                status.update(f"{message} {split_seconds(left)} left")
                self._sleep(1)
                left -= 1
        self._logger.info(f"{message} done")

    def __repr__(self) -> str:
        return f"WaitBudget(total={self.total!r}, remaining={self.remaining!r})"
