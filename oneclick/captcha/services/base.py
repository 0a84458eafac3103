"""Shared behavior of remote captcha solving services."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence, Tuple

import requests

from oneclick.captcha.models import CaptchaChallenge, CaptchaServiceError, CaptchaSolution
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind, HosterError
from oneclick.utils.logging import get_logger


SERVICE_TIMEOUT = 30  # seconds


def split_account(provider: str, account: Optional[str]) -> Tuple[str, str]:
    """Split a ``user:password`` account string.

    Raises:
        CaptchaServiceError: FATAL when either part is missing.
    """
    user, _, password = (account or "").partition(":")
    if not user or not password:
        raise CaptchaServiceError(provider, "missing account data")
    return user, password


class RemoteCaptchaService:
    """Base class for captcha solving services.

    Subclasses implement the upload/poll protocol of one service. Every
    method may raise CaptchaServiceError, HosterError or a ``requests``
    exception; the engine translates them into outcome codes.

    Attributes:
        name: Provider name used in logs.
        tag: Single character prefix of transaction ids.
        poll_waits: Seconds waited before each poll request.
        supports_ack: Whether positive acknowledgements are reported.
    """

    name = "remote"
    tag = "?"
    poll_waits: Sequence[int] = ()
    supports_ack = False

    def __init__(
        self,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.http = http or requests.Session()
        self._logger = logger or get_logger(f"captcha.{self.name}")

    def check_balance(self) -> None:
        """Verify the account can pay for a captcha."""
        raise NotImplementedError

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        raise NotImplementedError

    def ack(self, transaction_id: str) -> None:
        """Report a correct answer (no-op unless supports_ack)."""

    def nack(self, transaction_id: str) -> None:
        raise NotImplementedError

    def _poll(self, budget: WaitBudget) -> Iterator[int]:
        """Yield once per poll step, after waiting through the item budget.

        Raises:
            HosterError: MAX_WAIT_REACHED when the budget runs out.
        """
        for step, seconds in enumerate(self.poll_waits, 1):
            kind = budget.consume(seconds)
            if kind != ErrorKind.OK:
                raise HosterError(kind, f"{self.name}: timeout while polling")
            self._logger.debug(f"{self.name}: poll {step}/{len(self.poll_waits)}")
            yield step

    def _give_up(self) -> CaptchaServiceError:
        return CaptchaServiceError(self.name, "service unavailable, give up", ErrorKind.CAPTCHA)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
