"""Captcha Brotherhood bypass service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import requests

from oneclick.captcha.models import (
    CaptchaChallenge,
    CaptchaServiceError,
    CaptchaSolution,
    CaptchaTicket,
)
from oneclick.captcha.services.base import SERVICE_TIMEOUT, RemoteCaptchaService, split_account
from oneclick.core.budget import WaitBudget


BROTHERHOOD_BASE_URL = "http://www.captchabrotherhood.com"
MIN_CREDITS = 10


def _error_text(answer: str) -> str:
    return answer[len("Error-"):] if answer.startswith("Error-") else answer


class BrotherhoodService(RemoteCaptchaService):
    """Captcha Brotherhood client (``user:password`` account, nack only)."""

    name = "Captcha Brotherhood"
    tag = "b"
    poll_waits = (6, 5, 5, 6, 6, 7, 7, 8)

    def __init__(
        self,
        account: str,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(http, logger)
        self.username, self.password = split_account(self.name, account)

    def _credentials(self) -> dict:
        return {"username": self.username, "password": self.password}

    def check_balance(self) -> None:
        response = self.http.get(
            f"{BROTHERHOOD_BASE_URL}/askCredits.aspx",
            params=self._credentials(),
            timeout=SERVICE_TIMEOUT,
        )
        answer = response.text.strip()

        if not answer.startswith("OK-"):
            raise CaptchaServiceError(self.name, _error_text(answer))

        try:
            credits = int(answer[3:])
        except ValueError:
            raise CaptchaServiceError(self.name, f"unexpected credits answer: {answer!r}")

        if credits < MIN_CREDITS:
            raise CaptchaServiceError(self.name, f"not enough credits ({self.username})")
        self._logger.debug(f"Captcha Brotherhood credits: {credits}")

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        self._logger.info(f"Using captcha brotherhood bypass service ({self.username})")

        params = dict(self._credentials())
        params.update({"captchaSource": "oneclick", "timeout": "30", "captchaSite": "-1"})

        # Content-Type is mandatory
        response = self.http.post(
            f"{BROTHERHOOD_BASE_URL}/sendNewCaptcha.aspx",
            params=params,
            data=Path(path).read_bytes(),
            headers={"Content-Type": "text/html"},
            timeout=SERVICE_TIMEOUT,
        )
        answer = response.text.strip()

        if not answer.startswith("OK-"):
            raise CaptchaServiceError(self.name, _error_text(answer))
        transaction_id = answer[3:]
        if not transaction_id:
            raise CaptchaServiceError(self.name, "empty tid?")

        for _ in self._poll(budget):
            response = self.http.get(
                f"{BROTHERHOOD_BASE_URL}/askCaptchaResult.aspx",
                params=dict(self._credentials(), captchaID=transaction_id),
                timeout=SERVICE_TIMEOUT,
            )
            answer = response.text.strip()

            if answer.startswith("OK-answered-"):
                word = answer[len("OK-answered-"):]
                if not word:
                    raise CaptchaServiceError(self.name, "empty word?")
                return CaptchaSolution(word, CaptchaTicket(self.tag, transaction_id))
            if not answer.startswith("OK-"):
                raise CaptchaServiceError(self.name, _error_text(answer))
            # OK-on user-

        raise self._give_up()

    def nack(self, transaction_id: str) -> None:
        self._logger.debug(f"captcha brotherhood report nack ({self.username})")
        response = self.http.get(
            f"{BROTHERHOOD_BASE_URL}/complainCaptcha.aspx",
            params=dict(self._credentials(), captchaID=transaction_id),
            timeout=SERVICE_TIMEOUT,
        )
        if response.text.strip() != "OK-Complained":
            self._logger.error(f"Captcha Brotherhood nack error: {response.text.strip()}")
