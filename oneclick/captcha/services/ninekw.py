"""9kw.eu captcha recognition service."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

import requests

from oneclick.captcha.models import (
    CaptchaChallenge,
    CaptchaServiceError,
    CaptchaSolution,
    CaptchaTicket,
)
from oneclick.captcha.services.base import SERVICE_TIMEOUT, RemoteCaptchaService
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind


NINEKW_URL = "http://www.9kw.eu/index.cgi"

# Error range: 0001..0019, followed by a (german) message
_ERROR_RE = re.compile(r"^00[01]\d\s")
_NO_CREDITS = "0011 "


class NineKwService(RemoteCaptchaService):
    """9kw.eu client (API key based, supports ack and nack)."""

    name = "9kw.eu"
    tag = "9"
    poll_waits = (8, 5, 5, 6, 6, 7, 7, 8, 9, 9)
    supports_ack = True

    def __init__(
        self,
        key: str,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(http, logger)
        if not key:
            raise CaptchaServiceError(self.name, "missing captcha key")
        self.key = key

    def check_balance(self) -> None:
        response = self.http.get(
            NINEKW_URL,
            params={"action": "usercaptchaguthaben", "apikey": self.key},
            timeout=SERVICE_TIMEOUT,
        )
        amount = response.text.strip()

        if amount.startswith(_NO_CREDITS):
            raise CaptchaServiceError(self.name, "no more credits")
        if _ERROR_RE.match(amount):
            raise CaptchaServiceError(self.name, f"remote error: {amount[5:]}")
        try:
            credits = float(amount)
        except ValueError:
            raise CaptchaServiceError(self.name, f"unexpected balance answer: {amount[:200]!r}")
        if credits <= 0:
            raise CaptchaServiceError(self.name, f"no more credits ({amount})")
        self._logger.debug(f"9kw.eu credits: {amount}")

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        self._logger.info("Using 9kw.eu captcha recognition system")

        with open(path, "rb") as f:
            response = self.http.post(
                NINEKW_URL,
                data={"method": "post", "action": "usercaptchaupload", "apikey": self.key},
                files={"file-upload-01": ("file.jpg", f)},
                timeout=SERVICE_TIMEOUT,
            )
        answer = response.text.strip()

        if not answer:
            raise CaptchaServiceError(self.name, "empty answer", ErrorKind.NETWORK)
        if _ERROR_RE.match(answer):
            raise CaptchaServiceError(self.name, answer[5:])

        transaction_id = answer

        for _ in self._poll(budget):
            response = self.http.get(
                NINEKW_URL,
                params={
                    "action": "usercaptchacorrectdata",
                    "apikey": self.key,
                    "id": transaction_id,
                    "info": "1",
                },
                timeout=SERVICE_TIMEOUT,
            )
            answer = response.text.strip()

            if not answer or answer == "NO DATA":
                continue
            if _ERROR_RE.match(answer):
                raise CaptchaServiceError(self.name, answer[5:])
            return CaptchaSolution(answer, CaptchaTicket(self.tag, transaction_id))

        raise self._give_up()

    def _correct_back(self, transaction_id: str, correct: int) -> None:
        response = self.http.get(
            NINEKW_URL,
            params={
                "action": "usercaptchacorrectback",
                "apikey": self.key,
                "id": transaction_id,
                "correct": str(correct),
            },
            timeout=SERVICE_TIMEOUT,
        )
        if response.text.strip() != "OK":
            self._logger.error(f"9kw.eu error: {response.text.strip()}")

    def ack(self, transaction_id: str) -> None:
        self._correct_back(transaction_id, 1)

    def nack(self, transaction_id: str) -> None:
        self._correct_back(transaction_id, 2)
