"""antigate.com captcha recognition service."""

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
from oneclick.captcha.services.base import SERVICE_TIMEOUT, RemoteCaptchaService
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind
from oneclick.utils.logging import mask_sensitive_data


ANTIGATE_IN_URL = "http://antigate.com/in.php"
ANTIGATE_RES_URL = "http://antigate.com/res.php"

_SERVER_ERRORS = ("500 Internal Server Error", "502 Bad Gateway", "503 Service Unavailable")


class AntigateService(RemoteCaptchaService):
    """antigate.com client (key based, nack only)."""

    name = "antigate"
    tag = "a"
    poll_waits = (8, 5, 5, 6, 6, 7, 7, 8)

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
            ANTIGATE_RES_URL,
            params={"key": self.key, "action": "getbalance"},
            timeout=SERVICE_TIMEOUT,
        )
        amount = response.text.strip()

        if response.status_code >= 500 or any(e in amount for e in _SERVER_ERRORS):
            raise CaptchaServiceError(
                self.name, f"server error (HTTP {response.status_code})", ErrorKind.CAPTCHA
            )
        if amount.startswith("ERROR"):
            raise CaptchaServiceError(self.name, amount)

        try:
            credits = float(amount)
        except ValueError:
            raise CaptchaServiceError(self.name, f"unexpected balance answer: {amount!r}")

        if credits <= 0:
            raise CaptchaServiceError(self.name, "no more credits (or bad key)")
        self._logger.debug(f"antigate credits: ${amount}")

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        self._logger.info("Using antigate captcha recognition system")
        self._logger.debug(f"antigate key: {mask_sensitive_data(self.key)}")

        data = {"method": "post", "key": self.key, "is_russian": "0"}
        if challenge.min_length:
            data["min_len"] = str(challenge.min_length)
        if challenge.max_length:
            data["max_len"] = str(challenge.max_length)

        with open(path, "rb") as f:
            response = self.http.post(
                ANTIGATE_IN_URL,
                data=data,
                files={"file": ("file.jpg", f)},
                timeout=SERVICE_TIMEOUT,
            )
        answer = response.text.strip()

        if not answer:
            raise CaptchaServiceError(self.name, "empty answer", ErrorKind.NETWORK)
        if answer == "ERROR_IP_NOT_ALLOWED":
            raise CaptchaServiceError(self.name, "IP not allowed")
        if answer == "ERROR_ZERO_BALANCE":
            raise CaptchaServiceError(self.name, "no credits")
        if answer == "ERROR_NO_SLOT_AVAILABLE":
            raise CaptchaServiceError(self.name, "no slot available", ErrorKind.CAPTCHA)
        if "ERROR_" in answer or not answer.startswith("OK|"):
            raise CaptchaServiceError(self.name, answer)

        transaction_id = answer[3:]

        for _ in self._poll(budget):
            response = self.http.get(
                ANTIGATE_RES_URL,
                params={"key": self.key, "action": "get", "id": transaction_id},
                timeout=SERVICE_TIMEOUT,
            )
            answer = response.text.strip()

            if answer == "CAPCHA_NOT_READY":
                continue
            if answer.startswith("OK|"):
                return CaptchaSolution(answer[3:], CaptchaTicket(self.tag, transaction_id))
            raise CaptchaServiceError(self.name, answer)

        raise self._give_up()

    def nack(self, transaction_id: str) -> None:
        response = self.http.get(
            ANTIGATE_RES_URL,
            params={"key": self.key, "action": "reportbad", "id": transaction_id},
            timeout=SERVICE_TIMEOUT,
        )
        if response.text.strip() != "OK_REPORT_RECORDED":
            self._logger.error(f"antigate error: {response.text.strip()}")
