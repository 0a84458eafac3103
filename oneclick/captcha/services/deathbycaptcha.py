"""DeathByCaptcha HTTP API client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from oneclick.captcha.models import (
    CaptchaChallenge,
    CaptchaServiceError,
    CaptchaSolution,
    CaptchaTicket,
)
from oneclick.captcha.services.base import SERVICE_TIMEOUT, RemoteCaptchaService, split_account
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind


DBC_API_BASE = "http://api.dbcapi.me/api"
DBC_CAPTCHA_URL = f"{DBC_API_BASE}/captcha"
DBC_USER_URL = f"{DBC_API_BASE}/user"
DBC_REPORT_URL = f"{DBC_API_BASE}/captcha/{{captcha_id}}/report"

_JSON_HEADERS = {"Accept": "application/json"}


class DeathByCaptchaService(RemoteCaptchaService):
    """DeathByCaptcha client (``user:password`` account, nack only)."""

    name = "DeathByCaptcha"
    tag = "d"
    poll_waits = (4, 3, 3, 4, 4, 5, 5)

    def __init__(
        self,
        account: str,
        http: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        super().__init__(http, logger)
        self.username, self.password = split_account(self.name, account)

    def _json(self, response: requests.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError:
            raise CaptchaServiceError(self.name, f"unexpected answer: {response.text[:200]!r}")

    def check_balance(self) -> None:
        response = self.http.post(
            DBC_USER_URL,
            data={"username": self.username, "password": self.password},
            headers=_JSON_HEADERS,
            timeout=SERVICE_TIMEOUT,
        )
        data = self._json(response)
        status = data.get("status")

        if status == 0:
            if data.get("is_banned"):
                raise CaptchaServiceError(self.name, f"{self.username} is banned")
            if int(float(data.get("balance") or 0)) <= 0:
                raise CaptchaServiceError(self.name, f"not enough credits ({self.username})")
            self._logger.debug(f"DeathByCaptcha credits: {data.get('balance')}")
            return

        if status == 255:
            raise CaptchaServiceError(self.name, str(data.get("error")))
        raise CaptchaServiceError(self.name, f"unknown error: {data}")

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        self._logger.info(f"Using DeathByCaptcha service ({self.username})")

        # The poll URL is given by the redirection, not by the JSON answer
        with open(path, "rb") as f:
            response = self.http.post(
                DBC_CAPTCHA_URL,
                data={"username": self.username, "password": self.password},
                files={"captchafile": (Path(path).name, f)},
                headers=_JSON_HEADERS,
                allow_redirects=False,
                timeout=SERVICE_TIMEOUT,
            )

        if response.status_code != 303 or "Location" not in response.headers:
            raise CaptchaServiceError(
                self.name, f"wrong http answer ({response.status_code})", ErrorKind.CAPTCHA
            )
        poll_url = urljoin(DBC_CAPTCHA_URL, response.headers["Location"])

        for _ in self._poll(budget):
            # {"status": 0, "captcha": 661085218, "is_correct": true, "text": ""}
            data = self._json(
                self.http.get(poll_url, headers=_JSON_HEADERS, timeout=SERVICE_TIMEOUT)
            )
            if not data.get("is_correct"):
                raise CaptchaServiceError(self.name, f"unknown error: {data}", ErrorKind.CAPTCHA)

            word = data.get("text") or ""
            if word:
                return CaptchaSolution(word, CaptchaTicket(self.tag, str(data.get("captcha"))))

        raise CaptchaServiceError(self.name, "timeout, give up", ErrorKind.CAPTCHA)

    def nack(self, transaction_id: str) -> None:
        self._logger.debug(f"DeathByCaptcha report nack ({self.username})")
        response = self.http.post(
            DBC_REPORT_URL.format(captcha_id=transaction_id),
            data={"username": self.username, "password": self.password},
            headers=_JSON_HEADERS,
            timeout=SERVICE_TIMEOUT,
        )
        try:
            status = response.json().get("status")
        except ValueError:
            status = None
        if status != 0:
            self._logger.error(f"DeathByCaptcha: report nack error ({response.text.strip()})")
