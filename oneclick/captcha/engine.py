"""Captcha resolution engine.

This module provides the CaptchaEngine class which:
- Chooses the solving method once (forced method, else first configured
  service, else interactive prompt)
- Runs the optional external captcha program before anything else
- Checks the remote service balance before its first use
- Settles (ack/nack) each provider ticket at most once
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional, Set, Union

import requests
from rich.console import Console

from oneclick.captcha.challenges import solve_recaptcha, solve_solvemedia
from oneclick.captcha.models import (
    PROVIDER_TAGS,
    CaptchaChallenge,
    CaptchaSolution,
    CaptchaTicket,
    ChallengeAnswer,
)
from oneclick.captcha.ocr import OcrSolver
from oneclick.captcha.program import CaptchaProgram
from oneclick.captcha.prompt import PromptSolver
from oneclick.captcha.services import (
    AntigateService,
    BrotherhoodService,
    DeathByCaptchaService,
    NineKwService,
    RemoteCaptchaService,
)
from oneclick.core.budget import WaitBudget
from oneclick.core.config import ToolkitConfig
from oneclick.core.errors import ErrorKind, HosterError, Outcome, kind_from_exception
from oneclick.utils.logging import get_logger


IMAGE_TIMEOUT = 30  # seconds

# Auto-detection order: (method name, ticket tag)
SERVICE_METHODS = (
    ("antigate", "a"),
    ("9kweu", "9"),
    ("captchabrotherhood", "b"),
    ("deathbycaptcha", "d"),
)
_METHOD_BY_TAG = {tag: method for method, tag in SERVICE_METHODS}


class CaptchaEngine:
    """Solves captcha challenges for site modules.

    Attributes:
        config: Toolkit configuration (method, program, credentials).
        method: Selected solving method (``none``, ``prompt``, ``nox``,
            ``ocr`` or a service name), None if no method could be chosen.
        module_name: Default module name given to the captcha program.
    """

    def __init__(
        self,
        config: ToolkitConfig,
        http: Optional[requests.Session] = None,
        ask: Optional[Callable[[str], str]] = None,
        console: Optional[Console] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the engine and select the solving method.

        Args:
            config: Toolkit configuration.
            http: HTTP session for captcha services and remote images.
            ask: Optional input function for the prompt method.
            console: Console used by the prompt method.
            logger: Optional logger instance.
        """
        self.config = config
        self.http = http or requests.Session()
        self.module_name = ""
        self._ask = ask
        self._console = console
        self._logger = logger or get_logger("captcha")

        self._services: Dict[str, RemoteCaptchaService] = {}
        self._balance_checked: Set[str] = set()
        self._settled: Set[str] = set()

        self.method = self._select_method()

    def _credential(self, method: str) -> Optional[str]:
        credentials = self.config.captcha
        return {
            "antigate": credentials.antigate,
            "9kweu": credentials.ninekw,
            "captchabrotherhood": credentials.brotherhood,
            "deathbycaptcha": credentials.deathbycaptcha,
        }[method]

    def _first_service_method(self) -> Optional[str]:
        for method, _ in SERVICE_METHODS:
            if self._credential(method):
                return method
        return None

    def _select_method(self) -> Optional[str]:
        forced = self.config.captcha_method

        if forced == "online":
            method = self._first_service_method()
            if method is None:
                self._logger.error("Error: no captcha solver account provided")
            return method

        if forced:
            return forced

        return self._first_service_method() or "prompt"

    def _service(self, method: str) -> RemoteCaptchaService:
        """Return (and cache) the client of a remote service.

        Raises:
            CaptchaServiceError: FATAL when the account data is missing.
        """
        if method not in self._services:
            credential = self._credential(method)
            if method == "antigate":
                service = AntigateService(credential, self.http)
            elif method == "9kweu":
                service = NineKwService(credential, self.http)
            elif method == "captchabrotherhood":
                service = BrotherhoodService(credential, self.http)
            else:
                service = DeathByCaptchaService(credential, self.http)
            self._services[method] = service
        return self._services[method]

    @contextmanager
    def _local_image(self, challenge: CaptchaChallenge) -> Iterator[Path]:
        """Provide the challenge image as a local file, removed afterwards if temporary."""
        temp_path: Optional[Path] = None

        try:
            if isinstance(challenge.image, bytes):
                data = challenge.image
            elif challenge.is_remote:
                response = self.http.get(challenge.image, timeout=IMAGE_TIMEOUT)
                response.raise_for_status()
                data = response.content
            else:
                data = None

            if data is not None:
                fd, name = tempfile.mkstemp(suffix=".captcha")
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                temp_path = Path(name)
                path = temp_path
            else:
                path = Path(challenge.image)
                if not path.is_file():
                    raise HosterError(ErrorKind.FATAL, "captcha image file not found")

            if path.stat().st_size == 0:
                raise HosterError(ErrorKind.FATAL, "empty captcha image file")

            yield path
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

    def solve(
        self,
        challenge: CaptchaChallenge,
        budget: Optional[WaitBudget] = None,
        module_name: Optional[str] = None,
    ) -> Outcome[CaptchaSolution]:
        """Solve a captcha challenge.

        Args:
            challenge: Image and hints.
            budget: Item wait budget (service polling sleeps through it).
            module_name: Module asking for the captcha (captcha program arg).

        Returns:
            Outcome with a CaptchaSolution. The word may be empty when the
            user asked for another image.
        """
        budget = budget if budget is not None else WaitBudget()
        module_name = module_name or self.module_name

        try:
            with self._local_image(challenge) as path:
                if self.config.captcha_program:
                    program = CaptchaProgram(self.config.captcha_program)
                    word = program.run(module_name, path, challenge)
                    if word is not None:
                        return Outcome.success(CaptchaSolution(word))

                return Outcome.success(self._solve_with_method(path, challenge, budget))

        except (HosterError, requests.RequestException, OSError) as e:
            kind = kind_from_exception(e)
            self._logger.error(f"Captcha: {e}")
            return Outcome.failure(kind)

    def _solve_with_method(
        self, path: Path, challenge: CaptchaChallenge, budget: WaitBudget
    ) -> CaptchaSolution:
        method = self.method

        if method is None:
            raise HosterError(ErrorKind.FATAL, "no captcha solver account provided")

        if method == "none":
            raise HosterError(ErrorKind.CAPTCHA, "captcha method set to none")

        if method in ("prompt", "nox"):
            solver = PromptSolver(
                allow_x11=method != "nox", ask=self._ask, console=self._console
            )
            return solver.solve(path, challenge, budget)

        if method == "ocr":
            return OcrSolver().solve(path, challenge, budget)

        service = self._service(method)
        if method not in self._balance_checked:
            service.check_balance()
            self._balance_checked.add(method)
        return service.solve(path, challenge, budget)

    def ack(self, ticket: Union[CaptchaTicket, str]) -> None:
        """Report a correct answer (best effort, never raises)."""
        self._settle(ticket, positive=True)

    def nack(self, ticket: Union[CaptchaTicket, str]) -> None:
        """Report a wrong answer (best effort, never raises)."""
        self._settle(ticket, positive=False)

    def _settle(self, ticket: Union[CaptchaTicket, str], positive: bool) -> None:
        if isinstance(ticket, str):
            ticket = CaptchaTicket.parse(ticket)
        if ticket.is_null:
            return

        operation = "ack" if positive else "nack"
        method = _METHOD_BY_TAG.get(ticket.provider_tag)
        if method is None:
            self._logger.error(f"captcha {operation} failed: unknown transaction ID: {ticket}")
            return

        if str(ticket) in self._settled:
            self._logger.warning(f"captcha {operation} ignored: {ticket} already settled")
            return
        self._settled.add(str(ticket))

        if not self._credential(method):
            self._logger.error(
                f"captcha {operation} failed: {PROVIDER_TAGS[ticket.provider_tag]} "
                "missing account data"
            )
            return

        try:
            service = self._service(method)
            if positive and not service.supports_ack:
                return
            if positive:
                service.ack(ticket.transaction_id)
            else:
                service.nack(ticket.transaction_id)
        except (HosterError, requests.RequestException) as e:
            self._logger.error(f"captcha {operation} failed: {e}")

    def recaptcha(
        self,
        public_key: str,
        budget: Optional[WaitBudget] = None,
        http: Optional[requests.Session] = None,
    ) -> Outcome[ChallengeAnswer]:
        """Solve a reCAPTCHA challenge (see challenges.solve_recaptcha)."""
        return solve_recaptcha(self, public_key, budget, http or self.http)

    def solvemedia(
        self,
        public_key: str,
        budget: Optional[WaitBudget] = None,
        http: Optional[requests.Session] = None,
    ) -> Outcome[ChallengeAnswer]:
        """Solve a Solve Media challenge (see challenges.solve_solvemedia)."""
        return solve_solvemedia(self, public_key, budget, http or self.http)

    def __repr__(self) -> str:
        return f"CaptchaEngine(method={self.method!r})"

