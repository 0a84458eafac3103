"""Human captcha solving: show the image, ask for the word."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Prompt

from oneclick.captcha.models import CaptchaChallenge, CaptchaSolution
from oneclick.captcha.viewer import ImageViewer, find_viewer
from oneclick.core.budget import WaitBudget
from oneclick.utils.logging import get_logger


RELOAD_HINT = "Leave this field blank and hit enter to get another captcha image"
PROMPT_TEXT = "Enter captcha response (drop punctuation marks, case insensitive): "

# Captcha types with a reload mechanism
RELOADABLE_TYPES = ("recaptcha", "solvemedia")


class PromptSolver:
    """Interactive solver.

    Attributes:
        allow_x11: Whether X11 viewers may be used (False for ``nox``).
    """

    def __init__(
        self,
        allow_x11: bool = True,
        ask: Optional[Callable[[str], str]] = None,
        viewer: Optional[ImageViewer] = None,
        console: Optional[Console] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.allow_x11 = allow_x11
        self._console = console or Console(stderr=True)
        self._ask = ask or self._rich_ask
        self._viewer = viewer
        self._logger = logger or get_logger("captcha.prompt")

    def _rich_ask(self, text: str) -> str:
        return Prompt.ask(text, console=self._console, default="", show_default=False)

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: Optional[WaitBudget] = None
    ) -> CaptchaSolution:
        viewer = self._viewer or find_viewer(self.allow_x11, self._logger)
        viewer.show(path)
        try:
            if challenge.captcha_type in RELOADABLE_TYPES:
                self._logger.info(RELOAD_HINT)
            word = self._ask(PROMPT_TEXT.rstrip())
        finally:
            viewer.close()
        return CaptchaSolution((word or "").strip())
