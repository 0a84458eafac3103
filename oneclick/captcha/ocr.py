"""Local OCR with tesseract."""

from __future__ import annotations

import logging
import string
import subprocess
from pathlib import Path
from typing import List, Optional

from oneclick.captcha.models import CaptchaChallenge, CaptchaSolution
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind, HosterError
from oneclick.utils.logging import get_logger


OCR_TIMEOUT = 60  # seconds

_CHARSETS = {
    "ocr_digit": string.digits,
    "ocr_upper": string.ascii_uppercase,
}


class OcrSolver:
    """Recognize a captcha with ``tesseract <image> stdout``."""

    def __init__(self, program: str = "tesseract", logger: Optional[logging.Logger] = None) -> None:
        self.program = program
        self._logger = logger or get_logger("captcha.ocr")

    def command(self, path: Path, captcha_type: str = "") -> List[str]:
        cmd = [self.program, str(path), "stdout"]
        charset = _CHARSETS.get(captcha_type)
        if charset:
            cmd += ["-c", f"tessedit_char_whitelist={charset}"]
        return cmd

    def solve(
        self, path: Path, challenge: CaptchaChallenge, budget: Optional[WaitBudget] = None
    ) -> CaptchaSolution:
        cmd = self.command(path, challenge.captcha_type)
        self._logger.debug(f"Running OCR: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=OCR_TIMEOUT)
        except FileNotFoundError:
            raise HosterError(ErrorKind.SYSTEM, f"{self.program} not found")
        except subprocess.TimeoutExpired:
            raise HosterError(ErrorKind.CAPTCHA, f"{self.program} timed out")

        if result.returncode != 0:
            self._logger.error(f"{self.program} failed: {result.stderr.strip()}")
            raise HosterError(ErrorKind.CAPTCHA, "OCR failed")

        word = "".join(result.stdout.split())
        self._logger.debug(f"OCR result: {word!r}")
        return CaptchaSolution(word)
