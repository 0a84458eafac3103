"""User supplied captcha solving program.

Invoked as ``<program> <module> <image> <type>-<minlen>``; it prints the
word on stdout. Exit status 0 means solved, 2 (NO_MODULE) means "not for
me, use the regular method", anything else is an outcome code.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from oneclick.captcha.models import CaptchaChallenge
from oneclick.core.errors import ErrorKind, HosterError
from oneclick.utils.logging import get_logger


PROGRAM_TIMEOUT = 600  # seconds


class CaptchaProgram:
    """Wrapper around the external solving program."""

    def __init__(self, program: Path, logger: Optional[logging.Logger] = None) -> None:
        self.program = Path(program)
        self._logger = logger or get_logger("captcha.program")

    def command(self, module_name: str, path: Path, challenge: CaptchaChallenge) -> List[str]:
        min_length = challenge.min_length if challenge.min_length is not None else ""
        return [
            str(self.program),
            module_name,
            str(path),
            f"{challenge.captcha_type}-{min_length}",
        ]

    def run(self, module_name: str, path: Path, challenge: CaptchaChallenge) -> Optional[str]:
        """Run the program.

        Args:
            module_name: Name of the module asking for the captcha.
            path: Local image path.
            challenge: Challenge description.

        Returns:
            The recognized word, or None when the program declines (exit 2).

        Raises:
            HosterError: SYSTEM when the program cannot be started, the exit
                status as an outcome code otherwise (FATAL if unknown).
        """
        cmd = self.command(module_name, path, challenge)
        self._logger.debug(f"Running captcha program: {' '.join(cmd)}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=PROGRAM_TIMEOUT)
        except (FileNotFoundError, PermissionError) as e:
            raise HosterError(ErrorKind.SYSTEM, f"cannot run captcha program: {e}")
        except subprocess.TimeoutExpired:
            raise HosterError(ErrorKind.CAPTCHA, "captcha program timed out")

        if result.returncode == 0:
            lines = result.stdout.splitlines()
            return lines[0].strip() if lines else ""

        if result.returncode == ErrorKind.NO_MODULE:
            self._logger.debug("captcha program declined, using regular method")
            return None

        self._logger.error(f"captchaprogram exit with status {result.returncode}")
        try:
            kind = ErrorKind(result.returncode)
        except ValueError:
            kind = ErrorKind.FATAL
        raise HosterError(kind, f"captcha program failed ({result.returncode})")
