"""Toolkit configuration threaded through the ladder and the captcha engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from oneclick.core.errors import ErrorKind, HosterError


# Accepted --captchamethod values
CAPTCHA_METHODS = ("none", "prompt", "nox", "online", "ocr")

DEFAULT_TEMP_WAIT_SECONDS = 60
SAFETY_WAIT_SECONDS = 120


@dataclass
class CaptchaCredentials:
    """Captcha solving service accounts.

    Attributes:
        antigate: antigate.com key.
        ninekw: 9kw.eu API key.
        brotherhood: Captcha Brotherhood account as ``user:password``.
        deathbycaptcha: DeathByCaptcha account as ``user:password``.
    """

    antigate: Optional[str] = None
    ninekw: Optional[str] = None
    brotherhood: Optional[str] = None
    deathbycaptcha: Optional[str] = None


@dataclass
class ToolkitConfig:
    """Configuration for one invocation of the toolkit.

    Attributes:
        timeout: Maximum seconds an item may spend waiting (None: unlimited).
        max_retries: Retries after a captcha or temporary failure
            (None: unlimited, 0: no retry).
        no_extra_wait: Abort instead of waiting on temporary unavailability.
        captcha_method: Forced captcha method (see CAPTCHA_METHODS).
        captcha_program: External captcha solving program.
        captcha: Captcha service credentials.
        fallback: Use the fallback module when no module matches a URL.
        cookies_file: Cookie file seeding every item session.
        output_dir: Directory where files are saved.
        temp_dir: Directory where files are downloaded before being moved.
        no_overwrite: Never overwrite an existing file.
        check_link: Only check that links are alive.
        mark_downloaded: Comment out processed links in link files.
        printf_format: Print final links in this format instead of downloading.
        link_password: Password for protected links.
        auth: Account as ``user:password`` for site modules.
        pixeldrain_api_key: Pixeldrain API key.
        recurse: List sub folders too.
    """

    timeout: Optional[int] = None
    max_retries: Optional[int] = None
    no_extra_wait: bool = False
    captcha_method: Optional[str] = None
    captcha_program: Optional[Path] = None
    captcha: CaptchaCredentials = field(default_factory=CaptchaCredentials)
    fallback: bool = False
    cookies_file: Optional[Path] = None
    output_dir: Optional[Path] = None
    temp_dir: Optional[Path] = None
    no_overwrite: bool = False
    check_link: bool = False
    mark_downloaded: bool = False
    printf_format: Optional[str] = None
    link_password: Optional[str] = None
    auth: Optional[str] = None
    pixeldrain_api_key: Optional[str] = None
    recurse: bool = False

    def validate(self) -> None:
        """Check option consistency.

        Raises:
            HosterError: BAD_COMMAND_LINE for inconsistent options, SYSTEM
                for missing or unwritable paths.
        """
        if self.captcha_method is not None and self.captcha_method not in CAPTCHA_METHODS:
            raise HosterError(
                ErrorKind.BAD_COMMAND_LINE,
                f"unknown captcha method: {self.captcha_method}",
            )

        if self.timeout is not None and self.timeout < 0:
            raise HosterError(ErrorKind.BAD_COMMAND_LINE, "timeout must be positive")

        if self.max_retries is not None and self.max_retries < 0:
            raise HosterError(ErrorKind.BAD_COMMAND_LINE, "max retries must be positive")

        if self.cookies_file is not None and not Path(self.cookies_file).is_file():
            raise HosterError(ErrorKind.SYSTEM, "can't find cookies file")

        for directory in (self.output_dir, self.temp_dir):
            if directory is None:
                continue
            directory = Path(directory)
            directory.mkdir(parents=True, exist_ok=True)
            if not os.access(directory, os.W_OK):
                raise HosterError(ErrorKind.SYSTEM, f"no write permission: {directory}")
