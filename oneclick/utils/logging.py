"""Logging configuration with rich console output and optional file logging.

This module provides logging setup for the oneclick CLI tool with:
- Rich console output on stderr (stdout is reserved for results)
- Verbosity levels 0 (silent) to 4 (report: HTTP content dumps)
- Optional file logging with a detailed format
- Item prefix support for tracking one link across retries
- Sensitive data masking for captcha keys and API keys
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


# Verbosity: 0=none, 1=error, 2=notice (default), 3=debug, 4=report
DEFAULT_VERBOSITY = 2
MAX_VERBOSITY = 4

_VERBOSITY_LEVELS = {
    0: logging.CRITICAL + 10,
    1: logging.ERROR,
    2: logging.INFO,
    3: logging.DEBUG,
    4: logging.DEBUG,
}

_report_enabled = False


def setup_logging(
    verbosity: int = DEFAULT_VERBOSITY,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Set up logging with rich console output and an optional file handler.

    Creates a logger with:
    - Console output using RichHandler on stderr
    - File output to log_file (always DEBUG) when given

    Args:
        verbosity: Console verbosity, clamped to 0..4.
        log_file: Optional path of a log file to append to.

    Returns:
        Configured logger instance for the application.
    """
    global _report_enabled

    verbosity = max(0, min(verbosity, MAX_VERBOSITY))
    _report_enabled = verbosity >= MAX_VERBOSITY

    logger = logging.getLogger("oneclick")
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to avoid duplicates
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbosity >= 3,
        show_path=False,
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 3,
        markup=False,
    )
    console_handler.setLevel(_VERBOSITY_LEVELS[verbosity])
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.debug(f"Logging initialized. Log file: {log_file}")

    return logger


def log_report(logger: logging.Logger, label: str, content: str) -> None:
    """Dump raw content (HTML page, JSON answer) at report level only.

    Args:
        logger: Logger to write to.
        label: Short description of the content.
        content: The raw content.
    """
    if not _report_enabled:
        return
    logger.debug(f"=== {label} BEGIN ===")
    for line in content.splitlines():
        logger.debug(f"rep:{line}")
    logger.debug(f"=== {label} END ===")


class ItemLogAdapter(logging.LoggerAdapter):
    """Logger adapter that prefixes messages with the module handling an item.

    Usage:
        logger = ItemLogAdapter(base_logger, module="pixeldrain")
        logger.info("Starting download")  # Logs: [pixeldrain] Starting download
    """

    def __init__(self, logger: logging.Logger, module: str) -> None:
        super().__init__(logger, {"module": module})
        self.module = module

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        return f"[{self.module}] {msg}", kwargs


def get_item_logger(module: str) -> ItemLogAdapter:
    """Get a logger prefixing messages with the module handling an item.

    Args:
        module: Module name to prefix log messages with.

    Returns:
        Adapter that prefixes messages with [<module>].
    """
    return ItemLogAdapter(logging.getLogger("oneclick.item"), module)


def mask_sensitive_data(value: str, visible_chars: int = 4) -> str:
    """Mask sensitive data, showing only the last few characters.

    Args:
        value: The sensitive string to mask (e.g., API key).
        visible_chars: Number of characters to show at the end.

    Returns:
        Masked string with asterisks and visible suffix.

    Examples:
        >>> mask_sensitive_data("sk-1234567890abcdef")
        '***************cdef'
        >>> mask_sensitive_data("short", visible_chars=4)
        '*hort'
        >>> mask_sensitive_data("")
        ''
    """
    if not value:
        return ""

    if len(value) <= visible_chars:
        # For very short strings, mask all but last char
        if len(value) <= 1:
            return "*" * len(value)
        return "*" * (len(value) - 1) + value[-1]

    masked_length = len(value) - visible_chars
    return "*" * masked_length + value[-visible_chars:]


def mask_account(account: str) -> str:
    """Mask the password part of a ``user:password`` credential.

    Examples:
        >>> mask_account("joe:secret")
        'joe:**cret'
    """
    if ":" not in account:
        return mask_sensitive_data(account)
    user, _, password = account.partition(":")
    return f"{user}:{mask_sensitive_data(password)}"


def mask_url_sensitive_parts(url: str) -> str:
    """Mask sensitive parts of a URL (API keys, tokens in query params).

    Args:
        url: URL that may contain sensitive query parameters.

    Returns:
        URL with sensitive query parameter values masked.
    """
    sensitive_params = re.compile(
        r"((?:api[_-]?key|apikey|token|secret|password|pass|auth|key|access[_-]?token)"
        r"=)([^&\s]+)",
        re.IGNORECASE,
    )

    def mask_match(match: re.Match) -> str:
        return match.group(1) + mask_sensitive_data(match.group(2))

    return sensitive_params.sub(mask_match, url)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Get a logger instance for the oneclick package.

    Args:
        name: Optional sub-logger name. If None, returns the main logger.

    Returns:
        Logger instance.
    """
    if name:
        return logging.getLogger(f"oneclick.{name}")
    return logging.getLogger("oneclick")
