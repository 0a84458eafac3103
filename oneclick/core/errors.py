"""Outcome codes shared by every layer of the toolkit.

This module provides:
- ErrorKind: the closed set of outcome codes (numeric values are the exit codes)
- Outcome: tagged result returned by site modules, the captcha engine and the ladder
- HosterError: exception site modules and captcha providers may raise internally
- kind_from_exception: translation of transport/local failures into an ErrorKind
- aggregate_exit_code: representative exit status for a batch of items
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Generic, Iterable, Optional, TypeVar

import requests


T = TypeVar("T")

# 100 + (n) with n = first error code (when multiple items are processed)
FATAL_MULTIPLE_BASE = 100


class ErrorKind(IntEnum):
    """Enumeration of outcome codes.

    Only LINK_TEMP_UNAVAILABLE and CAPTCHA are recovered locally (by the
    retry ladder); every other non-zero code aborts the item.
    """

    OK = 0
    FATAL = 1
    NO_MODULE = 2
    NETWORK = 3
    LOGIN_FAILED = 4
    MAX_WAIT_REACHED = 5
    MAX_TRIES_REACHED = 6
    CAPTCHA = 7
    SYSTEM = 8
    LINK_TEMP_UNAVAILABLE = 10
    LINK_PASSWORD_REQUIRED = 11
    LINK_NEED_PERMISSIONS = 12
    LINK_DEAD = 13
    SIZE_LIMIT_EXCEEDED = 14
    BAD_COMMAND_LINE = 15

    @property
    def retryable(self) -> bool:
        """Whether the retry ladder may loop again on this code."""
        return self in (ErrorKind.LINK_TEMP_UNAVAILABLE, ErrorKind.CAPTCHA)

    @property
    def message(self) -> str:
        """One-line human readable explanation of the code."""
        return ERROR_MESSAGES[self]


ERROR_MESSAGES = {
    ErrorKind.OK: "Success",
    ErrorKind.FATAL: "Unexpected content, site updated?",
    ErrorKind.NO_MODULE: "No module found for URL",
    ErrorKind.NETWORK: "Network error",
    ErrorKind.LOGIN_FAILED: "Login process failed. Bad username/password or unexpected content",
    ErrorKind.MAX_WAIT_REACHED: "Delay limit reached",
    ErrorKind.MAX_TRIES_REACHED: "Retry limit reached",
    ErrorKind.CAPTCHA: "Error: decoding captcha",
    ErrorKind.SYSTEM: "System failure",
    ErrorKind.LINK_TEMP_UNAVAILABLE: (
        "Warning: file link is alive but not currently available, try later"
    ),
    ErrorKind.LINK_PASSWORD_REQUIRED: "You must provide a valid password",
    ErrorKind.LINK_NEED_PERMISSIONS: "Insufficient permissions (premium link?)",
    ErrorKind.LINK_DEAD: "Link is not alive: file not found",
    ErrorKind.SIZE_LIMIT_EXCEEDED: "File is too big for this account",
    ErrorKind.BAD_COMMAND_LINE: "Bad command line",
}

# Codes meaning "the link exists" when only checking a link
ALIVE_KINDS = frozenset(
    {
        ErrorKind.OK,
        ErrorKind.LINK_TEMP_UNAVAILABLE,
        ErrorKind.LINK_NEED_PERMISSIONS,
        ErrorKind.LINK_PASSWORD_REQUIRED,
    }
)


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of any operation: success with a payload, or a failure code.

    Attributes:
        kind: Outcome code (ErrorKind.OK on success).
        payload: Operation result on success (None on failure).
        hint: Optional failure detail. For LINK_TEMP_UNAVAILABLE this is the
            number of seconds the site asked us to wait.
    """

    kind: ErrorKind
    payload: Optional[T] = None
    hint: Any = None

    @classmethod
    def success(cls, payload: Optional[T] = None) -> Outcome[T]:
        return cls(ErrorKind.OK, payload)

    @classmethod
    def failure(cls, kind: ErrorKind, hint: Any = None) -> Outcome[T]:
        if kind == ErrorKind.OK:
            raise ValueError("A failure outcome cannot carry ErrorKind.OK")
        return cls(kind, None, hint)

    @property
    def ok(self) -> bool:
        return self.kind == ErrorKind.OK

    def __bool__(self) -> bool:
        return self.ok


class HosterError(Exception):
    """Raised inside site modules and captcha providers to abort with a code.

    Never crosses the retry ladder or captcha engine boundary: both catch it
    and turn it into an Outcome.
    """

    def __init__(self, kind: ErrorKind, message: str = "", hint: Any = None) -> None:
        """Initialize with the outcome code.

        Args:
            kind: Outcome code to report.
            message: Optional detail for logs.
            hint: Optional hint (wait seconds for LINK_TEMP_UNAVAILABLE).
        """
        super().__init__(message or kind.message)
        self.kind = kind
        self.hint = hint


def kind_from_exception(exc: BaseException) -> ErrorKind:
    """Translate an exception raised by a module or provider into an ErrorKind.

    Args:
        exc: The exception to classify.

    Returns:
        Matching outcome code (FATAL when nothing more specific applies).
    """
    if isinstance(exc, HosterError):
        return exc.kind

    if isinstance(exc, requests.exceptions.TooManyRedirects):
        return ErrorKind.FATAL

    # Server closed the stream before the announced length
    if isinstance(exc, requests.exceptions.ChunkedEncodingError):
        return ErrorKind.LINK_TEMP_UNAVAILABLE

    if isinstance(exc, requests.exceptions.RequestException):
        return ErrorKind.NETWORK

    if isinstance(exc, OSError):
        return ErrorKind.SYSTEM

    return ErrorKind.FATAL


def aggregate_exit_code(kinds: Iterable[ErrorKind]) -> int:
    """Compute the representative exit status of a batch.

    - no item: 0
    - one item: its own code
    - several items: FATAL_MULTIPLE_BASE + first non-zero code, or 0 if all
      items succeeded

    Args:
        kinds: Per-item outcome codes, in processing order.

    Returns:
        Process exit status.
    """
    codes = [int(kind) for kind in kinds]

    if not codes:
        return 0
    if len(codes) == 1:
        return codes[0]

    failures = [code for code in codes if code != 0]
    if not failures:
        return 0
    return FATAL_MULTIPLE_BASE + failures[0]
