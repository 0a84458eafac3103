"""Records exchanged with the captcha engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from oneclick.core.errors import ErrorKind, HosterError


NULL_TICKET = "0"

# Transaction tag -> provider name
PROVIDER_TAGS = {
    "9": "9kweu",
    "a": "antigate",
    "b": "captchabrotherhood",
    "d": "deathbycaptcha",
}


class CaptchaServiceError(HosterError):
    """Failure reported by a captcha provider.

    The provider's own message stays in logs; callers only see the kind.
    """

    def __init__(self, provider: str, message: str, kind: ErrorKind = ErrorKind.FATAL) -> None:
        super().__init__(kind, f"{provider} error: {message}")
        self.provider = provider


@dataclass(frozen=True)
class CaptchaChallenge:
    """A captcha image to solve.

    Attributes:
        image: Raw image bytes, a local path, or a remote http(s) URL.
        captcha_type: Hint for solvers (``recaptcha``, ``solvemedia``,
            ``ocr_digit``, ``ocr_upper``, ``prompt`` or empty).
        min_length: Minimal expected word length.
        max_length: Maximal expected word length.
    """

    image: Union[bytes, str, Path]
    captcha_type: str = ""
    min_length: Optional[int] = None
    max_length: Optional[int] = None

    @property
    def is_remote(self) -> bool:
        return isinstance(self.image, str) and self.image.lower().startswith(
            ("http://", "https://")
        )


@dataclass(frozen=True)
class CaptchaTicket:
    """Provider transaction used to acknowledge a solution.

    ``str(ticket)`` is the tag followed by the transaction id; the null
    ticket renders as ``"0"``.
    """

    provider_tag: str = ""
    transaction_id: str = ""

    @classmethod
    def null(cls) -> CaptchaTicket:
        return cls()

    @classmethod
    def parse(cls, value: str) -> CaptchaTicket:
        """Rebuild a ticket from its string form.

        Examples:
            >>> CaptchaTicket.parse("a1234")
            CaptchaTicket(provider_tag='a', transaction_id='1234')
            >>> CaptchaTicket.parse("0").is_null
            True
        """
        value = (value or "").strip()
        if not value or value == NULL_TICKET:
            return cls.null()
        return cls(value[0], value[1:])

    @property
    def is_null(self) -> bool:
        return not self.provider_tag

    def __str__(self) -> str:
        if self.is_null:
            return NULL_TICKET
        return f"{self.provider_tag}{self.transaction_id}"


@dataclass(frozen=True)
class CaptchaSolution:
    """Recognized word and the ticket to acknowledge it."""

    word: str
    ticket: CaptchaTicket = field(default_factory=CaptchaTicket.null)


@dataclass(frozen=True)
class ChallengeAnswer:
    """Answer of a reCAPTCHA or Solve Media flow.

    Attributes:
        word: Recognized words (URL encoded for reCAPTCHA, empty for Solve Media).
        challenge: Challenge identifier to send back to the site.
        ticket: Ticket to acknowledge once the site accepted the answer.
    """

    word: str
    challenge: str
    ticket: CaptchaTicket = field(default_factory=CaptchaTicket.null)
