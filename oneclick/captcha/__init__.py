"""Captcha resolution: solving methods, remote services and challenge flows."""

from oneclick.captcha.engine import CaptchaEngine
from oneclick.captcha.models import (
    NULL_TICKET,
    CaptchaChallenge,
    CaptchaServiceError,
    CaptchaSolution,
    CaptchaTicket,
    ChallengeAnswer,
)

__all__ = [
    "NULL_TICKET",
    "CaptchaChallenge",
    "CaptchaEngine",
    "CaptchaServiceError",
    "CaptchaSolution",
    "CaptchaTicket",
    "ChallengeAnswer",
]
