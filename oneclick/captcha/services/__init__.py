"""Remote captcha solving services, in auto-detection order."""

from oneclick.captcha.services.antigate import AntigateService
from oneclick.captcha.services.base import RemoteCaptchaService
from oneclick.captcha.services.brotherhood import BrotherhoodService
from oneclick.captcha.services.deathbycaptcha import DeathByCaptchaService
from oneclick.captcha.services.ninekw import NineKwService

__all__ = [
    "AntigateService",
    "BrotherhoodService",
    "DeathByCaptchaService",
    "NineKwService",
    "RemoteCaptchaService",
]
