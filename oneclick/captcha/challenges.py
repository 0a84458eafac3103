"""reCAPTCHA and Solve Media challenge flows.

Both flows loop: fetch a challenge image, solve it, and request a fresh
challenge when the answer is empty (the user asked for another image).
Loops are bounded to MAX_RELOADS iterations.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Optional
from urllib.parse import quote_plus

import requests

from oneclick.captcha.models import CaptchaChallenge, ChallengeAnswer
from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind, HosterError, Outcome, kind_from_exception
from oneclick.utils.logging import get_logger

if TYPE_CHECKING:
    from oneclick.captcha.engine import CaptchaEngine


MAX_RELOADS = 100
CHALLENGE_TIMEOUT = 30  # seconds

RECAPTCHA_SERVER = "http://www.google.com/recaptcha/api/"
SOLVEMEDIA_BASE_URL = "http://api.solvemedia.com/papi"

_RECAPTCHA_SERVER_RE = re.compile(r"server\s?:\s?'([^']*)'")
_RECAPTCHA_CHALLENGE_RE = re.compile(r"challenge\s?:\s?'([^']*)'")
_RECAPTCHA_RELOAD_RE = re.compile(r"finish_reload\('([^']*)")
_META_REFRESH_RE = re.compile(r'URL=(.+?)"\s*/?>', re.IGNORECASE)

logger = get_logger("captcha.challenges")


def _search(pattern: re.Pattern, text: str, what: str) -> str:
    match = pattern.search(text)
    if not match:
        raise HosterError(ErrorKind.FATAL, f"cannot parse {what}")
    return match.group(1)


def form_input_value(html: str, name: str) -> str:
    """Return the value of the ``<input>`` named ``name``.

    Raises:
        HosterError: FATAL when the input is absent.

    Examples:
        >>> form_input_value('<input type="hidden" name="magic" value="x1">', "magic")
        'x1'
    """
    for tag in re.findall(r"<input[^>]*>", html, re.IGNORECASE):
        if re.search(rf"""name\s*=\s*["']?{re.escape(name)}["'\s>/]""", tag, re.IGNORECASE):
            value = re.search(r"""value\s*=\s*["']([^"']*)["']""", tag, re.IGNORECASE)
            return value.group(1) if value else ""
    raise HosterError(ErrorKind.FATAL, f"form input not found: {name}")


def solve_recaptcha(
    engine: "CaptchaEngine",
    public_key: str,
    budget: Optional[WaitBudget],
    http: requests.Session,
) -> Outcome[ChallengeAnswer]:
    """Run the reCAPTCHA (v1 API) challenge loop.

    Args:
        engine: Captcha engine solving each image.
        public_key: Site public key.
        budget: Item wait budget.
        http: Session used for the reCAPTCHA server.

    Returns:
        Outcome with ChallengeAnswer(word URL encoded, challenge, ticket).
    """
    try:
        response = http.get(
            f"{RECAPTCHA_SERVER}challenge",
            params={"k": public_key, "ajax": "1"},
            timeout=CHALLENGE_TIMEOUT,
        )
        variables = response.text
        if not variables.strip():
            return Outcome.failure(ErrorKind.CAPTCHA, "empty reCaptcha answer")

        server = _search(_RECAPTCHA_SERVER_RE, variables, "reCaptcha server")
        challenge = _search(_RECAPTCHA_CHALLENGE_RE, variables, "reCaptcha challenge")
        logger.debug(f"reCaptcha server: {server}")

        for attempt in range(1, MAX_RELOADS + 1):
            logger.debug(f"reCaptcha loop {attempt}, challenge: {challenge}")

            image = http.get(f"{server}image", params={"c": challenge}, timeout=CHALLENGE_TIMEOUT)
            image.raise_for_status()

            outcome = engine.solve(CaptchaChallenge(image.content, "recaptcha"), budget)
            if not outcome.ok:
                return Outcome.failure(outcome.kind, outcome.hint)

            solution = outcome.payload
            if solution.word:
                return Outcome.success(
                    ChallengeAnswer(quote_plus(solution.word), challenge, solution.ticket)
                )

            logger.debug("empty, request another image")
            reload = http.get(
                f"{server}reload",
                params={"k": public_key, "c": challenge, "reason": "r", "type": "image", "lang": "en"},
                timeout=CHALLENGE_TIMEOUT,
            )
            challenge = _search(_RECAPTCHA_RELOAD_RE, reload.text, "reCaptcha reload")

    except (HosterError, requests.RequestException) as e:
        logger.error(f"reCaptcha: {e}")
        return Outcome.failure(kind_from_exception(e))

    return Outcome.failure(ErrorKind.MAX_TRIES_REACHED)


def solve_solvemedia(
    engine: "CaptchaEngine",
    public_key: str,
    budget: Optional[WaitBudget],
    http: requests.Session,
) -> Outcome[ChallengeAnswer]:
    """Run the Solve Media (no-script API) challenge loop.

    The answer is verified by Solve Media itself; on success the verified
    challenge is returned (``word`` is empty).

    Args:
        engine: Captcha engine solving each image.
        public_key: Site public key.
        budget: Item wait budget.
        http: Session used for the Solve Media server.

    Returns:
        Outcome with ChallengeAnswer("", verified challenge, ticket).
    """
    url = f"{SOLVEMEDIA_BASE_URL}/challenge.noscript?k={public_key}"

    try:
        for attempt in range(1, MAX_RELOADS + 1):
            logger.debug(f"SolveMedia loop {attempt}")

            html = http.get(url, timeout=CHALLENGE_TIMEOUT).text
            magic = form_input_value(html, "magic")
            challenge = form_input_value(html, "adcopy_challenge")

            image = http.get(
                f"{SOLVEMEDIA_BASE_URL}/media", params={"c": challenge}, timeout=CHALLENGE_TIMEOUT
            )
            image.raise_for_status()

            # Image is a 300x150 gif containing text strings
            outcome = engine.solve(CaptchaChallenge(image.content, "solvemedia"), budget)
            if not outcome.ok:
                return Outcome.failure(outcome.kind, outcome.hint)
            solution = outcome.payload

            data = {
                "adcopy_response": solution.word,
                "k": public_key,
                "l": "en",
                "t": "img",
                "s": "standard",
                "magic": magic,
                "adcopy_challenge": challenge,
            }
            if not solution.word:
                logger.debug("empty, request another image")
                data.update({"t_img.x": "23", "t_img.y": "7"})

            html = http.post(
                f"{SOLVEMEDIA_BASE_URL}/verify.noscript",
                data=data,
                headers={"Referer": url},
                timeout=CHALLENGE_TIMEOUT,
            ).text

            if "Redirecting..." not in html or "&error=1&" in html:
                engine.nack(solution.ticket)
                return Outcome.failure(ErrorKind.CAPTCHA, "wrong captcha")

            url = _search(_META_REFRESH_RE, html, "Solve Media redirection")

            if solution.word:
                break
        else:
            return Outcome.failure(ErrorKind.MAX_TRIES_REACHED)

        html = http.get(url, timeout=CHALLENGE_TIMEOUT).text
        if "Please copy this gibberish:" not in html or challenge not in html:
            logger.debug("Unexpected content. Site updated?")
            return Outcome.failure(ErrorKind.FATAL)

    except (HosterError, requests.RequestException) as e:
        logger.error(f"SolveMedia: {e}")
        return Outcome.failure(kind_from_exception(e))

    return Outcome.success(ChallengeAnswer("", challenge, solution.ticket))
