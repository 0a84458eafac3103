"""Tests for the reCAPTCHA and Solve Media flows."""

from unittest.mock import MagicMock

import pytest
import requests

from oneclick.captcha.challenges import (
    MAX_RELOADS,
    form_input_value,
    solve_recaptcha,
    solve_solvemedia,
)
from oneclick.captcha.models import CaptchaSolution, CaptchaTicket
from oneclick.core.errors import ErrorKind, HosterError, Outcome


RECAPTCHA_VARIABLES = """var RecaptchaState = {
    site : 'pubkey',
    challenge : '03AHJ_first',
    server : 'http://www.google.com/recaptcha/api/',
    timeout : 18000
};"""

SOLVEMEDIA_FORM = """<form method="post" action="verify.noscript">
<input type="hidden" name="magic" value="magic42">
<input type="hidden" name="adcopy_challenge" value="chal123" />
</form>"""

SOLVEMEDIA_REDIRECT = """<html><head>
<META HTTP-EQUIV="REFRESH" CONTENT="0; URL=http://api.solvemedia.com/papi/verify.pass.noscript?c=chal123">
</head><body>Redirecting...</body></html>"""

SOLVEMEDIA_DONE = "Please copy this gibberish: <textarea>chal123</textarea>"


def solved(word, ticket=None):
    return Outcome.success(CaptchaSolution(word, ticket or CaptchaTicket.null()))


@pytest.fixture
def engine():
    """Captcha engine mock."""
    return MagicMock()


@pytest.fixture
def http():
    """HTTP session mock."""
    return MagicMock()


class TestFormInputValue:
    """Tests for form_input_value()."""

    def test_value(self):
        """Hidden input values are extracted."""
        assert form_input_value(SOLVEMEDIA_FORM, "adcopy_challenge") == "chal123"

    def test_missing_input(self):
        """A missing input is FATAL."""
        with pytest.raises(HosterError):
            form_input_value(SOLVEMEDIA_FORM, "nothere")


class TestRecaptcha:
    """Tests for solve_recaptcha()."""

    def test_solved_first_image(self, engine, http, fake_response):
        """The word is URL encoded."""
        http.get.side_effect = [
            fake_response(text=RECAPTCHA_VARIABLES),
            fake_response(content=b"jpeg"),
        ]
        engine.solve.return_value = solved("two words", CaptchaTicket("a", "1"))

        outcome = solve_recaptcha(engine, "pubkey", None, http)

        assert outcome.ok
        assert outcome.payload.word == "two+words"
        assert outcome.payload.challenge == "03AHJ_first"
        assert str(outcome.payload.ticket) == "a1"

    def test_reload_on_empty_answer(self, engine, http, fake_response):
        """An empty answer requests a new challenge."""
        http.get.side_effect = [
            fake_response(text=RECAPTCHA_VARIABLES),
            fake_response(content=b"jpeg"),
            fake_response(text="Recaptcha.finish_reload('03AHJ_second', 'image');"),
            fake_response(content=b"jpeg"),
        ]
        engine.solve.side_effect = [solved(""), solved("word")]

        outcome = solve_recaptcha(engine, "pubkey", None, http)

        assert outcome.payload.challenge == "03AHJ_second"
        assert outcome.payload.word == "word"

    def test_empty_server_answer(self, engine, http, fake_response):
        """An empty challenge answer is a CAPTCHA error."""
        http.get.return_value = fake_response(text="")
        assert solve_recaptcha(engine, "pubkey", None, http).kind == ErrorKind.CAPTCHA

    def test_solver_failure(self, engine, http, fake_response):
        """Engine failures are returned as is."""
        http.get.side_effect = [
            fake_response(text=RECAPTCHA_VARIABLES),
            fake_response(content=b"jpeg"),
        ]
        engine.solve.return_value = Outcome.failure(ErrorKind.MAX_WAIT_REACHED)

        assert solve_recaptcha(engine, "pubkey", None, http).kind == ErrorKind.MAX_WAIT_REACHED

    def test_network_error(self, engine, http):
        """Transport failures are NETWORK."""
        http.get.side_effect = requests.ConnectionError("down")
        assert solve_recaptcha(engine, "pubkey", None, http).kind == ErrorKind.NETWORK

    def test_reload_limit(self, engine, http, fake_response):
        """Endless empty answers stop after MAX_RELOADS images."""

        def get(url, **kwargs):
            if url.endswith("challenge"):
                return fake_response(text=RECAPTCHA_VARIABLES)
            if url.endswith("reload"):
                return fake_response(text="Recaptcha.finish_reload('03AHJ_next', 'image');")
            return fake_response(content=b"jpeg")

        http.get.side_effect = get
        engine.solve.return_value = solved("")

        outcome = solve_recaptcha(engine, "pubkey", None, http)

        assert outcome.kind == ErrorKind.MAX_TRIES_REACHED
        assert engine.solve.call_count == MAX_RELOADS


class TestSolveMedia:
    """Tests for solve_solvemedia()."""

    def test_verified(self, engine, http, fake_response):
        """A verified answer returns the challenge and ticket."""
        http.get.side_effect = [
            fake_response(text=SOLVEMEDIA_FORM),
            fake_response(content=b"gif"),
            fake_response(text=SOLVEMEDIA_DONE),
        ]
        http.post.return_value = fake_response(text=SOLVEMEDIA_REDIRECT)
        engine.solve.return_value = solved("gibberish", CaptchaTicket("9", "5"))

        outcome = solve_solvemedia(engine, "pubkey", None, http)

        assert outcome.ok
        assert outcome.payload.word == ""
        assert outcome.payload.challenge == "chal123"
        assert str(outcome.payload.ticket) == "95"
        assert http.post.call_args[1]["data"]["magic"] == "magic42"
        assert http.get.call_args[0][0].startswith("http://api.solvemedia.com/papi/verify.pass")

    def test_wrong_answer_nacks(self, engine, http, fake_response):
        """A rejected answer reports the ticket."""
        http.get.side_effect = [
            fake_response(text=SOLVEMEDIA_FORM),
            fake_response(content=b"gif"),
        ]
        http.post.return_value = fake_response(text="Redirecting... &error=1&")
        ticket = CaptchaTicket("a", "7")
        engine.solve.return_value = solved("bad", ticket)

        outcome = solve_solvemedia(engine, "pubkey", None, http)

        assert outcome.kind == ErrorKind.CAPTCHA
        engine.nack.assert_called_once_with(ticket)

    def test_unexpected_final_page(self, engine, http, fake_response):
        """A final page without the challenge is FATAL."""
        http.get.side_effect = [
            fake_response(text=SOLVEMEDIA_FORM),
            fake_response(content=b"gif"),
            fake_response(text="nothing here"),
        ]
        http.post.return_value = fake_response(text=SOLVEMEDIA_REDIRECT)
        engine.solve.return_value = solved("word")

        assert solve_solvemedia(engine, "pubkey", None, http).kind == ErrorKind.FATAL

    def test_reload_limit(self, engine, http, fake_response):
        """Endless empty answers stop after MAX_RELOADS images."""

        def get(url, **kwargs):
            if url.endswith("/media"):
                return fake_response(content=b"gif")
            return fake_response(text=SOLVEMEDIA_FORM)

        http.get.side_effect = get
        http.post.return_value = fake_response(text=SOLVEMEDIA_REDIRECT)
        engine.solve.return_value = solved("")

        outcome = solve_solvemedia(engine, "pubkey", None, http)

        assert outcome.kind == ErrorKind.MAX_TRIES_REACHED
        assert engine.solve.call_count == MAX_RELOADS
        assert http.post.call_args[1]["data"]["t_img.x"] == "23"
        engine.nack.assert_not_called()
