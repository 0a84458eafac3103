"""Tests for outcome codes and their aggregation."""

import pytest
import requests

from oneclick.core.errors import (
    ALIVE_KINDS,
    ErrorKind,
    FATAL_MULTIPLE_BASE,
    HosterError,
    Outcome,
    aggregate_exit_code,
    kind_from_exception,
)


class TestErrorKind:
    """Tests for the ErrorKind enumeration."""

    def test_numeric_values(self):
        """Codes keep their documented numeric values."""
        assert ErrorKind.OK == 0
        assert ErrorKind.NO_MODULE == 2
        assert ErrorKind.CAPTCHA == 7
        assert ErrorKind.LINK_TEMP_UNAVAILABLE == 10
        assert ErrorKind.LINK_DEAD == 13
        assert ErrorKind.BAD_COMMAND_LINE == 15

    def test_only_temp_and_captcha_are_retryable(self):
        """Only LINK_TEMP_UNAVAILABLE and CAPTCHA loop in the ladder."""
        retryable = {kind for kind in ErrorKind if kind.retryable}
        assert retryable == {ErrorKind.LINK_TEMP_UNAVAILABLE, ErrorKind.CAPTCHA}

    def test_every_kind_has_a_message(self):
        """Each code has a one-line message."""
        for kind in ErrorKind:
            assert kind.message
            assert "\n" not in kind.message

    def test_dead_link_message(self):
        """Dead link message is user friendly."""
        assert ErrorKind.LINK_DEAD.message == "Link is not alive: file not found"

    def test_alive_kinds(self):
        """Password protected or premium links are still alive."""
        assert ErrorKind.LINK_PASSWORD_REQUIRED in ALIVE_KINDS
        assert ErrorKind.LINK_NEED_PERMISSIONS in ALIVE_KINDS
        assert ErrorKind.LINK_DEAD not in ALIVE_KINDS


class TestOutcome:
    """Tests for the Outcome type."""

    def test_success(self):
        """Success carries the payload and is truthy."""
        outcome = Outcome.success("payload")
        assert outcome.ok
        assert outcome
        assert outcome.kind == ErrorKind.OK
        assert outcome.payload == "payload"

    def test_failure_with_hint(self):
        """Failure carries the code and an optional hint."""
        outcome = Outcome.failure(ErrorKind.LINK_TEMP_UNAVAILABLE, 45)
        assert not outcome.ok
        assert not outcome
        assert outcome.payload is None
        assert outcome.hint == 45

    def test_failure_cannot_be_ok(self):
        """A failure outcome with OK is rejected."""
        with pytest.raises(ValueError):
            Outcome.failure(ErrorKind.OK)


class TestAggregateExitCode:
    """Tests for aggregate_exit_code()."""

    def test_no_items(self):
        """No item processed exits with 0."""
        assert aggregate_exit_code([]) == 0

    def test_single_item_returns_its_code(self):
        """A single item exits with its own code."""
        assert aggregate_exit_code([ErrorKind.LINK_DEAD]) == 13

    def test_multiple_items_all_ok(self):
        """Several successful items exit with 0."""
        assert aggregate_exit_code([ErrorKind.OK, ErrorKind.OK]) == 0

    def test_multiple_items_first_failure(self):
        """Several items exit with 100 + the first failure code."""
        kinds = [ErrorKind.OK, ErrorKind.NETWORK, ErrorKind.LINK_DEAD]
        assert aggregate_exit_code(kinds) == FATAL_MULTIPLE_BASE + 3


class TestKindFromException:
    """Tests for kind_from_exception()."""

    def test_hoster_error_keeps_its_kind(self):
        """HosterError translates to its own kind."""
        assert kind_from_exception(HosterError(ErrorKind.LOGIN_FAILED)) == ErrorKind.LOGIN_FAILED

    def test_connection_error_is_network(self):
        """Transport failures are NETWORK."""
        assert kind_from_exception(requests.ConnectionError("refused")) == ErrorKind.NETWORK
        assert kind_from_exception(requests.Timeout("slow")) == ErrorKind.NETWORK

    def test_too_many_redirects_is_fatal(self):
        """Redirect loops are FATAL."""
        assert kind_from_exception(requests.TooManyRedirects()) == ErrorKind.FATAL

    def test_chunked_encoding_is_temp_unavailable(self):
        """A truncated body is a temporary failure."""
        error = requests.exceptions.ChunkedEncodingError("truncated")
        assert kind_from_exception(error) == ErrorKind.LINK_TEMP_UNAVAILABLE

    def test_os_error_is_system(self):
        """Local failures are SYSTEM."""
        assert kind_from_exception(PermissionError("denied")) == ErrorKind.SYSTEM

    def test_anything_else_is_fatal(self):
        """Unexpected exceptions are FATAL."""
        assert kind_from_exception(KeyError("name")) == ErrorKind.FATAL

    def test_hoster_error_message_defaults_to_kind_message(self):
        """HosterError without message uses the kind message."""
        error = HosterError(ErrorKind.NETWORK)
        assert str(error) == "Network error"
        assert error.hint is None
