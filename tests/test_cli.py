"""Tests for the command line interface."""

from unittest.mock import patch

from typer.testing import CliRunner

from oneclick.cli import app
from oneclick.core.errors import ErrorKind, Outcome
from oneclick.core.pipeline import BatchResult


runner = CliRunner()


def batch(*kinds):
    result = BatchResult()
    for index, kind in enumerate(kinds):
        outcome = Outcome.success() if kind == ErrorKind.OK else Outcome.failure(kind)
        result.add(f"http://x/{index}", "pixeldrain", outcome)
    return result


class TestModulesCommand:
    """Tests for 'oneclick modules'."""

    def test_lists_pixeldrain(self):
        """Bundled modules are shown."""
        result = runner.invoke(app, ["modules"])

        assert result.exit_code == 0
        assert "pixeldrain" in result.output


class TestDownloadCommand:
    """Tests for 'oneclick download'."""

    def test_exit_code_is_item_code(self):
        """A single item exits with its outcome code."""
        with patch("oneclick.cli.BatchRunner.download", return_value=batch(ErrorKind.LINK_DEAD)):
            result = runner.invoke(app, ["download", "-q", "https://pixeldrain.com/u/abc"])

        assert result.exit_code == 13

    def test_multiple_items_exit_code(self):
        """Several items exit with 100 + first failure code."""
        kinds = (ErrorKind.OK, ErrorKind.CAPTCHA)
        with patch("oneclick.cli.BatchRunner.download", return_value=batch(*kinds)):
            result = runner.invoke(app, ["download", "-q", "http://a/1", "http://a/2"])

        assert result.exit_code == 107

    def test_bad_printf_format(self):
        """Unknown printf sequences are rejected."""
        result = runner.invoke(app, ["download", "-q", "--printf", "%z", "http://a/1"])
        assert result.exit_code == ErrorKind.BAD_COMMAND_LINE

    def test_bad_captcha_method(self):
        """Unknown captcha methods are rejected."""
        result = runner.invoke(
            app, ["download", "-q", "--captchamethod", "magic", "http://a/1"]
        )
        assert result.exit_code == ErrorKind.BAD_COMMAND_LINE

    def test_missing_cookie_file(self, temp_dir):
        """A missing cookie file is a SYSTEM error."""
        result = runner.invoke(
            app, ["download", "-q", "-b", str(temp_dir / "nope.txt"), "http://a/1"]
        )
        assert result.exit_code == ErrorKind.SYSTEM

    def test_missing_links_file_is_skipped(self, temp_dir):
        """Items that cannot be read are skipped."""
        result = runner.invoke(app, ["download", "-q", str(temp_dir / "links.txt")])
        assert result.exit_code == 0

    def test_interrupted(self):
        """Ctrl-C exits with 130."""
        with patch("oneclick.cli.BatchRunner.download", side_effect=KeyboardInterrupt):
            result = runner.invoke(app, ["download", "-q", "http://a/1"])

        assert result.exit_code == 130


class TestOtherCommands:
    """Tests for probe, list and upload."""

    def test_probe_bad_format(self):
        """probe rejects download-only sequences."""
        result = runner.invoke(app, ["probe", "-q", "--printf", "%d", "http://a/1"])
        assert result.exit_code == ErrorKind.BAD_COMMAND_LINE

    def test_list_bad_format(self):
        """list rejects the size sequence."""
        result = runner.invoke(app, ["list", "-q", "--printf", "%s", "http://a/1"])
        assert result.exit_code == ErrorKind.BAD_COMMAND_LINE

    def test_upload_unknown_module(self, temp_dir):
        """Unknown upload modules exit with NO_MODULE."""
        path = temp_dir / "file.txt"
        path.write_text("data")

        result = runner.invoke(app, ["upload", "-q", "nowhere", str(path)])

        assert result.exit_code == ErrorKind.NO_MODULE
