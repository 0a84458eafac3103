"""Tests for printf-like output formats."""

from pathlib import Path

import pytest

from oneclick.core.errors import ErrorKind, HosterError
from oneclick.utils.formatting import (
    LIST_SEQUENCES,
    PROBE_SEQUENCES,
    PrintfData,
    check_format,
    format_download,
    format_list,
    format_probe,
    uses_cookie_file,
)


def download_data(**overrides):
    fields = dict(
        module="pixeldrain",
        filename="a.zip",
        source_url="https://pixeldrain.com/u/abc",
        final_url="https://pixeldrain.com/api/file/abc?download",
    )
    fields.update(overrides)
    return PrintfData(**fields)


class TestCheckFormat:
    """Tests for check_format()."""

    def test_valid_download_format(self):
        """Known sequences are accepted."""
        check_format("%m%t%f%t%d%n%%")

    def test_unknown_sequence(self):
        """Unknown sequences are BAD_COMMAND_LINE."""
        with pytest.raises(HosterError) as excinfo:
            check_format("%f %x")
        assert excinfo.value.kind == ErrorKind.BAD_COMMAND_LINE
        assert "<< %x >>" in str(excinfo.value)

    def test_trailing_percent(self):
        """A lone trailing % is rejected."""
        with pytest.raises(HosterError):
            check_format("%f%")

    def test_per_command_sequences(self):
        """Sequence sets differ per command."""
        check_format("%s %h", PROBE_SEQUENCES)
        with pytest.raises(HosterError):
            check_format("%s", LIST_SEQUENCES)


class TestFormatDownload:
    """Tests for format_download()."""

    def test_sequences(self):
        """Every download sequence is substituted."""
        text = format_download("%m|%f|%u|%d%n", download_data())
        assert text == (
            "pixeldrain|a.zip|https://pixeldrain.com/u/abc|"
            "https://pixeldrain.com/api/file/abc?download\n"
        )

    def test_newline_appended(self):
        """Records without %n are terminated."""
        assert format_download("%f", download_data()) == "a.zip\n"

    def test_full_name(self):
        """%F prefixes the output directory."""
        text = format_download("%F%n", download_data(output_dir=Path("out")))
        assert text == str(Path("out") / "a.zip") + "\n"

    def test_escaped_percent(self):
        """%% is a raw percent sign."""
        assert format_download("100%%%t%f%n", download_data()) == "100%\ta.zip\n"

    def test_cookie_sequences(self):
        """%C is empty when the module does not need cookies."""
        data = download_data(cookie_file=Path("/tmp/c.txt"))
        assert format_download("[%c][%C]%n", data) == "[/tmp/c.txt][]\n"

        data = download_data(cookie_file=Path("/tmp/c.txt"), module_needs_cookie=True)
        assert format_download("[%C]%n", data) == "[/tmp/c.txt]\n"

    def test_uses_cookie_file(self):
        """The cookie file is only needed for %c, or %C with a cookie module."""
        assert uses_cookie_file("%c", False)
        assert not uses_cookie_file("%C", False)
        assert uses_cookie_file("%C", True)
        assert not uses_cookie_file("%%c", True)


class TestFormatProbe:
    """Tests for format_probe()."""

    def test_default_format_with_name(self):
        """%F expands to a comment line with the filename."""
        text = format_probe("%F%u", "pixeldrain", "https://pixeldrain.com/u/x", 0, "a.zip")
        assert text == "# a.zip\nhttps://pixeldrain.com/u/x\n"

    def test_alias_with_size(self):
        """The record after %F still gets its newline."""
        text = format_probe("%F%u%t%s", "pixeldrain", "https://pixeldrain.com/u/x", 0, "a.zip", 42)
        assert text == "# a.zip\nhttps://pixeldrain.com/u/x\t42\n"

    def test_default_format_without_name(self):
        """%F is empty without filename."""
        text = format_probe("%F%u", "pixeldrain", "https://pixeldrain.com/u/x", 0)
        assert text == "https://pixeldrain.com/u/x\n"

    def test_status_size_hash(self):
        """Status code, size and hash sequences."""
        text = format_probe(
            "%c %s %h%n", "pixeldrain", "u", ErrorKind.LINK_TEMP_UNAVAILABLE,
            size=1024, file_hash="deadbeef",
        )
        assert text == "10 1024 deadbeef\n"

    def test_missing_size(self):
        """Unknown size renders as empty."""
        assert format_probe("[%s]", "m", "u", 0) == "[]\n"


class TestFormatList:
    """Tests for format_list()."""

    def test_named_link(self):
        """Named links get a comment line."""
        assert format_list("%F%u", "m", "http://x/1", "one.txt") == "# one.txt\nhttp://x/1\n"

    def test_named_links_stay_on_separate_lines(self):
        """Each named record ends with its own newline."""
        records = [
            format_list("%F%u", "m", "http://x/1", "one.txt"),
            format_list("%F%u", "m", "http://x/2", "two.txt"),
        ]
        assert "".join(records).splitlines() == [
            "# one.txt",
            "http://x/1",
            "# two.txt",
            "http://x/2",
        ]

    def test_alias_does_not_count_as_explicit_newline(self):
        """Only a %n written by the user disables the closing newline."""
        assert format_list("%F%u%n", "m", "http://x/1", "one.txt") == "# one.txt\nhttp://x/1\n"
        assert format_list("%F", "m", "http://x/1", "one.txt") == "# one.txt\n"

    def test_only_alias_and_no_name(self):
        """A format reduced to nothing prints nothing."""
        assert format_list("%F", "m", "http://x/1") is None

    def test_module_and_tab(self):
        """%m and %t sequences."""
        assert format_list("%m%t%u%n", "m", "http://x/1") == "m\thttp://x/1\n"
