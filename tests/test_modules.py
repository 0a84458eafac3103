"""Tests for the module registry and the fallback module."""

from unittest.mock import MagicMock

import pytest

from oneclick.core.errors import ErrorKind
from oneclick.modules import default_registry
from oneclick.modules.base import ModuleRegistry, new_http_session
from oneclick.modules.fallback import FallbackModule


class TestModuleRegistry:
    """Tests for ModuleRegistry."""

    def test_default_registry(self):
        """Pixeldrain is bundled."""
        registry = default_registry()
        assert registry.names() == ["pixeldrain"]
        assert registry.find("https://pixeldrain.com/u/abc").name == "pixeldrain"

    def test_operation_filter(self, scripted_module):
        """Modules not implementing an operation are skipped."""
        registry = ModuleRegistry([scripted_module([])])

        assert registry.find("http://scripted.example/x", "download") is not None
        assert registry.find("http://scripted.example/x", "upload") is None
        assert registry.names("probe") == []

    def test_duplicate_name(self, scripted_module):
        """Module names are unique."""
        registry = ModuleRegistry([scripted_module([])])
        with pytest.raises(ValueError):
            registry.register(scripted_module([]))

    def test_get(self, scripted_module):
        """Modules are found by name."""
        registry = ModuleRegistry([scripted_module([])])
        assert registry.get("scripted") is not None
        assert registry.get("other") is None


class TestNewHttpSession:
    """Tests for new_http_session()."""

    def test_browser_user_agent(self):
        """Sessions look like a desktop browser."""
        session = new_http_session()
        assert "Mozilla" in session.headers["User-Agent"]

    def test_cookie_file(self, temp_dir):
        """Cookies are loaded from a Netscape cookie file."""
        cookies = temp_dir / "cookies.txt"
        cookies.write_text(
            "# Netscape HTTP Cookie File\n"
            ".example.com\tTRUE\t/\tFALSE\t2147483647\tsid\tabc\n",
            encoding="utf-8",
        )

        session = new_http_session(cookies)

        assert session.cookies.get("sid") == "abc"


class TestFallbackModule:
    """Tests for FallbackModule."""

    def test_download_passes_url(self, item_session):
        """The item URL is the final link."""
        outcome = FallbackModule().download(item_session, "http://host/file.bin")

        assert outcome.ok
        assert outcome.payload.url == "http://host/file.bin"
        assert outcome.payload.filename is None

    def test_list_page_links(self, item_session, fake_response):
        """Page links are absolute and unique."""
        item_session.http.get.return_value = fake_response(
            text='<a href="/a.zip">a</a> <a href="http://other/b.zip">b</a> '
            '<a href="/a.zip">again</a> <a href="mailto:x@y">m</a>'
        )

        outcome = FallbackModule().list(item_session, "http://host/dir/")

        assert [entry.url for entry in outcome.payload] == [
            "http://host/a.zip",
            "http://other/b.zip",
        ]

    def test_list_without_links(self, item_session, fake_response):
        """A page without links is a dead link."""
        item_session.http.get.return_value = fake_response(text="<p>nothing</p>")

        outcome = FallbackModule().list(item_session, "http://host/")

        assert outcome.kind == ErrorKind.LINK_DEAD
