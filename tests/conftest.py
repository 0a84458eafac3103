"""Shared pytest fixtures for oneclick tests."""

import io
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from oneclick.core.budget import WaitBudget
from oneclick.core.config import ToolkitConfig
from oneclick.modules.base import ItemSession, SiteModule, compile_url_pattern
from oneclick.utils.logging import get_item_logger


def make_response(
    status_code=200,
    text="",
    json_data=None,
    content=None,
    headers=None,
    chunks=None,
):
    """Build a fake requests.Response.

    Args:
        status_code: HTTP status code.
        text: Body as text.
        json_data: Decoded JSON body (json() raises ValueError when None).
        content: Body as bytes (defaults to the encoded text).
        headers: Response headers.
        chunks: Body chunks returned by iter_content().

    Returns:
        MagicMock behaving like a response (usable as a context manager).
    """
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    response.content = content if content is not None else text.encode("utf-8")
    response.headers = headers or {}
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    response.iter_content.side_effect = lambda chunk_size=None: iter(chunks or [])
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


class ScriptedModule(SiteModule):
    """Site module replaying scripted download outcomes.

    The last outcome is repeated once the script is exhausted. Exceptions
    in the script are raised.
    """

    name = "scripted"
    url_pattern = compile_url_pattern(r"^https?://scripted\.example/")

    def __init__(self, outcomes, resumable=False, needs_cookie=False):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.resumable = resumable
        self.final_link_needs_cookie = needs_cookie

    def download(self, session, url):
        self.calls += 1
        item = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path to the temporary directory that is automatically
        cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def quiet_console():
    """Console writing to memory (never a terminal)."""
    return Console(file=io.StringIO())


@pytest.fixture
def sleeps():
    """Recorded sleep durations."""
    return []


@pytest.fixture
def make_budget(sleeps, quiet_console):
    """Factory of wait budgets recording their sleeps instead of sleeping."""

    def factory(total_seconds=None):
        return WaitBudget(total_seconds, sleep=sleeps.append, console=quiet_console)

    return factory


@pytest.fixture
def item_session(make_budget):
    """Item session with a mocked HTTP session and an unlimited budget."""
    return ItemSession(
        http=MagicMock(),
        budget=make_budget(),
        captcha=None,
        config=ToolkitConfig(),
        logger=get_item_logger("test"),
        module_name="test",
    )


@pytest.fixture
def sample_links_file(temp_dir):
    """Create a sample links file with comments and blank lines.

    Args:
        temp_dir: Temporary directory fixture.

    Returns:
        Path to the created links file.
    """
    links_content = """# Sample links file for testing
# This is a comment line

https://pixeldrain.com/u/abc12345
   https://pixeldrain.com/l/listid12

# Already processed
#NOTFOUND https://pixeldrain.com/u/dead0000

https://unknown-host.example/file123
"""
    links_file = temp_dir / "links.txt"
    links_file.write_text(links_content, encoding="utf-8")
    return links_file


@pytest.fixture
def captcha_image(temp_dir):
    """Small non-empty image file."""
    path = temp_dir / "captcha.png"
    path.write_bytes(b"\x89PNG fake image data")
    return path


@pytest.fixture
def fake_response():
    """Factory of fake HTTP responses (see make_response)."""
    return make_response


@pytest.fixture
def scripted_module():
    """The ScriptedModule class."""
    return ScriptedModule
