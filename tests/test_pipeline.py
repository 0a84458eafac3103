"""Tests for the batch runner."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from oneclick.core.config import ToolkitConfig
from oneclick.core.errors import ErrorKind, HosterError, Outcome
from oneclick.core.pipeline import BatchResult, BatchRunner, probe_capabilities
from oneclick.core.retry import DownloadReport
from oneclick.modules.base import (
    FetchResult,
    ListEntry,
    ModuleRegistry,
    ProbeResult,
    UploadResult,
)
from oneclick.modules.fallback import FallbackModule


ITEM_URL = "http://scripted.example/f/1"


@pytest.fixture
def emitted():
    """Records emitted on stdout."""
    return []


@pytest.fixture
def ladder():
    """Retry ladder mock."""
    return MagicMock()


@pytest.fixture
def http(fake_response):
    """Redirection lookup session answering without redirection."""
    session = MagicMock()
    session.get.return_value = fake_response(200)
    return session


@pytest.fixture
def make_runner(scripted_module, ladder, emitted, http):
    """Factory of runners over a registry holding the scripted module."""

    def factory(**config_fields):
        registry = ModuleRegistry([scripted_module([Outcome.success()])])
        return BatchRunner(
            ToolkitConfig(**config_fields),
            registry,
            ladder=ladder,
            emit=emitted.append,
            http=http,
        )

    return factory


def report(path="/out/archive.zip", printed=None):
    fetch = FetchResult(url="http://cdn/archive.zip", filename="archive.zip")
    return Outcome.success(
        DownloadReport(ITEM_URL, fetch, path=Path(path) if path else None, printed=printed)
    )


class TestBatchResult:
    """Tests for BatchResult."""

    def test_counts_and_exit_code(self):
        """Completed and failed counts follow the outcomes."""
        result = BatchResult()
        result.add("u1", "m", Outcome.success())
        result.add("u2", "m", Outcome.failure(ErrorKind.LINK_DEAD))

        assert result.completed == 1
        assert result.failed == 1
        assert result.exit_code() == 113
        assert "1 completed, 1 failed" in result.summary()

    def test_empty(self):
        """An empty batch exits with 0."""
        assert BatchResult().exit_code() == 0


class TestProbeCapabilities:
    """Tests for probe_capabilities()."""

    def test_default_format(self):
        """The default format needs filenames."""
        assert probe_capabilities("%F%u") == "cf"

    def test_all(self):
        """Size and hash sequences request those capabilities."""
        assert probe_capabilities("%f %s %h") == "cfsh"


class TestFindModule:
    """Tests for BatchRunner.find_module()."""

    def test_registered_module(self, make_runner, http):
        """Registered modules win without network access."""
        module, url = make_runner().find_module(ITEM_URL, "download")

        assert module.name == "scripted"
        assert url == ITEM_URL
        http.get.assert_not_called()

    def test_redirection_target(self, make_runner, http, fake_response):
        """A simple redirection to a known host is followed."""
        http.get.return_value = fake_response(301, headers={"Location": ITEM_URL})

        module, url = make_runner().find_module("http://short.example/x", "download")

        assert module.name == "scripted"
        assert url == ITEM_URL
        assert http.get.call_args[1]["allow_redirects"] is False

    def test_no_module(self, make_runner):
        """Unknown hosts have no module."""
        module, url = make_runner().find_module("http://unknown.example/x", "download")
        assert module is None

    def test_fallback(self, make_runner):
        """The fallback module handles unknown hosts when enabled."""
        module, _ = make_runner(fallback=True).find_module("http://unknown.example/x", "download")
        assert isinstance(module, FallbackModule)

    def test_fallback_not_for_probe(self, make_runner):
        """The fallback module never probes."""
        module, _ = make_runner(fallback=True).find_module("http://unknown.example/x", "probe")
        assert module is None


class TestDownload:
    """Tests for BatchRunner.download()."""

    def test_emits_local_path(self, make_runner, ladder, emitted):
        """Successful downloads print the local path."""
        ladder.download.return_value = report()

        result = make_runner().download([ITEM_URL])

        assert emitted == [f"{Path('/out/archive.zip')}\n"]
        assert result.exit_code() == 0

    def test_printf_mode(self, make_runner, ladder, emitted):
        """printf records are printed as rendered."""
        ladder.download.return_value = report(path=None, printed="http://cdn/archive.zip\n")

        make_runner(printf_format="%d").download([ITEM_URL])

        assert emitted == ["http://cdn/archive.zip\n"]

    def test_failure_exit_code(self, make_runner, ladder, emitted):
        """A single failed item exits with its code."""
        ladder.download.return_value = Outcome.failure(ErrorKind.MAX_WAIT_REACHED)

        result = make_runner().download([ITEM_URL])

        assert result.exit_code() == 5
        assert emitted == []

    def test_multiple_items(self, make_runner, ladder):
        """Several items exit with 100 + first failure."""
        ladder.download.side_effect = [report(), Outcome.failure(ErrorKind.NETWORK)]

        result = make_runner().download([ITEM_URL, ITEM_URL + "2"])

        assert result.exit_code() == 103

    def test_no_module(self, make_runner, ladder, emitted):
        """URLs without module are NO_MODULE."""
        result = make_runner().download(["http://unknown.example/x"])

        assert result.exit_code() == ErrorKind.NO_MODULE
        ladder.download.assert_not_called()

    def test_get_module(self, make_runner, ladder, emitted):
        """--get-module prints module names only."""
        make_runner().download([ITEM_URL], get_module=True)

        assert emitted == ["scripted\n"]
        ladder.download.assert_not_called()

    def test_check_link(self, make_runner, ladder, emitted):
        """Alive links are printed in check mode."""
        ladder.check_link.return_value = Outcome.success(ITEM_URL)

        make_runner(check_link=True).download([ITEM_URL])

        assert emitted == [ITEM_URL + "\n"]
        ladder.download.assert_not_called()

    def test_mark_downloaded_plain_url(self, make_runner, ladder, emitted):
        """Marks of plain URLs are printed."""
        ladder.download.return_value = report()

        make_runner(mark_downloaded=True).download([ITEM_URL])

        assert emitted[-1] == f"# {ITEM_URL}|{Path('/out/archive.zip')}\n"

    def test_mark_in_links_file(self, make_runner, ladder, temp_dir):
        """Dead links are commented out in their links file."""
        links = temp_dir / "links.txt"
        links.write_text(f"{ITEM_URL}\n", encoding="utf-8")
        ladder.download.return_value = Outcome.failure(ErrorKind.LINK_DEAD)

        make_runner(mark_downloaded=True).download([str(links)])

        assert links.read_text(encoding="utf-8") == f"#NOTFOUND {ITEM_URL}\n"

    def test_missing_item_skipped(self, make_runner, temp_dir):
        """Items that are neither URLs nor files are skipped."""
        result = make_runner().download([str(temp_dir / "missing.txt")])
        assert result.items == []


class TestProbe:
    """Tests for BatchRunner.probe()."""

    def test_bad_format(self, make_runner):
        """Unknown sequences are rejected before any item."""
        with pytest.raises(HosterError) as excinfo:
            make_runner().probe([ITEM_URL], "%d")
        assert excinfo.value.kind == ErrorKind.BAD_COMMAND_LINE


class TestWithPixeldrain:
    """Probe, list, upload and delete with a Pixeldrain-like module."""

    @pytest.fixture
    def module(self):
        module = MagicMock()
        module.name = "pixeldrain"
        module.supports.return_value = True
        return module

    @pytest.fixture
    def runner(self, module, ladder, emitted, http):
        registry = MagicMock()
        registry.find.return_value = module
        registry.get.side_effect = lambda name: module if name == "pixeldrain" else None
        return BatchRunner(ToolkitConfig(), registry, ladder=ladder, emit=emitted.append, http=http)

    def test_probe_alive(self, runner, ladder, emitted):
        """Alive links are printed with the format."""
        ladder.run_operation.return_value = Outcome.success(
            ProbeResult(filename="a.zip", size=10)
        )

        runner.probe(["https://pixeldrain.com/u/x"], "%c %f %s")

        assert emitted == ["0 a.zip 10\n"]

    def test_probe_dead(self, runner, ladder, emitted):
        """Dead links print nothing."""
        ladder.run_operation.return_value = Outcome.failure(ErrorKind.LINK_DEAD)

        result = runner.probe(["https://pixeldrain.com/u/x"])

        assert emitted == []
        assert result.exit_code() == 13

    def test_list(self, runner, ladder, emitted):
        """Folder links are printed with their names."""
        ladder.run_operation.return_value = Outcome.success(
            [ListEntry("https://pixeldrain.com/u/f1", "one.txt"), ListEntry("https://pixeldrain.com/u/f2")]
        )

        runner.list(["https://pixeldrain.com/l/xyz"])

        assert emitted == [
            "# one.txt\nhttps://pixeldrain.com/u/f1\n",
            "https://pixeldrain.com/u/f2\n",
        ]

    def test_delete(self, runner, ladder):
        """Delete runs once per URL."""
        ladder.run_operation.return_value = Outcome.success()

        result = runner.delete(["https://pixeldrain.com/u/x", "https://pixeldrain.com/u/y"])

        assert ladder.run_operation.call_count == 2
        assert result.exit_code() == 0

    def test_upload(self, runner, ladder, emitted, temp_dir):
        """Upload prints the download and delete links."""
        path = temp_dir / "file.txt"
        path.write_text("data")
        ladder.run_operation.return_value = Outcome.success(
            UploadResult("https://pixeldrain.com/u/n1", delete_url="https://pixeldrain.com/u/n1")
        )

        runner.upload("pixeldrain", [path])

        assert emitted == [
            "https://pixeldrain.com/u/n1\n",
            "https://pixeldrain.com/u/n1 (delete link)\n",
        ]

    def test_upload_unknown_module(self, runner, temp_dir):
        """Unknown module names are NO_MODULE."""
        with pytest.raises(HosterError) as excinfo:
            runner.upload("nowhere", [temp_dir / "f"])
        assert excinfo.value.kind == ErrorKind.NO_MODULE

    def test_upload_remote_name_needs_single_file(self, runner, temp_dir):
        """A remote name is only allowed for one file."""
        with pytest.raises(HosterError) as excinfo:
            runner.upload("pixeldrain", [temp_dir / "a", temp_dir / "b"], remote_name="x")
        assert excinfo.value.kind == ErrorKind.BAD_COMMAND_LINE

    def test_upload_missing_file_skipped(self, runner, ladder, temp_dir):
        """Missing local files are skipped."""
        result = runner.upload("pixeldrain", [temp_dir / "missing.bin"])

        assert result.items == []
        ladder.run_operation.assert_not_called()
