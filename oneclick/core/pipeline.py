"""Batch runner: command line items through site modules, one at a time.

This module provides the BatchRunner class that expands command line items
(URLs or files of links), selects the site module of each URL, runs one
operation per URL through the retry ladder, marks processed links and
aggregates the outcomes into an exit status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

import requests
from rich.console import Console
from rich.progress import Progress, TaskID

from oneclick.core.config import ToolkitConfig
from oneclick.core.errors import (
    ALIVE_KINDS,
    ErrorKind,
    HosterError,
    Outcome,
    aggregate_exit_code,
)
from oneclick.core.retry import RetryLadder
from oneclick.modules.base import DEFAULT_TIMEOUT, ModuleRegistry, SiteModule
from oneclick.modules.fallback import FallbackModule
from oneclick.utils.formatting import (
    DEFAULT_LIST_FORMAT,
    DEFAULT_PROBE_FORMAT,
    LIST_SEQUENCES,
    PROBE_SEQUENCES,
    check_format,
    format_list,
    format_probe,
)
from oneclick.utils.links import (
    MARK_DONE,
    MARK_NOMODULE,
    MARK_NOTFOUND,
    MARK_PASSWORD,
    ItemSource,
    expand_item,
    is_remote_url,
    mark_link,
)
from oneclick.utils.logging import get_logger


Emit = Callable[[str], None]


@dataclass
class ItemResult:
    """Outcome of one URL.

    Attributes:
        url: The processed URL (after redirection lookup).
        module: Name of the module that handled it (None: no module).
        outcome: Final outcome of the operation.
    """

    url: str
    module: Optional[str]
    outcome: Outcome


@dataclass
class BatchResult:
    """Ordered per-item results of one command.

    Attributes:
        items: Results in processing order.
        start_time: Batch start timestamp.
        end_time: Batch end timestamp (None if still running).
    """

    items: List[ItemResult] = field(default_factory=list)
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None

    def add(self, url: str, module: Optional[str], outcome: Outcome) -> ItemResult:
        result = ItemResult(url=url, module=module, outcome=outcome)
        self.items.append(result)
        return result

    @property
    def completed(self) -> int:
        return sum(1 for item in self.items if item.outcome.ok)

    @property
    def failed(self) -> int:
        return len(self.items) - self.completed

    def kinds(self) -> List[ErrorKind]:
        return [item.outcome.kind for item in self.items]

    def exit_code(self) -> int:
        """Representative exit status (see aggregate_exit_code)."""
        return aggregate_exit_code(self.kinds())

    def duration_seconds(self) -> float:
        end = self.end_time or datetime.now()
        return (end - self.start_time).total_seconds()

    def summary(self) -> str:
        """Generate a summary string of the batch.

        Returns:
            Human-readable summary of statistics.
        """
        return (
            f"Processed {len(self.items)} link(s) in {self.duration_seconds():.1f}s: "
            f"{self.completed} completed, {self.failed} failed"
        )


def _console_emit(console: Console) -> Emit:
    def emit(text: str) -> None:
        console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    return emit


def _short(url: str, max_length: int = 40) -> str:
    if len(url) <= max_length:
        return url
    return url[: max_length - 3] + "..."


def probe_capabilities(fmt: str) -> str:
    """Probe capabilities a format needs ("c" is always requested).

    Examples:
        >>> probe_capabilities("%F%u")
        'cf'
        >>> probe_capabilities("%c %s %h")
        'csh'
    """
    caps = "c"
    if "%f" in fmt or "%F" in fmt:
        caps += "f"
    if "%s" in fmt:
        caps += "s"
    if "%h" in fmt:
        caps += "h"
    return caps


class BatchRunner:
    """Runs one command over every item, strictly sequentially.

    Results (local paths, final links, probe and list records) go to
    ``emit``; everything else is logged.

    Attributes:
        config: Toolkit configuration.
        registry: Site modules, in lookup order.
        ladder: Retry ladder running the module operations.
    """

    def __init__(
        self,
        config: ToolkitConfig,
        registry: ModuleRegistry,
        ladder: Optional[RetryLadder] = None,
        emit: Optional[Emit] = None,
        http: Optional[requests.Session] = None,
        progress: Optional[Progress] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the runner.

        Args:
            config: Toolkit configuration.
            registry: Site modules, in lookup order.
            ladder: Retry ladder (created from config when None).
            emit: Receives result records (default: stdout).
            http: Session used to follow redirections of unknown URLs.
            progress: Optional rich progress display for transfers.
            logger: Optional logger instance.
        """
        self.config = config
        self.registry = registry
        self.ladder = ladder or RetryLadder(config)
        self._emit = emit or _console_emit(Console(soft_wrap=True))
        self._http = http
        self._progress = progress
        self._fallback = FallbackModule()
        self.logger = logger or get_logger("pipeline")

    # Module lookup

    def _follow_redirect(self, url: str) -> Optional[str]:
        """Return the Location of a simple HTTP 30X redirection, if any."""
        http = self._http or requests.Session()
        try:
            # No user agent: some proxies fake redirections for browsers
            response = http.get(
                url,
                headers={"User-Agent": ""},
                allow_redirects=False,
                stream=True,
                timeout=DEFAULT_TIMEOUT,
            )
        except requests.RequestException as e:
            self.logger.debug(f"Redirection lookup failed: {e}")
            return None

        with response:
            location = response.headers.get("Location")
        return location.strip() if location else None

    def find_module(self, url: str, operation: str) -> Tuple[Optional[SiteModule], str]:
        """Select the module handling ``url`` for ``operation``.

        Registered modules are tried first, then the target of a simple
        redirection, then (when enabled, for download and list) the fallback
        module.

        Args:
            url: Item URL.
            operation: Operation name.

        Returns:
            Tuple of (module or None, URL to process).
        """
        module = self.registry.find(url, operation)
        if module is not None or not is_remote_url(url):
            return module, url

        self.logger.debug("No module found, try simple redirection")
        location = self._follow_redirect(url)
        if location:
            module = self.registry.find(location, operation)
            if module is not None:
                return module, location

        if operation in ("download", "list") and self.config.fallback:
            self.logger.info("No module found, do a simple HTTP GET as requested")
            return self._fallback, url

        return None, url

    def _iter_urls(self, items: List[str]) -> Iterator[Tuple[ItemSource, str]]:
        for item in items:
            source = expand_item(item, self.logger)
            if source is None:
                continue
            for url in source.urls:
                yield source, url

    def _mark(self, source: ItemSource, url: str, text: str, tail: str = "") -> None:
        if not self.config.mark_downloaded:
            return
        line = mark_link(source, url, text, tail, self.logger)
        if line is not None:
            self._emit(line + "\n")

    def _no_module(self, result: BatchResult, source: ItemSource, url: str) -> None:
        self.logger.error(f"Skip: no module for URL ({url})")
        result.add(url, None, Outcome.failure(ErrorKind.NO_MODULE))
        self._mark(source, url, MARK_NOMODULE)

    # Transfer progress

    def _start_progress(self, url: str) -> Optional[TaskID]:
        if self._progress is None:
            return None

        task_id = self._progress.add_task(f"[yellow]{_short(url)}", total=None)

        def on_progress(downloaded: int, total: int, speed: float, eta: float) -> None:
            self._progress.update(task_id, completed=downloaded, total=total or None)

        self.ladder.progress_callback = on_progress
        return task_id

    def _stop_progress(self, task_id: Optional[TaskID], url: str, ok: bool) -> None:
        self.ladder.progress_callback = None
        if self._progress is None or task_id is None:
            return
        color = "green" if ok else "red"
        self._progress.update(task_id, description=f"[{color}]{_short(url)}")

    # Commands

    def download(self, items: List[str], get_module: bool = False) -> BatchResult:
        """Download (or check, or print the final link of) every URL.

        Args:
            items: URLs or files of links.
            get_module: Only print the module name of each URL.

        Returns:
            BatchResult of every URL.
        """
        result = BatchResult()

        for source, url in self._iter_urls(items):
            module, url = self.find_module(url, "download")
            if module is None:
                self._no_module(result, source, url)
                continue

            if get_module:
                result.add(url, module.name, Outcome.success(module.name))
                self._emit(module.name + "\n")
                continue

            if self.config.check_link:
                outcome = self.ladder.check_link(module, url)
                result.add(url, module.name, outcome)
                if outcome.ok:
                    self._emit(url + "\n")
                elif outcome.kind == ErrorKind.LINK_DEAD:
                    self._mark(source, url, MARK_NOTFOUND)
                continue

            task_id = self._start_progress(url)
            outcome = Outcome.failure(ErrorKind.FATAL)
            try:
                outcome = self.ladder.download(module, url)
            finally:
                self._stop_progress(task_id, url, outcome.ok)
            result.add(url, module.name, outcome)

            if outcome.ok:
                report = outcome.payload
                if report.printed is not None:
                    self._emit(report.printed)
                    tail = f"|{report.fetch.filename}"
                else:
                    self._emit(f"{report.path}\n")
                    tail = f"|{report.path}"
                self._mark(source, url, MARK_DONE, tail)
            elif outcome.kind == ErrorKind.LINK_PASSWORD_REQUIRED:
                self._mark(source, url, MARK_PASSWORD)
            elif outcome.kind == ErrorKind.LINK_DEAD:
                self._mark(source, url, MARK_NOTFOUND)

        result.end_time = datetime.now()
        self.logger.debug(result.summary())
        return result

    def probe(self, items: List[str], fmt: Optional[str] = None) -> BatchResult:
        """Print metadata of every alive link.

        Args:
            items: URLs or files of links.
            fmt: Output format (default "%F%u").

        Returns:
            BatchResult of every URL.

        Raises:
            HosterError: BAD_COMMAND_LINE for a bad format.
        """
        fmt = fmt or DEFAULT_PROBE_FORMAT
        check_format(fmt, PROBE_SEQUENCES)
        capabilities = probe_capabilities(fmt)
        result = BatchResult()

        for _, url in self._iter_urls(items):
            module, url = self.find_module(url, "probe")
            if module is None:
                self.logger.error(f"Skip: no module for URL ({url})")
                result.add(url, None, Outcome.failure(ErrorKind.NO_MODULE))
                continue

            self.logger.info(f"Starting probing ({module.name}): {url}")
            outcome = self.ladder.run_operation(
                module, "probe", lambda session: module.probe(session, url, capabilities)
            )
            result.add(url, module.name, outcome)

            if outcome.kind not in ALIVE_KINDS:
                continue

            info = outcome.payload
            self._emit(
                format_probe(
                    fmt,
                    module.name,
                    url,
                    outcome.kind,
                    filename=info.filename if info else None,
                    size=info.size if info else None,
                    file_hash=info.file_hash if info else None,
                )
            )

        result.end_time = datetime.now()
        return result

    def list(self, items: List[str], fmt: Optional[str] = None) -> BatchResult:
        """Print the links of every folder URL.

        Args:
            items: Folder URLs or files of links.
            fmt: Output format (default "%F%u").

        Returns:
            BatchResult of every URL.

        Raises:
            HosterError: BAD_COMMAND_LINE for a bad format.
        """
        fmt = fmt or DEFAULT_LIST_FORMAT
        check_format(fmt, LIST_SEQUENCES)
        result = BatchResult()

        for _, url in self._iter_urls(items):
            module, url = self.find_module(url, "list")
            if module is None:
                self.logger.error(f"Skip: no module for URL ({url})")
                result.add(url, None, Outcome.failure(ErrorKind.NO_MODULE))
                continue

            self.logger.info(f"Retrieving list ({module.name}): {url}")
            outcome = self.ladder.run_operation(
                module,
                "list",
                lambda session: module.list(session, url, self.config.recurse),
            )
            result.add(url, module.name, outcome)

            if not outcome.ok:
                continue

            for entry in outcome.payload or []:
                line = format_list(fmt, module.name, entry.url, entry.name)
                if line is not None:
                    self._emit(line)

        result.end_time = datetime.now()
        return result

    def delete(self, urls: List[str]) -> BatchResult:
        """Delete every file given by its delete (or admin) URL."""
        result = BatchResult()

        for url in urls:
            module, url = self.find_module(url, "delete")
            if module is None:
                self.logger.error(f"Skip: no module for URL ({url})")
                result.add(url, None, Outcome.failure(ErrorKind.NO_MODULE))
                continue

            self.logger.info(f"Starting delete ({module.name}): {url}")
            outcome = self.ladder.run_operation(
                module, "delete", lambda session: module.delete(session, url)
            )
            result.add(url, module.name, outcome)
            if outcome.ok:
                self.logger.info("File removed successfully")

        result.end_time = datetime.now()
        return result

    def upload(
        self,
        module_name: str,
        files: List[Path],
        remote_name: Optional[str] = None,
    ) -> BatchResult:
        """Upload local files with one module and print the resulting links.

        Args:
            module_name: Name of the module to upload with.
            files: Local files.
            remote_name: Remote filename (single file only).

        Returns:
            BatchResult of every uploaded file.

        Raises:
            HosterError: NO_MODULE for an unknown module name,
                BAD_COMMAND_LINE when the module cannot upload.
        """
        module = self.registry.get(module_name)
        if module is None:
            raise HosterError(ErrorKind.NO_MODULE, f"unsupported module: {module_name}")
        if not module.supports("upload"):
            raise HosterError(
                ErrorKind.BAD_COMMAND_LINE, f"module {module_name} does not support upload"
            )
        if remote_name and len(files) > 1:
            raise HosterError(
                ErrorKind.BAD_COMMAND_LINE, "a remote filename needs exactly one file"
            )

        result = BatchResult()

        for path in files:
            path = Path(path)
            if not path.is_file():
                self.logger.error(f"Skip: cannot stat '{path}': No such file")
                continue

            self.logger.info(f"Starting upload ({module.name}): {path}")
            outcome = self.ladder.run_operation(
                module, "upload", lambda session: module.upload(session, path, remote_name)
            )
            result.add(str(path), module.name, outcome)

            if outcome.ok:
                links = outcome.payload
                self._emit(links.download_url + "\n")
                if links.delete_url:
                    self._emit(f"{links.delete_url} (delete link)\n")
                if links.admin_url:
                    self._emit(f"{links.admin_url} (admin link)\n")

        result.end_time = datetime.now()
        return result
