"""Per-item retry ladder.

The ladder drives a site module's download operation:

1. Invoke the module. LINK_TEMP_UNAVAILABLE waits (hint or 60 seconds)
   through the item budget then loops, CAPTCHA loops (unless the captcha
   method is ``none``), any other code aborts.
2. Count retries against ``max_retries``.
3. Validate the final link and derive a filename when needed.
4. Hand the final link to the transfer executor and react to its HTTP
   outcome (503 safety wait, partial content, 416, other status codes).
"""

from __future__ import annotations

import html
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from urllib.parse import unquote

from rich.console import Console

from oneclick.captcha.engine import CaptchaEngine
from oneclick.core.budget import WaitBudget
from oneclick.core.config import DEFAULT_TEMP_WAIT_SECONDS, SAFETY_WAIT_SECONDS, ToolkitConfig
from oneclick.core.errors import ALIVE_KINDS, ErrorKind, HosterError, Outcome, kind_from_exception
from oneclick.core.transfer import FinalTransfer, ProgressCallback
from oneclick.modules.base import FetchResult, ItemSession, SiteModule, new_http_session
from oneclick.utils.formatting import PrintfData, format_download, uses_cookie_file
from oneclick.utils.logging import (
    ItemLogAdapter,
    get_item_logger,
    get_logger,
    mask_url_sensitive_parts,
)


# On most filesystems, maximum filename length is 255
MAX_FILENAME_LENGTH = 254
MAX_RESTARTS = 3


@dataclass
class RetryContext:
    """Mutable state of one item.

    Attributes:
        budget: Wait budget shared by every sleep of the item.
        max_retries: Retry limit (None: unlimited, 0: no retry).
        attempt: Retries done so far; only increases.
    """

    budget: WaitBudget
    max_retries: Optional[int] = None
    attempt: int = 0


@dataclass
class DownloadReport:
    """Successful download of one item.

    Attributes:
        url: Source URL.
        fetch: Final link and filename returned by the module.
        path: Local file (None in printf mode).
        printed: Rendered printf format (None when the file was transferred).
        was_resumed: Whether the transfer continued a partial file.
    """

    url: str
    fetch: FetchResult
    path: Optional[Path] = None
    printed: Optional[str] = None
    was_resumed: bool = False


def derive_filename(url: str) -> str:
    """Build a local filename from a final URL.

    The query string is stripped, HTML entities and percent-encoding are
    decoded. URLs ending with ``/`` get a ``dummy-<pid>`` name.

    Examples:
        >>> derive_filename("http://host/dir/my%20file.zip?key=1")
        'my file.zip'
    """
    if url.endswith("/"):
        return f"dummy-{os.getpid()}"

    base = url.split("?", 1)[0].rsplit("/", 1)[-1]
    base = base.replace("\r", "").replace("\n", "")
    name = unquote(html.unescape(base))
    return name or f"dummy-{os.getpid()}"


def truncate_filename(filename: str) -> str:
    if len(filename) > MAX_FILENAME_LENGTH:
        return filename[:MAX_FILENAME_LENGTH]
    return filename


def _wait_hint(hint) -> Optional[int]:
    try:
        seconds = int(hint)
    except (TypeError, ValueError):
        return None
    return seconds if seconds > 0 else None


class RetryLadder:
    """Runs site module operations under the retry/wait policy.

    Attributes:
        config: Toolkit configuration.
        captcha: Captcha engine shared by every item.
        transfer: Final transfer executor.
    """

    def __init__(
        self,
        config: ToolkitConfig,
        captcha_engine: Optional[CaptchaEngine] = None,
        transfer: Optional[FinalTransfer] = None,
        sleep: Callable[[float], None] = time.sleep,
        console: Optional[Console] = None,
        progress_callback: Optional[ProgressCallback] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        """Initialize the ladder.

        Args:
            config: Toolkit configuration.
            captcha_engine: Captcha engine (created from config when None).
            transfer: Transfer executor (created from config when None).
            sleep: Blocking sleep function given to every item budget.
            console: Console used for wait countdowns.
            progress_callback: Optional transfer progress callback.
            logger: Optional logger instance.
        """
        self.config = config
        self.captcha = captcha_engine if captcha_engine is not None else CaptchaEngine(config)
        self.transfer = transfer or FinalTransfer(
            output_dir=config.output_dir,
            temp_dir=config.temp_dir,
            no_overwrite=config.no_overwrite,
        )
        self._sleep = sleep
        self._console = console
        self.progress_callback = progress_callback
        self._logger = logger or get_logger("retry")

    def new_context(self) -> RetryContext:
        budget = WaitBudget(self.config.timeout, sleep=self._sleep, console=self._console)
        return RetryContext(budget=budget, max_retries=self.config.max_retries)

    def new_session(self, module: SiteModule, context: RetryContext) -> ItemSession:
        """Build a fresh item session (cookie jar seeded from the cookies file)."""
        logger = get_item_logger(module.name)
        self.captcha.module_name = module.name
        return ItemSession(
            http=new_http_session(self.config.cookies_file, logger),
            budget=context.budget,
            captcha=self.captcha,
            config=self.config,
            logger=logger,
            module_name=module.name,
        )

    def _invoke(self, session: ItemSession, operation: Callable[[], Outcome]) -> Outcome:
        """Call a module operation, translating escaped exceptions."""
        try:
            outcome = operation()
        except HosterError as e:
            session.logger.debug(f"{type(e).__name__}: {e}")
            return Outcome.failure(e.kind, e.hint)
        except Exception as e:
            kind = kind_from_exception(e)
            session.logger.debug(f"{type(e).__name__}: {e}", exc_info=kind == ErrorKind.FATAL)
            return Outcome.failure(kind, str(e))

        if outcome is None:
            session.logger.error("module returned no outcome")
            return Outcome.failure(ErrorKind.FATAL)
        return outcome

    def fetch(
        self,
        module: SiteModule,
        url: str,
        session: ItemSession,
        context: RetryContext,
    ) -> Outcome[FetchResult]:
        """Resolve the final link of ``url`` with ``module``.

        Args:
            module: Site module handling the URL.
            url: Source URL.
            session: Item session.
            context: Item retry state (attempt counter, budget).

        Returns:
            Outcome with the validated FetchResult (filename always set).
        """
        logger = session.logger

        while True:
            outcome = self._invoke(session, lambda: module.download(session, url))
            kind = outcome.kind

            if kind == ErrorKind.LINK_TEMP_UNAVAILABLE:
                if self.config.no_extra_wait:
                    break

                seconds = _wait_hint(outcome.hint)
                if seconds is None:
                    logger.debug("arbitrary wait")
                    seconds = DEFAULT_TEMP_WAIT_SECONDS

                wait_kind = context.budget.consume(seconds)
                if wait_kind != ErrorKind.OK:
                    return Outcome.failure(wait_kind)

            elif kind != ErrorKind.CAPTCHA:
                break

            elif self.config.captcha_method == "none":
                logger.debug("captcha method set to none, abort")
                break

            context.attempt += 1
            if context.max_retries is not None:
                if context.max_retries == 0:
                    logger.debug("no retry explicitly requested")
                    break
                if context.attempt > context.max_retries:
                    return Outcome.failure(ErrorKind.MAX_TRIES_REACHED)
                logger.info(
                    f"Starting download ({module.name}): "
                    f"retry {context.attempt}/{context.max_retries}"
                )
            else:
                logger.info(f"Starting download ({module.name}): retry {context.attempt}")

        if not outcome.ok:
            return Outcome.failure(outcome.kind, outcome.hint)

        return self._validate(outcome.payload, logger)

    def _validate(
        self, fetched: Optional[FetchResult], logger: ItemLogAdapter
    ) -> Outcome[FetchResult]:
        if fetched is None or not fetched.url:
            logger.error("Output URL expected")
            return Outcome.failure(ErrorKind.FATAL)

        filename = fetched.filename or ""
        if filename == fetched.url:
            logger.error("Output filename is wrong, check module download function")
            filename = ""

        if not filename:
            if fetched.url.endswith("/"):
                logger.error("Output filename not specified, module download function must be wrong")
            filename = derive_filename(fetched.url)

        if len(filename) > MAX_FILENAME_LENGTH:
            logger.debug("filename is too long, truncating it")
            filename = truncate_filename(filename)

        return Outcome.success(FetchResult(url=fetched.url, filename=filename))

    def _abort(self, logger: ItemLogAdapter, kind: ErrorKind, hint=None) -> Outcome:
        logger.info(kind.message)
        return Outcome.failure(kind, hint)

    def download(self, module: SiteModule, url: str) -> Outcome[DownloadReport]:
        """Download one item: fetch rounds plus final transfer.

        Args:
            module: Site module handling the URL.
            url: Source URL.

        Returns:
            Outcome with a DownloadReport.
        """
        context = self.new_context()
        safety_waited = False
        restarts = 0

        get_item_logger(module.name).info(f"Starting download ({module.name}): {url}")

        while True:
            session = self.new_session(module, context)
            logger = session.logger

            outcome = self.fetch(module, url, session, context)
            if not outcome.ok:
                return self._abort(logger, outcome.kind, outcome.hint)

            fetched = outcome.payload
            logger.info(f"File URL: {mask_url_sensitive_parts(fetched.url)}")
            logger.info(f"Filename: {fetched.filename}")

            if self.config.printf_format:
                printed = self._render(module, url, fetched, session)
                return Outcome.success(DownloadReport(url, fetched, printed=printed))

            http = session.http if module.final_link_needs_cookie else new_http_session()
            result = self.transfer.run(
                http,
                fetched.url,
                fetched.filename,
                resumable=module.resumable,
                progress_callback=self.progress_callback,
            )

            if result.kind == ErrorKind.LINK_TEMP_UNAVAILABLE:
                if module.resumable:
                    logger.info("Partial content downloaded, recall download function")
                    continue
                return self._abort(logger, ErrorKind.NETWORK)

            if result.http_code == 503:
                if safety_waited:
                    logger.error("Unexpected HTTP code 503 after a safety wait, give up")
                    return self._abort(logger, ErrorKind.NETWORK)
                logger.error("Unexpected HTTP code 503, retry after a safety wait")
                safety_waited = True
                wait_kind = context.budget.consume(SAFETY_WAIT_SECONDS)
                if wait_kind != ErrorKind.OK:
                    return self._abort(logger, wait_kind)
                continue

            if result.kind == ErrorKind.OK and result.http_code == 416:
                if module.resumable:
                    logger.error("Resume error (bad range), skip download")
                    return Outcome.success(
                        DownloadReport(url, fetched, path=result.path, was_resumed=True)
                    )
                logger.error("Resume error (bad range), restart download")
                if result.path is not None:
                    result.path.unlink(missing_ok=True)
                restarts += 1
                if restarts > MAX_RESTARTS:
                    return self._abort(logger, ErrorKind.NETWORK)
                continue

            restartable = result.http_code and not 200 <= result.http_code < 300
            if result.kind == ErrorKind.NETWORK and restartable:
                logger.error(f"Unexpected HTTP code {result.http_code}, restart download")
                restarts += 1
                if restarts > MAX_RESTARTS:
                    return self._abort(logger, ErrorKind.NETWORK)
                continue

            if not result.ok:
                return self._abort(logger, result.kind)

            return Outcome.success(
                DownloadReport(url, fetched, path=result.path, was_resumed=result.was_resumed)
            )

    def _render(
        self, module: SiteModule, url: str, fetched: FetchResult, session: ItemSession
    ) -> str:
        fmt = self.config.printf_format
        cookie_file = None
        if uses_cookie_file(fmt, module.final_link_needs_cookie):
            path = Path(tempfile.gettempdir()) / f"oneclick.cookies.{os.getpid()}.txt"
            cookie_file = session.save_cookies(path)

        return format_download(
            fmt,
            PrintfData(
                module=module.name,
                filename=fetched.filename,
                source_url=url,
                final_url=fetched.url,
                output_dir=self.config.output_dir,
                cookie_file=cookie_file,
                module_needs_cookie=module.final_link_needs_cookie,
            ),
        )

    def check_link(self, module: SiteModule, url: str) -> Outcome[str]:
        """Check that ``url`` is alive with a single fetch (no retry, no wait).

        Returns:
            Outcome with the URL when the link is alive.
        """
        context = self.new_context()
        session = self.new_session(module, context)

        outcome = self._invoke(session, lambda: module.download(session, url))
        if outcome.kind in ALIVE_KINDS:
            session.logger.info(f"Link active: {url}")
            return Outcome.success(url)

        return self._abort(session.logger, outcome.kind, outcome.hint)

    def run_operation(
        self, module: SiteModule, operation: str, call: Callable[[ItemSession], Outcome]
    ) -> Outcome:
        """Run a non download operation (probe, list, upload, delete) once.

        Args:
            module: Site module.
            operation: Operation name (for unsupported operation reports).
            call: Function receiving the item session.

        Returns:
            The operation outcome (BAD_COMMAND_LINE when unsupported).
        """
        context = self.new_context()
        session = self.new_session(module, context)

        if not module.supports(operation):
            session.logger.error(f"{operation} is not supported by module {module.name}")
            return Outcome.failure(ErrorKind.BAD_COMMAND_LINE)

        outcome = self._invoke(session, lambda: call(session))
        if not outcome.ok:
            return self._abort(session.logger, outcome.kind, outcome.hint)
        return outcome
