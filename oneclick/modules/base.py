"""Site module contract consumed by the retry ladder.

A site module adapts one hosting service. It implements any subset of the
operations below; each returns an Outcome and may raise HosterError or let
``requests`` exceptions escape (the caller translates them):

- download(session, url) -> Outcome[FetchResult]
- probe(session, url, capabilities) -> Outcome[ProbeResult]
- list(session, url, recurse) -> Outcome[list[ListEntry]]
- upload(session, path, remote_name) -> Outcome[UploadResult]
- delete(session, url) -> Outcome[None]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from http.cookiejar import LoadError, MozillaCookieJar
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Pattern, Union

import requests

from oneclick.core.budget import WaitBudget
from oneclick.core.errors import ErrorKind, HosterError, Outcome

if TYPE_CHECKING:
    from oneclick.captcha.engine import CaptchaEngine
    from oneclick.captcha.models import CaptchaChallenge, CaptchaSolution
    from oneclick.core.config import ToolkitConfig


# Site modules see a regular desktop browser
DEFAULT_USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64; rv:115.0) Gecko/20100101 Firefox/115.0"
DEFAULT_TIMEOUT = 240  # seconds, connection timeout of site requests

OPERATIONS = ("download", "probe", "list", "upload", "delete")


@dataclass(frozen=True)
class FetchResult:
    """Final link resolved by a module's download operation.

    Attributes:
        url: Direct URL of the file.
        filename: Remote filename (may be empty, derived from the URL later).
    """

    url: str
    filename: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """Metadata returned by a module's probe operation."""

    filename: Optional[str] = None
    size: Optional[int] = None
    file_hash: Optional[str] = None


@dataclass(frozen=True)
class ListEntry:
    """One link of a remote folder."""

    url: str
    name: Optional[str] = None


@dataclass(frozen=True)
class UploadResult:
    """Links returned by a module's upload operation."""

    download_url: str
    delete_url: Optional[str] = None
    admin_url: Optional[str] = None


@dataclass
class ItemSession:
    """Session handle given to a site module for one item.

    Attributes:
        http: HTTP session (browser user agent, cookie jar).
        budget: Wait budget of the item; every sleep must go through it.
        captcha: Captcha engine, for modules that meet a captcha.
        config: Toolkit configuration (module options: link_password, auth).
        logger: Logger prefixed with the module name.
        module_name: Name of the module handling the item.
    """

    http: requests.Session
    budget: WaitBudget
    captcha: Optional["CaptchaEngine"]
    config: "ToolkitConfig"
    logger: Union[logging.Logger, logging.LoggerAdapter]
    module_name: str = ""

    def wait(self, seconds: int) -> ErrorKind:
        """Sleep through the item budget (site wait timers)."""
        return self.budget.consume(seconds)

    def solve_captcha(self, challenge: "CaptchaChallenge") -> Outcome["CaptchaSolution"]:
        """Solve a captcha with the item budget.

        Raises:
            HosterError: FATAL when no captcha engine is available.
        """
        if self.captcha is None:
            raise HosterError(ErrorKind.FATAL, "no captcha engine")
        return self.captcha.solve(challenge, self.budget, self.module_name)

    def save_cookies(self, path: Path) -> Path:
        """Write the session cookies to a Netscape cookie file.

        Args:
            path: Destination file.

        Returns:
            The written path.
        """
        jar = MozillaCookieJar(str(path))
        for cookie in self.http.cookies:
            jar.set_cookie(cookie)
        jar.save(ignore_discard=True, ignore_expires=True)
        return Path(path)


def new_http_session(
    cookies_file: Optional[Path] = None,
    logger: Optional[logging.Logger] = None,
) -> requests.Session:
    """Create the HTTP session of one item round.

    Args:
        cookies_file: Optional Netscape cookie file seeding the jar. The file
            is read only; it is never written back.
        logger: Optional logger for cookie loading problems.

    Returns:
        Configured requests session.
    """
    session = requests.Session()
    session.headers.update({"User-Agent": DEFAULT_USER_AGENT})

    if cookies_file is not None and Path(cookies_file).stat().st_size > 0:
        jar = MozillaCookieJar(str(cookies_file))
        try:
            jar.load(ignore_discard=True, ignore_expires=True)
        except (LoadError, OSError) as e:
            if logger:
                logger.warning(f"Cannot load cookies file {cookies_file}: {e}")
        else:
            for cookie in jar:
                session.cookies.set_cookie(cookie)

    return session


class SiteModule:
    """Base class of site modules.

    Subclasses set the class attributes and override the operations their
    hoster supports. Operations left alone report BAD_COMMAND_LINE.

    Attributes:
        name: Module name (used in logs, captcha program calls, %m).
        url_pattern: Regex matched against URLs this module handles.
        resumable: Final link supports HTTP range requests.
        final_link_needs_cookie: Final link must be fetched with the session
            cookies.
    """

    name: str = "base"
    url_pattern: Optional[Pattern[str]] = None
    resumable: bool = False
    final_link_needs_cookie: bool = False

    def matches(self, url: str) -> bool:
        if self.url_pattern is None:
            return False
        return bool(self.url_pattern.search(url))

    def supports(self, operation: str) -> bool:
        """Whether the module overrides ``operation``."""
        if operation not in OPERATIONS:
            return False
        return getattr(type(self), operation) is not getattr(SiteModule, operation)

    def download(self, session: ItemSession, url: str) -> Outcome[FetchResult]:
        return Outcome.failure(ErrorKind.BAD_COMMAND_LINE, "download not supported")

    def probe(
        self, session: ItemSession, url: str, capabilities: str
    ) -> Outcome[ProbeResult]:
        return Outcome.failure(ErrorKind.BAD_COMMAND_LINE, "probe not supported")

    def list(
        self, session: ItemSession, url: str, recurse: bool = False
    ) -> Outcome[List[ListEntry]]:
        return Outcome.failure(ErrorKind.BAD_COMMAND_LINE, "list not supported")

    def upload(
        self, session: ItemSession, path: Path, remote_name: Optional[str] = None
    ) -> Outcome[UploadResult]:
        return Outcome.failure(ErrorKind.BAD_COMMAND_LINE, "upload not supported")

    def delete(self, session: ItemSession, url: str) -> Outcome[None]:
        return Outcome.failure(ErrorKind.BAD_COMMAND_LINE, "delete not supported")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class ModuleRegistry:
    """Ordered mapping of URL predicates to module instances."""

    def __init__(self, modules: Optional[List[SiteModule]] = None) -> None:
        self._modules: List[SiteModule] = []
        for module in modules or []:
            self.register(module)

    def register(self, module: SiteModule) -> None:
        if any(m.name == module.name for m in self._modules):
            raise ValueError(f"Module already registered: {module.name}")
        self._modules.append(module)

    def find(self, url: str, operation: Optional[str] = None) -> Optional[SiteModule]:
        """Return the first module matching ``url`` (and supporting ``operation``)."""
        for module in self._modules:
            if operation is not None and not module.supports(operation):
                continue
            if module.matches(url):
                return module
        return None

    def get(self, name: str) -> Optional[SiteModule]:
        for module in self._modules:
            if module.name == name:
                return module
        return None

    def names(self, operation: Optional[str] = None) -> List[str]:
        return [
            m.name
            for m in self._modules
            if operation is None or m.supports(operation)
        ]

    def __iter__(self):
        return iter(self._modules)

    def __len__(self) -> int:
        return len(self._modules)


def compile_url_pattern(pattern: str) -> Pattern[str]:
    """Compile a module URL pattern (case insensitive, http or https)."""
    return re.compile(pattern, re.IGNORECASE)
