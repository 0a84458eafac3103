"""Fallback ("null") module used when no site module matches a URL.

Download hands the URL over unchanged as the final link; list returns every
http(s) link referenced by the page.
"""

from __future__ import annotations

import html
import re
from typing import List
from urllib.parse import urljoin

from oneclick.core.errors import ErrorKind, Outcome
from oneclick.modules.base import (
    DEFAULT_TIMEOUT,
    FetchResult,
    ItemSession,
    ListEntry,
    SiteModule,
)
from oneclick.utils.logging import log_report


_LINK_ATTR_RE = re.compile(r"""(?:href|src)\s*=\s*["']([^"'#]+)["']""", re.IGNORECASE)


class FallbackModule(SiteModule):
    """Null module: the item URL is the final link."""

    name = "fallback"
    url_pattern = None
    resumable = True
    final_link_needs_cookie = True

    def matches(self, url: str) -> bool:
        return url.lower().startswith(("http://", "https://"))

    def download(self, session: ItemSession, url: str) -> Outcome[FetchResult]:
        # Filename is derived from the final URL by the ladder
        return Outcome.success(FetchResult(url=url))

    def list(self, session: ItemSession, url: str, recurse: bool = False) -> Outcome[List[ListEntry]]:
        response = session.http.get(url, timeout=DEFAULT_TIMEOUT)
        response.raise_for_status()
        log_report(session.logger, "page", response.text)

        seen = set()
        entries = []
        for match in _LINK_ATTR_RE.finditer(response.text):
            link = urljoin(url, html.unescape(match.group(1).strip()))
            if not link.lower().startswith(("http://", "https://")) or link in seen:
                continue
            seen.add(link)
            entries.append(ListEntry(url=link))

        if not entries:
            return Outcome.failure(ErrorKind.LINK_DEAD, "no links found")
        return Outcome.success(entries)
