"""Command line items: URLs and files of links.

This module provides:
- is_remote_url: detection of http(s)/ftp URLs
- expand_item: turn a command line item into the URLs to process
- parse_links_file: read a file of links (comments and blank lines skipped)
- mark_link: comment out a processed link in its links file
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from oneclick.utils.logging import get_logger


_REMOTE_URL_RE = re.compile(r"^[ \t]*(?:https?|ftp)://", re.IGNORECASE)

# Extensions of files that are not lists of links
BINARY_EXTENSIONS = {"zip", "rar", "tar", "gz", "7z", "bz2", "mp3", "avi"}

# Marks written by --mark-downloaded
MARK_NOTFOUND = "NOTFOUND"
MARK_PASSWORD = "PASSWORD"
MARK_NOMODULE = "NOMODULE"
MARK_DONE = ""


@dataclass
class ItemSource:
    """URLs coming from one command line item.

    Attributes:
        kind: "url" for a plain URL, "file" for a links file.
        urls: URLs to process, in order.
        path: The links file (None for a plain URL).
    """

    kind: str
    urls: List[str] = field(default_factory=list)
    path: Optional[Path] = None


def is_remote_url(text: str) -> bool:
    """Check whether ``text`` looks like a remote URL.

    Examples:
        >>> is_remote_url("https://pixeldrain.com/u/abc123")
        True
        >>> is_remote_url("links.txt")
        False
    """
    return bool(_REMOTE_URL_RE.match(text or ""))


def parse_links_file(filepath: Path) -> List[str]:
    """Parse a file containing URLs, one per line.

    Args:
        filepath: Path to the links file.

    Returns:
        Stripped lines, in order. Empty lines and lines starting with #
        (after leading spaces) are skipped.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        PermissionError: If the file can't be read.
    """
    if not filepath.exists():
        raise FileNotFoundError(f"Links file not found: {filepath}")

    results: List[str] = []

    with open(filepath, "r", encoding="utf-8", errors="replace") as f:
        for line in f:
            line = line.strip()

            # Skip empty lines and comments
            if not line or line.startswith("#"):
                continue

            results.append(line)

    return results


def expand_item(item: str, logger: Optional[logging.Logger] = None) -> Optional[ItemSource]:
    """Turn a command line item into the URLs to process.

    Args:
        item: A URL or the path of a links file.
        logger: Optional logger instance.

    Returns:
        ItemSource, or None (logged) when the item is skipped.
    """
    log = logger or get_logger("links")

    if is_remote_url(item):
        return ItemSource(kind="url", urls=[item.strip()])

    path = Path(item)
    if not path.is_file():
        log.error(f"Skip: cannot stat '{item}': No such file or directory")
        return None

    if path.suffix.lower().lstrip(".") in BINARY_EXTENSIONS:
        log.error(f"Skip: '{item}' seems to be a binary file, not a list of links")
        return None

    try:
        urls = parse_links_file(path)
    except (OSError, UnicodeError) as e:
        log.error(f"Skip: cannot read '{item}': {e}")
        return None

    return ItemSource(kind="file", urls=urls, path=path)


def mark_link(
    source: ItemSource,
    url: str,
    text: str,
    tail: str = "",
    logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Mark a processed link.

    In a links file every line holding exactly ``url`` becomes
    ``#<text> <url><tail>``. For a plain URL the mark is returned so the
    caller can print it.

    Args:
        source: Where the URL came from.
        url: The processed URL.
        text: Mark (MARK_NOTFOUND, MARK_PASSWORD, MARK_NOMODULE or MARK_DONE).
        tail: Suffix, ``|<local file>`` for downloaded links.
        logger: Optional logger instance.

    Returns:
        The mark line for a plain URL, None for a links file.
    """
    log = logger or get_logger("links")
    mark = f"#{text} {url}{tail}"

    if source.kind != "file" or source.path is None:
        return mark

    path = source.path
    try:
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines(keepends=True)
    except OSError as e:
        log.error(f"failed marking link in file: {path} (#{text}): {e}")
        return None

    changed = False
    for index, line in enumerate(lines):
        if line.strip() == url and not line.lstrip().startswith("#"):
            newline = "\n" if line.endswith("\n") else ""
            lines[index] = mark + newline
            changed = True

    if not changed:
        return None

    try:
        path.write_text("".join(lines), encoding="utf-8")
    except PermissionError:
        log.info(f"error: can't mark link, no write permission ({path})")
        return None
    except OSError as e:
        log.error(f"failed marking link in file: {path} (#{text}): {e}")
        return None

    log.info(f"link marked in file: {path} (#{text})")
    return None
