"""Printf-like output formats (``--printf``) of the download, probe and list commands.

Common sequences: %m module name, %u source URL, %n newline,
%t tabulation, %% raw %. A record without an explicit %n is terminated
by a newline (the %F alias of probe and list does not count).

Download:
    %c  final cookie file (with full path)
    %C  %c, or empty when the module does not need cookies for the final link
    %d  download (final) URL
    %f  destination (local) filename
    %F  destination filename with output directory

Probe:
    %c  probe status code (0, 13, ...)
    %f  filename (empty if not available)
    %F  alias for "# %f%n", or empty when %f is empty
    %h  file hash (empty if not available)
    %s  file size in bytes (empty if not available)

List:
    %f  link name (may be empty)
    %F  alias for "# %f%n", or empty when %f is empty
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from oneclick.core.errors import ErrorKind, HosterError


DOWNLOAD_SEQUENCES = "cCdfFmunt%"
PROBE_SEQUENCES = "cfFhmsunt%"
LIST_SEQUENCES = "fFumnt%"

DEFAULT_PROBE_FORMAT = "%F%u"
DEFAULT_LIST_FORMAT = "%F%u"

_SEQUENCE_RE = re.compile(r"%(.?)", re.DOTALL)


@dataclass
class PrintfData:
    """Values available to the download printf format."""

    module: str
    filename: str
    source_url: str
    final_url: str
    output_dir: Optional[Path] = None
    cookie_file: Optional[Path] = None
    module_needs_cookie: bool = False


def check_format(fmt: str, allowed: str = DOWNLOAD_SEQUENCES) -> None:
    """Reject formats with unknown sequences.

    Raises:
        HosterError: BAD_COMMAND_LINE naming the first unknown sequence.

    Examples:
        >>> check_format("%f%n")
        >>> check_format("%s", LIST_SEQUENCES)
        Traceback (most recent call last):
        ...
        oneclick.core.errors.HosterError: Bad format string: unknown sequence << %s >>
    """
    for match in _SEQUENCE_RE.finditer(fmt):
        if not match.group(1) or match.group(1) not in allowed:
            raise HosterError(
                ErrorKind.BAD_COMMAND_LINE,
                f"Bad format string: unknown sequence << {match.group(0)} >>",
            )


def _sequences(fmt: str) -> set:
    return {m.group(1) for m in _SEQUENCE_RE.finditer(fmt)}


def render(fmt: str, values: Dict[str, str], terminated: Optional[bool] = None) -> str:
    """Substitute ``values`` (keyed by sequence letter) in a checked format.

    Args:
        fmt: Checked format.
        values: Replacement of each sequence letter.
        terminated: Whether the user format holds an explicit ``%n``. Taken
            from ``fmt`` when None; aliases expanded to ``%n`` do not count.

    Returns:
        The record, ending with a newline unless the user format handles it.
    """
    if terminated is None:
        terminated = "n" in _sequences(fmt)
    table = dict(values)
    table.update({"n": "\n", "t": "\t", "%": "%"})
    text = _SEQUENCE_RE.sub(lambda m: table.get(m.group(1), m.group(0)), fmt)
    if terminated or text.endswith("\n"):
        return text
    return text + "\n"


def _expand_name_alias(fmt: str, name: str) -> str:
    # %F is "# %f%n" when a name is known; walk sequences so "%%F" stays literal
    replacement = "# %f%n" if name else ""
    return _SEQUENCE_RE.sub(
        lambda m: replacement if m.group(1) == "F" else m.group(0), fmt
    )


def uses_cookie_file(fmt: str, module_needs_cookie: bool) -> bool:
    """Whether rendering a download format needs the cookie file on disk."""
    sequences = _sequences(fmt)
    return "c" in sequences or ("C" in sequences and module_needs_cookie)


def format_download(fmt: str, data: PrintfData) -> str:
    """Render a download format (already checked)."""
    if data.output_dir:
        full_name = str(Path(data.output_dir) / data.filename)
    else:
        full_name = data.filename
    cookie = str(data.cookie_file) if data.cookie_file else ""

    return render(
        fmt,
        {
            "m": data.module,
            "f": data.filename,
            "F": full_name,
            "u": data.source_url,
            "d": data.final_url,
            "c": cookie,
            "C": cookie if data.module_needs_cookie else "",
        },
    )


def format_probe(
    fmt: str,
    module: str,
    url: str,
    status: int,
    filename: Optional[str] = None,
    size: Optional[int] = None,
    file_hash: Optional[str] = None,
) -> str:
    """Render a probe format (already checked).

    Examples:
        >>> format_probe("%F%u", "pixeldrain", "https://pixeldrain.com/u/x", 0, "a.zip")
        '# a.zip\\nhttps://pixeldrain.com/u/x\\n'
    """
    terminated = "n" in _sequences(fmt)
    fmt = _expand_name_alias(fmt, filename or "")
    return render(
        fmt,
        {
            "m": module,
            "u": url,
            "c": str(int(status)),
            "f": filename or "",
            "s": "" if size is None else str(size),
            "h": file_hash or "",
        },
        terminated,
    )


def format_list(fmt: str, module: str, url: str, name: Optional[str] = None) -> Optional[str]:
    """Render a list format (already checked).

    Returns:
        The record, or None when the format is empty for a nameless link.
    """
    terminated = "n" in _sequences(fmt)
    fmt = _expand_name_alias(fmt, name or "")
    if not fmt:
        return None
    return render(fmt, {"m": module, "u": url, "f": name or ""}, terminated)
