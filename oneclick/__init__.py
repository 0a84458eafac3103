"""
oneclick: command-line toolkit for one-click file hosters.

Download, probe, list, upload and delete files on hosting sites through
site modules. Every operation runs through a retry ladder with:
- Waits on temporarily unavailable links, bounded by a per-item budget
- Captcha solving (prompt, OCR, external program or online services)
- A uniform set of outcome codes used as exit status
"""

from oneclick.core.errors import ErrorKind, HosterError, Outcome
from oneclick.core.pipeline import BatchResult, BatchRunner

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "BatchResult",
    "BatchRunner",
    "ErrorKind",
    "HosterError",
    "Outcome",
]
