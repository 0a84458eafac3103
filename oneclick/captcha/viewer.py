"""Captcha image display for the interactive prompt.

Viewers are looked up in order: X11 viewers (only when $DISPLAY is set and
X11 is allowed), then terminal ASCII renderers. When nothing is installed
the local image path is logged instead.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from oneclick.utils.logging import get_logger


# name -> command prefix, in preference order
X11_VIEWERS = (
    ("display", ["display"]),
    ("feh", ["feh"]),
    ("sxiv", ["sxiv", "-q", "-s"]),
    ("qiv", ["qiv"]),
)
ASCII_VIEWERS = ("img2txt", "tiv")


class ImageViewer:
    """Shows a captcha image until closed.

    Attributes:
        name: Viewer program name, or "none" when the path is only logged.
    """

    def __init__(
        self,
        name: str,
        command: Optional[List[str]] = None,
        background: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.name = name
        self.command = command or []
        self.background = background
        self._process: Optional[subprocess.Popen] = None
        self._logger = logger or get_logger("captcha.viewer")

    def show(self, image: Path) -> None:
        if not self.command:
            self._logger.info(f"Local image: {image}")
            return

        cmd = self.command + self._size_args() + [str(image)]
        self._logger.debug(f"Displaying captcha with: {' '.join(cmd)}")
        try:
            if self.background:
                self._process = subprocess.Popen(
                    cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL
                )
            else:
                # Rendering goes to stderr, stdout is reserved for results
                subprocess.run(cmd, stdout=sys.stderr, stderr=subprocess.DEVNULL, timeout=30)
        except (subprocess.SubprocessError, OSError) as e:
            self._logger.warning(f"Cannot display captcha with {self.name}: {e}")
            self._logger.info(f"Local image: {image}")

    def _size_args(self) -> List[str]:
        if self.background:
            return []
        columns, lines = shutil.get_terminal_size((150, 57))
        if self.name == "img2txt":
            return ["-W", str(columns), "-H", str(lines)]
        if self.name == "tiv":
            return ["-a", "-w", str(columns), "-h", str(lines)]
        return []

    def close(self) -> None:
        """Terminate a background viewer, then forcefully if needed."""
        process, self._process = self._process, None
        if process is None or process.poll() is not None:
            return
        try:
            process.terminate()
            try:
                process.wait(timeout=5.0)
            except subprocess.TimeoutExpired:
                self._logger.warning("Viewer did not terminate gracefully, forcing kill...")
                process.kill()
                process.wait(timeout=5.0)
        except OSError as e:
            self._logger.error(f"Error terminating viewer: {e}")

    def __repr__(self) -> str:
        return f"ImageViewer(name={self.name!r})"


def find_viewer(allow_x11: bool = True, logger: Optional[logging.Logger] = None) -> ImageViewer:
    """Pick the best available image viewer.

    Args:
        allow_x11: False for the ``nox`` captcha method.
        logger: Optional logger instance.

    Returns:
        An ImageViewer (possibly the path-logging "none" viewer).
    """
    log = logger or get_logger("captcha.viewer")

    if allow_x11 and os.environ.get("DISPLAY"):
        for name, command in X11_VIEWERS:
            if shutil.which(name):
                return ImageViewer(name, command, background=True, logger=log)
        log.info("No X11 image viewer found, to display captcha image")

    for name in ASCII_VIEWERS:
        if shutil.which(name):
            return ImageViewer(name, [name], logger=log)

    log.info("No ascii viewer found to display captcha image")
    return ImageViewer("none", logger=log)
