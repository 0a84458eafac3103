"""Final link transfer with resume support and progress tracking.

This module provides the FinalTransfer class which streams a resolved final
link to disk. It only reports what happened (HTTP code, partial content);
the retry ladder decides what to do next.
"""

from __future__ import annotations

import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import requests

from oneclick.core.errors import ErrorKind, kind_from_exception
from oneclick.utils.logging import get_logger


DEFAULT_CHUNK_SIZE = 1024 * 1024  # 1MB
DEFAULT_TIMEOUT = 30  # seconds, per socket operation
MAX_ALT_FILENAMES = 99

ProgressCallback = Callable[[int, int, float, float], None]


@dataclass
class TransferResult:
    """Result of a transfer attempt.

    Attributes:
        kind: ErrorKind.OK when the body was fully received (or nothing had
            to be received, see http_code), LINK_TEMP_UNAVAILABLE for partial
            content, NETWORK for an HTTP error status or a transport failure,
            SYSTEM for local failures.
        http_code: Final HTTP status code (0 when no answer was received).
        path: Final file path on success, temporary path otherwise.
        was_resumed: Whether the transfer continued a partial file.
    """

    kind: ErrorKind
    http_code: int
    path: Optional[Path]
    was_resumed: bool = False

    @property
    def ok(self) -> bool:
        return self.kind == ErrorKind.OK


def create_alt_filename(path: Path) -> Path:
    """Return the first non existing ``<path>.1`` .. ``<path>.99``.

    The original path is returned when all candidates exist.
    """
    for count in range(1, MAX_ALT_FILENAMES + 1):
        candidate = path.with_name(f"{path.name}.{count}")
        if not candidate.exists():
            return candidate
    return path


class FinalTransfer:
    """Streams final links into the output directory.

    Attributes:
        output_dir: Directory of completed files (None: current directory).
        temp_dir: Directory of files being downloaded (None: output_dir).
        no_overwrite: Never overwrite nor resume; pick an alternate name.
        chunk_size: Size of streamed chunks.
        timeout: Socket timeout in seconds.
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        temp_dir: Optional[Path] = None,
        no_overwrite: bool = False,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        timeout: int = DEFAULT_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.output_dir = Path(output_dir) if output_dir else None
        self.temp_dir = Path(temp_dir) if temp_dir else None
        self.no_overwrite = no_overwrite
        self.chunk_size = chunk_size
        self.timeout = timeout
        self._logger = logger or get_logger("transfer")

    def output_path(self, filename: str) -> Path:
        return (self.output_dir or Path(".")) / filename

    def temp_path(self, filename: str) -> Path:
        return (self.temp_dir or self.output_dir or Path(".")) / filename

    def run(
        self,
        http: requests.Session,
        url: str,
        filename: str,
        resumable: bool = False,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> TransferResult:
        """Download ``url`` as ``filename``.

        Args:
            http: Session to use (carries cookies when the module needs them).
            url: Final link.
            filename: Destination filename.
            resumable: Module supports range requests.
            progress_callback: Optional callback receiving (downloaded_bytes,
                total_bytes, speed_bps, eta_seconds).

        Returns:
            TransferResult describing the attempt.
        """
        temp_path = self.temp_path(filename)
        final_path = self.output_path(filename)

        if final_path.exists():
            if self.no_overwrite:
                same = final_path == temp_path
                final_path = create_alt_filename(final_path)
                if same:
                    temp_path = final_path
            elif not os.access(final_path, os.W_OK):
                if resumable:
                    self._logger.error("error: no write permission, cannot resume")
                else:
                    self._logger.error("error: no write permission, cannot overwrite")
                return TransferResult(ErrorKind.SYSTEM, 0, final_path)

        resume = resumable and not self.no_overwrite
        initial_bytes = 0
        headers = {}
        if resume and temp_path.is_file():
            initial_bytes = temp_path.stat().st_size
            if initial_bytes > 0:
                headers["Range"] = f"bytes={initial_bytes}-"
                self._logger.debug(f"Requesting range: bytes={initial_bytes}-")

        try:
            response = http.get(url, headers=headers, stream=True, timeout=self.timeout)
        except requests.RequestException as e:
            self._logger.error(f"Transfer failed: {e}")
            return TransferResult(kind_from_exception(e), 0, temp_path)

        with response:
            status_code = response.status_code

            if status_code == 416:
                # Range refused: with a resumable module the file is assumed complete
                if resume and temp_path.is_file():
                    return self._finish(temp_path, final_path, status_code, True)
                return TransferResult(ErrorKind.OK, status_code, temp_path)

            if not 200 <= status_code < 300:
                self._logger.debug(f"HTTP {status_code} for {url}")
                return TransferResult(ErrorKind.NETWORK, status_code, temp_path)

            was_resumed = initial_bytes > 0 and status_code == 206
            if initial_bytes > 0 and not was_resumed:
                self._logger.warning(
                    "Server does not support range requests, restarting download from beginning"
                )
                initial_bytes = 0

            kind = self._stream(response, temp_path, initial_bytes, progress_callback)
            if kind != ErrorKind.OK:
                return TransferResult(kind, status_code, temp_path, was_resumed)

        return self._finish(temp_path, final_path, status_code, was_resumed)

    def _finish(
        self, temp_path: Path, final_path: Path, status_code: int, was_resumed: bool
    ) -> TransferResult:
        """Move a completed temporary file to its final location."""
        if temp_path != final_path:
            self._logger.info(f"Moving file to output directory: {self.output_dir or '.'}")
            try:
                shutil.move(str(temp_path), str(final_path))
            except OSError as e:
                self._logger.error(f"Cannot move file: {e}")
                return TransferResult(ErrorKind.SYSTEM, status_code, temp_path, was_resumed)

        self._logger.info(f"Download complete: {final_path}")
        return TransferResult(ErrorKind.OK, status_code, final_path, was_resumed)

    def _stream(
        self,
        response: requests.Response,
        temp_path: Path,
        initial_bytes: int,
        progress_callback: Optional[ProgressCallback],
    ) -> ErrorKind:
        """Write the response body, appending when resuming."""
        content_length = response.headers.get("Content-Length")
        expected = int(content_length) if content_length and content_length.isdigit() else None
        total_size = initial_bytes + expected if expected is not None else 0

        write_mode = "ab" if initial_bytes > 0 else "wb"
        downloaded_bytes = initial_bytes
        received = 0

        # Progress tracking variables
        last_progress_time = time.time()
        bytes_since_last_progress = 0

        try:
            with open(temp_path, write_mode) as f:
                for chunk in response.iter_content(chunk_size=self.chunk_size):
                    if not chunk:
                        continue
                    f.write(chunk)
                    received += len(chunk)
                    downloaded_bytes += len(chunk)
                    bytes_since_last_progress += len(chunk)

                    if progress_callback:
                        current_time = time.time()
                        time_since_last = current_time - last_progress_time

                        if time_since_last >= 0.5 or downloaded_bytes >= total_size:
                            speed_bps = (
                                bytes_since_last_progress / time_since_last
                                if time_since_last > 0
                                else 0.0
                            )
                            remaining_bytes = max(total_size - downloaded_bytes, 0)
                            eta_seconds = (
                                remaining_bytes / speed_bps if speed_bps > 0 else float("inf")
                            )
                            progress_callback(downloaded_bytes, total_size, speed_bps, eta_seconds)
                            last_progress_time = current_time
                            bytes_since_last_progress = 0

        except requests.RequestException as e:
            kind = kind_from_exception(e)
            self._logger.warning(f"Transfer interrupted: {e}")
            return ErrorKind.LINK_TEMP_UNAVAILABLE if received else kind

        except OSError as e:
            self._logger.error(f"File write error: {e}")
            return ErrorKind.SYSTEM

        if expected is not None and received < expected:
            self._logger.warning(
                f"Partial content: expected {expected} bytes, got {received} bytes"
            )
            return ErrorKind.LINK_TEMP_UNAVAILABLE

        return ErrorKind.OK
