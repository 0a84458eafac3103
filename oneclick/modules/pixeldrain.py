"""Pixeldrain site module.

This module provides the PixeldrainModule class for the pixeldrain.com JSON
API. Authenticated calls use HTTP Basic authentication where the username
is empty and the password is the API key.

Supported operations: download, probe, list, upload, delete.
"""

from __future__ import annotations

import base64
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from oneclick.core.errors import ErrorKind, HosterError, Outcome
from oneclick.modules.base import (
    DEFAULT_TIMEOUT,
    FetchResult,
    ItemSession,
    ListEntry,
    ProbeResult,
    SiteModule,
    UploadResult,
    compile_url_pattern,
)
from oneclick.utils.logging import log_report, mask_sensitive_data


# Pixeldrain API endpoints
PIXELDRAIN_BASE_URL = "https://pixeldrain.com"
PIXELDRAIN_API_BASE = f"{PIXELDRAIN_BASE_URL}/api"
PIXELDRAIN_FILE_INFO_URL = f"{PIXELDRAIN_API_BASE}/file/{{file_id}}/info"
PIXELDRAIN_FILE_DOWNLOAD_URL = f"{PIXELDRAIN_API_BASE}/file/{{file_id}}?download"
PIXELDRAIN_FILE_URL = f"{PIXELDRAIN_API_BASE}/file/{{file_id}}"
PIXELDRAIN_LIST_URL = f"{PIXELDRAIN_API_BASE}/list/{{list_id}}"
PIXELDRAIN_UPLOAD_URL = f"{PIXELDRAIN_API_BASE}/file/{{name}}"
PIXELDRAIN_USER_FILE_URL = f"{PIXELDRAIN_BASE_URL}/u/{{file_id}}"

_LINK_RE = re.compile(
    r"^https?://(?:www\.)?pixeldrain\.(?:com|net)/(u|l|api/file|api/list)/([\w-]+)",
    re.IGNORECASE,
)


class PixeldrainError(HosterError):
    """Base exception for Pixeldrain-related errors."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.FATAL, hint: Any = None) -> None:
        super().__init__(kind, message, hint)


class PixeldrainAuthError(PixeldrainError):
    """Authentication or authorization error (401/403)."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.LOGIN_FAILED) -> None:
        super().__init__(message, kind)


class PixeldrainNotFoundError(PixeldrainError):
    """File not found error (404)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.LINK_DEAD)


class PixeldrainRateLimitError(PixeldrainError):
    """Rate limit exceeded error (429)."""

    def __init__(self, message: str, retry_after: Optional[int] = None) -> None:
        """Initialize with optional retry-after value.

        Args:
            message: Error message.
            retry_after: Seconds to wait before retrying (from Retry-After header).
        """
        super().__init__(message, ErrorKind.LINK_TEMP_UNAVAILABLE, retry_after)
        self.retry_after = retry_after


def parse_pixeldrain_link(url: str) -> Optional[tuple]:
    """Split a Pixeldrain link into its kind and identifier.

    Args:
        url: Pixeldrain URL.

    Returns:
        ``("file", id)`` or ``("list", id)``, None when the URL is not a
        Pixeldrain link.

    Examples:
        >>> parse_pixeldrain_link("https://pixeldrain.com/u/abc123")
        ('file', 'abc123')
        >>> parse_pixeldrain_link("https://pixeldrain.com/l/xyz")
        ('list', 'xyz')
    """
    match = _LINK_RE.match(url.strip())
    if not match:
        return None
    prefix, identifier = match.groups()
    kind = "list" if prefix.lower() in ("l", "api/list") else "file"
    return kind, identifier


class PixeldrainModule(SiteModule):
    """Pixeldrain hoster through its public API.

    Attributes:
        api_key: Optional API key, required for upload and delete.
    """

    name = "pixeldrain"
    url_pattern = compile_url_pattern(r"^https?://(?:www\.)?pixeldrain\.(?:com|net)/")
    resumable = True
    final_link_needs_cookie = False

    def __init__(self, api_key: Optional[str] = None) -> None:
        self.api_key = api_key or None

    def _build_auth_header(self) -> str:
        """Build HTTP Basic auth header with API key.

        The Pixeldrain API uses HTTP Basic Auth where:
        - Username: empty string
        - Password: API key

        Returns:
            The Authorization header value (e.g., "Basic <base64>").
        """
        credentials = f":{self.api_key}"
        encoded = base64.b64encode(credentials.encode("utf-8")).decode("utf-8")
        return f"Basic {encoded}"

    def _get_headers(self, additional: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self.api_key:
            headers["Authorization"] = self._build_auth_header()
        if additional:
            headers.update(additional)
        return headers

    def _require_api_key(self, operation: str) -> None:
        if not self.api_key:
            raise HosterError(
                ErrorKind.BAD_COMMAND_LINE,
                f"{operation} requires a Pixeldrain API key (--pixeldrain-api-key)",
            )

    def _handle_response_error(
        self, session: ItemSession, response: requests.Response, context: str
    ) -> None:
        """Handle HTTP error responses with appropriate exceptions.

        Args:
            session: Item session (for logging).
            response: The HTTP response to check.
            context: Description of the operation for error messages.

        Raises:
            PixeldrainAuthError: For 401/403 responses.
            PixeldrainNotFoundError: For 404 responses.
            PixeldrainRateLimitError: For 429 responses.
            PixeldrainError: For other error responses.
        """
        if response.ok:
            return

        logger = session.logger
        status_code = response.status_code
        error_value = ""
        try:
            error_data = response.json()
            error_message = error_data.get("message", response.text)
            error_value = error_data.get("value", "")
        except (ValueError, AttributeError):
            error_message = response.text or f"HTTP {status_code}"

        if status_code == 401:
            logger.error(f"Authentication failed for {context}: {error_message}")
            raise PixeldrainAuthError(f"Authentication failed: {error_message}")

        if status_code == 403:
            # 403 can indicate captcha, virus scan, rate limit, or access denied
            if "rate_limited" in error_value:
                logger.warning(f"Download limit reached for {context}: {error_message}")
                raise PixeldrainRateLimitError(f"Rate limited: {error_message}")
            logger.error(f"Access denied for {context}: {error_message}")
            raise PixeldrainAuthError(
                f"Access denied: {error_message}", ErrorKind.LINK_NEED_PERMISSIONS
            )

        if status_code == 404:
            logger.info(f"File not found for {context}: {error_message}")
            raise PixeldrainNotFoundError(f"File not found: {error_message}")

        if status_code == 413:
            raise PixeldrainError(
                f"File too large: {error_message}", ErrorKind.SIZE_LIMIT_EXCEEDED
            )

        if status_code == 429:
            retry_after = None
            if "Retry-After" in response.headers:
                try:
                    retry_after = int(response.headers["Retry-After"])
                except ValueError:
                    retry_after = None
            logger.warning(
                f"Rate limited for {context}. Retry-After: {retry_after or 'not specified'}"
            )
            raise PixeldrainRateLimitError(
                f"Rate limited: {error_message}", retry_after=retry_after
            )

        if status_code >= 500:
            logger.warning(f"HTTP {status_code} for {context}: {error_message}")
            raise PixeldrainError(
                f"HTTP {status_code}: {error_message}", ErrorKind.LINK_TEMP_UNAVAILABLE
            )

        logger.error(f"HTTP {status_code} for {context}: {error_message}")
        raise PixeldrainError(f"HTTP {status_code}: {error_message}")

    def _file_id(self, url: str) -> str:
        parsed = parse_pixeldrain_link(url)
        if parsed is None or parsed[0] != "file":
            raise HosterError(ErrorKind.FATAL, f"not a Pixeldrain file link: {url}")
        return parsed[1]

    def get_file_info(self, session: ItemSession, file_id: str) -> Dict[str, Any]:
        """Fetch file metadata from Pixeldrain API.

        Args:
            session: Item session.
            file_id: The Pixeldrain file ID.

        Returns:
            Decoded JSON metadata (name, size, hash_sha256, availability...).

        Raises:
            PixeldrainError: For API errors (subclass gives the outcome code).
        """
        url = PIXELDRAIN_FILE_INFO_URL.format(file_id=file_id)
        session.logger.debug(f"Fetching file info for ID: {file_id}")

        response = session.http.get(url, headers=self._get_headers(), timeout=DEFAULT_TIMEOUT)
        log_report(session.logger, "file info", response.text)
        self._handle_response_error(session, response, f"get_file_info({file_id})")

        try:
            data = response.json()
        except ValueError as e:
            raise PixeldrainError(f"Unexpected file info answer: {e}") from e

        session.logger.debug(
            f"File info retrieved: name={data.get('name')}, size={data.get('size')}"
        )
        return data

    def download(self, session: ItemSession, url: str) -> Outcome[FetchResult]:
        file_id = self._file_id(url)
        info = self.get_file_info(session, file_id)

        availability = info.get("availability") or ""
        if availability:
            session.logger.info(f"File availability: {availability}")
            if "rate_limited" in availability:
                return Outcome.failure(ErrorKind.LINK_TEMP_UNAVAILABLE)
            if not self.api_key:
                return Outcome.failure(ErrorKind.LINK_NEED_PERMISSIONS)

        file_url = PIXELDRAIN_FILE_DOWNLOAD_URL.format(file_id=file_id)
        return Outcome.success(FetchResult(url=file_url, filename=info.get("name")))

    def probe(self, session: ItemSession, url: str, capabilities: str) -> Outcome[ProbeResult]:
        file_id = self._file_id(url)
        info = self.get_file_info(session, file_id)

        size = info.get("size") if "s" in capabilities else None
        return Outcome.success(
            ProbeResult(
                filename=info.get("name") if "f" in capabilities else None,
                size=int(size) if size is not None else None,
                file_hash=info.get("hash_sha256") if "h" in capabilities else None,
            )
        )

    def list(self, session: ItemSession, url: str, recurse: bool = False) -> Outcome[List[ListEntry]]:
        parsed = parse_pixeldrain_link(url)
        if parsed is None or parsed[0] != "list":
            raise HosterError(ErrorKind.FATAL, f"not a Pixeldrain list link: {url}")
        list_id = parsed[1]

        if recurse:
            session.logger.debug("Pixeldrain lists have no sub folders")

        response = session.http.get(
            PIXELDRAIN_LIST_URL.format(list_id=list_id),
            headers=self._get_headers(),
            timeout=DEFAULT_TIMEOUT,
        )
        log_report(session.logger, "list", response.text)
        self._handle_response_error(session, response, f"list({list_id})")

        try:
            files = response.json().get("files") or []
        except ValueError as e:
            raise PixeldrainError(f"Unexpected list answer: {e}") from e

        if not files:
            return Outcome.failure(ErrorKind.LINK_DEAD, "empty list")

        return Outcome.success(
            [
                ListEntry(url=PIXELDRAIN_USER_FILE_URL.format(file_id=f["id"]), name=f.get("name"))
                for f in files
                if f.get("id")
            ]
        )

    def upload(
        self, session: ItemSession, path: Path, remote_name: Optional[str] = None
    ) -> Outcome[UploadResult]:
        self._require_api_key("upload")
        path = Path(path)
        name = remote_name or path.name

        session.logger.debug(
            f"Uploading {path} as {name!r} with API key {mask_sensitive_data(self.api_key)}"
        )
        with open(path, "rb") as f:
            response = session.http.put(
                PIXELDRAIN_UPLOAD_URL.format(name=requests.utils.quote(name, safe="")),
                data=f,
                headers=self._get_headers(),
                timeout=DEFAULT_TIMEOUT,
            )
        log_report(session.logger, "upload", response.text)
        self._handle_response_error(session, response, f"upload({name})")

        try:
            file_id = response.json()["id"]
        except (ValueError, KeyError) as e:
            raise PixeldrainError(f"Unexpected upload answer: {e}") from e

        download_url = PIXELDRAIN_USER_FILE_URL.format(file_id=file_id)
        # Deleting uses the download link and the same API key
        return Outcome.success(UploadResult(download_url=download_url, delete_url=download_url))

    def delete(self, session: ItemSession, url: str) -> Outcome[None]:
        self._require_api_key("delete")
        file_id = self._file_id(url)

        response = session.http.delete(
            PIXELDRAIN_FILE_URL.format(file_id=file_id),
            headers=self._get_headers(),
            timeout=DEFAULT_TIMEOUT,
        )
        log_report(session.logger, "delete", response.text)
        self._handle_response_error(session, response, f"delete({file_id})")

        session.logger.info(f"File deleted: {file_id}")
        return Outcome.success()
