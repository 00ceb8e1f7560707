from __future__ import annotations

"""
Central download manager.

This module wraps a requests session configured for proxies and TLS, and
provides file and in-memory downloads with a fixed-pause retry policy. The
pause is tuned for lock contention on shared repository directories, so it
does not grow between attempts.
"""

import logging
import tempfile
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path

import requests
from requests.utils import should_bypass_proxies

from softpaq_mirror.core.config import DownloadConfig, ProxyConfig, SSLConfig
from softpaq_mirror.core.errors import DownloadFailed

logger = logging.getLogger(__name__)


class DownloadManager:
    """HTTP downloader shared by catalog resolution and package downloads."""

    def __init__(
        self,
        download_config: DownloadConfig | None = None,
        proxy_config: ProxyConfig | None = None,
        ssl_config: SSLConfig | None = None,
        session: requests.Session | None = None,
    ):
        """Initialize download manager.

        Args:
            download_config: Download configuration (timeout, retry pause)
            proxy_config: Optional proxy configuration
            ssl_config: Optional SSL/TLS configuration
            session: Pre-built session (tests inject a mock here)
        """
        self.download_config = download_config or DownloadConfig()
        self.proxy_config = proxy_config
        self.ssl_config = ssl_config
        self.session = session if session is not None else self._setup_session()

    def _setup_session(self) -> requests.Session:
        """Setup requests session with SSL and proxy configuration.

        Returns:
            Configured requests session
        """
        session = requests.Session()

        if self.proxy_config:
            proxies = {}
            if self.proxy_config.http_proxy:
                proxies["http"] = self.proxy_config.http_proxy
            if self.proxy_config.https_proxy:
                proxies["https"] = self.proxy_config.https_proxy
            session.proxies.update(proxies)

            if self.proxy_config.username and self.proxy_config.password:
                session.auth = (self.proxy_config.username, self.proxy_config.password)

        if self.ssl_config:
            if not self.ssl_config.verify:
                session.verify = False
            elif self.ssl_config.ca_bundle:
                session.verify = self.ssl_config.ca_bundle

            if self.ssl_config.client_cert:
                if self.ssl_config.client_key:
                    session.cert = (self.ssl_config.client_cert, self.ssl_config.client_key)
                else:
                    session.cert = self.ssl_config.client_cert

        return session

    def _request_kwargs(self, url: str) -> dict:
        """Per-request arguments: the timeout, and no proxy for no_proxy hosts."""
        kwargs = {"timeout": self.download_config.timeout}
        no_proxy = self.proxy_config.no_proxy if self.proxy_config else None
        if no_proxy and should_bypass_proxies(url, no_proxy=no_proxy):
            # None drops the session proxy for this request
            kwargs["proxies"] = {"http": None, "https": None}
        return kwargs

    def _get(self, url: str, max_retries: int, stream: bool = False) -> requests.Response:
        """GET url, retrying transient failures.

        HTTP 404 is reported immediately; anything else is retried up to
        max_retries attempts with the configured fixed pause.

        Raises:
            DownloadFailed: On 404 or once retries are exhausted
        """
        attempts = max(1, max_retries)
        pause = self.download_config.retry_pause_seconds
        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, stream=stream, **self._request_kwargs(url))
                if response.status_code == 404:
                    raise DownloadFailed(url, "remote file not found", status_code=404)
                response.raise_for_status()
                return response
            except DownloadFailed:
                raise
            except requests.RequestException as e:
                status = getattr(getattr(e, "response", None), "status_code", None)
                if attempt >= attempts:
                    raise DownloadFailed(url, str(e), status_code=status) from e
                logger.warning(
                    f"Download failed (attempt {attempt}/{attempts}), "
                    f"retrying in {pause:g}s: {e}"
                )
                time.sleep(pause)
        raise RuntimeError(f"Download failed for {url}")

    def fetch(self, url: str, max_retries: int = 1) -> bytes:
        """Download url into memory.

        Args:
            url: Source URL
            max_retries: Number of attempts for transient errors

        Returns:
            Response body

        Raises:
            DownloadFailed: On 404 or exhausted retries
        """
        logger.debug(f"Fetching {url}")
        return self._get(url, max_retries).content

    def download_file(self, url: str, dest: Path, max_retries: int = 1) -> int:
        """Download url to dest, replacing any existing file.

        The body is streamed to a temporary file in the destination directory
        and moved into place once complete, so a failed transfer never leaves
        a truncated file behind.

        Args:
            url: Source URL
            dest: Destination path
            max_retries: Number of attempts for transient errors

        Returns:
            Number of bytes written

        Raises:
            DownloadFailed: On 404 or exhausted retries
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Downloading {url} -> {dest}")

        attempts = max(1, max_retries)
        pause = self.download_config.retry_pause_seconds
        for attempt in range(1, attempts + 1):
            tmp_path: Path | None = None
            try:
                response = self._get(url, 1, stream=True)
                written = 0
                try:
                    with tempfile.NamedTemporaryFile(
                        delete=False, dir=dest.parent, suffix=dest.suffix + ".part"
                    ) as tmp_file:
                        tmp_path = Path(tmp_file.name)
                        for chunk in response.iter_content(chunk_size=self.download_config.chunk_size):
                            if chunk:
                                tmp_file.write(chunk)
                                written += len(chunk)
                finally:
                    response.close()
                tmp_path.replace(dest)
                return written
            except DownloadFailed as e:
                if e.not_found or attempt >= attempts:
                    raise
                error: Exception = e
            except (requests.RequestException, OSError) as e:
                if tmp_path is not None:
                    tmp_path.unlink(missing_ok=True)
                if attempt >= attempts:
                    raise DownloadFailed(url, str(e)) from e
                error = e
            logger.warning(
                f"Download failed (attempt {attempt}/{attempts}), retrying in {pause:g}s: {error}"
            )
            time.sleep(pause)
        raise RuntimeError(f"Download failed for {url}")

    def last_modified(self, url: str) -> datetime | None:
        """Return the upstream Last-Modified time of url, if it reports one.

        Any failure returns None, which callers treat as "unknown, download".
        """
        try:
            response = self.session.head(url, allow_redirects=True, **self._request_kwargs(url))
        except requests.RequestException as e:
            logger.debug(f"HEAD {url} failed: {e}")
            return None

        if response.status_code != 200:
            return None

        header = response.headers.get("Last-Modified")
        if not header:
            return None
        try:
            value = parsedate_to_datetime(header)
        except (TypeError, ValueError):
            logger.debug(f"Unparseable Last-Modified header for {url}: {header}")
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value
