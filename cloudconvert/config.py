"""
Process-wide configuration for the CloudConvert client.

Holds the API key and host and a lazily built requests.Session carrying the
bearer token. The session is shared read-only by all jobs; changing the key
rebuilds it explicitly through rebuild_session().
"""

import os
import threading
from typing import Optional

import requests

from cloudconvert.utils.enhanced_logger import setup_enhanced_logging, log_with_context

logger = setup_enhanced_logging()

DEFAULT_API_HOST = "api.cloudconvert.com"
DEFAULT_API_PROTOCOL = "https"
DEFAULT_POLL_INTERVAL = 1.0  # seconds between status refreshes while converting
DEFAULT_TIMEOUT = 60.0  # seconds per HTTP request


def _float_env(name: str) -> Optional[float]:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        logger.warning(f"[Config] Ignoring non-numeric {name}={value!r}")
        return None


class Configuration:
    """API credentials, endpoint and the shared HTTP session."""

    def __init__(
        self,
        api_key: str = "",
        api_host: str = DEFAULT_API_HOST,
        api_protocol: str = DEFAULT_API_PROTOCOL,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        download_dir: Optional[str] = None,
    ):
        self._api_key = api_key
        self.api_host = api_host
        self.api_protocol = api_protocol
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.download_dir = download_dir

        self._session = None
        self._lock = threading.Lock()

    @classmethod
    def from_env(cls):
        """Build a configuration from CLOUDCONVERT_* environment variables."""
        return cls(
            api_key=os.getenv("CLOUDCONVERT_API_KEY", ""),
            api_host=os.getenv("CLOUDCONVERT_API_HOST", DEFAULT_API_HOST),
            api_protocol=os.getenv("CLOUDCONVERT_API_PROTOCOL", DEFAULT_API_PROTOCOL),
            timeout=_float_env("CLOUDCONVERT_TIMEOUT") or DEFAULT_TIMEOUT,
            poll_interval=_float_env("CLOUDCONVERT_POLL_INTERVAL") or DEFAULT_POLL_INTERVAL,
            download_dir=os.getenv("CLOUDCONVERT_DOWNLOAD_DIR") or None,
        )

    @property
    def api_key(self) -> str:
        return self._api_key

    def set_api_key(self, api_key: str) -> None:
        """Replace the API key and rebuild the session with the new auth header."""
        self._api_key = api_key
        self.rebuild_session()

    @property
    def session(self) -> requests.Session:
        """The shared session, built on first use."""
        with self._lock:
            if self._session is None:
                self._session = self._build_session()
            return self._session

    def rebuild_session(self) -> None:
        """Drop the cached session; the next request builds a fresh one."""
        with self._lock:
            old_session = self._session
            self._session = None
        if old_session is not None:
            old_session.close()
        log_with_context(logger, 'debug', '[Config] Session invalidated', api_host=self.api_host)

    def _build_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"Authorization": f"Bearer {self._api_key}"})
        log_with_context(logger, 'debug', '[Config] Built new HTTP session', api_host=self.api_host)
        return session

    def resolve_url(self, url: str) -> str:
        """
        Turn an API url into an absolute one.

        Args:
            url: Absolute url, protocol-relative url ("//host/path") or a
                path relative to the API host ("/process")

        Returns:
            str: Absolute url
        """
        if url.startswith("//"):
            return f"{self.api_protocol}:{url}"
        if not url.startswith("http"):
            return f"{self.api_protocol}://{self.api_host}{url}"
        return url


# Process-wide default configuration
default_config = Configuration.from_env()
