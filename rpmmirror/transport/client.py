#!/usr/bin/env python3

import logging
from typing import Optional, Tuple
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from ..config.manager import MirrorConfig
from ..errors import FetchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

def url_join(base: str, ref: str) -> str:
    """Resolve ref against base the way a browser resolves a link"""
    return urljoin(base, ref)

class HttpClient:
    """Shared HTTP client used for every GET the mirror performs.

    Built once at process start and handed to every component that needs
    network access. Nothing reconfigures it afterwards, so worker threads
    can use it concurrently.
    """

    def __init__(self, session: requests.Session, timeout: Tuple[float, float] = (10.0, 300.0)):
        self.session = session
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: MirrorConfig) -> "HttpClient":
        session = requests.Session()
        session.verify = not config.insecure_tls
        if config.cert_file and config.key_file:
            session.cert = (config.cert_file, config.key_file)

        # One pooled connection per worker plus the coordinating thread
        pool_size = max(config.concurrent_downloads + 1, 10)
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        if config.insecure_tls:
            logger.warning("TLS certificate verification is disabled")

        return cls(session, timeout=(config.connect_timeout, config.read_timeout))

    def _request(self, url: str, stream: bool = False) -> requests.Response:
        try:
            response = self.session.get(url, timeout=self.timeout, stream=stream)
        except requests.RequestException as e:
            raise FetchError(url, f"Request failed: {e}") from e

        if response.status_code != 200:
            response.close()
            raise FetchError(
                url,
                f"Got an unexpected response code: {response.status_code} {response.reason}",
                status_code=response.status_code,
            )
        return response

    def get(self, url: str) -> bytes:
        """Fetch url and return the whole body"""
        response = self._request(url)
        try:
            return response.content
        except requests.RequestException as e:
            raise FetchError(url, f"Failed reading response body: {e}") from e
        finally:
            response.close()

    def download(self, url: str, destination: str) -> int:
        """Stream url into destination, replacing any existing file. Returns bytes written."""
        response = self._request(url, stream=True)
        written = 0
        try:
            with open(destination, 'wb') as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        except requests.RequestException as e:
            raise FetchError(url, f"Failed reading response body: {e}") from e
        finally:
            response.close()

        logger.debug(f"We wrote {written} bytes from '{url}' to '{destination}'")
        return written

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "HttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> Optional[bool]:
        self.close()
        return None
