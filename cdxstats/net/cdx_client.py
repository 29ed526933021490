"""HTTPX-based client for an OutbackCDX-style index service.

One query per (collection, resume point); the response is consumed as a
line stream and never buffered whole.
"""

import logging
from typing import Iterator, Optional

import httpx

from ..config import LimitsConfig, ServiceConfig
from ..errors import CdxFetchError

logger = logging.getLogger(__name__)

MATCH_EXACT = "exact"
MATCH_DOMAIN = "domain"
MATCH_RANGE = "range"


class CdxClient:
    """Streams CDX lines of successful (HTTP 200) captures."""

    def __init__(self, service: ServiceConfig, limits: Optional[LimitsConfig] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        """Initialize index client.

        Args:
            service: Index service location
            limits: Timeouts
            transport: Optional transport override (used by tests)
        """
        limits = limits or LimitsConfig()
        self.base_url = service.base_url

        timeout = httpx.Timeout(
            connect=limits.connect_timeout_ms / 1000,
            read=limits.read_timeout_ms / 1000,
            write=limits.read_timeout_ms / 1000,
            pool=None,
        )
        self.client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

        # Statistics
        self.total_queries = 0
        self.failed_queries = 0
        self.lines_received = 0

    def query_url(self, collection: str, url: str, match_type: str) -> str:
        request = self.client.build_request("GET", f"/{collection}", params=self._params(url, match_type))
        return str(request.url)

    @staticmethod
    def _params(url: str, match_type: str):
        return {"url": url, "matchType": match_type, "filter": "status:200"}

    def iter_lines(self, collection: str, url: str, match_type: str) -> Iterator[str]:
        """Yield raw CDX lines; raises CdxFetchError on any transport or HTTP failure."""
        self.total_queries += 1
        try:
            with self.client.stream("GET", f"/{collection}", params=self._params(url, match_type)) as response:
                response.raise_for_status()
                for line in response.iter_lines():
                    if not line:
                        continue
                    self.lines_received += 1
                    yield line
        except httpx.HTTPError as e:
            self.failed_queries += 1
            raise CdxFetchError(f"{collection}: {e}") from e

    def close(self) -> None:
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
