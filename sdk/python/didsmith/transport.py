"""
Fetch collaborator used by network-hosted DID methods.

A transport performs exactly one request per ``fetch`` call and reports
failures with the resolution error taxonomy: ``NotFound`` for a missing
document, ``ResolutionTimeout`` when the timeout expires and ``Unreachable``
for anything else. Retries, if wanted, belong in a transport wrapper.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from .errors import NotFound, ResolutionTimeout, Unreachable

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Accept": "application/did+json, application/json"}

# responses larger than this are refused
MAX_DOCUMENT_BYTES = 1 << 20


@runtime_checkable
class Transport(Protocol):
    def fetch(self, url: str, timeout: Optional[float] = None) -> bytes:
        ...


class HttpxTransport:
    """
    ``httpx`` backed transport. Pass ``client`` to share a connection pool
    or to install an ``httpx.MockTransport``; otherwise one client is created
    lazily and closed by ``close()``.

    Requests with a timeout run on a small worker pool so the caller can stop
    waiting at the deadline even while httpx is still inside a single
    connect or read.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = 10.0,
        verify_ssl: bool = True,
        headers: Optional[Dict[str, str]] = None,
        max_bytes: int = MAX_DOCUMENT_BYTES,
        max_workers: int = 4,
    ):
        self._client = client
        self._owns_client = client is None
        self._executor: Optional[ThreadPoolExecutor] = None
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.headers = dict(headers or DEFAULT_HEADERS)
        self.max_bytes = max_bytes
        self.max_workers = max_workers

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(verify=self.verify_ssl, follow_redirects=True)
        return self._client

    @property
    def executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="didsmith-fetch"
            )
        return self._executor

    def fetch(self, url: str, timeout: Optional[float] = None) -> bytes:
        """
        GET ``url``. ``timeout`` is one wall-clock deadline for the whole
        exchange: connecting, response headers and body.
        """
        effective = self.timeout if timeout is None else timeout
        logger.debug("Fetching %s (timeout=%ss)", url, effective)
        client = self.client
        state: Dict[str, Any] = {}
        if effective is None:
            return self._exchange(client, url, None, state)

        future = self.executor.submit(self._exchange, client, url, effective, state)
        try:
            return future.result(timeout=effective)
        except FutureTimeout:
            future.cancel()
            response = state.get("response")
            if response is not None:
                response.close()
            logger.warning("Timed out fetching %s", url)
            raise ResolutionTimeout(f"Timed out after {effective}s fetching {url}") from None

    def _exchange(
        self,
        client: httpx.Client,
        url: str,
        timeout: Optional[float],
        state: Dict[str, Any],
    ) -> bytes:
        chunks = []
        try:
            with client.stream("GET", url, headers=self.headers, timeout=timeout) as response:
                state["response"] = response
                if response.status_code in (404, 410):
                    raise NotFound(f"No DID document at {url} (HTTP {response.status_code})")
                if response.status_code >= 400:
                    logger.warning("Fetching %s returned HTTP %s", url, response.status_code)
                    raise Unreachable(f"Fetching {url} returned HTTP {response.status_code}")

                size = 0
                for chunk in response.iter_bytes():
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise Unreachable(f"Document at {url} exceeds {self.max_bytes} bytes")
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            logger.warning("Timed out fetching %s", url)
            raise ResolutionTimeout(f"Timed out after {timeout}s fetching {url}") from e
        except httpx.HTTPError as e:
            logger.warning("Failed to fetch %s: %s", url, e)
            raise Unreachable(f"Could not fetch {url}: {e}") from e

        return b"".join(chunks)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpxTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
