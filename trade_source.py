"""
trade_source.py
Fetches raw broker exports (and benchmark sheets) from the remote URL an
account is linked to.

The HTTP implementation keeps one persistent `httpx.AsyncClient` and
retries transient failures (timeouts, connection errors, 5xx) with
exponential backoff. Fetch timeouts are chosen by the caller.
"""

import asyncio
import logging
from typing import Optional, Protocol

import httpx

logger = logging.getLogger(__name__)


# --------------------------- Interface (Port) ---------------------------

class ITradeSource(Protocol):
    """
    Interface (Port) for the remote data source.
    The sync engine type-hints against this protocol.
    """

    async def fetch_text(self, url: str) -> str:
        """Downloads the document at `url` and returns it as text."""
        ...


# ----------------------- HTTP Implementation ---------------------

class HttpTradeSource(ITradeSource):
    """Downloads exports over HTTP(S), bypassing intermediate caches."""

    def __init__(self,
                 timeout: float = 30.0,
                 max_retries: int = 3,
                 backoff_base: float = 1.0,
                 client: Optional[httpx.AsyncClient] = None):
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff_base = backoff_base
        # Use a single, persistent async client
        self._http_client = client or httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)

    def _is_retryable_error(self, err: Exception) -> bool:
        """Checks if an HTTP error is worth retrying (network, timeout, 5xx)."""
        if isinstance(err, (httpx.TimeoutException, httpx.ConnectError, httpx.NetworkError)):
            return True

        if isinstance(err, httpx.HTTPStatusError):
            # 5xx errors are server-side and worth retrying
            return err.response.status_code >= 500

        return False

    async def _fetch_once(self, url: str) -> str:
        headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
        response = await self._http_client.get(url, headers=headers)

        # Raise HTTPStatusError for 4xx/5xx responses
        response.raise_for_status()
        return response.text

    async def fetch_text(self, url: str) -> str:
        last_err: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            if attempt > 1:
                logger.warning(f"Retrying fetch of {url} (Attempt {attempt}/{self._max_retries})...")

            try:
                text = await self._fetch_once(url)
                if attempt > 1:
                    logger.info("Fetch retry successful.")
                return text

            except httpx.HTTPError as e:
                last_err = e
                logger.error(f"Fetch attempt {attempt} for {url} failed: {e}")

                if not self._is_retryable_error(e):
                    logger.error("Non-retryable error. Aborting.")
                    break

                if attempt < self._max_retries:
                    wait_time = self._backoff_base * (2 ** (attempt - 1))  # Exponential backoff
                    logger.info(f"Waiting {wait_time}s before next retry...")
                    await asyncio.sleep(wait_time)

        raise ConnectionError(f"Fetching {url} failed after {attempt} attempt(s): {last_err}") from last_err

    async def close(self):
        """Closes the underlying HTTP client."""
        await self._http_client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
