"""Remote ledger source — async HTTP client for published trade-history files.

Every request bypasses caches so a sync always sees the freshest export.
"""

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger("atlas.sources")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 2.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {502, 503, 504, 429}

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}


class LedgerSourceClient:
    """Fetches exported trade histories from HTTP(S) URLs.

    Args:
        timeout: Per-request timeout in seconds.
        retry_base_delay: First back-off delay; doubles on each retry.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self._timeout = timeout
        self._retry_base_delay = retry_base_delay

    async def _get_with_retry(self, url: str) -> httpx.Response:
        """GET with exponential-backoff retry.

        Retries on transient server errors (502, 503, 504), rate-limits
        (429) and transport errors.  Other HTTP errors are raised at once.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            delay = self._retry_base_delay * (2 ** attempt)
            try:
                async with httpx.AsyncClient(follow_redirects=True) as client:
                    resp = await client.get(
                        url,
                        headers=_NO_CACHE_HEADERS,
                        timeout=self._timeout,
                    )

                if resp.status_code in _RETRYABLE_STATUS_CODES:
                    logger.warning(
                        "GET %s returned %d — retry %d/%d in %.1fs",
                        url, resp.status_code, attempt + 1, _MAX_RETRIES, delay,
                    )
                    last_exc = httpx.HTTPStatusError(
                        f"Server error '{resp.status_code}'",
                        request=resp.request,
                        response=resp,
                    )
                    if attempt + 1 < _MAX_RETRIES:
                        await asyncio.sleep(delay)
                    continue

                resp.raise_for_status()
                return resp

            except httpx.TransportError as exc:
                logger.warning(
                    "GET %s transport error (%s) — retry %d/%d in %.1fs",
                    url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                if attempt + 1 < _MAX_RETRIES:
                    await asyncio.sleep(delay)

        # All retries exhausted, raise the last error
        raise last_exc  # type: ignore[misc]

    async def fetch_text(self, url: str) -> str:
        """Return the body of *url* as text.

        Raises:
            httpx.HTTPStatusError: non-success status after retries.
            httpx.TransportError: network failure after retries.
        """
        resp = await self._get_with_retry(url)
        return resp.text
