"""
Raw HTML fetching with retry for the extraction engine.

Each attempt picks a User-Agent from a fixed pool, runs under a hard
deadline, and treats any non-2xx status as a failure. Attempts are separated
by a linearly increasing delay (attempt index x retry delay).
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import random

import httpx

_ACCEPT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Cache-Control": "no-cache",
}


@dataclass
class FetchResult:
    """Result of an HTTP fetch operation.

    Either text will be populated (success) or error will be populated (failure),
    but never both. status_code may be None for network-level failures.

    Attributes:
        url: The URL that was fetched
        status_code: HTTP status code, or None if request failed before getting response
        text: The response body text, or None on error
        error: Error message if fetch failed, None on success
        attempts: Number of attempts made
    """
    url: str
    status_code: int | None
    text: str | None
    error: str | None
    attempts: int = 0


async def fetch_url(
    client: httpx.AsyncClient,
    url: str,
    timeout: float,
    retries: int,
    user_agents: list[str],
    retry_delay: float = 1.0,
    user_agent: str | None = None,
) -> FetchResult:
    """Fetch a URL with retry, returning the last attempt's error on failure.

    Args:
        client: Shared async HTTP client
        url: The URL to fetch
        timeout: Hard deadline in seconds for a single attempt
        retries: Total number of attempts
        user_agents: Pool to draw a random User-Agent from per attempt
        retry_delay: Seconds multiplied by the attempt index before each retry
        user_agent: Fixed User-Agent overriding the pool

    Returns:
        FetchResult with text on success or error message on failure
    """
    last_error: str | None = None
    status_code: int | None = None
    attempts = max(1, retries)

    for attempt in range(attempts):
        if attempt > 0:
            await asyncio.sleep(attempt * retry_delay)
        headers = {"User-Agent": user_agent or random.choice(user_agents), **_ACCEPT_HEADERS}
        try:
            resp = await asyncio.wait_for(
                client.get(url, headers=headers, follow_redirects=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            status_code = None
            last_error = f"TimeoutError: request aborted after {timeout}s"
            continue
        except httpx.InvalidURL as exc:
            return FetchResult(
                url=url, status_code=None, text=None, error=f"InvalidURL: {exc}", attempts=attempt + 1
            )
        except httpx.HTTPError as exc:
            status_code = None
            last_error = f"{type(exc).__name__}: {exc}"
            continue

        status_code = resp.status_code
        if resp.is_success:
            return FetchResult(
                url=url, status_code=status_code, text=resp.text, error=None, attempts=attempt + 1
            )
        last_error = f"HTTP {resp.status_code}: {resp.reason_phrase}"

    return FetchResult(url=url, status_code=status_code, text=None, error=last_error, attempts=attempts)
