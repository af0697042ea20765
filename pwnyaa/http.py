from __future__ import annotations

import asyncio
from typing import Dict, Optional

import aiohttp

from .config import Config, logger


RETRYABLE_STATUSES = {500, 502, 503, 504}


def build_headers() -> Dict[str, str]:
    return {
        "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "accept-language": "ja,en-US;q=0.9,en;q=0.8",
        "user-agent": "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0 Safari/537.36",
        "pragma": "no-cache",
        "cache-control": "no-cache",
    }


def make_session(cookie_jar: Optional[aiohttp.abc.AbstractCookieJar] = None) -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(total=Config.HTTP_TIMEOUT)
    return aiohttp.ClientSession(
        timeout=timeout,
        headers=build_headers(),
        cookie_jar=cookie_jar,
        trust_env=True,
    )


def backoff_delay(attempt: int) -> float:
    """Delay before retry number ``attempt`` (1-based)."""
    return Config.BACKOFF_BASE_SECS * (Config.BACKOFF_MULTIPLIER ** (attempt - 1))


async def fetch_text(
    session: aiohttp.ClientSession,
    url: str,
    headers: Dict[str, str] | None = None,
    retries: int | None = None,
) -> Optional[str]:
    """GET ``url`` and return the body.

    Returns None on 404. Connection errors, timeouts and 5xx responses are
    retried with exponential backoff; the last error is raised once the
    retries are used up.
    """
    attempts = 1 + (Config.FETCH_RETRIES if retries is None else retries)
    last_error: Exception | None = None
    for attempt in range(1, attempts + 1):
        logger.debug(f"GET {url} (attempt {attempt}/{attempts})")
        try:
            async with session.get(url, headers=headers) as r:
                if r.status == 404:
                    logger.debug(f"Not found: {url}")
                    return None
                if r.status in RETRYABLE_STATUSES:
                    last_error = RuntimeError(f"HTTP {r.status} for {url}")
                elif r.status != 200:
                    txt = await r.text()
                    logger.error(f"HTTP error for {url}: {r.status}")
                    raise RuntimeError(f"HTTP {r.status} for {url} :: {txt[:300]}")
                else:
                    return await r.text(errors="replace")
        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            last_error = e

        if attempt < attempts:
            delay = backoff_delay(attempt)
            logger.warning(f"Fetch of {url} failed ({last_error!r}); retrying in {delay:.1f}s")
            await asyncio.sleep(delay)

    logger.error(f"Giving up on {url} after {attempts} attempts: {last_error!r}")
    if last_error is None:
        raise RuntimeError(f"No attempts made for {url}")
    raise last_error
