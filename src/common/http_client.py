"""Shared asynchronous HTTP helpers used by the registry and source clients.

Encapsulates timeouts, retries and a short-lived response cache so callers
issuing many concurrent lookups (one per family package) avoid duplicating
try/except blocks. Failures never raise: callers receive a status code of 0
and decide how to surface the problem.
"""
from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin aiohttp session wrapper with retry and caching."""

    DEFAULT_HEADERS = {
        "User-Agent": "peeralign/1.0",
        "Accept": "application/json",
    }

    def __init__(
        self,
        timeout: int = Constants.REQUEST_TIMEOUT,
        retry_max: int = Constants.HTTP_RETRY_MAX,
        cache_ttl: int = Constants.HTTP_CACHE_TTL_SEC,
    ):
        """Initialize the client.

        Args:
            timeout: Total request timeout in seconds.
            retry_max: Attempts per request before giving up.
            cache_ttl: Seconds a non-5xx response stays cached.
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retry_max = max(1, retry_max)
        self._cache_ttl = cache_ttl
        self._session: Optional[aiohttp.ClientSession] = None
        self._cache: Dict[str, Tuple[Tuple[int, str], float]] = {}

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=Constants.HTTP_MAX_CONNECTIONS)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers=self.DEFAULT_HEADERS,
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "HttpClient":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def _cached(self, url: str) -> Optional[Tuple[int, str]]:
        entry = self._cache.get(url)
        if entry is None:
            return None
        data, cached_at = entry
        if time.monotonic() - cached_at >= self._cache_ttl:
            del self._cache[url]
            return None
        return data

    async def robust_get(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[int, str]:
        """GET ``url`` with retries; returns (status_code, body_text).

        A status code of 0 means every attempt failed at the transport level.
        """
        cached = self._cached(url)
        safe_target = safe_url(url)
        if cached is not None:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP cache hit",
                    extra=extra_context(event="cache_hit", component="http_client", action="GET", target=safe_target),
                )
            return cached

        if self._session is None:
            await self.start()

        last_exception: Optional[str] = None
        for attempt in range(self._retry_max):
            if attempt:
                await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
            with Timer() as t:
                try:
                    if is_debug_enabled(logger):
                        logger.debug(
                            "HTTP request",
                            extra=extra_context(
                                event="http_request",
                                component="http_client",
                                action="GET",
                                target=safe_target,
                                attempt=attempt + 1,
                            ),
                        )
                    async with self._session.get(url, headers=headers) as response:
                        text = await response.text()
                        status = response.status
                except asyncio.TimeoutError:
                    last_exception = "timeout"
                    logger.debug(
                        "HTTP timeout",
                        extra=extra_context(
                            event="http_exception", component="http_client", outcome="timeout",
                            attempt=attempt + 1, target=safe_target,
                        ),
                    )
                    continue
                except aiohttp.ClientError as exc:
                    last_exception = str(exc)
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception", component="http_client", outcome="request_exception",
                            attempt=attempt + 1, target=safe_target,
                        ),
                    )
                    continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="http_client",
                        action="GET",
                        status_code=status,
                        duration_ms=t.duration_ms(),
                        target=safe_target,
                    ),
                )
            if status >= 500:
                last_exception = f"HTTP {status}"
                continue
            self._cache[url] = ((status, text), time.monotonic())
            return status, text

        logger.warning("GET %s failed after %s attempts: %s", safe_target, self._retry_max, last_exception)
        return 0, ""

    async def get_json(self, url: str, headers: Optional[Dict[str, str]] = None) -> Tuple[int, Optional[Any], str]:
        """GET ``url`` and parse JSON.

        Returns:
            Tuple of (status_code, parsed_json_or_none, raw_text)
        """
        status, text = await self.robust_get(url, headers=headers)
        if status == 200 and text:
            try:
                return status, json.loads(text), text
            except json.JSONDecodeError:
                if is_debug_enabled(logger):
                    logger.debug(
                        "JSON decode error",
                        extra=extra_context(
                            event="parse", component="http_client", outcome="json_decode_error",
                            status_code=status, target=safe_url(url),
                        ),
                    )
        return status, None, text
