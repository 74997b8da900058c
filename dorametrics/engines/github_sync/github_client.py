"""Async GitHub REST client for the commits, pulls and PR-commits endpoints."""

from __future__ import annotations

import asyncio
import os
import re
import time
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import structlog

log = structlog.get_logger("dorametrics.engine")

GITHUB_API = "https://api.github.com"

_NEXT_LINK_RE = re.compile(r'<([^>]+)>;\s*rel="next"')

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds
_DEFAULT_RATE_LIMIT_WAIT = 60


class RateLimitError(Exception):
    """GitHub kept answering rate-limited until the retries ran out."""

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"rate limit exceeded, retry after {retry_after}s")


class GitHubClient:
    """Thin async wrapper around the GitHub REST API.

    The token comes from *token* or ``GITHUB_TOKEN``; without one the
    client still works against public repositories at the anonymous rate.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_token = token or os.environ.get("GITHUB_TOKEN")
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if resolved_token:
            headers["Authorization"] = f"token {resolved_token}"
        self._client = httpx.AsyncClient(
            base_url=GITHUB_API,
            headers=headers,
            timeout=30.0,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get_paginated(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 3,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield list items across at most *max_pages* ``rel="next"`` pages."""
        url: str | None = path
        query: dict[str, Any] | None = {"per_page": 100, **(params or {})}
        for _ in range(max_pages):
            if url is None:
                return
            response = await self._get(url, query)
            for item in response.json():
                yield item
            # next links carry the full query string
            url, query = _next_link(response), None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return (await self._get(path, params)).json()

    # ── internal ───────────────────────────────────────────────────────────

    async def _get(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        """GET with retries.

        Rate-limited answers wait for the advertised reset; 5xx answers and
        timeouts back off exponentially. Any other 4xx raises
        ``httpx.HTTPStatusError`` at once.
        """
        error: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            delay: float = _RETRY_BASE_DELAY * (2**attempt)
            try:
                resp = await self._client.get(url, params=params)
            except httpx.TimeoutException as exc:
                log.warning("github.timeout", url=url, attempt=attempt + 1)
                error = exc
            else:
                wait = rate_limit_wait(resp)
                if wait is not None:
                    log.warning(
                        "github.rate_limited", url=url, wait_seconds=wait, attempt=attempt + 1
                    )
                    error, delay = RateLimitError(wait), wait
                elif resp.status_code >= 500:
                    log.warning(
                        "github.server_error",
                        url=url,
                        status=resp.status_code,
                        attempt=attempt + 1,
                    )
                    error = httpx.HTTPStatusError(
                        f"{resp.status_code}", request=resp.request, response=resp
                    )
                else:
                    resp.raise_for_status()
                    return resp

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(delay)

        raise error  # type: ignore[misc]


def rate_limit_wait(response: httpx.Response) -> int | None:
    """Seconds to wait before retrying, or None when *response* is not rate limited.

    Secondary limits send ``Retry-After`` (on 403 or 429). The primary limit
    answers 403 with ``X-RateLimit-Remaining: 0`` and a reset epoch.
    """
    if response.status_code not in (403, 429):
        return None
    headers = response.headers
    retry_after = headers.get("Retry-After", "")
    if retry_after.isdigit():
        return max(int(retry_after), 1)
    if headers.get("X-RateLimit-Remaining") != "0":
        return None
    reset = headers.get("X-RateLimit-Reset", "")
    if reset.isdigit():
        return max(int(reset) - int(time.time()), 1)
    return _DEFAULT_RATE_LIMIT_WAIT


def _next_link(response: httpx.Response) -> str | None:
    match = _NEXT_LINK_RE.search(response.headers.get("Link", ""))
    return match.group(1) if match else None
