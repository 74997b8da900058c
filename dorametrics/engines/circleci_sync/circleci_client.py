"""Async CircleCI v2 API client with page-token pagination and retries."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncGenerator
from typing import Any

import httpx
import structlog

log = structlog.get_logger("dorametrics.engine")

CIRCLECI_API = "https://circleci.com/api/v2"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


class CircleCIClient:
    """Thin async wrapper around the CircleCI v2 REST API.

    The token comes from *token* or ``CIRCLECI_TOKEN``.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        resolved_token = token or os.environ.get("CIRCLECI_TOKEN", "")
        self._client = httpx.AsyncClient(
            base_url=CIRCLECI_API,
            headers={"Circle-Token": resolved_token, "Accept": "application/json"},
            timeout=30.0,
            transport=transport,
        )

    # ── lifecycle ──────────────────────────────────────────────────────────

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> CircleCIClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── public ─────────────────────────────────────────────────────────────

    async def get_items(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        max_pages: int = 1,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield ``items`` of a list endpoint, following ``next_page_token``."""
        params = dict(params or {})
        for _ in range(max_pages):
            body = (await self._request_with_retry(path, params)).json()
            for item in body.get("items") or []:
                yield item
            token = body.get("next_page_token")
            if not token:
                return
            params["page-token"] = token

    async def list_pipelines(
        self, project_slug: str, *, branch: str = "main"
    ) -> AsyncGenerator[dict[str, Any], None]:
        async for item in self.get_items(f"/project/{project_slug}/pipeline", {"branch": branch}):
            yield item

    async def list_workflows(self, pipeline_id: str) -> list[dict[str, Any]]:
        return [item async for item in self.get_items(f"/pipeline/{pipeline_id}/workflow")]

    # ── internal ───────────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """GET with exponential backoff on 429, 5xx and timeouts."""
        last_exc: Exception | None = None
        for attempt in range(_MAX_RETRIES):
            try:
                resp = await self._client.get(url, params=params)
                if resp.status_code != 429 and resp.status_code < 500:
                    resp.raise_for_status()
                    return resp

                log.warning(
                    "circleci.retryable_status",
                    url=url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                )
                last_exc = httpx.HTTPStatusError(
                    f"{resp.status_code}", request=resp.request, response=resp
                )
            except httpx.TimeoutException as exc:
                log.warning("circleci.timeout", url=url, attempt=attempt + 1)
                last_exc = exc

            if attempt < _MAX_RETRIES - 1:
                await asyncio.sleep(_RETRY_BASE_DELAY * (2**attempt))

        raise last_exc  # type: ignore[misc]
