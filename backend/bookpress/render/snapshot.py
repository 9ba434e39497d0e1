"""
BookPress — Headless snapshot service client.

Talks to a browserless-style service:
  POST {service}/screenshot?token=…   — load a URL, wait for a selector, PNG back

The render URL is preflighted with a plain GET first so that a rejected
token (403) or a missing page (404) surfaces as an HTTP status instead of
a screenshot of an error page.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import httpx

from bookpress.utils.logging import logger

MAX_RETRIES = 1
READY_SELECTOR = "[data-render-ready]"


@dataclass(frozen=True)
class Viewport:
    width: int
    height: int
    device_scale_factor: float = 1.0


class Snapshotter(Protocol):
    async def rasterize(self, url: str, viewport: Viewport) -> bytes:
        """Load url in a viewport of exactly this size and return a PNG."""
        ...


class HttpSnapshotter:
    """Thin async wrapper around a headless-browser screenshot REST API."""

    def __init__(
        self,
        service_url: str,
        token: str = "",
        timeout: float = 60.0,
        ready_selector: str = READY_SELECTOR,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.service_url = service_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.ready_selector = ready_selector
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def preflight(self, url: str) -> None:
        """GET the view once; raises httpx.HTTPStatusError on 4xx/5xx."""
        async with self._client() as client:
            resp = await client.get(url)
            resp.raise_for_status()

    def _payload(self, url: str, viewport: Viewport) -> dict:
        return {
            "url": url,
            "options": {"type": "png", "fullPage": False, "omitBackground": False},
            "viewport": {
                "width": viewport.width,
                "height": viewport.height,
                "deviceScaleFactor": viewport.device_scale_factor,
            },
            "gotoOptions": {"waitUntil": "networkidle0"},
            "waitForSelector": {
                "selector": self.ready_selector,
                "timeout": int(self.timeout * 1000),
            },
        }

    async def rasterize(self, url: str, viewport: Viewport) -> bytes:
        await self.preflight(url)

        params = {"token": self.token} if self.token else None
        last_err: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 2):
            try:
                async with self._client() as client:
                    resp = await client.post(
                        f"{self.service_url}/screenshot",
                        params=params,
                        json=self._payload(url, viewport),
                    )
                    if not resp.is_success:
                        logger.error(
                            "  Snapshot service returned %d (attempt %d/%d): %s",
                            resp.status_code, attempt, MAX_RETRIES + 1, resp.text[:200],
                        )
                    resp.raise_for_status()
                    return resp.content
            except httpx.HTTPStatusError as exc:
                # 4xx from the screenshot service is a request problem, not transient
                if exc.response.status_code < 500:
                    raise
                last_err = exc
            except httpx.TransportError as exc:
                last_err = exc
            if attempt <= MAX_RETRIES:
                logger.warning("  Retrying snapshot in 1s (attempt %d failed)", attempt)
                await asyncio.sleep(1)
        raise last_err  # type: ignore[misc]
