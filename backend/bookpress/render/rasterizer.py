"""
BookPress — Page rasterizer.

One page in, one PNG out:
  1. Issue a short-lived render token bound to (family, page)
  2. Point the snapshot service at /render/{family}/{page}?token=&scale=&bleed=
  3. Wait (bounded) for the view to signal readiness
  4. Check the image is exactly the computed viewport, no crop or letterbox

The view is laid out directly in output pixels: the editor canvas plus
bleed on every side, multiplied by the scale factor.
"""

from __future__ import annotations

import asyncio
from urllib.parse import urlencode

import fitz  # PyMuPDF
import httpx

from bookpress.errors import PageNotFoundError, RenderFailedError, RenderTimeoutError, RenderTokenError
from bookpress.layout.dimensions import BLEED, DEVICE_SCALE_FACTOR, get_spec
from bookpress.models.book import BookSize
from bookpress.render.snapshot import Snapshotter, Viewport
from bookpress.render.tokens import RenderTokenIssuer
from bookpress.utils.logging import logger, step_timer


def page_viewport(book_size: BookSize | str, scale: float, bleed_px: int | None = None) -> Viewport:
    """Viewport for a page: (editor canvas + 2 × bleed) × scale, in device pixels."""
    spec = get_spec(book_size)
    bleed = BLEED.px72 if bleed_px is None else bleed_px
    return Viewport(
        width=round((spec.base_px.width + bleed * 2) * scale),
        height=round((spec.base_px.height + bleed * 2) * scale),
    )


def image_size(png: bytes) -> tuple[int, int]:
    pix = fitz.Pixmap(png)
    return pix.width, pix.height


class PageRasterizer:
    def __init__(
        self,
        snapshotter: Snapshotter,
        tokens: RenderTokenIssuer,
        base_url: str,
        timeout: float = 60.0,
    ):
        self.snapshotter = snapshotter
        self.tokens = tokens
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def render_url(self, family_id: str, page_id: str, book_size: BookSize, scale: float, bleed_px: int) -> str:
        query = urlencode({
            "token": self.tokens.issue(family_id, page_id),
            "size": book_size.value,
            "scale": f"{scale:.6f}",
            "bleed": bleed_px,
        })
        return f"{self.base_url}/render/{family_id}/{page_id}?{query}"

    async def rasterize(
        self,
        family_id: str,
        page_id: str,
        book_size: BookSize | str,
        scale: float = DEVICE_SCALE_FACTOR,
        bleed_px: int | None = None,
    ) -> bytes:
        """
        Render one page and return PNG bytes of exactly the viewport size.

        bleed_px is in editor units (72 DPI); None means the standard 0.125".
        """
        size = BookSize.parse(book_size)
        bleed = BLEED.px72 if bleed_px is None else bleed_px
        viewport = page_viewport(size, scale, bleed)
        url = self.render_url(family_id, page_id, size, scale, bleed)

        with step_timer(f"Render page {page_id} ({viewport.width}×{viewport.height})"):
            try:
                png = await asyncio.wait_for(self.snapshotter.rasterize(url, viewport), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise RenderTimeoutError(page_id, self.timeout)
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                from_view = exc.request.url == httpx.URL(url)
                if from_view and status == 404:
                    raise PageNotFoundError(family_id, page_id)
                if from_view and status == 403:
                    raise RenderTokenError("rejected by render view", page_id=page_id)
                raise RenderFailedError(page_id, f"snapshot service returned HTTP {status}")
            except httpx.TransportError as exc:
                raise RenderFailedError(page_id, f"snapshot service unreachable: {exc}")

            try:
                width, height = image_size(png)
            except Exception as exc:
                raise RenderFailedError(page_id, f"snapshot is not a valid image: {exc}")

            if (width, height) != (viewport.width, viewport.height):
                raise RenderFailedError(
                    page_id,
                    f"snapshot is {width}×{height}, expected {viewport.width}×{viewport.height}",
                )

            logger.info("  Page %s rendered (%d bytes)", page_id, len(png))
            return png
