"""
BookPress — Cover composer.

Back + spine + front as one spread:
  1. Compute geometry from size, page count, paper and cover type
  2. Snapshot /render/cover/{family} at the spread's pixel size
  3. Wrap the PNG into a one-page PDF at the physical spread size
  4. Upload under {family}/covers/…
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from urllib.parse import urlencode

import fitz  # PyMuPDF
import httpx

from bookpress.errors import CoverCompositionError
from bookpress.layout.dimensions import BASE_DPI, CoverGeometry, cover_dimensions
from bookpress.models.book import BookSize, CoverType
from bookpress.models.order import CoverDesign
from bookpress.render.rasterizer import image_size
from bookpress.render.snapshot import Snapshotter, Viewport
from bookpress.render.tokens import COVER_SUBJECT, RenderTokenIssuer
from bookpress.render.views import effective_mode
from bookpress.storage.objects import ObjectStore, cover_key
from bookpress.utils.logging import logger, step_timer


@dataclass(frozen=True)
class CoverSpec:
    book_size: BookSize
    page_count: int
    cover_type: CoverType
    design: CoverDesign

    @property
    def geometry(self) -> CoverGeometry:
        return cover_dimensions(self.book_size, self.page_count, self.design.paper_type, self.cover_type)


@dataclass(frozen=True)
class CoverArtifact:
    storage_key: str
    geometry: CoverGeometry
    size_bytes: int


def cover_pdf(png: bytes, geometry: CoverGeometry) -> bytes:
    """One page at the full spread size (incl. bleed), image edge to edge."""
    doc = fitz.open()
    try:
        page = doc.new_page(
            width=geometry.total_width_in * BASE_DPI,
            height=geometry.total_height_in * BASE_DPI,
        )
        page.insert_image(page.rect, stream=png, keep_proportion=False)
        doc.set_metadata({"title": "Cover", "creator": "BookPress", "producer": "BookPress"})
        return doc.tobytes(garbage=3, deflate=True)
    finally:
        doc.close()


class CoverComposer:
    def __init__(
        self,
        snapshotter: Snapshotter,
        tokens: RenderTokenIssuer,
        store: ObjectStore,
        base_url: str,
        timeout: float = 60.0,
        scale: float = 1.0,
    ):
        self.snapshotter = snapshotter
        self.tokens = tokens
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.scale = scale

    def viewport(self, spec: CoverSpec) -> Viewport:
        geo = spec.geometry
        return Viewport(width=round(geo.width_px * self.scale), height=round(geo.height_px * self.scale))

    def cover_url(self, family_id: str, spec: CoverSpec) -> str:
        design = spec.design
        params = {
            "token": self.tokens.issue(family_id, COVER_SUBJECT),
            "size": spec.book_size.value,
            "pages": spec.page_count,
            "paper": design.paper_type.value,
            "cover_type": spec.cover_type.value,
            "mode": effective_mode(design).value,
            "family_name": design.family_name,
            "primary": design.primary_color,
            "secondary": design.secondary_color,
            "scale": f"{self.scale:.6f}",
        }
        if design.book_title:
            params["title"] = design.book_title
        if design.front_image_url:
            params["front_image"] = design.front_image_url
        if design.wraparound_image_url:
            params["wrap_image"] = design.wraparound_image_url
        return f"{self.base_url}/render/cover/{family_id}?{urlencode(params)}"

    async def render_png(self, family_id: str, spec: CoverSpec) -> bytes:
        viewport = self.viewport(spec)
        url = self.cover_url(family_id, spec)
        try:
            png = await asyncio.wait_for(self.snapshotter.rasterize(url, viewport), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise CoverCompositionError(f"snapshot timed out after {self.timeout:.0f}s")
        except (httpx.HTTPStatusError, httpx.TransportError) as exc:
            raise CoverCompositionError(f"snapshot failed: {exc}")

        try:
            width, height = image_size(png)
        except Exception as exc:
            raise CoverCompositionError(f"snapshot is not a valid image: {exc}")
        if (width, height) != (viewport.width, viewport.height):
            raise CoverCompositionError(
                f"snapshot is {width}×{height}, expected {viewport.width}×{viewport.height}"
            )
        return png

    async def compose(self, family_id: str, order_key: str, spec: CoverSpec) -> CoverArtifact:
        geo = spec.geometry
        mode = effective_mode(spec.design)
        key = cover_key(family_id, spec.book_size.code, spec.page_count, mode.value, order_key)

        with step_timer(f"Cover {spec.book_size.code} {spec.page_count}p ({mode.value})", scope=order_key):
            if await self.store.exists(key):
                logger.info("  Cover already exists, reusing %s", key)
                return CoverArtifact(storage_key=key, geometry=geo, size_bytes=len(await self.store.get(key)))

            png = await self.render_png(family_id, spec)
            pdf = cover_pdf(png, geo)
            await self.store.put(key, pdf, content_type="application/pdf", metadata={"order": order_key})

        logger.info(
            "  Cover spread %.3f\"×%.3f\" (spine %.3f\") → %s",
            geo.total_width_in, geo.total_height_in, geo.spine_width_in, key,
        )
        return CoverArtifact(storage_key=key, geometry=geo, size_bytes=len(pdf))
