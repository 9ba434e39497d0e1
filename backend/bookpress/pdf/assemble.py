"""
BookPress — Artifact assembler.

Merges rasterized page images into the print-ready interior PDF.
Each image becomes one page sized to trim + bleed, in the order given.
The result is uploaded once under a job-addressed key and never
overwritten; refreshing a download only mints a new presigned URL.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import fitz  # PyMuPDF

from bookpress.errors import AssemblyError, StorageError
from bookpress.layout.dimensions import BASE_DPI, BLEED_INCHES, get_spec
from bookpress.models.book import BookSize
from bookpress.storage.objects import ObjectStore, compiled_key
from bookpress.utils.logging import logger, step_timer

# Blank end sheet colour, matches the default cream paper tone
END_SHEET_RGB = (0.98, 0.97, 0.95)
CREATOR = "BookPress"


@dataclass(frozen=True)
class AssembledArtifact:
    storage_key: str
    size_bytes: int
    page_count: int
    content_hash: str


@dataclass(frozen=True)
class DownloadReference:
    url: str
    expires_at: datetime


def page_size_points(book_size: BookSize | str) -> tuple[float, float]:
    spec = get_spec(book_size)
    return (
        (spec.trim_width + BLEED_INCHES * 2) * BASE_DPI,
        (spec.trim_height + BLEED_INCHES * 2) * BASE_DPI,
    )


def build_pdf(
    images: list[bytes],
    book_size: BookSize | str,
    title: str = "",
    author: str = "",
    keywords: str = "",
) -> tuple[bytes, int]:
    """
    Place each PNG on its own page, edge to edge, in list order.

    Odd page counts get one blank end sheet so the book ends on a verso.
    Returns (pdf bytes, final page count).
    """
    if not images:
        raise AssemblyError("no pages to merge")

    page_w, page_h = page_size_points(book_size)
    doc = fitz.open()
    try:
        first_size = None
        for i, png in enumerate(images):
            try:
                pix = fitz.Pixmap(png)
            except Exception as exc:
                raise AssemblyError(f"page {i + 1} is not a valid image: {exc}")
            if first_size is None:
                first_size = (pix.width, pix.height)
            elif (pix.width, pix.height) != first_size:
                raise AssemblyError(
                    f"page {i + 1} is {pix.width}×{pix.height}, expected {first_size[0]}×{first_size[1]}"
                )
            page = doc.new_page(width=page_w, height=page_h)
            page.insert_image(page.rect, stream=png, keep_proportion=False)

        if doc.page_count % 2 == 1:
            end = doc.new_page(width=page_w, height=page_h)
            end.draw_rect(end.rect, color=None, fill=END_SHEET_RGB)
            logger.info("  Added blank end sheet (odd page count)")

        doc.set_metadata({
            "title": title,
            "author": author,
            "creator": CREATOR,
            "producer": CREATOR,
            "keywords": keywords,
        })
        final_count = doc.page_count
        return doc.tobytes(garbage=3, deflate=True), final_count
    finally:
        doc.close()


class ArtifactAssembler:
    def __init__(self, store: ObjectStore, download_ttl: int = 3600):
        self.store = store
        self.download_ttl = download_ttl

    async def assemble(
        self,
        family_id: str,
        job_id: str,
        fingerprint: str,
        book_size: BookSize | str,
        images: list[bytes],
        title: str = "",
        author: str = "",
    ) -> AssembledArtifact:
        size = BookSize.parse(book_size)
        key = compiled_key(family_id, fingerprint, size.value, job_id)
        keywords = f"job:{job_id} size:{size.code} pages:{len(images)}"

        with step_timer(f"Merge {len(images)} pages → PDF", scope=job_id):
            pdf_bytes, final_count = build_pdf(images, size, title=title, author=author, keywords=keywords)

        content_hash = hashlib.sha256(pdf_bytes).hexdigest()
        with step_timer(f"Upload {key}", scope=job_id):
            await self.store.put(
                key,
                pdf_bytes,
                content_type="application/pdf",
                metadata={"job_id": job_id, "sha256": content_hash, "page_count": str(final_count)},
            )

        logger.info("[%s] Book assembled: %d pages, %d bytes", job_id, final_count, len(pdf_bytes))
        return AssembledArtifact(
            storage_key=key,
            size_bytes=len(pdf_bytes),
            page_count=final_count,
            content_hash=content_hash,
        )

    async def download_reference(self, key: str, ttl_seconds: int | None = None) -> DownloadReference:
        ttl = ttl_seconds or self.download_ttl
        url = await self.store.presign(key, ttl)
        return DownloadReference(url=url, expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl))

    async def refresh_download(self, key: str) -> DownloadReference:
        """New credential for existing bytes. Never re-renders or re-uploads."""
        if not await self.store.exists(key):
            raise StorageError("refresh", f"compiled book missing at {key}")
        return await self.download_reference(key)
