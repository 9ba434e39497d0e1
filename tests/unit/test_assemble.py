"""Unit tests for interior PDF assembly and download references."""

from datetime import datetime, timezone

import fitz
import pytest

from bookpress.errors import ArtifactExistsError, AssemblyError, StorageError
from bookpress.pdf.assemble import ArtifactAssembler, build_pdf, page_size_points
from bookpress.storage.objects import InMemoryObjectStore

RED, GREEN, BLUE = (255, 0, 0), (0, 255, 0), (0, 0, 255)


def _center_color(doc, index):
    pix = doc[index].get_pixmap()
    return pix.pixel(pix.width // 2, pix.height // 2)


def _close(a, b, tol=3):
    return all(abs(x - y) <= tol for x, y in zip(a, b))


class TestBuildPdf:
    def test_page_size_includes_bleed(self):
        assert page_size_points("8x8") == (594, 594)
        assert page_size_points("portrait") == pytest.approx((630, 810))

    def test_order_preserved(self, png_factory):
        images = [png_factory(59, 59, c) for c in (RED, GREEN, BLUE, RED)]
        data, count = build_pdf(images, "8x8", title="The Parks Yearbook")
        assert count == 4
        doc = fitz.open(stream=data, filetype="pdf")
        assert doc.page_count == 4
        assert _close(_center_color(doc, 0), RED)
        assert _close(_center_color(doc, 1), GREEN)
        assert _close(_center_color(doc, 2), BLUE)
        assert doc.metadata["title"] == "The Parks Yearbook"
        assert doc.metadata["creator"] == "BookPress"
        assert doc[0].rect.width == pytest.approx(594)

    def test_odd_count_gets_end_sheet(self, png_factory):
        data, count = build_pdf([png_factory(59, 59, RED)] * 3, "8x8")
        assert count == 4
        doc = fitz.open(stream=data, filetype="pdf")
        assert _close(_center_color(doc, 3), (250, 247, 242))

    def test_mixed_sizes_rejected(self, png_factory):
        with pytest.raises(AssemblyError):
            build_pdf([png_factory(59, 59), png_factory(60, 59)], "8x8")

    def test_empty_rejected(self):
        with pytest.raises(AssemblyError):
            build_pdf([], "8x8")

    def test_invalid_image_rejected(self, png_factory):
        with pytest.raises(AssemblyError):
            build_pdf([png_factory(59, 59), b"garbage"], "8x8")


@pytest.mark.asyncio
class TestArtifactAssembler:
    async def test_upload_once(self, png_factory):
        store = InMemoryObjectStore()
        assembler = ArtifactAssembler(store, download_ttl=600)
        images = [png_factory(59, 59)] * 2
        artifact = await assembler.assemble("fam", "job1", "fp", "8x8", images, title="t")
        assert artifact.storage_key == "fam/compiled/fp-small-square-job1.pdf"
        assert artifact.page_count == 2
        assert store.content_types[artifact.storage_key] == "application/pdf"
        assert store.metadata[artifact.storage_key]["sha256"] == artifact.content_hash

        with pytest.raises(ArtifactExistsError):
            await assembler.assemble("fam", "job1", "fp", "8x8", images)

    async def test_refresh_only_presigns(self, png_factory):
        store = InMemoryObjectStore()
        assembler = ArtifactAssembler(store, download_ttl=600)
        artifact = await assembler.assemble("fam", "job1", "fp", "8x8", [png_factory(59, 59)] * 2)
        before = dict(store.objects)

        first = await assembler.download_reference(artifact.storage_key)
        second = await assembler.refresh_download(artifact.storage_key)
        assert first.url != second.url
        assert second.expires_at > datetime.now(timezone.utc)
        assert store.objects == before
        assert store.presign_calls == 2

    async def test_refresh_missing_artifact(self):
        assembler = ArtifactAssembler(InMemoryObjectStore())
        with pytest.raises(StorageError):
            await assembler.refresh_download("fam/compiled/nope.pdf")
