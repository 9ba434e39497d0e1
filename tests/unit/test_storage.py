"""Unit tests for the in-memory object store and repositories."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from bookpress.errors import ArtifactExistsError, JobNotFoundError, StorageError
from bookpress.models.job import CompilationJob, JobStatus
from bookpress.storage.objects import InMemoryObjectStore, compiled_key, cover_key, page_artifact_key
from bookpress.storage.repository import InMemoryJobRepository, InMemoryPageStore


def _job(job_id="j1", fingerprint="fp", created_at=None):
    return CompilationJob(
        id=job_id, family_id="fam", fingerprint=fingerprint, book_size="small-square",
        page_ids=["p1"], total_pages=1,
        created_at=created_at or datetime.now(timezone.utc),
    )


class TestKeys:
    def test_layout(self):
        assert page_artifact_key("fam", "p1", "1700", 300) == "fam/pages/p1-1700-300dpi.png"
        assert compiled_key("fam", "abc", "small-square", "j1") == "fam/compiled/abc-small-square-j1.pdf"
        assert cover_key("fam", "8x8", 24, "solid", "o1") == "fam/covers/cover-8x8-24p-solid-o1.pdf"


@pytest.mark.asyncio
class TestInMemoryObjectStore:
    async def test_write_once(self):
        store = InMemoryObjectStore()
        await store.put("k", b"one")
        with pytest.raises(ArtifactExistsError):
            await store.put("k", b"two")
        await store.put("k", b"three", overwrite=True)
        assert await store.get("k") == b"three"

    async def test_missing(self):
        store = InMemoryObjectStore()
        assert not await store.exists("k")
        with pytest.raises(StorageError):
            await store.get("k")
        with pytest.raises(StorageError):
            await store.presign("k", 60)

    async def test_presign(self):
        store = InMemoryObjectStore(bucket="b")
        await store.put("fam/x.pdf", b"%PDF")
        url = await store.presign("fam/x.pdf", 60)
        assert url.startswith("memory://b/fam/x.pdf?ttl=60")


@pytest.mark.asyncio
class TestInMemoryRepositories:
    async def test_page_store_keeps_request_order(self, page_factory):
        store = InMemoryPageStore([page_factory("a"), page_factory("b")])
        found = await store.get_many("fam-1", ["b", "missing", "a"])
        assert [p.id if p else None for p in found] == ["b", None, "a"]

    async def test_update_returns_new_copy(self):
        repo = InMemoryJobRepository()
        original = await repo.create(_job())
        updated = await repo.update("fam", "j1", {"status": JobStatus.VALIDATING})
        assert original.status == JobStatus.PENDING
        assert updated.status == JobStatus.VALIDATING
        assert updated.updated_at >= original.updated_at
        with pytest.raises(JobNotFoundError):
            await repo.update("fam", "nope", {})

    async def test_find_by_fingerprint_newest_first(self):
        repo = InMemoryJobRepository()
        now = datetime.now(timezone.utc)
        await repo.create(_job("old", created_at=now - timedelta(hours=1)))
        await repo.create(_job("new", created_at=now))
        await repo.create(_job("other", fingerprint="zz"))
        found = await repo.find_by_fingerprint("fam", "fp")
        assert [j.id for j in found] == ["new", "old"]

    async def test_watch_until_terminal(self):
        repo = InMemoryJobRepository()
        await repo.create(_job())
        seen = []

        async def consume():
            async for job in repo.watch("fam", "j1"):
                seen.append(job.status)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        for status in (JobStatus.VALIDATING, JobStatus.RENDERING, JobStatus.FAILED):
            await repo.update("fam", "j1", {"status": status})
        await asyncio.wait_for(task, timeout=1)
        assert seen == [JobStatus.PENDING, JobStatus.VALIDATING, JobStatus.RENDERING, JobStatus.FAILED]
        assert repo._watchers[("fam", "j1")] == []

    async def test_watch_ends_when_job_awaits_acknowledgement(self):
        repo = InMemoryJobRepository()
        await repo.create(_job())
        seen = []

        async def consume():
            async for job in repo.watch("fam", "j1"):
                seen.append((job.status, job.awaiting_acknowledgement))

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)
        await repo.update("fam", "j1", {"status": JobStatus.VALIDATING})
        await repo.update("fam", "j1", {"awaiting_acknowledgement": True})
        await asyncio.wait_for(task, timeout=1)
        assert seen[-1] == (JobStatus.VALIDATING, True)
        assert repo._watchers[("fam", "j1")] == []
