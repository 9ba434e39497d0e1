"""
BookPress — Document store repositories.

Documents live under families/{family_id}/…:
  pages/{page_id}                 — authored scrapbook pages (read-only here)
  compilationJobs/{job_id}        — CompilationJob
  printOrders/{order_id}          — PrintOrder

Each repository has an in-memory implementation (tests, local dev) and a
Firestore one. watch() yields the current document, then every update,
until the record reaches a terminal state.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Protocol

from bookpress.errors import JobNotFoundError, OrderNotFoundError
from bookpress.models.job import CompilationJob, JobStatus
from bookpress.models.order import PrintOrder
from bookpress.models.page import ScrapbookPage
from bookpress.utils.logging import logger

JOB_TERMINAL = {JobStatus.COMPLETE, JobStatus.FAILED}


def _watch_done(job: CompilationJob) -> bool:
    """A blocked job sits in validating until resubmitted, so its stream ends too."""
    return job.status in JOB_TERMINAL or job.awaiting_acknowledgement


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PageStore(Protocol):
    async def get(self, family_id: str, page_id: str) -> ScrapbookPage | None: ...

    async def get_many(self, family_id: str, page_ids: list[str]) -> list[ScrapbookPage | None]: ...


class JobRepository(Protocol):
    async def create(self, job: CompilationJob) -> CompilationJob: ...

    async def get(self, family_id: str, job_id: str) -> CompilationJob | None: ...

    async def update(self, family_id: str, job_id: str, fields: dict[str, Any]) -> CompilationJob: ...

    async def find_by_fingerprint(self, family_id: str, fingerprint: str) -> list[CompilationJob]: ...

    def watch(self, family_id: str, job_id: str) -> AsyncIterator[CompilationJob]: ...


class OrderRepository(Protocol):
    async def create(self, order: PrintOrder) -> PrintOrder: ...

    async def get(self, family_id: str, order_id: str) -> PrintOrder | None: ...

    async def update(self, family_id: str, order_id: str, fields: dict[str, Any]) -> PrintOrder: ...

    async def find_by_provider_id(self, provider_job_id: str) -> PrintOrder | None: ...


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryPageStore:
    def __init__(self, pages: list[ScrapbookPage] | None = None):
        self.pages: dict[tuple[str, str], ScrapbookPage] = {}
        for page in pages or []:
            self.add(page)

    def add(self, page: ScrapbookPage) -> None:
        self.pages[(page.family_id, page.id)] = page

    async def get(self, family_id, page_id):
        return self.pages.get((family_id, page_id))

    async def get_many(self, family_id, page_ids):
        return [self.pages.get((family_id, pid)) for pid in page_ids]


class InMemoryJobRepository:
    def __init__(self):
        self.jobs: dict[tuple[str, str], CompilationJob] = {}
        self._watchers: dict[tuple[str, str], list[asyncio.Queue]] = {}

    async def create(self, job):
        self.jobs[(job.family_id, job.id)] = job
        return job

    async def get(self, family_id, job_id):
        return self.jobs.get((family_id, job_id))

    async def update(self, family_id, job_id, fields):
        current = self.jobs.get((family_id, job_id))
        if current is None:
            raise JobNotFoundError(job_id)
        job = current.model_copy(update={**fields, "updated_at": _now()})
        self.jobs[(family_id, job_id)] = job
        for queue in self._watchers.get((family_id, job_id), []):
            queue.put_nowait(job)
        return job

    async def find_by_fingerprint(self, family_id, fingerprint):
        found = [j for (fid, _), j in self.jobs.items() if fid == family_id and j.fingerprint == fingerprint]
        return sorted(found, key=lambda j: j.created_at, reverse=True)

    async def watch(self, family_id, job_id):
        job = self.jobs.get((family_id, job_id))
        if job is None:
            raise JobNotFoundError(job_id)
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.setdefault((family_id, job_id), []).append(queue)
        try:
            yield job
            while not _watch_done(job):
                job = await queue.get()
                yield job
        finally:
            self._watchers[(family_id, job_id)].remove(queue)


class InMemoryOrderRepository:
    def __init__(self):
        self.orders: dict[tuple[str, str], PrintOrder] = {}

    async def create(self, order):
        self.orders[(order.family_id, order.id)] = order
        return order

    async def get(self, family_id, order_id):
        return self.orders.get((family_id, order_id))

    async def update(self, family_id, order_id, fields):
        current = self.orders.get((family_id, order_id))
        if current is None:
            raise OrderNotFoundError(order_id)
        order = current.model_copy(update={**fields, "updated_at": _now()})
        self.orders[(family_id, order_id)] = order
        return order

    async def find_by_provider_id(self, provider_job_id):
        for order in self.orders.values():
            if order.provider_job_id == provider_job_id:
                return order
        return None


# ---------------------------------------------------------------------------
# Firestore
# ---------------------------------------------------------------------------


def _jsonable(model, fields: dict[str, Any]) -> dict[str, Any]:
    """Dump only the changed fields (plus updated_at) in JSON-safe form."""
    return model.model_dump(mode="json", include=set(fields) | {"updated_at"})


class FirestorePageStore:
    def __init__(self, client=None):
        from firebase_admin import firestore

        self.db = client or firestore.client()

    def _ref(self, family_id: str, page_id: str):
        return self.db.collection("families").document(family_id).collection("pages").document(page_id)

    async def get(self, family_id, page_id):
        snap = await asyncio.to_thread(self._ref(family_id, page_id).get)
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        return ScrapbookPage.model_validate({**data, "id": snap.id, "family_id": family_id})

    async def get_many(self, family_id, page_ids):
        return list(await asyncio.gather(*(self.get(family_id, pid) for pid in page_ids)))


class FirestoreJobRepository:
    def __init__(self, client=None):
        from firebase_admin import firestore

        self.db = client or firestore.client()

    def _collection(self, family_id: str):
        return self.db.collection("families").document(family_id).collection("compilationJobs")

    async def create(self, job):
        await asyncio.to_thread(self._collection(job.family_id).document(job.id).set, job.model_dump(mode="json"))
        return job

    async def get(self, family_id, job_id):
        snap = await asyncio.to_thread(self._collection(family_id).document(job_id).get)
        if not snap.exists:
            return None
        return CompilationJob.model_validate(snap.to_dict())

    async def update(self, family_id, job_id, fields):
        current = await self.get(family_id, job_id)
        if current is None:
            raise JobNotFoundError(job_id)
        job = current.model_copy(update={**fields, "updated_at": _now()})
        await asyncio.to_thread(self._collection(family_id).document(job_id).update, _jsonable(job, fields))
        return job

    async def find_by_fingerprint(self, family_id, fingerprint):
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self._collection(family_id).where(filter=FieldFilter("fingerprint", "==", fingerprint))
        snaps = await asyncio.to_thread(lambda: list(query.stream()))
        jobs = [CompilationJob.model_validate(s.to_dict()) for s in snaps]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def watch(self, family_id, job_id):
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()

        def on_snapshot(snapshots, changes, read_time):
            for snap in snapshots:
                if snap.exists:
                    loop.call_soon_threadsafe(queue.put_nowait, snap.to_dict())

        watch = self._collection(family_id).document(job_id).on_snapshot(on_snapshot)
        try:
            while True:
                job = CompilationJob.model_validate(await queue.get())
                yield job
                if _watch_done(job):
                    break
        finally:
            watch.unsubscribe()
            logger.info("[%s] Watch closed", job_id)


class FirestoreOrderRepository:
    def __init__(self, client=None):
        from firebase_admin import firestore

        self.db = client or firestore.client()

    def _collection(self, family_id: str):
        return self.db.collection("families").document(family_id).collection("printOrders")

    async def create(self, order):
        await asyncio.to_thread(self._collection(order.family_id).document(order.id).set, order.model_dump(mode="json"))
        return order

    async def get(self, family_id, order_id):
        snap = await asyncio.to_thread(self._collection(family_id).document(order_id).get)
        if not snap.exists:
            return None
        return PrintOrder.model_validate(snap.to_dict())

    async def update(self, family_id, order_id, fields):
        current = await self.get(family_id, order_id)
        if current is None:
            raise OrderNotFoundError(order_id)
        order = current.model_copy(update={**fields, "updated_at": _now()})
        await asyncio.to_thread(self._collection(family_id).document(order_id).update, _jsonable(order, fields))
        return order

    async def find_by_provider_id(self, provider_job_id):
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self.db.collection_group("printOrders").where(
            filter=FieldFilter("provider_job_id", "==", provider_job_id)
        ).limit(1)
        snaps = await asyncio.to_thread(lambda: list(query.stream()))
        return PrintOrder.model_validate(snaps[0].to_dict()) if snaps else None
