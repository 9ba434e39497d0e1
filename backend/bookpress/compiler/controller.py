"""
BookPress — Compilation job controller.

Runs a compile request as a state machine:

  pending → validating → rendering → merging → complete
                 ↘           ↘          ↘
                            failed

  - identical ordered page content + book size is served from cache
  - critical bleed issues block until the caller acknowledges them
  - pages render on a bounded worker pool; the first failure cancels the rest
  - the merged book keeps input page order, whatever order renders finish in

Every step is timed, logged, and recorded on the job document, which is
the only place status and progress live.
"""

from __future__ import annotations

import asyncio
import enum
import hashlib
import math
import time
import uuid
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable

from pydantic import BaseModel, Field

from bookpress.errors import (
    BookPressError,
    InvalidTransitionError,
    JobNotCompleteError,
    JobNotFoundError,
    PageNotFoundError,
    RenderFailedError,
)
from bookpress.layout.bleed import validate_book
from bookpress.layout.dimensions import BASE_DPI, DEVICE_SCALE_FACTOR
from bookpress.models.book import BookSize
from bookpress.models.job import CompilationJob, JobStatus, StepTiming, can_transition
from bookpress.models.page import ScrapbookPage
from bookpress.models.validation import Acknowledgement, BleedValidationReport
from bookpress.pdf.assemble import ArtifactAssembler
from bookpress.render.rasterizer import PageRasterizer
from bookpress.storage.objects import ObjectStore, page_artifact_key
from bookpress.storage.repository import JobRepository, PageStore
from bookpress.utils.logging import logger


class CompileRequest(BaseModel):
    family_id: str
    book_size: BookSize
    page_ids: list[str] = Field(min_length=1)
    family_name: str = ""
    requested_by: str = ""
    acknowledge_warnings: bool = False
    force_recompile: bool = False


class OutcomeKind(str, enum.Enum):
    CACHED = "cached"
    IN_PROGRESS = "in_progress"
    STARTED = "started"
    BLOCKED = "blocked"


class CompileOutcome(BaseModel):
    kind: OutcomeKind
    job: CompilationJob
    report: BleedValidationReport | None = None
    estimated_minutes: int | None = None
    message: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def content_fingerprint(
    family_id: str,
    book_size: BookSize,
    pages: list[ScrapbookPage],
    bucket: int,
) -> str:
    """Stable over identical ordered page revisions within one cache bucket."""
    h = hashlib.sha256()
    h.update(f"{family_id}|{book_size.value}|".encode())
    h.update(",".join(f"{p.id}:{p.revision}" for p in pages).encode())
    h.update(f"|{bucket}".encode())
    return h.hexdigest()[:16]


class CompilationJobController:
    """
    Sole writer of CompilationJob status and progress.

    Rendering runs in a background task per job; join() awaits it.
    """

    def __init__(
        self,
        jobs: JobRepository,
        pages: PageStore,
        rasterizer: PageRasterizer,
        assembler: ArtifactAssembler,
        store: ObjectStore,
        concurrency: int = 3,
        scale: float = DEVICE_SCALE_FACTOR,
        cache_bucket_seconds: int = 86400,
        seconds_per_page: int = 5,
        merge_overhead_seconds: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        self.jobs = jobs
        self.pages = pages
        self.rasterizer = rasterizer
        self.assembler = assembler
        self.store = store
        self.concurrency = max(1, concurrency)
        self.scale = scale
        self.cache_bucket_seconds = cache_bucket_seconds
        self.seconds_per_page = seconds_per_page
        self.merge_overhead_seconds = merge_overhead_seconds
        self.clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    # ---- Queries ----

    def estimated_minutes(self, page_count: int) -> int:
        seconds = page_count * self.seconds_per_page + self.merge_overhead_seconds
        return math.ceil(seconds / 60)

    async def get_job(self, family_id: str, job_id: str) -> CompilationJob:
        job = await self.jobs.get(family_id, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def watch(self, family_id: str, job_id: str) -> AsyncIterator[CompilationJob]:
        return self.jobs.watch(family_id, job_id)

    async def join(self, job_id: str) -> None:
        """Wait for a job's background run to finish (no-op if none)."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.shield(task)

    # ---- Submission ----

    async def _load_pages(self, family_id: str, page_ids: list[str]) -> list[ScrapbookPage]:
        loaded = await self.pages.get_many(family_id, page_ids)
        for page_id, page in zip(page_ids, loaded):
            if page is None:
                raise PageNotFoundError(family_id, page_id)
        return loaded  # type: ignore[return-value]

    async def submit(self, request: CompileRequest) -> CompileOutcome:
        family_id = request.family_id
        size = request.book_size
        pages = await self._load_pages(family_id, request.page_ids)

        bucket = int(self.clock() // self.cache_bucket_seconds)
        fingerprint = content_fingerprint(family_id, size, pages, bucket)
        existing = await self.jobs.find_by_fingerprint(family_id, fingerprint)

        if not request.force_recompile:
            for job in existing:
                if job.status == JobStatus.COMPLETE and job.storage_key:
                    return await self._cached(job)
            for job in existing:
                if job.is_in_progress:
                    logger.info("[%s] Compile already running for %s", job.id, fingerprint)
                    return CompileOutcome(
                        kind=OutcomeKind.IN_PROGRESS,
                        job=job,
                        message="A compilation for these pages is already running.",
                    )

        blocked = next((j for j in existing if j.awaiting_acknowledgement), None)
        if blocked is not None:
            job = blocked
            logger.info("[%s] Resubmission of blocked job", job.id)
        else:
            job = await self.jobs.create(CompilationJob(
                id=uuid.uuid4().hex[:12],
                family_id=family_id,
                family_name=request.family_name or "Untitled Family",
                created_by=request.requested_by,
                fingerprint=fingerprint,
                book_size=size,
                page_ids=[p.id for p in pages],
                total_pages=len(pages),
            ))
            logger.info("=" * 60)
            logger.info("[%s] Compile %d pages (%s) for family %s", job.id, len(pages), size.code, family_id)
            logger.info("=" * 60)
            job = await self._transition(job, JobStatus.VALIDATING)

        job, report = await self._validate(job, pages)

        if report.should_block and not request.acknowledge_warnings:
            job = await self.jobs.update(family_id, job.id, {"awaiting_acknowledgement": True})
            logger.warning("[%s] Blocked: %s", job.id, report.message)
            return CompileOutcome(kind=OutcomeKind.BLOCKED, job=job, report=report, message=report.message)

        if request.acknowledge_warnings and report.summary.total_critical > 0:
            report = report.model_copy(update={
                "acknowledgement": Acknowledgement(by=request.requested_by or "unknown", at=_now()),
            })
            logger.info("[%s] Critical issues acknowledged by %s", job.id, request.requested_by or "unknown")

        job = await self._transition(
            job, JobStatus.RENDERING,
            awaiting_acknowledgement=False,
            bleed_validation=report,
        )
        self._tasks[job.id] = asyncio.create_task(self._run(job, pages))

        minutes = self.estimated_minutes(len(pages))
        return CompileOutcome(
            kind=OutcomeKind.STARTED,
            job=job,
            report=report,
            estimated_minutes=minutes,
            message=f"Compilation started for {len(pages)} pages. Poll job status for progress.",
        )

    async def _cached(self, job: CompilationJob) -> CompileOutcome:
        if job.download_expired():
            ref = await self.assembler.refresh_download(job.storage_key)
            job = await self.jobs.update(job.family_id, job.id, {
                "download_url": ref.url,
                "download_expires_at": ref.expires_at,
            })
        logger.info("[%s] Cache hit, no re-render", job.id)
        return CompileOutcome(
            kind=OutcomeKind.CACHED,
            job=job,
            report=job.bleed_validation,
            message="Using cached compilation. No changes detected since last compile.",
        )

    async def _validate(self, job: CompilationJob, pages: list[ScrapbookPage]) -> tuple[CompilationJob, BleedValidationReport]:
        t = time.perf_counter()
        report = validate_book(pages, job.book_size)
        job = await self.jobs.update(job.family_id, job.id, {
            "bleed_validation": report,
            "validated_at": _now(),
            "total_pages": len(pages),
        })
        detail = f"{report.summary.total_critical} critical, {report.summary.total_warnings} warnings"
        job = await self._record_step(job, "validate", t, detail=detail)
        return job, report

    # ---- State machine ----

    async def _transition(self, job: CompilationJob, target: JobStatus, **fields: Any) -> CompilationJob:
        current = await self.get_job(job.family_id, job.id)
        if not can_transition(current.status, target):
            raise InvalidTransitionError("CompilationJob", current.status.value, target.value)
        logger.info("[%s] %s → %s", job.id, current.status.value, target.value)
        return await self.jobs.update(job.family_id, job.id, {"status": target, **fields})

    async def _record_step(
        self, job: CompilationJob, name: str, start: float, status: str = "ok", detail: str = "",
    ) -> CompilationJob:
        ms = int((time.perf_counter() - start) * 1000)
        timing = StepTiming(step=name, duration_ms=ms, status=status, detail=detail)
        symbol = "✓" if status == "ok" else ("⊘" if status == "skipped" else "✗")
        logger.info("  %s %s — %dms %s", symbol, name, ms, detail)
        current = await self.get_job(job.family_id, job.id)
        return await self.jobs.update(job.family_id, job.id, {"timings": [*current.timings, timing]})

    async def _fail(self, job: CompilationJob, message: str, failed_page_id: str | None = None) -> CompilationJob:
        current = await self.get_job(job.family_id, job.id)
        if not can_transition(current.status, JobStatus.FAILED):
            logger.error("[%s] Cannot fail job in state %s: %s", job.id, current.status.value, message)
            return current
        logger.error("[%s] Job failed: %s", job.id, message)
        return await self._transition(
            current, JobStatus.FAILED,
            error_message=message,
            failed_page_id=failed_page_id,
            completed_at=_now(),
        )

    # ---- Background run ----

    async def _run(self, job: CompilationJob, pages: list[ScrapbookPage]) -> None:
        started = time.perf_counter()
        step_start = started
        step = "render"
        try:
            images = await self._render_all(job, pages)
            job = await self._record_step(job, "render", step_start, detail=f"{len(images)} pages")

            step, step_start = "merge", time.perf_counter()
            job = await self._transition(job, JobStatus.MERGING)
            artifact = await self.assembler.assemble(
                job.family_id, job.id, job.fingerprint, job.book_size, images,
                title=f"{job.family_name} Yearbook" if job.family_name else "Yearbook",
                author=job.family_name,
            )
            ref = await self.assembler.download_reference(artifact.storage_key)
            job = await self._record_step(job, "merge", step_start, detail=f"{artifact.size_bytes} bytes")

            job = await self._transition(
                job, JobStatus.COMPLETE,
                storage_key=artifact.storage_key,
                file_size_bytes=artifact.size_bytes,
                final_page_count=artifact.page_count,
                content_hash=artifact.content_hash,
                download_url=ref.url,
                download_expires_at=ref.expires_at,
                completed_at=_now(),
            )
            total_ms = int((time.perf_counter() - started) * 1000)
            logger.info("[%s] Compile complete — %d pages, %dms", job.id, artifact.page_count, total_ms)

        except BookPressError as exc:
            job = await self._record_step(job, step, step_start, status="failed", detail=exc.code)
            await self._fail(job, exc.message, failed_page_id=getattr(exc, "page_id", None))
        except Exception as exc:
            logger.error("[%s] Unexpected error during %s", job.id, step, exc_info=True)
            job = await self._record_step(job, step, step_start, status="failed", detail=type(exc).__name__)
            await self._fail(job, f"Unexpected error during {step}: {exc}")
        finally:
            self._tasks.pop(job.id, None)

    async def _render_page(self, job: CompilationJob, page: ScrapbookPage) -> bytes:
        dpi = round(BASE_DPI * self.scale)
        key = page_artifact_key(job.family_id, page.id, page.revision, dpi)
        if await self.store.exists(key):
            logger.info("[%s] Page %s reused from %s", job.id, page.id, key)
            return await self.store.get(key)

        try:
            png = await self.rasterizer.rasterize(job.family_id, page.id, job.book_size, scale=self.scale)
            await self.store.put(key, png, content_type="image/png", overwrite=True)
        except BookPressError as exc:
            if getattr(exc, "page_id", None):
                raise
            raise RenderFailedError(page.id, exc.message) from exc
        return png

    async def _render_all(self, job: CompilationJob, pages: list[ScrapbookPage]) -> list[bytes]:
        """Render on a bounded pool. Results are slotted by page index."""
        results: list[bytes | None] = [None] * len(pages)
        queue: asyncio.Queue[tuple[int, ScrapbookPage]] = asyncio.Queue()
        for index, page in enumerate(pages):
            queue.put_nowait((index, page))

        lock = asyncio.Lock()
        progress = {"rendered": 0, "batch": 0}

        async def worker() -> None:
            while True:
                try:
                    index, page = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                png = await self._render_page(job, page)
                results[index] = png
                async with lock:
                    progress["rendered"] += 1
                    progress["batch"] = max(progress["batch"], index // self.concurrency)
                    await self.jobs.update(job.family_id, job.id, {
                        "pages_rendered": progress["rendered"],
                        "current_batch": progress["batch"],
                    })

        workers = [asyncio.create_task(worker()) for _ in range(min(self.concurrency, len(pages)))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for w in workers:
                w.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        return [png for png in results if png is not None]

    # ---- Downloads ----

    async def refresh_download(self, family_id: str, job_id: str) -> CompilationJob:
        """Mint a new download URL for a complete job. Never re-renders."""
        job = await self.get_job(family_id, job_id)
        if job.status != JobStatus.COMPLETE or not job.storage_key:
            raise JobNotCompleteError(job_id, job.status.value)
        ref = await self.assembler.refresh_download(job.storage_key)
        logger.info("[%s] Download refreshed (expires %s)", job_id, ref.expires_at.isoformat())
        return await self.jobs.update(family_id, job_id, {
            "download_url": ref.url,
            "download_expires_at": ref.expires_at,
        })
