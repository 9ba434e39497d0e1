"""
BookPress — Compilation job record and state machine.

  pending → validating → rendering → merging → complete
                 ↘           ↘          ↘
                            failed

The job document is the single mutable point of truth for a compile
attempt; only the Job Controller writes its status and progress.
Progress percentage is derived, never stored.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field, computed_field

from bookpress.models.book import BookSize
from bookpress.models.validation import BleedValidationReport

BLEED_INCHES = 0.125


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    VALIDATING = "validating"
    RENDERING = "rendering"
    MERGING = "merging"
    COMPLETE = "complete"
    FAILED = "failed"


TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.VALIDATING},
    JobStatus.VALIDATING: {JobStatus.RENDERING, JobStatus.FAILED},
    JobStatus.RENDERING: {JobStatus.MERGING, JobStatus.FAILED},
    JobStatus.MERGING: {JobStatus.COMPLETE, JobStatus.FAILED},
    JobStatus.COMPLETE: set(),
    JobStatus.FAILED: set(),
}

IN_PROGRESS = {JobStatus.PENDING, JobStatus.VALIDATING, JobStatus.RENDERING, JobStatus.MERGING}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in TRANSITIONS[current]


def progress_percent(status: JobStatus, pages_rendered: int, total_pages: int) -> int:
    if status == JobStatus.COMPLETE:
        return 100
    if status == JobStatus.MERGING:
        return 95
    if status in (JobStatus.PENDING, JobStatus.VALIDATING) or total_pages <= 0:
        return 0
    rendered = min(max(pages_rendered, 0), total_pages)
    return round(rendered / total_pages * 90)


def describe_status(status: JobStatus, pages_rendered: int, total_pages: int) -> str:
    if status == JobStatus.PENDING:
        return "Preparing..."
    if status == JobStatus.VALIDATING:
        return "Validating pages..."
    if status == JobStatus.RENDERING:
        current = min(pages_rendered + 1, total_pages)
        return f"Rendering page {current} of {total_pages}..."
    if status == JobStatus.MERGING:
        return "Assembling book..."
    if status == JobStatus.COMPLETE:
        return "Complete!"
    return "Failed"


class StepTiming(BaseModel):
    step: str
    duration_ms: int
    status: str = "ok"  # ok | skipped | failed
    detail: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CompilationJob(BaseModel):
    """One compile attempt. Never deleted; superseded by newer jobs."""

    id: str
    family_id: str
    family_name: str = ""
    created_by: str = ""
    fingerprint: str

    book_size: BookSize
    bleed_inches: float = BLEED_INCHES
    page_ids: list[str]

    status: JobStatus = JobStatus.PENDING
    pages_rendered: int = 0
    total_pages: int = 0
    current_batch: int = 0
    awaiting_acknowledgement: bool = False

    bleed_validation: BleedValidationReport | None = None
    validated_at: datetime | None = None

    storage_key: str | None = None
    download_url: str | None = None
    download_expires_at: datetime | None = None
    file_size_bytes: int | None = None
    final_page_count: int | None = None
    content_hash: str | None = None

    error_message: str | None = None
    failed_page_id: str | None = None
    timings: list[StepTiming] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None

    @computed_field
    @property
    def progress(self) -> int:
        return progress_percent(self.status, self.pages_rendered, self.total_pages)

    @computed_field
    @property
    def status_label(self) -> str:
        return describe_status(self.status, self.pages_rendered, self.total_pages)

    @property
    def is_in_progress(self) -> bool:
        return self.status in IN_PROGRESS and not self.awaiting_acknowledgement

    def download_expired(self, now: datetime | None = None) -> bool:
        if not self.download_expires_at:
            return True
        return self.download_expires_at <= (now or _now())
