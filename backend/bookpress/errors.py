"""
BookPress — Structured error catalog.

Every error has a code, human message, and suggested fix.
Job and order records store the message, never a traceback.
"""

from __future__ import annotations

from typing import Any


class BookPressError(Exception):
    """Base error with structured code + suggestion."""

    status_code = 400

    def __init__(self, code: str, message: str, suggestion: str = "", detail: Any = None):
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "error_code": self.code,
            "message": self.message,
        }
        if self.suggestion:
            d["suggestion"] = self.suggestion
        if self.detail:
            d["detail"] = self.detail
        return d


class InvalidBookSizeError(BookPressError):
    def __init__(self, size: str, valid: list[str]):
        super().__init__(
            code="INVALID_BOOK_SIZE",
            message=f"Invalid book size: {size}",
            suggestion=f"Valid options: {', '.join(valid)}.",
        )


class PageNotFoundError(BookPressError):
    status_code = 404

    def __init__(self, family_id: str, page_id: str):
        self.page_id = page_id
        super().__init__(
            code="PAGE_NOT_FOUND",
            message=f"Page {page_id} not found in family {family_id}",
            suggestion="Check the page ids; deleted pages cannot be compiled.",
        )


class JobNotFoundError(BookPressError):
    status_code = 404

    def __init__(self, job_id: str):
        super().__init__(
            code="JOB_NOT_FOUND",
            message=f"Compilation job not found: {job_id}",
        )


class JobNotCompleteError(BookPressError):
    status_code = 409

    def __init__(self, job_id: str, status: str):
        super().__init__(
            code="JOB_NOT_COMPLETE",
            message=f"Compilation job {job_id} is {status}, not complete",
            suggestion="Wait for the compilation to finish, or start a new one.",
        )


class InvalidTransitionError(BookPressError):
    status_code = 409

    def __init__(self, kind: str, current: str, target: str):
        super().__init__(
            code="INVALID_TRANSITION",
            message=f"{kind} cannot move from {current} to {target}",
        )


class RenderTokenError(BookPressError):
    status_code = 403

    def __init__(self, reason: str, page_id: str | None = None):
        self.reason = reason
        self.page_id = page_id
        target = f" for page {page_id}" if page_id else ""
        super().__init__(
            code="RENDER_TOKEN_INVALID",
            message=f"Render token rejected{target}: {reason}",
        )


class RenderTimeoutError(BookPressError):
    def __init__(self, page_id: str, timeout_s: float):
        self.page_id = page_id
        super().__init__(
            code="RENDER_TIMEOUT",
            message=f"Rendering page {page_id} timed out after {timeout_s:.0f}s",
            suggestion="Check that every image on the page is still reachable.",
        )


class RenderFailedError(BookPressError):
    def __init__(self, page_id: str, message: str):
        self.page_id = page_id
        super().__init__(
            code="RENDER_FAILED",
            message=f"Failed to render page {page_id}: {message}",
            suggestion="Start a new compilation; the page will be rendered again.",
        )


class AssemblyError(BookPressError):
    def __init__(self, message: str):
        super().__init__(
            code="ASSEMBLY_FAILED",
            message=f"Merge failed: {message}",
            suggestion="Start a new compilation.",
        )


class ArtifactExistsError(BookPressError):
    status_code = 409

    def __init__(self, key: str):
        super().__init__(
            code="ARTIFACT_EXISTS",
            message=f"Artifact already exists and is immutable: {key}",
        )


class StorageError(BookPressError):
    def __init__(self, operation: str, message: str):
        super().__init__(
            code="STORAGE_ERROR",
            message=f"Storage {operation} failed: {message}",
        )


class ProviderAPIError(BookPressError):
    status_code = 502

    def __init__(self, operation: str, status: int, body: str = ""):
        self.status = status
        super().__init__(
            code=f"PROVIDER_{operation.upper().replace(' ', '_')}_ERROR",
            message=f"Print provider {operation} returned HTTP {status}",
            suggestion="Check the provider credentials and the order details.",
            detail=body[:500] if body else None,
        )


class OrderNotFoundError(BookPressError):
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__(
            code="ORDER_NOT_FOUND",
            message=f"Print order not found: {order_id}",
        )


class CoverCompositionError(BookPressError):
    def __init__(self, message: str):
        super().__init__(
            code="COVER_FAILED",
            message=f"Cover generation failed: {message}",
            suggestion="Check the cover image URLs and colors.",
        )
