"""Unit tests for the structured error catalog."""

import pytest
from bookpress.errors import (
    BookPressError, InvalidBookSizeError, PageNotFoundError, JobNotFoundError,
    JobNotCompleteError, InvalidTransitionError, RenderTokenError, RenderTimeoutError, RenderFailedError, AssemblyError,
    ArtifactExistsError, StorageError, ProviderAPIError, OrderNotFoundError,
    CoverCompositionError,
)


class TestErrorCatalog:
    def test_base_error(self):
        e = BookPressError(code="TEST", message="test msg", suggestion="try this")
        d = e.to_dict()
        assert d["error_code"] == "TEST"
        assert d["message"] == "test msg"
        assert d["suggestion"] == "try this"
        assert "detail" not in d
        assert e.status_code == 400

    def test_invalid_book_size(self):
        e = InvalidBookSizeError("9x9", ["small-square", "portrait"])
        assert e.code == "INVALID_BOOK_SIZE"
        assert "9x9" in e.message
        assert "portrait" in e.suggestion

    def test_page_not_found(self):
        e = PageNotFoundError("fam", "p7")
        assert e.code == "PAGE_NOT_FOUND"
        assert e.page_id == "p7"
        assert e.status_code == 404

    def test_job_errors(self):
        assert JobNotFoundError("j1").status_code == 404
        e = JobNotCompleteError("j1", "rendering")
        assert e.code == "JOB_NOT_COMPLETE"
        assert "rendering" in e.message
        assert e.status_code == 409

    def test_invalid_transition(self):
        e = InvalidTransitionError("CompilationJob", "complete", "rendering")
        assert e.code == "INVALID_TRANSITION"
        assert "complete" in e.message and "rendering" in e.message

    def test_render_errors_carry_page(self):
        assert RenderTimeoutError("p3", 60).page_id == "p3"
        assert "60s" in RenderTimeoutError("p3", 60).message
        e = RenderFailedError("p4", "boom")
        assert e.code == "RENDER_FAILED"
        assert e.page_id == "p4"

    def test_render_token(self):
        e = RenderTokenError("expired")
        assert e.reason == "expired"
        assert e.page_id is None
        assert e.status_code == 403
        assert RenderTokenError("expired", page_id="p9").message == "Render token rejected for page p9: expired"

    def test_provider_api_error(self):
        e = ProviderAPIError("create print job", 400, "bad address")
        assert e.code == "PROVIDER_CREATE_PRINT_JOB_ERROR"
        assert "400" in e.message
        assert e.status == 400
        assert e.status_code == 502
        assert e.to_dict()["detail"] == "bad address"

    def test_provider_body_truncated(self):
        e = ProviderAPIError("status", 500, "x" * 2000)
        assert len(e.detail) == 500

    def test_storage_errors(self):
        assert ArtifactExistsError("k").status_code == 409
        assert StorageError("get", "gone").code == "STORAGE_ERROR"
        assert OrderNotFoundError("o1").status_code == 404
        assert CoverCompositionError("x").code == "COVER_FAILED"
        assert AssemblyError("x").code == "ASSEMBLY_FAILED"

    @pytest.mark.parametrize("error", [
        InvalidBookSizeError("x", []),
        PageNotFoundError("f", "p"),
        JobNotFoundError("j"),
        RenderTokenError("invalid"),
        AssemblyError("x"),
        OrderNotFoundError("o"),
    ])
    def test_all_errors_are_exceptions(self, error):
        assert isinstance(error, BookPressError)
        assert isinstance(error, Exception)
        assert error.to_dict()["error_code"] == error.code
