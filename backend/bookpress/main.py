"""
BookPress — FastAPI Backend

Endpoints:
  POST /v1/books/compile                          — compile a book (or serve it from cache)
  GET  /v1/books/{family}/jobs/{job}              — job status and progress
  GET  /v1/books/{family}/jobs/{job}/events       — job updates as NDJSON
  POST /v1/books/refresh-download                 — new download URL for a complete job
  GET  /render/cover/{family}                     — cover spread view (snapshot target)
  GET  /render/{family}/{page}                    — page view (snapshot target)
  GET  /v1/render/views                           — registered render views
  POST /v1/print/calculate-cost                   — provider quote or local estimate
  POST /v1/print/place-order                      — cover + submit to the print provider
  GET  /v1/print/{family}/orders/{order}          — order status, refreshed from provider
  POST /v1/print/{family}/orders/{order}/cancel   — cancel within the production delay
  POST /v1/print/webhooks/lulu                    — provider status webhook
  GET  /health                                    — Health check
"""

import json
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from bookpress.compiler.controller import CompileRequest, OutcomeKind
from bookpress.container import Services, build_services
from bookpress.errors import BookPressError, ProviderAPIError
from bookpress.fulfillment.bridge import CostRequest, OrderRequest
from bookpress.layout.dimensions import DEVICE_SCALE_FACTOR
from bookpress.models.book import BookSize, CoverMode, CoverType, PaperType
from bookpress.models.order import CoverDesign, OrderStatus
from bookpress.render.views import render_cover_view, render_page_view
from bookpress.templates.registry import list_views
from bookpress.utils.logging import logger

VERSION = "1.0.0"

app = FastAPI(
    title="BookPress API",
    description=(
        "Compile family scrapbook pages into print-ready books "
        "and send them to a print-on-demand provider."
    ),
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-Id"],
)


@app.on_event("startup")
async def _startup_banner():
    from bookpress.core.config import settings
    logger.info("")
    logger.info("╔══════════════════════════════════════════════════╗")
    logger.info("║              BookPress  ·  API Server            ║")
    logger.info("╠══════════════════════════════════════════════════╣")
    logger.info("║  POST /v1/books/compile   → Compile a book       ║")
    logger.info("║  GET  /v1/books/…/jobs/…  → Job status           ║")
    logger.info("║  GET  /render/…           → Snapshot views       ║")
    logger.info("║  POST /v1/print/…         → Print fulfillment    ║")
    logger.info("║  GET  /health             → Health check         ║")
    logger.info("╠══════════════════════════════════════════════════╣")
    logger.info("║  Render base : %-34s║", settings.render.base_url)
    logger.info("║  Snapshots   : %-34s║", settings.render.snapshot_url)
    logger.info("║  Storage     : %-34s║", settings.storage.backend)
    logger.info("╚══════════════════════════════════════════════════╝")
    logger.info("")


def _services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        from bookpress.core.config import settings
        services = build_services(settings)
        request.app.state.services = services
    return services


@app.exception_handler(BookPressError)
async def _bookpress_error(request: Request, exc: BookPressError):
    logger.warning("%s %s — %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ──────────────────────────────────────────────────────────
# Request models
# ──────────────────────────────────────────────────────────

class RefreshDownloadRequest(BaseModel):
    family_id: str
    job_id: str


class WebhookPayload(BaseModel):
    topic: str = ""
    data: dict[str, Any] = Field(default_factory=dict)


# ──────────────────────────────────────────────────────────
# Books
# ──────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok", "service": "bookpress-api", "version": VERSION}


_OUTCOME_STATUS = {
    OutcomeKind.BLOCKED: 422,
    OutcomeKind.STARTED: 202,
    OutcomeKind.CACHED: 200,
    OutcomeKind.IN_PROGRESS: 200,
}


@app.post("/v1/books/compile")
async def compile_book(req: CompileRequest, request: Request):
    """
    Start compiling a book.

    202 when rendering starts, 200 for a cache hit or a job already
    running for the same content, 422 with the validation report when
    critical issues need acknowledging first.
    """
    request_id = uuid.uuid4().hex[:12]
    logger.info(
        "[%s] POST /v1/books/compile — family=%s size=%s pages=%d ack=%s",
        request_id, req.family_id, req.book_size.value, len(req.page_ids), req.acknowledge_warnings,
    )

    outcome = await _services(request).controller.submit(req)
    job = outcome.job
    body: dict[str, Any] = {
        "status": outcome.kind.value,
        "job_id": job.id,
        "message": outcome.message,
        "total_pages": job.total_pages,
        "book_size": job.book_size.value,
        "job": job.model_dump(mode="json"),
        "validation": outcome.report.model_dump(mode="json") if outcome.report else None,
    }
    if outcome.kind == OutcomeKind.STARTED:
        body["estimated_minutes"] = outcome.estimated_minutes
    if outcome.kind == OutcomeKind.CACHED:
        body["download_url"] = job.download_url
        body["download_expires_at"] = job.download_expires_at.isoformat() if job.download_expires_at else None
    if outcome.kind == OutcomeKind.BLOCKED:
        body["hint"] = "To proceed anyway, resend with acknowledge_warnings: true"

    return JSONResponse(status_code=_OUTCOME_STATUS[outcome.kind], content=body, headers={"X-Request-Id": request_id})


@app.get("/v1/books/{family_id}/jobs/{job_id}")
async def get_job(family_id: str, job_id: str, request: Request):
    job = await _services(request).controller.get_job(family_id, job_id)
    return job.model_dump(mode="json")


@app.get("/v1/books/{family_id}/jobs/{job_id}/events")
async def watch_job(family_id: str, job_id: str, request: Request):
    """Stream the job document as NDJSON until it completes, fails or is blocked."""
    controller = _services(request).controller
    await controller.get_job(family_id, job_id)

    async def _lines():
        async for job in controller.watch(family_id, job_id):
            yield json.dumps(job.model_dump(mode="json")) + "\n"

    return StreamingResponse(_lines(), media_type="application/x-ndjson")


@app.post("/v1/books/refresh-download")
async def refresh_download(req: RefreshDownloadRequest, request: Request):
    job = await _services(request).controller.refresh_download(req.family_id, req.job_id)
    return {
        "job_id": job.id,
        "download_url": job.download_url,
        "download_expires_at": job.download_expires_at.isoformat() if job.download_expires_at else None,
    }


# ──────────────────────────────────────────────────────────
# Render views (cover first: /render/cover/x would match the page route)
# ──────────────────────────────────────────────────────────

@app.get("/v1/render/views")
async def get_views():
    """List the render views the snapshot service can capture."""
    return [v.model_dump() for v in list_views()]


@app.get("/render/cover/{family_id}", response_class=HTMLResponse)
async def cover_view(
    family_id: str,
    request: Request,
    token: str | None = None,
    size: str = BookSize.SMALL_SQUARE.value,
    pages: int = 20,
    paper: PaperType = PaperType.STANDARD,
    cover_type: CoverType = CoverType.SOFT,
    mode: CoverMode = CoverMode.SOLID,
    family_name: str = "Family",
    title: str | None = None,
    primary: str = "#1e3a5f",
    secondary: str = "#ffffff",
    front_image: str | None = None,
    wrap_image: str | None = None,
    scale: float = 1.0,
    preview: bool = False,
):
    design = CoverDesign(
        mode=mode,
        family_name=family_name,
        book_title=title,
        primary_color=primary,
        secondary_color=secondary,
        front_image_url=front_image,
        wraparound_image_url=wrap_image,
        paper_type=paper,
    )
    html = await render_cover_view(
        _services(request).tokens, family_id, token, design,
        book_size=size, page_count=pages, cover_type=cover_type, scale=scale, preview=preview,
    )
    return HTMLResponse(html)


@app.get("/render/{family_id}/{page_id}", response_class=HTMLResponse)
async def page_view(
    family_id: str,
    page_id: str,
    request: Request,
    token: str | None = None,
    size: str = BookSize.SMALL_SQUARE.value,
    scale: float = DEVICE_SCALE_FACTOR,
    bleed: int | None = None,
):
    services = _services(request)
    html = await render_page_view(
        services.tokens, services.pages, family_id, page_id, token,
        book_size=size, scale=scale, bleed_px=bleed,
    )
    return HTMLResponse(html)


# ──────────────────────────────────────────────────────────
# Print
# ──────────────────────────────────────────────────────────

@app.post("/v1/print/calculate-cost")
async def calculate_cost(req: CostRequest, request: Request):
    cost = await _services(request).bridge.estimate_cost(req)
    return cost.model_dump(mode="json")


@app.post("/v1/print/place-order")
async def place_order(req: OrderRequest, request: Request):
    request_id = uuid.uuid4().hex[:12]
    logger.info("[%s] POST /v1/print/place-order — family=%s job=%s qty=%d",
                request_id, req.family_id, req.compilation_job_id, req.quantity)

    order = await _services(request).bridge.place_order(req)
    status_code = 502 if order.status == OrderStatus.FAILED else 200
    return JSONResponse(
        status_code=status_code,
        content=order.model_dump(mode="json"),
        headers={"X-Request-Id": request_id},
    )


@app.get("/v1/print/{family_id}/orders/{order_id}")
async def get_order(family_id: str, order_id: str, request: Request):
    bridge = _services(request).bridge
    try:
        order = await bridge.refresh_order(family_id, order_id)
    except ProviderAPIError as exc:
        logger.warning("Order %s: provider status unavailable (%s), returning stored record", order_id, exc.code)
        order = await bridge.get_order(family_id, order_id)
    return order.model_dump(mode="json")


@app.post("/v1/print/{family_id}/orders/{order_id}/cancel")
async def cancel_order(family_id: str, order_id: str, request: Request):
    order = await _services(request).bridge.cancel_order(family_id, order_id)
    return order.model_dump(mode="json")


@app.post("/v1/print/webhooks/lulu")
async def lulu_webhook(payload: WebhookPayload, request: Request):
    logger.info("Lulu webhook: %s", payload.topic or "(no topic)")
    order = await _services(request).bridge.apply_webhook(payload.model_dump())
    return {"ok": True, "order_id": order.id, "status": order.status.value}
