"""
BookPress — Print fulfillment bridge.

Turns a complete compilation into a print order:

  pending → submitted → processing → printing → shipped → delivered
     ↘          ↘            ↘           ↘
           failed / cancelled

  - cost estimates come from the provider, or a flagged local estimate
  - placing an order composes the cover, presigns both PDFs for 24 h and
    submits them; the order always resolves to submitted or failed
  - provider status (polled or pushed by webhook) is mapped onto the
    order lifecycle, with tracking details kept on the order
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import BaseModel, Field

from bookpress.errors import (
    BookPressError,
    InvalidTransitionError,
    JobNotCompleteError,
    JobNotFoundError,
    OrderNotFoundError,
)
from bookpress.fulfillment.lulu import LuluClient
from bookpress.fulfillment.pricing import estimate_cost
from bookpress.models.book import BookSize, CoverType
from bookpress.models.job import JobStatus
from bookpress.models.order import (
    ORDER_TRANSITIONS,
    CostBreakdown,
    CoverDesign,
    OrderStatus,
    PrintOrder,
    ShippingAddress,
    ShippingLevel,
    StatusEvent,
)
from bookpress.render.cover import CoverComposer, CoverSpec
from bookpress.storage.objects import ObjectStore
from bookpress.storage.repository import JobRepository, OrderRepository
from bookpress.utils.logging import logger

PROVIDER_STATUS_MAP: dict[str, OrderStatus] = {
    "CREATED": OrderStatus.SUBMITTED,
    "UNPAID": OrderStatus.SUBMITTED,
    "PAYMENT_IN_PROGRESS": OrderStatus.SUBMITTED,
    "PRODUCTION_DELAYED": OrderStatus.SUBMITTED,
    "PRODUCTION_READY": OrderStatus.PROCESSING,
    "IN_PRODUCTION": OrderStatus.PRINTING,
    "SHIPPED": OrderStatus.SHIPPED,
    "REJECTED": OrderStatus.FAILED,
    "CANCELED": OrderStatus.CANCELLED,
}


class CostRequest(BaseModel):
    family_id: str
    book_size: BookSize
    cover_type: CoverType = CoverType.SOFT
    page_count: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    shipping_address: ShippingAddress
    shipping_level: ShippingLevel = ShippingLevel.MAIL


class OrderRequest(BaseModel):
    family_id: str
    compilation_job_id: str
    interior_key: str | None = None
    cover_type: CoverType = CoverType.SOFT
    quantity: int = Field(default=1, ge=1)
    shipping_address: ShippingAddress
    shipping_level: ShippingLevel = ShippingLevel.MAIL
    contact_email: str = ""
    cover_design: CoverDesign = Field(default_factory=CoverDesign)
    requested_by: str = ""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def provider_status_name(data: dict[str, Any]) -> str:
    status = data.get("status")
    if isinstance(status, dict):
        return str(status.get("name") or "")
    return str(status or "")


def tracking_details(data: dict[str, Any]) -> tuple[str | None, str | None]:
    """Tracking id/url from either a webhook body or a print-job document."""
    shipping = data.get("shipping_info") or {}
    number = shipping.get("tracking_id")
    url = shipping.get("tracking_url")
    for item in data.get("line_items") or []:
        number = number or item.get("tracking_id")
        urls = item.get("tracking_urls") or []
        url = url or (urls[0] if urls else None)
    return number, url


class FulfillmentBridge:
    def __init__(
        self,
        client: LuluClient,
        jobs: JobRepository,
        orders: OrderRepository,
        covers: CoverComposer,
        store: ObjectStore,
        provider_url_ttl: int = 86400,
        production_delay: int = 120,
        default_contact_email: str = "",
    ):
        self.client = client
        self.jobs = jobs
        self.orders = orders
        self.covers = covers
        self.store = store
        self.provider_url_ttl = provider_url_ttl
        self.production_delay = production_delay
        self.default_contact_email = default_contact_email

    # ---- Cost ----

    async def estimate_cost(self, request: CostRequest) -> CostBreakdown:
        try:
            return await self.client.calculate_cost(
                request.book_size,
                request.cover_type,
                request.page_count,
                request.quantity,
                request.shipping_address,
                request.shipping_level,
            )
        except (BookPressError, httpx.HTTPError, ValueError, KeyError) as exc:
            logger.warning("Provider cost calculation unavailable, using local estimate: %s", exc)
            return estimate_cost(
                request.book_size,
                request.cover_type,
                request.page_count,
                request.quantity,
                request.shipping_level,
            )

    # ---- Lifecycle ----

    async def _transition(self, order: PrintOrder, target: OrderStatus, **fields: Any) -> PrintOrder:
        if target not in ORDER_TRANSITIONS[order.status]:
            raise InvalidTransitionError("PrintOrder", order.status.value, target.value)
        event = StatusEvent(
            status=target.value,
            timestamp=_now(),
            provider_status=fields.get("provider_status", order.provider_status),
            tracking_number=fields.get("tracking_number", order.tracking_number),
        )
        logger.info("[order %s] %s → %s", order.id, order.status.value, target.value)
        return await self.orders.update(order.family_id, order.id, {
            "status": target,
            "status_history": [*order.status_history, event],
            **fields,
        })

    async def get_order(self, family_id: str, order_id: str) -> PrintOrder:
        order = await self.orders.get(family_id, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # ---- Place ----

    async def place_order(self, request: OrderRequest) -> PrintOrder:
        """
        Create the order, compose its cover and submit both PDFs.

        The returned order is submitted (with the provider job id) or failed
        (with the error); it is never left pending.
        """
        job = await self.jobs.get(request.family_id, request.compilation_job_id)
        if job is None:
            raise JobNotFoundError(request.compilation_job_id)
        if job.status != JobStatus.COMPLETE or not job.storage_key:
            raise JobNotCompleteError(job.id, job.status.value)
        if request.interior_key and request.interior_key != job.storage_key:
            logger.warning(
                "[%s] Order interior key %s differs from the job artifact; using %s",
                job.id, request.interior_key, job.storage_key,
            )

        page_count = job.final_page_count or job.total_pages
        order = await self.orders.create(PrintOrder(
            id=uuid.uuid4().hex[:12],
            family_id=request.family_id,
            compilation_job_id=job.id,
            interior_key=job.storage_key,
            created_by=request.requested_by,
            book_size=job.book_size,
            cover_type=request.cover_type,
            page_count=page_count,
            quantity=request.quantity,
            shipping_address=request.shipping_address,
            shipping_level=request.shipping_level,
            contact_email=request.contact_email or self.default_contact_email,
            cover_design=request.cover_design,
            status_history=[StatusEvent(status=OrderStatus.PENDING.value, timestamp=_now())],
        ))
        logger.info("[order %s] Placing %d × %s (%d pages) for job %s",
                    order.id, order.quantity, job.book_size.code, page_count, job.id)

        try:
            cover = await self.covers.compose(order.family_id, order.id, CoverSpec(
                book_size=job.book_size,
                page_count=page_count,
                cover_type=request.cover_type,
                design=request.cover_design,
            ))
            order = await self.orders.update(order.family_id, order.id, {"cover_key": cover.storage_key})

            interior_url = await self.store.presign(order.interior_key, self.provider_url_ttl)
            cover_url = await self.store.presign(cover.storage_key, self.provider_url_ttl)

            data = await self.client.create_print_job(
                external_id=f"bp-{order.family_id}-{job.id}-{order.id}",
                book_size=order.book_size,
                cover_type=order.cover_type,
                page_count=order.page_count,
                quantity=order.quantity,
                interior_url=interior_url,
                cover_url=cover_url,
                address=order.shipping_address,
                shipping_level=order.shipping_level,
                contact_email=order.contact_email,
                production_delay=self.production_delay,
            )
            return await self._transition(
                order, OrderStatus.SUBMITTED,
                provider_job_id=str(data.get("id")),
                provider_status=provider_status_name(data) or "CREATED",
                submitted_at=_now(),
            )
        except BookPressError as exc:
            return await self._transition(order, OrderStatus.FAILED, error=exc.message)
        except Exception as exc:
            logger.error("[order %s] Unexpected error while placing order", order.id, exc_info=True)
            await self._transition(order, OrderStatus.FAILED, error=f"Unexpected error: {exc}")
            raise

    # ---- Provider status ----

    async def _apply_provider_status(self, order: PrintOrder, data: dict[str, Any]) -> PrintOrder:
        name = provider_status_name(data)
        number, url = tracking_details(data)
        fields: dict[str, Any] = {"provider_status": name or order.provider_status}
        if number:
            fields["tracking_number"] = number
        if url:
            fields["tracking_url"] = url

        target = PROVIDER_STATUS_MAP.get(name)
        if target is None:
            logger.warning("[order %s] Unknown provider status %r", order.id, name)
            return await self.orders.update(order.family_id, order.id, fields)
        if target == order.status:
            if name != order.provider_status:
                event = StatusEvent(
                    status=order.status.value, timestamp=_now(),
                    provider_status=name, tracking_number=fields.get("tracking_number"),
                )
                fields["status_history"] = [*order.status_history, event]
            return await self.orders.update(order.family_id, order.id, fields)
        if target not in ORDER_TRANSITIONS[order.status]:
            logger.warning(
                "[order %s] Ignoring provider status %s: %s cannot move to %s",
                order.id, name, order.status.value, target.value,
            )
            return order
        return await self._transition(order, target, **fields)

    async def refresh_order(self, family_id: str, order_id: str) -> PrintOrder:
        """Pull the provider's current status onto the order."""
        order = await self.get_order(family_id, order_id)
        if not order.provider_job_id or not ORDER_TRANSITIONS[order.status]:
            return order
        data = await self.client.get_print_job(order.provider_job_id)
        return await self._apply_provider_status(order, data)

    async def cancel_order(self, family_id: str, order_id: str) -> PrintOrder:
        order = await self.get_order(family_id, order_id)
        if OrderStatus.CANCELLED not in ORDER_TRANSITIONS[order.status]:
            raise InvalidTransitionError("PrintOrder", order.status.value, OrderStatus.CANCELLED.value)
        if order.provider_job_id:
            await self.client.cancel_print_job(order.provider_job_id)
        return await self._transition(order, OrderStatus.CANCELLED, provider_status="CANCELED")

    async def apply_webhook(self, payload: dict[str, Any]) -> PrintOrder:
        """Handle a PRINT_JOB_STATUS_CHANGED notification."""
        data = payload.get("data") or payload
        provider_id = data.get("id")
        if provider_id is None:
            raise OrderNotFoundError("(webhook without print job id)")
        order = await self.orders.find_by_provider_id(str(provider_id))
        if order is None:
            raise OrderNotFoundError(f"provider job {provider_id}")
        return await self._apply_provider_status(order, data)
