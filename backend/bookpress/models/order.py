"""
BookPress — Print order contracts.

A PrintOrder always references a CompilationJob that was complete when
the order was placed. The order is never left pending once a submission
attempt resolves.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from bookpress.models.book import BookSize, CoverMode, CoverType, PaperType


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    PROCESSING = "processing"
    PRINTING = "printing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.SUBMITTED, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.SUBMITTED: {
        OrderStatus.PROCESSING, OrderStatus.PRINTING, OrderStatus.SHIPPED,
        OrderStatus.FAILED, OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.PRINTING, OrderStatus.SHIPPED, OrderStatus.FAILED, OrderStatus.CANCELLED,
    },
    OrderStatus.PRINTING: {OrderStatus.SHIPPED, OrderStatus.FAILED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.FAILED: set(),
    OrderStatus.CANCELLED: set(),
}


class ShippingLevel(str, enum.Enum):
    MAIL = "MAIL"  # 7-21 days
    GROUND = "GROUND"  # 5-10 days
    PRIORITY = "PRIORITY"  # 3-7 days
    EXPEDITED = "EXPEDITED"  # 2-4 days


class ShippingAddress(BaseModel):
    name: str = ""
    street1: str = Field(min_length=1)
    street2: str = ""
    city: str = Field(min_length=1)
    state: str = ""
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)
    phone: str = ""


class CoverDesign(BaseModel):
    mode: CoverMode = CoverMode.SOLID
    family_name: str = "Family"
    book_title: str | None = None
    primary_color: str = "#1e3a5f"
    secondary_color: str = "#ffffff"
    front_image_url: str | None = None
    wraparound_image_url: str | None = None
    paper_type: PaperType = PaperType.STANDARD


class CostBreakdown(BaseModel):
    currency: str = "USD"
    printing_cost: float
    shipping_cost: float
    tax: float = 0.0
    total_cost_excl_tax: float
    total_cost_incl_tax: float
    is_estimate: bool = False


class StatusEvent(BaseModel):
    status: str
    timestamp: datetime
    provider_status: str | None = None
    tracking_number: str | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PrintOrder(BaseModel):
    id: str
    family_id: str
    compilation_job_id: str
    interior_key: str
    created_by: str = ""

    book_size: BookSize
    cover_type: CoverType = CoverType.SOFT
    page_count: int = Field(gt=0)
    quantity: int = Field(default=1, ge=1)
    shipping_address: ShippingAddress
    shipping_level: ShippingLevel = ShippingLevel.MAIL
    contact_email: str = ""
    cover_design: CoverDesign = Field(default_factory=CoverDesign)

    status: OrderStatus = OrderStatus.PENDING
    cover_key: str | None = None
    provider_job_id: str | None = None
    provider_status: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    error: str | None = None
    status_history: list[StatusEvent] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    submitted_at: datetime | None = None
