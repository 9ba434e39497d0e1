"""
BookPress — Local price estimate used when the print provider is unreachable.

Always flagged is_estimate=True; never presented as a provider quote.
"""

from __future__ import annotations

from bookpress.models.book import BookSize, CoverType
from bookpress.models.order import CostBreakdown, ShippingLevel

BASE_PRICES: dict[BookSize, dict[CoverType, float]] = {
    BookSize.SMALL_SQUARE: {CoverType.SOFT: 12.5, CoverType.HARD: 22.5},
    BookSize.LARGE_SQUARE: {CoverType.SOFT: 16.5, CoverType.HARD: 28.5},
    BookSize.PORTRAIT: {CoverType.SOFT: 14.5, CoverType.HARD: 25.5},
}
PER_PAGE = 0.12

SHIPPING_PRICES: dict[ShippingLevel, float] = {
    ShippingLevel.MAIL: 5.99,
    ShippingLevel.GROUND: 8.99,
    ShippingLevel.PRIORITY: 14.99,
    ShippingLevel.EXPEDITED: 24.99,
}


def estimate_cost(
    book_size: BookSize,
    cover_type: CoverType,
    page_count: int,
    quantity: int,
    shipping_level: ShippingLevel = ShippingLevel.MAIL,
) -> CostBreakdown:
    printing = round((BASE_PRICES[book_size][cover_type] + page_count * PER_PAGE) * quantity, 2)
    shipping = SHIPPING_PRICES[shipping_level]
    total = round(printing + shipping, 2)
    return CostBreakdown(
        currency="USD",
        printing_cost=printing,
        shipping_cost=shipping,
        tax=0.0,
        total_cost_excl_tax=total,
        total_cost_incl_tax=total,
        is_estimate=True,
    )
