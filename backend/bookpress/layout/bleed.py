"""
BookPress — Bleed & safety zone validation.

Pure and deterministic: the same pages and book size always produce the
same report. No I/O, no clocks; timestamps are added by the caller.

Two zones matter:
  1. Safety zone (0.5"): critical content (faces, text) must stay INSIDE
  2. Bleed zone (0.125"): backgrounds should EXTEND into it

Editor coordinates are trim-relative at 72 DPI. They are scaled to 300 DPI
and shifted by the bleed offset, exactly as the render view lays them out.
"""

from __future__ import annotations

from typing import Iterable

from bookpress.layout.dimensions import (
    BLEED,
    GUTTER,
    GUTTER_THRESHOLD_PAGES,
    SAFETY,
    get_spec,
    page_dimensions,
    scale_to_base,
    scale_to_print,
)
from bookpress.models.book import BookSize
from bookpress.models.page import EditorItem, ScrapbookPage
from bookpress.models.validation import (
    BleedValidationReport,
    Edge,
    EdgeWarning,
    ItemValidation,
    PageWarning,
    Severity,
    ValidationSummary,
)


def classify_distance(distance_px: int, margin_px: int = SAFETY.px300) -> Severity:
    """Critical once content is more than half way through the margin."""
    return Severity.CRITICAL if distance_px > margin_px / 2 else Severity.WARNING


def _is_outside_canvas(item: EditorItem, width: int, height: int) -> bool:
    return (
        item.x + item.width <= 0
        or item.y + item.height <= 0
        or item.x >= width
        or item.y >= height
    )


def _edge_warning(edge: Edge, distance: int, severity: Severity, zone: str = "safety") -> EdgeWarning:
    return EdgeWarning(
        edge=edge,
        severity=severity,
        distance_px=distance,
        message=f"{edge.value.capitalize()} edge is {scale_to_base(distance)}px into the {zone} margin",
    )


def validate_item(
    item: EditorItem,
    size: BookSize | str,
    page_number: int | None = None,
    page_count: int = 0,
) -> ItemValidation | None:
    """
    Check one item's bounding box against the safety zone.

    Returns None for items that cannot be checked (no box) or that sit
    entirely off the canvas.
    """
    if not item.has_box:
        return None

    spec = get_spec(size)
    if _is_outside_canvas(item, spec.base_px.width, spec.base_px.height):
        return None

    dims = page_dimensions(size, include_bleed=True, page_count=page_count)
    safe = dims.safety_box

    left = scale_to_print(item.x) + BLEED.px300
    top = scale_to_print(item.y) + BLEED.px300
    right = left + scale_to_print(item.width)
    bottom = top + scale_to_print(item.height)

    warnings: list[EdgeWarning] = []
    if left < safe.x:
        d = safe.x - left
        warnings.append(_edge_warning(Edge.LEFT, d, classify_distance(d)))
    if top < safe.y:
        d = safe.y - top
        warnings.append(_edge_warning(Edge.TOP, d, classify_distance(d)))
    if right > safe.right:
        d = right - safe.right
        warnings.append(_edge_warning(Edge.RIGHT, d, classify_distance(d)))
    if bottom > safe.bottom:
        d = bottom - safe.bottom
        warnings.append(_edge_warning(Edge.BOTTOM, d, classify_distance(d)))

    # Thick books: flag content near the binding. Odd pages bind on the left.
    if dims.gutter_needed and page_number is not None:
        flagged = {w.edge for w in warnings}
        if page_number % 2 == 1 and Edge.LEFT not in flagged:
            boundary = safe.x + GUTTER.px300
            if left < boundary:
                warnings.append(_edge_warning(Edge.LEFT, boundary - left, Severity.INFO, "gutter"))
        elif page_number % 2 == 0 and Edge.RIGHT not in flagged:
            boundary = safe.right - GUTTER.px300
            if right > boundary:
                warnings.append(_edge_warning(Edge.RIGHT, right - boundary, Severity.INFO, "gutter"))

    return ItemValidation(item_id=item.id, item_type=item.type, warnings=warnings)


def validate_page(
    page: ScrapbookPage,
    size: BookSize | str,
    page_number: int | None = None,
    page_count: int = 0,
) -> PageWarning:
    """Validate every item on a page. Pages without issues still get an entry."""
    result = PageWarning(page_id=page.id, page_title=page.display_title)

    for item in page.state.items:
        checked = validate_item(item, size, page_number, page_count)
        if checked is None or not checked.warnings:
            continue
        result.items.append(checked)
        if checked.has_critical:
            result.critical_count += 1
        elif checked.has_warnings:
            result.warning_count += 1
        else:
            result.info_count += 1

    return result


def _summary_message(total_critical: int, total_warnings: int) -> str:
    if total_critical > 0:
        return f"{total_critical} critical issue(s) found. Content may be cut off during printing."
    if total_warnings > 0:
        return f"{total_warnings} warning(s) found. Content is close to edges but should print OK."
    return "All pages passed safety zone validation."


def validate_book(pages: Iterable[ScrapbookPage], size: BookSize | str) -> BleedValidationReport:
    """
    Validate all pages of a book, in document order.

    Every page is present in the report, even when it passes, so the
    record can be persisted as-is for traceability.
    """
    book_size = BookSize.parse(size)
    pages = list(pages)
    page_count = len(pages)

    page_results = [
        validate_page(page, book_size, page_number=i + 1, page_count=page_count)
        for i, page in enumerate(pages)
    ]

    total_critical = sum(p.critical_count for p in page_results)
    total_warnings = sum(p.warning_count for p in page_results)

    summary = ValidationSummary(
        pages_checked=page_count,
        pages_with_issues=sum(1 for p in page_results if p.has_issues),
        total_critical=total_critical,
        total_warnings=total_warnings,
        critical_page_ids=[p.page_id for p in page_results if p.critical_count > 0],
    )

    return BleedValidationReport(
        book_size=book_size.value,
        pages=page_results,
        summary=summary,
        message=_summary_message(total_critical, total_warnings),
    )


__all__ = [
    "GUTTER_THRESHOLD_PAGES",
    "classify_distance",
    "validate_item",
    "validate_page",
    "validate_book",
]
