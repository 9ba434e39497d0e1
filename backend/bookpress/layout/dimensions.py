"""
BookPress — Print dimensions (source of truth).

Print partner specifications:
  - Bleed: 0.125" on ALL sides (adds 0.25" to width and height)
  - Safety margin: 0.5" (150px @300) — keep text and faces inside this
  - 300 DPI output from the 72 DPI editor via a 300/72 scale factor
  - Page 1 starts on the RIGHT (odd = recto, even = verso)
  - Books over 60 pages want an extra 0.125" inside (gutter) margin

The pixel tables below are hardcoded on purpose: pre-flight rejects files
that are off by a single pixel, so they are not recomputed from inches.
"""

from __future__ import annotations

from dataclasses import dataclass

from bookpress.models.book import BookSize, CoverType, PaperType

BASE_DPI = 72
PRINT_DPI = 300
DEVICE_SCALE_FACTOR = PRINT_DPI / BASE_DPI

BLEED_INCHES = 0.125
SAFETY_MARGIN_INCHES = 0.5

GUTTER_THRESHOLD_PAGES = 60
GUTTER_EXTRA_INCHES = 0.125

SPINE_WIDTH_PER_PAGE = {
    PaperType.STANDARD: 0.002252,  # 80# paper
    PaperType.PREMIUM: 0.0025,
}
HARDCOVER_WRAP_INCHES = 0.75

# Below this the family name on the spine is not legible.
SPINE_TEXT_MIN_INCHES = 0.2


@dataclass(frozen=True)
class Margin:
    inches: float
    px72: int
    px300: int


BLEED = Margin(BLEED_INCHES, px72=9, px300=38)  # 37.5 rounded up
SAFETY = Margin(SAFETY_MARGIN_INCHES, px72=36, px300=150)
GUTTER = Margin(GUTTER_EXTRA_INCHES, px72=9, px300=38)


@dataclass(frozen=True)
class Box:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height


@dataclass(frozen=True)
class Size:
    width: int
    height: int


@dataclass(frozen=True)
class BookSpec:
    name: str
    trim_width: float
    trim_height: float
    base_px: Size  # trim @72
    print_px: Size  # trim @300
    with_bleed_px: Size  # trim + bleed @300


BOOK_SIZES: dict[BookSize, BookSpec] = {
    BookSize.SMALL_SQUARE: BookSpec(
        name="8×8 Square",
        trim_width=8, trim_height=8,
        base_px=Size(576, 576),
        print_px=Size(2400, 2400),
        with_bleed_px=Size(2475, 2475),
    ),
    BookSize.LARGE_SQUARE: BookSpec(
        name="10×10 Square",
        trim_width=10, trim_height=10,
        base_px=Size(720, 720),
        print_px=Size(3000, 3000),
        with_bleed_px=Size(3075, 3075),
    ),
    BookSize.PORTRAIT: BookSpec(
        name="8.5×11 Portrait",
        trim_width=8.5, trim_height=11,
        base_px=Size(612, 792),
        print_px=Size(2550, 3300),
        with_bleed_px=Size(2625, 3375),
    ),
}


@dataclass(frozen=True)
class PageDimensions:
    viewport: Size  # editor units incl. bleed, @72
    output: Size  # @300
    trim_box: Box
    safety_box: Box
    gutter_needed: bool
    inside_margin_px: int


def scale_to_print(value: float) -> int:
    """Editor units (72 DPI) → print pixels (300 DPI)."""
    return round(value * DEVICE_SCALE_FACTOR)


def scale_to_base(value: float) -> int:
    return round(value / DEVICE_SCALE_FACTOR)


def get_spec(size: BookSize | str) -> BookSpec:
    return BOOK_SIZES[BookSize.parse(size)]


def page_dimensions(size: BookSize | str, include_bleed: bool = True, page_count: int = 0) -> PageDimensions:
    spec = get_spec(size)
    bleed_px = BLEED.px300 if include_bleed else 0
    bleed72 = BLEED.px72 if include_bleed else 0
    needs_gutter = page_count > GUTTER_THRESHOLD_PAGES

    return PageDimensions(
        viewport=Size(spec.base_px.width + bleed72 * 2, spec.base_px.height + bleed72 * 2),
        output=spec.with_bleed_px if include_bleed else spec.print_px,
        trim_box=Box(bleed_px, bleed_px, spec.print_px.width, spec.print_px.height),
        safety_box=Box(
            bleed_px + SAFETY.px300,
            bleed_px + SAFETY.px300,
            spec.print_px.width - SAFETY.px300 * 2,
            spec.print_px.height - SAFETY.px300 * 2,
        ),
        gutter_needed=needs_gutter,
        inside_margin_px=SAFETY.px300 + (GUTTER.px300 if needs_gutter else 0),
    )


@dataclass(frozen=True)
class CoverZones:
    back: Box
    spine: Box
    front: Box
    back_safety: Box
    spine_safety: Box
    front_safety: Box


@dataclass(frozen=True)
class CoverGeometry:
    """Cover spread (back + spine + front) geometry, pixels at 300 DPI."""

    book_size: BookSize
    page_count: int
    paper_type: PaperType
    cover_type: CoverType
    spine_width_in: float
    wrap_in: float
    cover_width_in: float  # without bleed
    cover_height_in: float
    total_width_in: float  # with bleed
    total_height_in: float
    width_px: int
    height_px: int
    bleed_px: int
    wrap_px: int
    zones: CoverZones

    @property
    def spine_width_px(self) -> int:
        return self.zones.spine.width

    @property
    def spine_text_fits(self) -> bool:
        return self.spine_width_in >= SPINE_TEXT_MIN_INCHES


def spine_width_inches(page_count: int, paper_type: PaperType | str = PaperType.STANDARD) -> float:
    per_page = SPINE_WIDTH_PER_PAGE.get(PaperType(paper_type), SPINE_WIDTH_PER_PAGE[PaperType.STANDARD])
    return page_count * per_page


def cover_dimensions(
    size: BookSize | str,
    page_count: int,
    paper_type: PaperType | str = PaperType.STANDARD,
    cover_type: CoverType | str = CoverType.SOFT,
) -> CoverGeometry:
    """
    Compute the cover spread for a book.

    width  = back + spine + front (+ wrap on both sides for hardcover)
    height = trim (+ wrap top and bottom for hardcover)
    then 0.125" bleed all round, converted at 300 DPI.
    """
    book_size = BookSize.parse(size)
    spec = BOOK_SIZES[book_size]
    paper = PaperType(paper_type)
    cover = CoverType(cover_type)

    spine_in = spine_width_inches(page_count, paper)
    spine_px = round(spine_in * PRINT_DPI)
    wrap_in = HARDCOVER_WRAP_INCHES if cover == CoverType.HARD else 0.0
    wrap_px = round(wrap_in * PRINT_DPI)

    cover_w_in = spec.trim_width * 2 + spine_in + wrap_in * 2
    cover_h_in = spec.trim_height + wrap_in * 2
    total_w_in = cover_w_in + BLEED_INCHES * 2
    total_h_in = cover_h_in + BLEED_INCHES * 2

    bleed_px = BLEED.px300
    origin = bleed_px + wrap_px
    panel_w, panel_h = spec.print_px.width, spec.print_px.height
    safety = SAFETY.px300

    zones = CoverZones(
        back=Box(origin, origin, panel_w, panel_h),
        spine=Box(origin + panel_w, origin, spine_px, panel_h),
        front=Box(origin + panel_w + spine_px, origin, panel_w, panel_h),
        back_safety=Box(origin + safety, origin + safety, panel_w - safety * 2, panel_h - safety * 2),
        spine_safety=Box(
            origin + panel_w + round(spine_px * 0.1),
            origin + safety,
            round(spine_px * 0.8),
            panel_h - safety * 2,
        ),
        front_safety=Box(
            origin + panel_w + spine_px + safety,
            origin + safety,
            panel_w - safety * 2,
            panel_h - safety * 2,
        ),
    )

    return CoverGeometry(
        book_size=book_size,
        page_count=page_count,
        paper_type=paper,
        cover_type=cover,
        spine_width_in=spine_in,
        wrap_in=wrap_in,
        cover_width_in=cover_w_in,
        cover_height_in=cover_h_in,
        total_width_in=total_w_in,
        total_height_in=total_h_in,
        width_px=round(total_w_in * PRINT_DPI),
        height_px=round(total_h_in * PRINT_DPI),
        bleed_px=bleed_px,
        wrap_px=wrap_px,
        zones=zones,
    )
