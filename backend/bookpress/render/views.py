"""
BookPress — Render views for the snapshot service.

Both views verify the render token before reading anything, then build a
template context in output pixels. Every overlay size is derived from
its panel, never a fixed size.
"""

from __future__ import annotations

from bookpress.errors import PageNotFoundError
from bookpress.layout.dimensions import BASE_DPI, BLEED, DEVICE_SCALE_FACTOR, PRINT_DPI, cover_dimensions
from bookpress.models.book import BookSize, CoverMode, CoverType
from bookpress.models.order import CoverDesign
from bookpress.render.rasterizer import page_viewport
from bookpress.render.tokens import COVER_SUBJECT, RenderTokenIssuer
from bookpress.storage.repository import PageStore
from bookpress.templates.registry import background_css, render_view

# 72 DPI type sizes from the editor, expressed at 300 DPI
_PT = PRINT_DPI / BASE_DPI


async def render_page_view(
    tokens: RenderTokenIssuer,
    pages: PageStore,
    family_id: str,
    page_id: str,
    token: str | None,
    book_size: BookSize | str = BookSize.SMALL_SQUARE,
    scale: float = DEVICE_SCALE_FACTOR,
    bleed_px: int | None = None,
) -> str:
    tokens.verify(token, family_id, page_id)

    page = await pages.get(family_id, page_id)
    if page is None:
        raise PageNotFoundError(family_id, page_id)

    bleed = BLEED.px72 if bleed_px is None else bleed_px
    offset = round(bleed * scale)
    viewport = page_viewport(book_size, scale, bleed)

    items = []
    for item in sorted(page.state.items, key=lambda i: i.z_index):
        if not item.has_box:
            continue
        items.append({
            "id": item.id,
            "type": item.type,
            "left": round(item.x * scale) + offset,
            "top": round(item.y * scale) + offset,
            "width": round(item.width * scale),
            "height": round(item.height * scale),
            "rotation": item.rotation,
            "src": item.src,
            "text": item.text or "",
            "font": item.font or "Inter",
            "font_size": round((item.font_size or 16) * scale, 2),
            "color": item.color or "#111827",
        })

    return render_view(
        "page",
        title=page.display_title,
        width=viewport.width,
        height=viewport.height,
        background=background_css(page.state.background),
        background_image=page.state.custom_bg_url,
        items=items,
    )


def _darken(hex_color: str, factor: float = 0.8) -> str:
    value = hex_color.lstrip("#")
    if len(value) != 6:
        return hex_color
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return "#{:02x}{:02x}{:02x}".format(int(r * factor), int(g * factor), int(b * factor))


def effective_mode(design: CoverDesign) -> CoverMode:
    """A mode whose image is missing falls back to a solid cover."""
    if design.mode == CoverMode.FRONT_IMAGE and not design.front_image_url:
        return CoverMode.SOLID
    if design.mode == CoverMode.WRAPAROUND and not design.wraparound_image_url:
        return CoverMode.SOLID
    return design.mode


def cover_context(
    design: CoverDesign,
    book_size: BookSize | str,
    page_count: int,
    cover_type: CoverType | str = CoverType.SOFT,
    scale: float = 1.0,
    preview: bool = False,
) -> dict:
    """Template context for the cover spread. scale=1.0 lays out at 300 DPI."""
    geo = cover_dimensions(book_size, page_count, design.paper_type, cover_type)

    def px(value: float) -> int:
        return round(value * scale)

    def box(b) -> dict:
        return {"left": px(b.x), "top": px(b.y), "width": px(b.width), "height": px(b.height)}

    z = geo.zones
    panel_w = px(z.front.width)
    spine_w = px(z.spine.width)

    return {
        "mode": effective_mode(design).value,
        "preview": preview,
        "width": px(geo.width_px),
        "height": px(geo.height_px),
        "family_name": design.family_name,
        "book_title": design.book_title or "",
        "primary": design.primary_color,
        "secondary": design.secondary_color,
        "spine_color": _darken(design.primary_color, 0.8),
        "wrap_color": _darken(design.primary_color, 0.7),
        "front_image": design.front_image_url,
        "wraparound_image": design.wraparound_image_url,
        "back": box(z.back),
        "spine": box(z.spine),
        "front": box(z.front),
        "front_safety": box(z.front_safety),
        "wrap_px": px(geo.wrap_px),
        "bleed_px": px(geo.bleed_px),
        "hard": geo.cover_type == CoverType.HARD,
        "spine_text": geo.spine_text_fits,
        "spine_font": round(min(spine_w * 0.6, 12 * _PT * scale), 2),
        "title_font": round(min(panel_w / 8, 36 * _PT * scale), 2),
        "subtitle_font": round(min(panel_w / 16, 18 * _PT * scale), 2),
        "watermark_font": round(min(panel_w / 40, 10 * _PT * scale), 2),
        "rule_width": round(panel_w * 0.1),
        "rule_height": max(1, round(panel_w * 0.007)),
    }


async def render_cover_view(
    tokens: RenderTokenIssuer,
    family_id: str,
    token: str | None,
    design: CoverDesign,
    book_size: BookSize | str,
    page_count: int,
    cover_type: CoverType | str = CoverType.SOFT,
    scale: float = 1.0,
    preview: bool = False,
) -> str:
    tokens.verify(token, family_id, COVER_SUBJECT)
    ctx = cover_context(design, book_size, page_count, cover_type, scale, preview)
    return render_view("cover", **ctx)


__all__ = [
    "render_page_view",
    "render_cover_view",
    "cover_context",
    "effective_mode",
]
