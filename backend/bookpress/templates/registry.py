"""
BookPress — Render view registry.

Ships the two views the snapshot service captures. Each declares its
template file, the attribute it sets once ready, and the query
parameters it understands.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from pydantic import BaseModel, Field

TEMPLATE_ROOT = Path(__file__).resolve().parent


class ViewTemplate(BaseModel):
    id: str
    name: str
    description: str
    file: str
    ready_attribute: str = "data-render-ready"
    params: list[str] = Field(default_factory=list)


VIEWS: dict[str, ViewTemplate] = {
    "page": ViewTemplate(
        id="page",
        name="Page",
        description="One scrapbook page at print scale, with bleed on every side.",
        file="page.html",
        params=["token", "size", "scale", "bleed"],
    ),
    "cover": ViewTemplate(
        id="cover",
        name="Cover Spread",
        description="Back, spine and front panels as one spread, sized from the page count.",
        file="cover.html",
        params=[
            "token", "size", "pages", "paper", "cover_type", "mode", "family_name",
            "title", "primary", "secondary", "front_image", "wrap_image", "scale",
        ],
    ),
}

# Editor background ids → CSS background values
BACKGROUNDS: dict[str, str] = {
    "white": "#ffffff",
    "cream": "#fefae0",
    "blush": "#ffe3ec",
    "mint": "#e7fff3",
    "sky": "#eaf6ff",
    "lilac": "#efe8ff",
    "charcoal": "#1f2937",
    "sunset": "linear-gradient(135deg,#ff9a9e 0%,#fad0c4 100%)",
    "ocean": "linear-gradient(135deg,#a1c4fd 0%,#c2e9fb 100%)",
    "forest": "linear-gradient(135deg,#d4fc79 0%,#96e6a1 100%)",
    "berry": "linear-gradient(135deg,#f093fb 0%,#f5576c 100%)",
}

_env = Environment(
    loader=FileSystemLoader(TEMPLATE_ROOT),
    autoescape=select_autoescape(["html"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def get_view(view_id: str) -> ViewTemplate | None:
    return VIEWS.get(view_id)


def list_views() -> list[ViewTemplate]:
    return list(VIEWS.values())


def background_css(background: str) -> str:
    return BACKGROUNDS.get(background, BACKGROUNDS["white"])


def render_view(view_id: str, **context) -> str:
    """Render a registered view to HTML. Unknown variables raise, never blank."""
    view = VIEWS[view_id]
    return _env.get_template(view.file).render(ready_attribute=view.ready_attribute, **context)
