"""
BookPress — Scrapbook page content model.

Pages are authored in the canvas editor at 72 DPI; the compiler only
reads them. Geometry fields are optional because the editor stores
decorative items without a box.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class EditorItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    type: str = "image"
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    rotation: float = 0
    z_index: int = 0
    src: str | None = None
    text: str | None = None
    font: str | None = None
    font_size: float | None = None
    color: str | None = None

    @property
    def has_box(self) -> bool:
        return None not in (self.x, self.y, self.width, self.height)


class PageState(BaseModel):
    background: str = "cream"
    custom_bg_url: str | None = None
    items: list[EditorItem] = Field(default_factory=list)


class ScrapbookPage(BaseModel):
    """A single authored page as stored under families/{family}/pages."""

    id: str
    family_id: str
    title: str = ""
    updated_at: datetime | None = None
    state: PageState = Field(default_factory=PageState)

    @property
    def display_title(self) -> str:
        return self.title or f"Page {self.id}"

    @property
    def revision(self) -> str:
        """Stable revision marker used for fingerprints and page artifact keys."""
        if self.updated_at is None:
            return "0"
        return str(int(self.updated_at.timestamp() * 1000))
