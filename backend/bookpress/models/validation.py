"""
BookPress — Bleed / safety zone validation report.

The report is attached to every CompilationJob, issues or not, so that
support can trace what the customer was told before printing.
"""

from __future__ import annotations

import enum
from datetime import datetime

from pydantic import BaseModel, Field, computed_field


class Severity(str, enum.Enum):
    CRITICAL = "critical"  # content will likely be cut off
    WARNING = "warning"  # content close to the trim edge
    INFO = "info"  # minor, e.g. near the binding of a thick book


class Edge(str, enum.Enum):
    LEFT = "left"
    TOP = "top"
    RIGHT = "right"
    BOTTOM = "bottom"


class EdgeWarning(BaseModel):
    edge: Edge
    severity: Severity
    distance_px: int  # print pixels into the zone
    message: str


class ItemValidation(BaseModel):
    item_id: str
    item_type: str
    warnings: list[EdgeWarning] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return any(w.severity != Severity.INFO for w in self.warnings)

    @property
    def has_critical(self) -> bool:
        return any(w.severity == Severity.CRITICAL for w in self.warnings)


class PageWarning(BaseModel):
    page_id: str
    page_title: str
    items: list[ItemValidation] = Field(default_factory=list)
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0

    @property
    def has_issues(self) -> bool:
        return self.critical_count + self.warning_count > 0


class ValidationSummary(BaseModel):
    pages_checked: int = 0
    pages_with_issues: int = 0
    total_critical: int = 0
    total_warnings: int = 0
    critical_page_ids: list[str] = Field(default_factory=list)


class Acknowledgement(BaseModel):
    proceeded: bool = True
    by: str
    at: datetime


class BleedValidationReport(BaseModel):
    """Aggregate result of validating every page of a book."""

    book_size: str
    pages: list[PageWarning] = Field(default_factory=list)
    summary: ValidationSummary = Field(default_factory=ValidationSummary)
    message: str = ""
    acknowledgement: Acknowledgement | None = None

    @computed_field
    @property
    def can_proceed(self) -> bool:
        return self.summary.total_critical == 0

    @computed_field
    @property
    def should_block(self) -> bool:
        return not self.can_proceed

