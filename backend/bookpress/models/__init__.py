"""BookPress data models — typed contracts for the compile and print pipeline."""

from bookpress.models.book import (
    BookSize,
    PaperType,
    CoverType,
    CoverMode,
)
from bookpress.models.page import (
    EditorItem,
    PageState,
    ScrapbookPage,
)
from bookpress.models.validation import (
    Severity,
    Edge,
    EdgeWarning,
    ItemValidation,
    PageWarning,
    ValidationSummary,
    Acknowledgement,
    BleedValidationReport,
)
from bookpress.models.job import (
    JobStatus,
    StepTiming,
    CompilationJob,
    progress_percent,
    describe_status,
)
from bookpress.models.order import (
    OrderStatus,
    ShippingLevel,
    ShippingAddress,
    CoverDesign,
    CostBreakdown,
    StatusEvent,
    PrintOrder,
)

__all__ = [
    "BookSize",
    "PaperType",
    "CoverType",
    "CoverMode",
    "EditorItem",
    "PageState",
    "ScrapbookPage",
    "Severity",
    "Edge",
    "EdgeWarning",
    "ItemValidation",
    "PageWarning",
    "ValidationSummary",
    "Acknowledgement",
    "BleedValidationReport",
    "JobStatus",
    "StepTiming",
    "CompilationJob",
    "progress_percent",
    "describe_status",
    "OrderStatus",
    "ShippingLevel",
    "ShippingAddress",
    "CoverDesign",
    "CostBreakdown",
    "StatusEvent",
    "PrintOrder",
]
