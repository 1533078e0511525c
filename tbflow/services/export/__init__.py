"""Trial balance export orchestration."""

from .pipeline import (
    ExportRequest,
    ExportResult,
    TrialBalanceExporter,
    export_regions,
    previous_month_range,
)

__all__ = [
    "ExportRequest",
    "ExportResult",
    "TrialBalanceExporter",
    "export_regions",
    "previous_month_range",
]
