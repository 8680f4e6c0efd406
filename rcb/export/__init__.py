"""Document export package."""

from rcb.export.snapshot import (
    ExportRow,
    ExportSnapshot,
    ExportTotalsRow,
    build_export_snapshot,
    format_amount,
)

__all__ = [
    "ExportRow",
    "ExportSnapshot",
    "ExportTotalsRow",
    "build_export_snapshot",
    "format_amount",
]
