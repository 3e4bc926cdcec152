"""
Billing Export Ingest Helpers

Header cleanup and column detection that map AWS CUR, Azure and GCP
exports onto FOCUS column names.
"""

from kco_finops.lib.ingest.column_mapper import (
    COLUMN_ALIASES,
    clean_header,
    detect_columns,
    normalize_row,
)

__all__ = [
    "COLUMN_ALIASES",
    "clean_header",
    "detect_columns",
    "normalize_row",
]
