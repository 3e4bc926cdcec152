"""
Data Explorer

Search -> column filters -> sort -> paginate pipeline over raw billing rows,
with pivot groups, footer summaries and CSV export.
"""

import csv
import io
import math
import polars as pl
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kco_finops.lib.costs.aggregations import column_summaries, pivot, quick_stats
from kco_finops.lib.costs.constants import EMPTY_FILTER
from kco_finops.lib.costs.filters import apply_column_filters, global_search, sort_records
from kco_finops.lib.costs.frames import frame_to_records

SORT_DIRECTIONS = ("asc", "desc")


@dataclass
class ExplorerQuery:
    """Explorer state: the same fields a saved view stores."""
    search: Optional[str] = None
    filters: Dict[str, Any] = field(default_factory=dict)
    sort_key: Optional[str] = None
    sort_direction: str = "asc"
    hidden_columns: List[str] = field(default_factory=list)
    page: int = 1
    rows_per_page: int = 50

    def to_config(self) -> Dict[str, Any]:
        """Saved-view config shape."""
        return {
            "filters": self.filters,
            "sortConfig": {"key": self.sort_key, "direction": self.sort_direction},
            "hiddenColumns": self.hidden_columns,
            "searchTerm": self.search or "",
        }


def explorer_columns(df: pl.DataFrame) -> List[str]:
    """All data columns in first-seen order."""
    return [c for c in df.columns if not c.startswith("_")]


def run_pipeline(df: pl.DataFrame, query: ExplorerQuery) -> pl.DataFrame:
    """Search, filter and sort; no pagination."""
    result = global_search(df, query.search)
    result = apply_column_filters(result, query.filters)
    return sort_records(result, query.sort_key, query.sort_direction)


def explore(df: pl.DataFrame, query: ExplorerQuery) -> Dict[str, Any]:
    """
    Run the explorer pipeline and return one page of rows.

    Returns:
        Dict with columns (visible), allColumns, rows, totalRows,
        totalPages, page, quickStats and the footer summary
    """
    all_columns = explorer_columns(df)
    visible = [c for c in all_columns if c not in query.hidden_columns]
    result = run_pipeline(df, query)

    rows_per_page = max(1, query.rows_per_page)
    page = max(1, query.page)
    start = (page - 1) * rows_per_page
    page_frame = result.slice(start, rows_per_page)

    return {
        "columns": visible,
        "allColumns": all_columns,
        "rows": frame_to_records(page_frame.select([c for c in visible if c in page_frame.columns])),
        "totalRows": result.height,
        "totalPages": math.ceil(result.height / rows_per_page),
        "page": page,
        "rowsPerPage": rows_per_page,
        "quickStats": quick_stats(result),
        "summary": column_summaries(result, visible),
    }


def explorer_pivot(df: pl.DataFrame, query: ExplorerQuery, group_by: str) -> Dict[str, Any]:
    """Pivot groups over the filtered and sorted rows."""
    result = run_pipeline(df, query)
    groups = pivot(result, group_by)
    return {
        "groupBy": group_by,
        "groups": groups,
        "totalRows": result.height,
        "quickStats": quick_stats(result),
    }


def drill_down_filter(group: Dict[str, Any]) -> str:
    """Column filter value selecting the rows of a pivot group."""
    raw_value = group.get("rawValue")
    if raw_value is None or raw_value == "":
        return EMPTY_FILTER
    return str(raw_value)


def export_csv(columns: List[str], rows: List[Dict[str, Any]]) -> str:
    """CSV text with header and every cell quoted; no trailing newline."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if row.get(c) is None else row.get(c) for c in columns])
    return buffer.getvalue().rstrip("\n")


def export_frame(
    df: pl.DataFrame,
    query: ExplorerQuery,
    selected: Optional[List[int]] = None,
) -> str:
    """
    Export the rows the explorer pipeline yields, visible columns only.

    `selected` restricts the export to positions in the filtered and sorted
    result; out-of-range positions are ignored.
    """
    visible = [c for c in explorer_columns(df) if c not in query.hidden_columns]
    result = run_pipeline(df, query)
    if selected:
        positions = sorted({i for i in selected if 0 <= i < result.height})
        result = result[positions]
    return export_csv(visible, frame_to_records(result))
