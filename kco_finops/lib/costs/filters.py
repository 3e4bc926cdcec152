"""
Cost Filters

Polars-based filtering, searching and sorting of billing rows.
Provides consistent filtering across all dashboard views.
"""

import re
import functools
import polars as pl
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from kco_finops.lib.costs.constants import (
    ALL,
    COL_BILLED_COST,
    COL_PROVIDER_NAME,
    COL_REGION_NAME,
    COL_SERVICE_NAME,
    EMPTY_FILTER,
    UNKNOWN,
)
from kco_finops.lib.costs.frames import cost_expr, label_expr


# ==============================================================================
# Filter Parameters
# ==============================================================================

@dataclass
class DashboardFilters:
    """Provider / service / region filter bar. `All` disables a filter."""
    provider: str = ALL
    service: str = ALL
    region: str = ALL

    def has_filters(self) -> bool:
        """Check if any filters are set."""
        return any(value != ALL for value in (self.provider, self.service, self.region))

    def to_dict(self) -> Dict[str, str]:
        return {"provider": self.provider, "service": self.service, "region": self.region}


def apply_dashboard_filters(df: pl.DataFrame, filters: Optional[DashboardFilters]) -> pl.DataFrame:
    """
    Apply the dashboard filter bar.

    Missing provider/service/region values compare as `Unknown`.
    """
    if filters is None or not filters.has_filters() or df.is_empty():
        return df

    conditions = []
    for column, wanted in (
        (COL_PROVIDER_NAME, filters.provider),
        (COL_SERVICE_NAME, filters.service),
        (COL_REGION_NAME, filters.region),
    ):
        if wanted != ALL:
            conditions.append(label_expr(df, column, UNKNOWN) == wanted)

    return df.filter(pl.all_horizontal(conditions))


def limit_by_cost(df: pl.DataFrame, limit: int, cost_column: str = COL_BILLED_COST) -> pl.DataFrame:
    """Keep the `limit` most expensive rows when the frame is larger than `limit`."""
    if df.height <= limit:
        return df
    return (
        df.with_columns(cost_expr(df, cost_column).alias("__limit_cost"))
        .sort("__limit_cost", descending=True, maintain_order=True)
        .head(limit)
        .drop("__limit_cost")
    )


def filter_options(df: pl.DataFrame) -> Dict[str, List[str]]:
    """Distinct providers, services and regions for the filter bar, sorted."""
    options: Dict[str, List[str]] = {}
    for key, column in (
        ("providers", COL_PROVIDER_NAME),
        ("services", COL_SERVICE_NAME),
        ("regions", COL_REGION_NAME),
    ):
        if df.is_empty():
            options[key] = []
            continue
        values = df.select(label_expr(df, column, UNKNOWN).alias("v")).get_column("v").unique().to_list()
        options[key] = sorted(v for v in values if v is not None)
    return options


# ==============================================================================
# Explorer Filters
# ==============================================================================

def _visible_columns(df: pl.DataFrame) -> List[str]:
    return [c for c in df.columns if not c.startswith("_")]


def global_search(df: pl.DataFrame, term: Optional[str]) -> pl.DataFrame:
    """Rows where any cell contains `term`, case-insensitive."""
    if not term or df.is_empty():
        return df

    lowered = term.lower()
    matches = [
        pl.col(c).cast(pl.Utf8).str.to_lowercase().str.contains(lowered, literal=True).fill_null(False)
        for c in _visible_columns(df)
    ]
    if not matches:
        return df.clear()
    return df.filter(pl.any_horizontal(matches))


def apply_column_filters(df: pl.DataFrame, filters: Optional[Dict[str, Any]]) -> pl.DataFrame:
    """
    Per-column case-insensitive substring filters.

    The `__EMPTY__` sentinel selects rows where the column is null or empty.
    Empty filter values are ignored.
    """
    if not filters or df.is_empty():
        return df

    for column, value in filters.items():
        if value == EMPTY_FILTER:
            if column in df.columns:
                df = df.filter(pl.col(column).is_null() | (pl.col(column) == ""))
            continue
        if value is None or value == "":
            continue
        if column not in df.columns:
            return df.clear()
        lowered = str(value).lower()
        df = df.filter(
            pl.col(column).cast(pl.Utf8).fill_null("").str.to_lowercase().str.contains(lowered, literal=True)
        )
    return df


# ==============================================================================
# Sorting
# ==============================================================================

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?")


def parse_leading_number(value: Any) -> Optional[float]:
    """Numeric prefix of a value (`"12.5 GB"` -> 12.5), None when there is none."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    match = _LEADING_NUMBER.match(str(value))
    if not match:
        return None
    return float(match.group(0))


def _compare(a: Any, b: Any) -> int:
    a_num = parse_leading_number(a)
    b_num = parse_leading_number(b)
    if a_num is not None and b_num is not None:
        return (a_num > b_num) - (a_num < b_num)
    a_str = str(a or "").lower()
    b_str = str(b or "").lower()
    return (a_str > b_str) - (a_str < b_str)


def sort_records(df: pl.DataFrame, key: Optional[str], direction: str = "asc") -> pl.DataFrame:
    """
    Sort rows by a column.

    Pairs of values that both parse as numbers compare numerically, anything
    else compares as lowercase strings. Ties keep their original order.
    """
    if not key or key not in df.columns or df.height < 2:
        return df

    values = df.get_column(key).to_list()
    sign = -1 if direction == "desc" else 1
    order = sorted(
        range(len(values)),
        key=functools.cmp_to_key(lambda i, j: sign * _compare(values[i], values[j])),
    )
    return df[order]
