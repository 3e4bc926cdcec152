"""
Cost Aggregations

Polars-based aggregation functions for billing rows.
Provides consistent grouping and summarization across all dashboard views.
"""

import polars as pl
from typing import List, Dict, Any, Optional, Sequence

from kco_finops.lib.costs.calculations import (
    calculate_split_change,
    mean_and_stddev,
)
from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_CHARGE_PERIOD_START,
    COL_TAGS,
    EMPTY_GROUP,
    METADATA_COLUMNS,
    NOT_AVAILABLE,
    OTHERS,
    UNKNOWN,
    UNTAGGED,
)
from kco_finops.lib.costs.frames import (
    Columns,
    cost_expr,
    date_key_expr,
    day_expr,
    get_tag,
    label_expr,
    parse_tags,
    untagged_expr,
)


# ==============================================================================
# Date Aggregations
# ==============================================================================

def aggregate_by_date(
    df: pl.DataFrame,
    date_column: Columns = COL_CHARGE_PERIOD_START,
    limit: Optional[int] = None,
    cost_column: str = COL_BILLED_COST,
) -> List[Dict[str, Any]]:
    """
    Daily cost series.

    Args:
        df: Billing frame
        date_column: Timestamp column (or fallbacks)
        limit: Keep only the last N days
        cost_column: Column name for cost values

    Returns:
        List of {date, cost} sorted by date; rows without a date under `Unknown`
    """
    if df.is_empty():
        return []

    result = (
        df.lazy()
        .select(
            date_key_expr(df, date_column, UNKNOWN).alias("date"),
            cost_expr(df, cost_column).alias("_cost"),
        )
        .group_by("date")
        .agg(pl.col("_cost").sum().alias("cost"))
        .sort("date")
        .collect()
    )

    if limit is not None and result.height > limit:
        result = result.tail(limit)

    return result.to_dicts()


# ==============================================================================
# Dimension Aggregations
# ==============================================================================

def aggregate_by_dimension(
    df: pl.DataFrame,
    column: Columns,
    default: Optional[str] = UNKNOWN,
    limit: Optional[int] = None,
    cost_column: str = COL_BILLED_COST,
    cost_fallback: Sequence[str] = (),
) -> List[Dict[str, Any]]:
    """
    Aggregate costs by a label column.

    Ties keep the order in which groups first appear.

    Args:
        df: Billing frame
        column: Grouping column, or columns tried in order
        default: Label for rows where the column is empty
        limit: Keep only the top N groups
        cost_column: Column name for cost values
        cost_fallback: Cost columns used when `cost_column` is empty

    Returns:
        List of {name, value} sorted by value descending
    """
    if df.is_empty():
        return []

    result = (
        df.lazy()
        .select(
            label_expr(df, column, default).alias("name"),
            cost_expr(df, cost_column, cost_fallback).alias("_cost"),
        )
        .group_by("name", maintain_order=True)
        .agg(pl.col("_cost").sum().alias("value"))
        .sort("value", descending=True, maintain_order=True)
        .collect()
    )

    if limit is not None:
        result = result.head(limit)

    return result.to_dicts()


def aggregate_by_tag(
    df: pl.DataFrame,
    tag_key: str,
    default: str = UNTAGGED,
    cost_column: str = COL_BILLED_COST,
) -> List[Dict[str, Any]]:
    """
    Aggregate costs by the value of one tag in the `Tags` column.

    Tag keys match case-insensitively; rows without the tag go to `default`.
    """
    if df.is_empty():
        return []

    if COL_TAGS in df.columns:
        tag_values = [get_tag(parse_tags(cell), tag_key) for cell in df.get_column(COL_TAGS).to_list()]
    else:
        tag_values = [None] * df.height

    tagged = df.with_columns(pl.Series("_tag", tag_values, dtype=pl.Utf8))
    return aggregate_by_dimension(tagged, "_tag", default=default, cost_column=cost_column)


def top_entry(items: List[Dict[str, Any]], empty_name: Optional[str] = None) -> Dict[str, Any]:
    """First {name, value} entry, or an empty placeholder."""
    if items:
        return {"name": items[0]["name"], "value": items[0]["value"]}
    return {"name": empty_name, "value": 0}


# ==============================================================================
# Governance Costs
# ==============================================================================

def calculate_untagged_cost(df: pl.DataFrame, cost_column: str = COL_BILLED_COST) -> float:
    """Cost of rows whose Tags cell is empty, blank, `null` or `none`."""
    if df.is_empty():
        return 0.0
    return float(df.select(cost_expr(df, cost_column).filter(untagged_expr(df)).sum()).item() or 0.0)


def calculate_missing_metadata_cost(df: pl.DataFrame, cost_column: str = COL_BILLED_COST) -> float:
    """Cost of rows missing any of ServiceName, RegionName or ResourceName."""
    if df.is_empty():
        return 0.0

    missing = []
    for column in METADATA_COLUMNS:
        if column not in df.columns:
            return float(df.select(cost_expr(df, cost_column).sum()).item() or 0.0)
        value = pl.col(column).str.strip_chars()
        missing.append(value.is_null() | (value == ""))

    return float(
        df.select(cost_expr(df, cost_column).filter(pl.any_horizontal(missing)).sum()).item() or 0.0
    )


# ==============================================================================
# Period Change
# ==============================================================================

def calculate_spend_change(df: pl.DataFrame, cost_column: str = COL_BILLED_COST) -> float:
    """
    Spend change between the earlier and later half of the rows.

    Rows are ordered by day (rows without a date first), split at
    floor(n / 2), and the change is (later - earlier) / earlier * 100,
    0 when the earlier half has no positive spend.
    """
    if df.height < 2:
        return 0.0

    ordered = (
        df.select(
            day_expr(df).alias("_day"),
            cost_expr(df, cost_column).alias("_cost"),
        )
        .sort("_day", nulls_last=False, maintain_order=True)
    )
    mid = ordered.height // 2
    costs = ordered.get_column("_cost")
    previous = float(costs.head(mid).sum() or 0.0)
    current = float(costs.slice(mid).sum() or 0.0)
    return calculate_split_change(previous, current)


# ==============================================================================
# Outliers
# ==============================================================================

def detect_anomalies(
    df: pl.DataFrame,
    sigma: float = 2.0,
    limit: int = 10,
    cost_column: str = COL_BILLED_COST,
) -> List[Dict[str, Any]]:
    """
    Rows costing strictly more than mean + sigma * stddev.

    Uses the population standard deviation of row costs.

    Returns:
        Up to `limit` rows, most expensive first, each with its original
        position as `index` and parsed `cost`
    """
    if df.is_empty():
        return []

    costs = df.select(cost_expr(df, cost_column)).to_series().to_list()
    mean, stddev = mean_and_stddev(costs)
    threshold = mean + sigma * stddev

    visible = [c for c in df.columns if not c.startswith("_")]
    return (
        df.select(visible)
        .with_columns(
            pl.Series("cost", costs, dtype=pl.Float64),
            pl.int_range(0, df.height).alias("index"),
        )
        .filter(pl.col("cost") > threshold)
        .sort("cost", descending=True, maintain_order=True)
        .head(limit)
        .to_dicts()
    )


# ==============================================================================
# Pivot
# ==============================================================================

def detect_cost_column(columns: Sequence[str]) -> str:
    """First column whose name contains `cost` but not `unit`, else BilledCost."""
    for column in columns:
        lower = column.lower()
        if "cost" in lower and "unit" not in lower:
            return column
    return COL_BILLED_COST


def pivot(
    df: pl.DataFrame,
    group_by: str,
    cost_column: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Group rows by a column with count, cost total and share of cost.

    Empty keys are labelled `(Empty)` and keep their raw value for drill-down.

    Returns:
        List of {name, rawValue, count, totalCost, percent} by totalCost desc
    """
    if df.is_empty():
        return []

    cost_column = cost_column or detect_cost_column(df.columns)
    raw = pl.col(group_by) if group_by in df.columns else pl.lit(None, dtype=pl.Utf8)

    result = (
        df.lazy()
        .select(
            label_expr(df, group_by, EMPTY_GROUP).alias("name"),
            raw.alias("rawValue"),
            cost_expr(df, cost_column).alias("_cost"),
        )
        .group_by("name", maintain_order=True)
        .agg(
            pl.col("rawValue").first(),
            pl.len().alias("count"),
            pl.col("_cost").sum().alias("totalCost"),
        )
        .sort("totalCost", descending=True, maintain_order=True)
        .collect()
    )

    grand_total = float(result.get_column("totalCost").sum() or 0.0)
    groups = []
    for row in result.iter_rows(named=True):
        groups.append({
            "name": row["name"],
            "rawValue": row["rawValue"],
            "count": row["count"],
            "totalCost": row["totalCost"],
            "percent": (row["totalCost"] / grand_total) * 100 if grand_total else 0,
        })
    return groups


# ==============================================================================
# Explorer Statistics
# ==============================================================================

def quick_stats(df: pl.DataFrame, cost_column: Optional[str] = None) -> Optional[Dict[str, float]]:
    """Total, average and maximum row cost, None for an empty frame."""
    if df.is_empty():
        return None

    cost_column = cost_column or detect_cost_column(df.columns)
    stats = df.select(
        cost_expr(df, cost_column).sum().alias("totalCost"),
        cost_expr(df, cost_column).max().alias("maxCost"),
    ).row(0, named=True)
    total = float(stats["totalCost"] or 0.0)
    return {
        "totalCost": total,
        "avgCost": total / df.height,
        "maxCost": float(stats["maxCost"] or 0.0),
    }


_NUMERIC_HINTS = ("cost", "price", "amount", "quantity", "usage", "rate")


def is_numeric_column(column: str) -> bool:
    """Heuristic used by the explorer footer: money/usage columns that are not ids."""
    lower = column.lower()
    is_numeric = any(hint in lower for hint in _NUMERIC_HINTS)
    is_id = "id" in lower and "price" not in lower
    return is_numeric and not is_id


def column_summaries(df: pl.DataFrame, columns: Sequence[str]) -> Dict[str, Optional[float]]:
    """Sum of each numeric-looking column; None for every other column."""
    summary: Dict[str, Optional[float]] = {}
    for column in columns:
        if not is_numeric_column(column):
            summary[column] = None
        elif column not in df.columns or df.is_empty():
            summary[column] = 0.0
        else:
            summary[column] = float(df.select(cost_expr(df, column).sum()).item() or 0.0)
    return summary


# ==============================================================================
# Stacked Daily Series
# ==============================================================================

RESERVED_DAY_KEYS = ["date", "total", OTHERS]


def stacked_daily_top_n(
    df: pl.DataFrame,
    group_by: str,
    top_n: int = 5,
    cost_column: str = COL_BILLED_COST,
) -> Dict[str, Any]:
    """
    Daily cost split into the top N groups plus `Others`.

    A group labelled date, total or Others is renamed with the grouping
    column as suffix, e.g. `total (ServiceName)`.

    Returns:
        Dict with chartData (one row per day with a key per top group,
        `Others` and `total`), activeKeys (top groups then Others),
        categoryTotals (every group by total desc, then the Others total)
        and sortedKeys (all groups by total desc)
    """
    if df.is_empty():
        return {"chartData": [], "activeKeys": [], "categoryTotals": [], "sortedKeys": []}

    frame = df.select(
        date_key_expr(df, COL_CHARGE_PERIOD_START, UNKNOWN).alias("_date"),
        label_expr(df, group_by, UNKNOWN).alias("_group"),
        cost_expr(df, cost_column).alias("_cost"),
    )
    # Group labels share the day row with date, total and Others
    frame = frame.with_columns(
        pl.when(pl.col("_group").is_in(RESERVED_DAY_KEYS))
        .then(pl.col("_group") + pl.lit(f" ({group_by})"))
        .otherwise(pl.col("_group"))
        .alias("_group")
    )

    totals = (
        frame.group_by("_group", maintain_order=True)
        .agg(pl.col("_cost").sum().alias("value"))
        .sort("value", descending=True, maintain_order=True)
    )
    sorted_keys = totals.get_column("_group").to_list()
    top_keys = sorted_keys[:top_n]

    daily = (
        frame.with_columns(
            pl.when(pl.col("_group").is_in(top_keys))
            .then(pl.col("_group"))
            .otherwise(pl.lit(OTHERS))
            .alias("_bucket")
        )
        .group_by(["_date", "_bucket"], maintain_order=True)
        .agg(pl.col("_cost").sum().alias("cost"))
        .sort("_date", maintain_order=True)
    )

    chart: Dict[str, Dict[str, Any]] = {}
    for row in daily.iter_rows(named=True):
        day = chart.get(row["_date"])
        if day is None:
            day = {"date": row["_date"], "total": 0.0, OTHERS: 0.0, **{key: 0.0 for key in top_keys}}
            chart[row["_date"]] = day
        day[row["_bucket"]] += row["cost"]
        day["total"] += row["cost"]

    category_totals = [
        {"name": row["_group"], "value": row["value"]}
        for row in totals.iter_rows(named=True)
    ]
    others_total = float(totals.slice(top_n).get_column("value").sum() or 0.0)
    category_totals.append({"name": OTHERS, "value": others_total})

    return {
        "chartData": list(chart.values()),
        "activeKeys": [*top_keys, OTHERS],
        "categoryTotals": category_totals,
        "sortedKeys": sorted_keys,
    }


def top_entry_or_na(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """First entry with `N/A` as the placeholder name."""
    return top_entry(items, NOT_AVAILABLE)
