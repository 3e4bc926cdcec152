"""
Cost Drivers

Period-over-period comparison: which services, regions or accounts moved
spend between the latest window of N days and the N days before it.
"""

import polars as pl
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from kco_finops.lib.costs.calculations import calculate_driver_pct
from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_RESOURCE_ID,
    COL_RESOURCE_NAME,
    COL_SERVICE_NAME,
    UNKNOWN,
)
from kco_finops.lib.costs.frames import cost_expr, day_expr, label_expr

DRIVER_DIMENSIONS = ("ServiceName", "RegionName", "SubAccountName")

PERIOD_CURRENT = "curr"
PERIOD_PREVIOUS = "prev"


def _windowed(
    df: pl.DataFrame,
    period_days: int,
    dimension: str,
) -> tuple[pl.DataFrame, Optional[date]]:
    """
    Rows tagged with their window.

    A row is in the current window when its day is after
    max_day - period_days, in the previous window when it is after
    max_day - 2 * period_days but not after the current cutoff. Rows without
    a parseable day and rows outside both windows are dropped.
    """
    frame = df.with_columns(
        label_expr(df, dimension, UNKNOWN).alias("_key"),
        cost_expr(df, COL_BILLED_COST).alias("_cost"),
        day_expr(df).alias("_day"),
        label_expr(df, [COL_RESOURCE_ID, COL_RESOURCE_NAME], UNKNOWN).alias("_resource"),
    ).filter(pl.col("_day").is_not_null())

    if frame.is_empty():
        return frame.with_columns(pl.lit(None, dtype=pl.Utf8).alias("_period")), None

    max_day: date = frame.get_column("_day").max()
    cutoff_current = max_day - timedelta(days=period_days)
    cutoff_previous = cutoff_current - timedelta(days=period_days)

    tagged = frame.with_columns(
        pl.when(pl.col("_day") > cutoff_current)
        .then(pl.lit(PERIOD_CURRENT))
        .when(pl.col("_day") > cutoff_previous)
        .then(pl.lit(PERIOD_PREVIOUS))
        .otherwise(pl.lit(None, dtype=pl.Utf8))
        .alias("_period")
    ).filter(pl.col("_period").is_not_null())

    return tagged, max_day


def compare_periods(
    df: pl.DataFrame,
    period_days: int = 7,
    dimension: str = COL_SERVICE_NAME,
    min_change: float = 0.0,
) -> Dict[str, Any]:
    """
    Compare spend per dimension value between two adjacent windows.

    Args:
        df: Billing frame
        period_days: Window length in days
        dimension: Grouping column (missing values grouped as `Unknown`)
        min_change: Drop drivers whose absolute change is below this

    Returns:
        Dict with increases (largest first), decreases (most negative
        first), overallStats and the window boundaries
    """
    empty_stats = {
        "totalCurr": 0.0,
        "totalPrev": 0.0,
        "diff": 0.0,
        "pct": 0.0,
        "totalIncreases": 0.0,
        "totalDecreases": 0.0,
    }
    if df.is_empty():
        return {"increases": [], "decreases": [], "overallStats": empty_stats, "maxDate": None}

    tagged, max_day = _windowed(df, period_days, dimension)
    if max_day is None:
        return {"increases": [], "decreases": [], "overallStats": empty_stats, "maxDate": None}

    grouped = (
        tagged.lazy()
        .group_by("_key", maintain_order=True)
        .agg(
            pl.col("_cost").filter(pl.col("_period") == PERIOD_CURRENT).sum().alias("curr"),
            pl.col("_cost").filter(pl.col("_period") == PERIOD_PREVIOUS).sum().alias("prev"),
        )
        .collect()
    )

    drivers: List[Dict[str, Any]] = []
    for row in grouped.iter_rows(named=True):
        curr = row["curr"] or 0.0
        prev = row["prev"] or 0.0
        diff = curr - prev
        if abs(diff) < min_change:
            continue
        drivers.append({
            "name": row["_key"],
            "curr": curr,
            "prev": prev,
            "diff": diff,
            "pct": calculate_driver_pct(curr, prev),
        })

    increases = sorted((d for d in drivers if d["diff"] > 0), key=lambda d: d["diff"], reverse=True)
    decreases = sorted((d for d in drivers if d["diff"] < 0), key=lambda d: d["diff"])

    total_curr = float(tagged.filter(pl.col("_period") == PERIOD_CURRENT).get_column("_cost").sum() or 0.0)
    total_prev = float(tagged.filter(pl.col("_period") == PERIOD_PREVIOUS).get_column("_cost").sum() or 0.0)

    return {
        "increases": increases,
        "decreases": decreases,
        "overallStats": {
            "totalCurr": total_curr,
            "totalPrev": total_prev,
            "diff": total_curr - total_prev,
            "pct": ((total_curr - total_prev) / total_prev) * 100 if total_prev else 0.0,
            "totalIncreases": sum(d["diff"] for d in increases),
            "totalDecreases": sum(d["diff"] for d in decreases),
        },
        "maxDate": max_day.isoformat(),
        "cutoffCurrent": (max_day - timedelta(days=period_days)).isoformat(),
        "cutoffPrevious": (max_day - timedelta(days=2 * period_days)).isoformat(),
    }


def driver_detail(
    df: pl.DataFrame,
    name: str,
    period_days: int = 7,
    dimension: str = COL_SERVICE_NAME,
    top_n: int = 10,
) -> Dict[str, Any]:
    """
    Drill-down of one driver.

    Returns:
        Dict with trendData (daily cost across both windows) and
        topResources (by current-window cost, ResourceId | ResourceName)
    """
    if df.is_empty():
        return {"name": name, "trendData": [], "topResources": []}

    tagged, _ = _windowed(df, period_days, dimension)
    rows = tagged.filter(pl.col("_key") == name)

    trend = (
        rows.group_by("_day")
        .agg(pl.col("_cost").sum().alias("val"))
        .sort("_day")
    )
    top_resources = (
        rows.filter(pl.col("_period") == PERIOD_CURRENT)
        .group_by("_resource", maintain_order=True)
        .agg(pl.col("_cost").sum().alias("cost"))
        .sort("cost", descending=True, maintain_order=True)
        .head(top_n)
    )

    return {
        "name": name,
        "trendData": [
            {"date": row["_day"].isoformat(), "val": row["val"]}
            for row in trend.iter_rows(named=True)
        ],
        "topResources": [
            {"id": row["_resource"], "cost": row["cost"]}
            for row in top_resources.iter_rows(named=True)
        ],
    }
