"""
Commitment Leakage

Spend on line items not covered by a reservation or savings plan.
"""

import polars as pl
from typing import Any, Dict, List

from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_COMMITMENT_STATUS,
    COL_COST,
    COL_REGION_NAME,
    COL_RESOURCE_ID,
    COL_RESOURCE_NAME,
    COL_SERVICE_NAME,
    COVERED_STATUS_KEYWORDS,
    GLOBAL,
    LEAKAGE_MIN_COST,
    UNCOVERED_STATUS,
)
from kco_finops.lib.costs.frames import cost_expr, label_expr

UNKNOWN_RESOURCE = "Unknown Resource"
UNKNOWN_SERVICE = "Unknown Service"


def covered_expr(df: pl.DataFrame) -> pl.Expr:
    """True when CommitmentDiscountStatus mentions used, covered, reserved or savings."""
    status = label_expr(df, COL_COMMITMENT_STATUS, "").str.to_lowercase()
    return pl.any_horizontal([
        status.str.contains(keyword, literal=True) for keyword in COVERED_STATUS_KEYWORDS
    ])


def leakage_frame(df: pl.DataFrame) -> pl.DataFrame:
    """Uncovered rows costing more than the leakage floor, with `_cost` attached."""
    return (
        df.with_columns(
            cost_expr(df, COL_BILLED_COST, fallback=(COL_COST,)).alias("_cost"),
            covered_expr(df).alias("_covered"),
        )
        .filter(~pl.col("_covered") & (pl.col("_cost") > LEAKAGE_MIN_COST))
        .drop("_covered")
    )


def calculate_leakage(df: pl.DataFrame, limit: int = 100) -> Dict[str, Any]:
    """
    Leakage total and the first `limit` leaking line items.

    Returns:
        Dict with leakageCost, leakageCount and leakageItems
        ({name, service, region, cost, CommitmentDiscountStatus})
    """
    if df.is_empty():
        return {"leakageCost": 0.0, "leakageCount": 0, "leakageItems": []}

    leaks = leakage_frame(df)
    items: List[Dict[str, Any]] = []
    if not leaks.is_empty():
        preview = leaks.head(limit).select(
            label_expr(leaks, [COL_RESOURCE_NAME, COL_RESOURCE_ID, COL_SERVICE_NAME], UNKNOWN_RESOURCE).alias("name"),
            label_expr(leaks, COL_SERVICE_NAME, UNKNOWN_SERVICE).alias("service"),
            label_expr(leaks, COL_REGION_NAME, GLOBAL).alias("region"),
            pl.col("_cost").alias("cost"),
        )
        items = [
            {**row, "CommitmentDiscountStatus": UNCOVERED_STATUS}
            for row in preview.iter_rows(named=True)
        ]

    return {
        "leakageCost": float(leaks.get_column("_cost").sum() or 0.0),
        "leakageCount": leaks.height,
        "leakageItems": items,
    }
