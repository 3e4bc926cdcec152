"""
Report Summaries

Executive numbers for the downloadable reports: period, top services and
regions, tag coverage and production share.
"""

import polars as pl
from datetime import date
from typing import Any, Dict, Optional

from kco_finops.lib.costs.aggregations import aggregate_by_dimension
from kco_finops.lib.costs.calculations import calculate_percentage
from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_BILLING_PERIOD_START,
    COL_CHARGE_PERIOD_START,
    COL_REGION_NAME,
    COL_SERVICE_NAME,
    COL_TAGS,
    UNKNOWN,
)
from kco_finops.lib.costs.frames import cost_expr, date_key_expr, get_tag, parse_tags

PERIOD_COLUMNS = (COL_BILLING_PERIOD_START, "BillingPeriodStartDate", "Date", COL_CHARGE_PERIOD_START)


def _period(df: pl.DataFrame) -> str:
    if not df.is_empty():
        keys = df.select(date_key_expr(df, PERIOD_COLUMNS).alias("k")).get_column("k").drop_nulls()
        if keys.len() > 0:
            return keys[0]
    return date.today().isoformat()


def _tag_costs(df: pl.DataFrame) -> tuple[float, float]:
    """Cost of tagged rows and of rows whose Environment tag mentions prod."""
    if COL_TAGS not in df.columns:
        return 0.0, 0.0
    tagged = 0.0
    prod = 0.0
    frame = df.select(pl.col(COL_TAGS), cost_expr(df, COL_BILLED_COST).alias("_cost"))
    for cell, cost in frame.iter_rows():
        tags = parse_tags(cell)
        if tags:
            tagged += cost
        environment = (get_tag(tags, "Environment") or "").lower()
        if "prod" in environment:
            prod += cost
    return tagged, prod


def build_report(df: pl.DataFrame, optimization: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Report summary for a billing frame.

    Args:
        df: Billing frame
        optimization: Optimization summary to embed

    Returns:
        Dict with period, totalSpend, topServices, topRegions (top 3
        {name, cost}), topServicePercent, taggedPercent, prodPercent and
        optimization
    """
    total_spend = (
        float(df.select(cost_expr(df, COL_BILLED_COST).sum()).item() or 0.0)
        if not df.is_empty() else 0.0
    )
    services = aggregate_by_dimension(df, COL_SERVICE_NAME, UNKNOWN, limit=3)
    regions = aggregate_by_dimension(df, COL_REGION_NAME, UNKNOWN, limit=3)
    tagged_cost, prod_cost = _tag_costs(df)

    return {
        "period": _period(df),
        "totalSpend": total_spend,
        "recordCount": df.height,
        "topServices": [{"name": s["name"], "cost": s["value"]} for s in services],
        "topRegions": [{"name": r["name"], "cost": r["value"]} for r in regions],
        "topServicePercent": calculate_percentage(services[0]["value"], total_spend) if services else 0.0,
        "taggedPercent": calculate_percentage(tagged_cost, total_spend),
        "prodPercent": calculate_percentage(prod_cost, total_spend),
        "optimization": optimization or {},
    }
