"""
Resource Inventory

Per-resource rollup of billing rows with a daily cost history, a
lifecycle status (Spiking / Zombie / New / Active) and tag coverage.
"""

import math
import polars as pl
from typing import Any, Dict, List, Optional, Sequence

from kco_finops.lib.costs.constants import (
    COL_ITEM_DESCRIPTION,
    COL_PAYER_ACCOUNT_ID,
    COL_REGION_NAME,
    COL_RESOURCE_ID,
    COL_RESOURCE_NAME,
    COL_SERVICE_NAME,
    COL_SUB_ACCOUNT_NAME,
    COL_TAGS,
    COL_USAGE_QUANTITY,
    GLOBAL,
    SPIKE_MIN_START,
    SPIKE_RATIO,
    STATUS_ACTIVE,
    STATUS_NEW,
    STATUS_SPIKING,
    STATUS_ZOMBIE,
    UNKNOWN,
)
from kco_finops.lib.costs.frames import cost_expr, date_key_expr, get_tag, label_expr, parse_tags

RESOURCE_ID_COLUMNS = (COL_RESOURCE_ID, COL_RESOURCE_NAME, COL_ITEM_DESCRIPTION)

GROUPINGS = ("none", "service", "region")
TABS = ("all", "zombie", "untagged", "spiking")


def classify_resource(trend: Sequence[float], total_cost: float) -> str:
    """
    Lifecycle status from the first and last daily cost.

    Spiking when the last day exceeds 1.5x a first day above 0.1, Zombie
    when the last day is free but the resource has cost, New when the first
    day is free and the last is not, otherwise Active.
    """
    start = trend[0] if trend else 0.0
    end = trend[-1] if trend else 0.0

    if end > start * SPIKE_RATIO and start > SPIKE_MIN_START:
        return STATUS_SPIKING
    if end == 0 and total_cost > 0:
        return STATUS_ZOMBIE
    if start == 0 and end > 0:
        return STATUS_NEW
    return STATUS_ACTIVE


def _first_tags(cells: Optional[List[Any]]) -> Dict[str, Any]:
    for cell in cells or []:
        if cell == "{}":
            continue
        tags = parse_tags(cell)
        if tags:
            return tags
    return {}


def build_inventory(df: pl.DataFrame) -> List[Dict[str, Any]]:
    """
    Roll billing rows up per resource.

    The resource id is ResourceId | ResourceName | ItemDescription; rows
    without any of them are skipped. Descriptive fields come from the
    first row of each resource.

    Returns:
        Resources sorted by totalCost desc, each with history
        ({date, cost, usage} per day), trend, tags, hasTags and status
    """
    if df.is_empty():
        return []

    frame = df.with_columns(
        label_expr(df, RESOURCE_ID_COLUMNS, None).alias("_id"),
        cost_expr(df).alias("_cost"),
        cost_expr(df, COL_USAGE_QUANTITY).alias("_usage"),
        date_key_expr(df).alias("_date"),
    ).filter(pl.col("_id").is_not_null())

    if frame.is_empty():
        return []

    name_expr = pl.col(COL_RESOURCE_NAME) if COL_RESOURCE_NAME in df.columns else pl.lit(None, dtype=pl.Utf8)
    aggregations = [
        name_expr.first().alias("name"),
        label_expr(df, COL_SERVICE_NAME, UNKNOWN).first().alias("service"),
        label_expr(df, COL_REGION_NAME, GLOBAL).first().alias("region"),
        label_expr(df, [COL_SUB_ACCOUNT_NAME, COL_PAYER_ACCOUNT_ID], UNKNOWN).first().alias("account"),
        pl.col("_cost").sum().alias("totalCost"),
    ]
    if COL_TAGS in df.columns:
        aggregations.append(pl.col(COL_TAGS).drop_nulls().alias("_tags"))

    summary = frame.group_by("_id", maintain_order=True).agg(aggregations)

    daily = (
        frame.filter(pl.col("_date").is_not_null())
        .group_by(["_id", "_date"])
        .agg(
            pl.col("_cost").sum().alias("cost"),
            pl.col("_usage").sum().alias("usage"),
        )
        .sort(["_id", "_date"])
    )
    histories: Dict[str, List[Dict[str, Any]]] = {}
    for row in daily.iter_rows(named=True):
        histories.setdefault(row["_id"], []).append(
            {"date": row["_date"], "cost": row["cost"], "usage": row["usage"]}
        )

    resources = []
    for row in summary.iter_rows(named=True):
        history = histories.get(row["_id"], [])
        trend = [day["cost"] for day in history]
        tags = _first_tags(row.get("_tags"))
        resources.append({
            "id": row["_id"],
            "name": row["name"],
            "service": row["service"],
            "region": row["region"],
            "account": row["account"],
            "totalCost": row["totalCost"],
            "history": history,
            "trend": trend,
            "tags": tags,
            "hasTags": bool(tags),
            "status": classify_resource(trend, row["totalCost"]),
        })

    return sorted(resources, key=lambda r: r["totalCost"], reverse=True)


def inventory_stats(resources: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Counts and costs for all, zombie, untagged and spiking resources."""
    zombies = [r for r in resources if r["status"] == STATUS_ZOMBIE]
    untagged = [r for r in resources if not r["hasTags"]]
    spiking = [r for r in resources if r["status"] == STATUS_SPIKING]
    return {
        "total": len(resources),
        "totalCost": sum(r["totalCost"] for r in resources),
        "zombieCount": len(zombies),
        "zombieCost": sum(r["totalCost"] for r in zombies),
        "untaggedCount": len(untagged),
        "untaggedCost": sum(r["totalCost"] for r in untagged),
        "spikingCount": len(spiking),
        "spikingCost": sum(r["totalCost"] for r in spiking),
    }


def group_resources(
    resources: List[Dict[str, Any]],
    grouping: str,
    preview: int = 10,
) -> List[Dict[str, Any]]:
    """
    Group resources by service or region, in order of each group's most
    expensive resource. `none` yields no groups.
    """
    if grouping == "none":
        return []

    field = "service" if grouping == "service" else "region"
    groups: Dict[str, Dict[str, Any]] = {}
    for resource in resources:
        key = resource[field]
        group = groups.setdefault(key, {"name": key, "total": 0.0, "count": 0, "items": []})
        group["total"] += resource["totalCost"]
        group["count"] += 1
        if len(group["items"]) < preview:
            group["items"].append({"id": resource["id"], "totalCost": resource["totalCost"]})
    return list(groups.values())


def filter_resources(
    resources: List[Dict[str, Any]],
    tab: str = "all",
    search: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Tab filter (all / zombie / untagged / spiking) then case-insensitive id search."""
    if tab == "zombie":
        resources = [r for r in resources if r["status"] == STATUS_ZOMBIE]
    elif tab == "untagged":
        resources = [r for r in resources if not r["hasTags"]]
    elif tab == "spiking":
        resources = [r for r in resources if r["status"] == STATUS_SPIKING]

    if search:
        term = search.lower()
        resources = [r for r in resources if term in str(r["id"]).lower()]
    return resources


def paginate(items: List[Any], page: int, page_size: int) -> Dict[str, Any]:
    """Slice a 1-based page out of a list."""
    total_pages = math.ceil(len(items) / page_size) if page_size > 0 else 0
    page = max(1, page)
    start = (page - 1) * page_size
    return {
        "items": items[start:start + page_size],
        "page": page,
        "pageSize": page_size,
        "totalItems": len(items),
        "totalPages": total_pages,
    }


def tag_matrix(
    resources: List[Dict[str, Any]],
    required_tags: Sequence[str],
    limit: int = 100,
) -> Dict[str, Any]:
    """
    Required-tag coverage for the first `limit` resources.

    Tag keys match case-insensitively; a missing or empty tag is None.
    """
    rows = []
    for resource in resources[:limit]:
        values = {tag: get_tag(resource["tags"], tag) for tag in required_tags}
        rows.append({
            "id": resource["id"],
            "service": resource["service"],
            "totalCost": resource["totalCost"],
            "tags": values,
            "missing": [tag for tag, value in values.items() if value is None],
        })

    coverage = {
        tag: sum(1 for row in rows if row["tags"][tag] is not None)
        for tag in required_tags
    }
    return {"requiredTags": list(required_tags), "rows": rows, "coverage": coverage}


def resource_detail(df: pl.DataFrame, resource_id: str) -> Optional[Dict[str, Any]]:
    """
    One resource with its merged metadata (last non-empty value per column)
    and the raw billing rows behind it. None when the id is unknown.
    """
    resource = next((r for r in build_inventory(df) if r["id"] == resource_id), None)
    if resource is None:
        return None

    rows = (
        df.filter(label_expr(df, RESOURCE_ID_COLUMNS, None) == resource_id)
        .to_dicts()
    )
    metadata: Dict[str, Any] = {}
    for row in rows:
        for key, value in row.items():
            if value:
                metadata[key] = value

    return {**resource, "metadata": metadata, "rawRows": rows}
