"""
Optimization Opportunities

Savings opportunities derived from the billing data itself: uncovered
commitment spend, zombie resources, spiking resources and untagged spend.
Each opportunity's `savings` is the spend it addresses.
"""

import polars as pl
from datetime import date
from typing import Any, Dict, List, Optional

from kco_finops.lib.costs.aggregations import calculate_untagged_cost
from kco_finops.lib.costs.calculations import calculate_percentage
from kco_finops.lib.costs.constants import STATUS_SPIKING, STATUS_ZOMBIE
from kco_finops.lib.costs.frames import get_tag, total_cost
from kco_finops.lib.costs.leakage import calculate_leakage

PRIORITY_HIGH = "HIGH IMPACT"
PRIORITY_MEDIUM = "MEDIUM IMPACT"
PRIORITY_LOW = "LOW IMPACT"

RISK_PROD = "Prod"
RISK_NON_PROD = "Non-prod"

RISK_FILTERS = ("all", "prod", "non-prod")
IDLE_SORTS = ("savings-desc", "savings-asc", "days-desc", "days-asc")


def _priority(cost_impact_pct: float) -> str:
    if cost_impact_pct >= 10:
        return PRIORITY_HIGH
    if cost_impact_pct >= 2:
        return PRIORITY_MEDIUM
    return PRIORITY_LOW


def _regions(resources: List[Dict[str, Any]], limit: int = 5) -> List[str]:
    return list(dict.fromkeys(r["region"] for r in resources))[:limit]


def _opportunity(
    opportunity_id: str,
    title: str,
    savings: float,
    total_spend: float,
    confidence: str,
    description: str,
    affected: int,
    regions: List[str],
    evidence: List[str],
    resolution_paths: List[str],
) -> Dict[str, Any]:
    impact = calculate_percentage(savings, total_spend)
    return {
        "id": opportunity_id,
        "priority": _priority(impact),
        "title": title,
        "savings": savings,
        "confidence": confidence,
        "regions": regions,
        "description": description,
        "affectedResources": affected,
        "evidence": evidence,
        "resolutionPaths": resolution_paths,
        "costImpact": {"current": savings, "optimized": 0.0, "percentOfSpend": impact},
    }


def find_opportunities(df: pl.DataFrame, resources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Opportunities with positive savings, largest first.

    Args:
        df: Billing frame
        resources: Inventory rollup of the same frame
    """
    total_spend = total_cost(df)
    opportunities = []

    leakage = calculate_leakage(df, limit=0)
    if leakage["leakageCost"] > 0:
        opportunities.append(_opportunity(
            "uncovered-commitments",
            "Uncovered On-Demand Spend",
            leakage["leakageCost"],
            total_spend,
            "Medium",
            "Line items billed without a reservation or savings plan",
            leakage["leakageCount"],
            [],
            [
                f"{leakage['leakageCount']} line items have no commitment coverage",
                f"{calculate_percentage(leakage['leakageCost'], total_spend):.1f}% of spend is on-demand",
            ],
            [
                "Evaluate a savings plan for steady workloads",
                "Purchase reservations for always-on resources",
            ],
        ))

    zombies = [r for r in resources if r["status"] == STATUS_ZOMBIE]
    zombie_cost = sum(r["totalCost"] for r in zombies)
    if zombie_cost > 0:
        opportunities.append(_opportunity(
            "zombie-resources",
            "Idle Resources",
            zombie_cost,
            total_spend,
            "High",
            "Resources whose spend dropped to zero by the end of the period",
            len(zombies),
            _regions(zombies),
            [f"{len(zombies)} resources had no cost on their latest billed day"],
            [
                "Confirm the resources are no longer needed",
                "Decommission or snapshot and delete",
            ],
        ))

    spiking = [r for r in resources if r["status"] == STATUS_SPIKING]
    spiking_cost = sum(r["totalCost"] for r in spiking)
    if spiking_cost > 0:
        opportunities.append(_opportunity(
            "spiking-resources",
            "Spiking Resources",
            spiking_cost,
            total_spend,
            "Medium",
            "Resources whose daily cost grew more than 50% over the period",
            len(spiking),
            _regions(spiking),
            [f"{len(spiking)} resources ended the period above 1.5x their starting daily cost"],
            [
                "Review recent scaling or configuration changes",
                "Right-size to the observed baseline",
            ],
        ))

    untagged_cost = calculate_untagged_cost(df)
    if untagged_cost > 0:
        untagged = [r for r in resources if not r["hasTags"]]
        opportunities.append(_opportunity(
            "untagged-spend",
            "Untagged Spend",
            untagged_cost,
            total_spend,
            "Low",
            "Spend that cannot be attributed to an owner or environment",
            len(untagged),
            _regions(untagged),
            [f"{calculate_percentage(untagged_cost, total_spend):.1f}% of spend has no tags"],
            [
                "Enforce Owner, Environment and Project tags",
                "Backfill tags on the most expensive resources",
            ],
        ))

    return sorted(opportunities, key=lambda o: o["savings"], reverse=True)


def _last_active_day(history: List[Dict[str, Any]]) -> Optional[str]:
    for day in reversed(history):
        if day["cost"] > 0:
            return day["date"]
    return None


def _days_between(start: Optional[str], end: Optional[str]) -> int:
    if not start or not end:
        return 0
    try:
        return max(0, (date.fromisoformat(end) - date.fromisoformat(start)).days)
    except ValueError:
        return 0


def idle_resources(resources: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Zombie resources as idle-resource entries.

    `daysIdle` counts days from the last day with cost to the latest day in
    the inventory; `risk` is Prod when the Environment tag mentions prod.
    """
    latest = max(
        (day["date"] for r in resources for day in r["history"] if day["date"]),
        default=None,
    )

    idle = []
    for resource in resources:
        if resource["status"] != STATUS_ZOMBIE:
            continue
        environment = (get_tag(resource["tags"], "Environment") or "").lower()
        last_activity = _last_active_day(resource["history"])
        idle.append({
            "id": resource["id"],
            "type": resource["service"],
            "name": resource["name"] or resource["id"],
            "status": resource["status"],
            "daysIdle": _days_between(last_activity, latest),
            "savings": resource["totalCost"],
            "risk": RISK_PROD if "prod" in environment else RISK_NON_PROD,
            "lastActivity": last_activity,
            "region": resource["region"],
            "account": resource["account"],
            "tags": resource["tags"],
            "costHistory": resource["trend"],
            "owner": get_tag(resource["tags"], "Owner"),
        })
    return idle


def filter_idle_resources(
    idle: List[Dict[str, Any]],
    risk: str = "all",
    search: Optional[str] = None,
    sort: str = "savings-desc",
) -> List[Dict[str, Any]]:
    """Search on name, type or region, then risk filter, then sort."""
    result = idle
    if search:
        term = search.lower()
        result = [
            r for r in result
            if term in str(r["name"]).lower()
            or term in str(r["type"]).lower()
            or term in str(r["region"]).lower()
        ]

    if risk == "prod":
        result = [r for r in result if r["risk"] == RISK_PROD]
    elif risk == "non-prod":
        result = [r for r in result if r["risk"] == RISK_NON_PROD]

    if sort == "savings-asc":
        return sorted(result, key=lambda r: r["savings"])
    if sort == "days-desc":
        return sorted(result, key=lambda r: r["daysIdle"], reverse=True)
    if sort == "days-asc":
        return sorted(result, key=lambda r: r["daysIdle"])
    return sorted(result, key=lambda r: r["savings"], reverse=True)


def optimization_summary(opportunities: List[Dict[str, Any]], idle: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Headline numbers shared by the optimization view and the reports."""
    total_savings = sum(o["savings"] for o in opportunities)
    high_confidence = sum(o["savings"] for o in opportunities if o["confidence"] == "High")
    return {
        "totalPotentialSavings": total_savings,
        "highConfidencePercent": calculate_percentage(high_confidence, total_savings),
        "opportunityCount": len(opportunities),
        "idleResources": len(idle),
        "topOpportunities": [
            {"id": o["id"], "title": o["title"], "savings": o["savings"]}
            for o in opportunities[:3]
        ],
    }
