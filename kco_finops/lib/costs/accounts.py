"""
Accounts & Ownership

Per-account spend rollup with owner attribution (from the Owner tag) and
rule-based owner suggestions for unattributed accounts.
"""

import polars as pl
from typing import Any, Dict, List, Optional

from kco_finops.lib.costs.calculations import calculate_percentage
from kco_finops.lib.costs.constants import (
    ALL,
    COL_BILLED_COST,
    COL_PROVIDER_NAME,
    COL_SERVICE_NAME,
    COL_SUB_ACCOUNT_NAME,
    COL_TAGS,
    NOT_AVAILABLE,
    OTHER,
    UNKNOWN,
)
from kco_finops.lib.costs.frames import cost_expr, first_present, get_tag, label_expr, parse_tags

ACCOUNT_ID_COLUMNS = ("LinkedAccountId", "SubscriptionId", COL_SUB_ACCOUNT_NAME)
ACCOUNT_NAME_COLUMNS = (COL_SUB_ACCOUNT_NAME, "SubscriptionName")

OWNER_TAG = "Owner"
OWNER_FILTERS = (ALL, "Assigned", "Unassigned")
SORT_FIELDS = ("cost", "name", "owner")

STATUS_ASSIGNED = "Assigned"
STATUS_UNASSIGNED = "Unassigned"

DEFAULT_OWNER = "Platform Team"


def _matches_any(text: str, keywords: List[str]) -> bool:
    lowered = text.lower()
    return any(str(k).lower() in lowered for k in keywords)


def suggest_owner(account: Dict[str, Any], rules: Dict[str, Any]) -> str:
    """
    Suggest an owner team for an account.

    Rules are checked in order: account name keywords, then keywords of the
    account's top service, then cost thresholds (cost strictly above
    `min_cost`), then `default_owner`.
    """
    name = str(account.get("accountName") or "")
    service = str(account.get("topService") or "")

    for rule in rules.get("name_rules", []):
        if _matches_any(name, rule.get("keywords", [])):
            return rule["owner"]

    for rule in rules.get("service_rules", []):
        if _matches_any(service, rule.get("keywords", [])):
            return rule["owner"]

    cost_rules = sorted(rules.get("cost_rules", []), key=lambda r: r.get("min_cost", 0), reverse=True)
    for rule in cost_rules:
        if account.get("cost", 0.0) > rule.get("min_cost", 0):
            return rule["owner"]

    return rules.get("default_owner", DEFAULT_OWNER)


def _first_owner(cells: Optional[List[Any]]) -> Optional[str]:
    for cell in cells or []:
        owner = get_tag(parse_tags(cell), OWNER_TAG)
        if owner:
            return owner
    return None


def build_accounts(df: pl.DataFrame, rules: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Roll billing rows up per account.

    Account id is LinkedAccountId | SubscriptionId | SubAccountName | Unknown.
    Rows with a negative BilledCost are skipped. Name and provider come from
    the first row of each account.

    Returns:
        Dict with accounts (cost desc), insights and the provider list
    """
    rules = rules or {}
    empty_insights = {
        "totalAccounts": 0,
        "accountsWithOwner": 0,
        "accountsWithoutOwner": 0,
        "spendWithOwner": 0.0,
        "spendWithoutOwner": 0.0,
        "spendUnattributedPercent": 0.0,
        "totalSpend": 0.0,
    }
    if df.is_empty():
        return {"accounts": [], "insights": empty_insights, "providers": []}

    account_id = label_expr(df, ACCOUNT_ID_COLUMNS, UNKNOWN)
    name_source = first_present(df, ACCOUNT_NAME_COLUMNS)
    account_name = account_id if name_source is None else pl.coalesce([name_source, account_id])

    frame = df.with_columns(
        account_id.alias("_account"),
        account_name.alias("_name"),
        label_expr(df, COL_PROVIDER_NAME, UNKNOWN).alias("_provider"),
        label_expr(df, COL_SERVICE_NAME, OTHER).alias("_service"),
        cost_expr(df, COL_BILLED_COST).alias("_cost"),
    ).filter(pl.col("_cost") >= 0)

    if frame.is_empty():
        return {"accounts": [], "insights": empty_insights, "providers": []}

    aggregations = [
        pl.col("_name").first().alias("accountName"),
        pl.col("_provider").first().alias("provider"),
        pl.col("_cost").sum().alias("cost"),
    ]
    if COL_TAGS in frame.columns:
        aggregations.append(pl.col(COL_TAGS).drop_nulls().alias("_tags"))
    summary = frame.group_by("_account", maintain_order=True).agg(aggregations)

    services = (
        frame.group_by(["_account", "_service"], maintain_order=True)
        .agg(pl.col("_cost").sum().alias("cost"))
        .sort("cost", descending=True, maintain_order=True)
    )
    top_services: Dict[str, str] = {}
    for row in services.iter_rows(named=True):
        top_services.setdefault(row["_account"], row["_service"])

    total_spend = float(frame.get_column("_cost").sum() or 0.0)
    providers = list(dict.fromkeys(frame.get_column("_provider").to_list()))

    accounts = []
    for row in summary.iter_rows(named=True):
        owner = _first_owner(row.get("_tags"))
        account = {
            "accountId": row["_account"],
            "accountName": row["accountName"],
            "provider": row["provider"],
            "cost": row["cost"],
            "topService": top_services.get(row["_account"], NOT_AVAILABLE),
            "percentage": calculate_percentage(row["cost"], total_spend),
            "owner": owner,
            "ownershipStatus": STATUS_ASSIGNED if owner else STATUS_UNASSIGNED,
        }
        account["suggestedOwner"] = suggest_owner(account, rules)
        account["actionRequired"] = "None" if owner else "Assign Owner"
        accounts.append(account)

    accounts.sort(key=lambda a: a["cost"], reverse=True)

    with_owner = [a for a in accounts if a["owner"]]
    without_owner = [a for a in accounts if not a["owner"]]
    spend_without_owner = sum(a["cost"] for a in without_owner)

    return {
        "accounts": accounts,
        "insights": {
            "totalAccounts": len(accounts),
            "accountsWithOwner": len(with_owner),
            "accountsWithoutOwner": len(without_owner),
            "spendWithOwner": sum(a["cost"] for a in with_owner),
            "spendWithoutOwner": spend_without_owner,
            "spendUnattributedPercent": calculate_percentage(spend_without_owner, total_spend),
            "totalSpend": total_spend,
        },
        "providers": providers,
    }


def filter_accounts(
    accounts: List[Dict[str, Any]],
    search: Optional[str] = None,
    owner_status: str = ALL,
    provider: str = ALL,
) -> List[Dict[str, Any]]:
    """Search on name or id, then owner status and provider filters."""
    result = accounts
    if search:
        term = search.lower()
        result = [
            a for a in result
            if term in str(a["accountName"]).lower() or term in str(a["accountId"]).lower()
        ]
    if owner_status == STATUS_ASSIGNED:
        result = [a for a in result if a["owner"]]
    elif owner_status == STATUS_UNASSIGNED:
        result = [a for a in result if not a["owner"]]
    if provider != ALL:
        result = [a for a in result if a["provider"] == provider]
    return result


def sort_accounts(
    accounts: List[Dict[str, Any]],
    sort_by: str = "cost",
    sort_order: str = "desc",
) -> List[Dict[str, Any]]:
    """Sort by cost, name or owner (missing owner sorts as empty)."""
    if sort_by == "name":
        key = lambda a: str(a["accountName"]).lower()
    elif sort_by == "owner":
        key = lambda a: str(a["owner"] or "").lower()
    else:
        key = lambda a: a["cost"]
    return sorted(accounts, key=key, reverse=sort_order == "desc")
