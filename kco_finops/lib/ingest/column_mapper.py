"""
Billing Column Mapper

Maps provider-specific billing export headers (AWS CUR, Azure cost exports,
GCP billing exports) onto canonical FOCUS column names so every downstream
view can read `BilledCost`, `ServiceName`, `RegionName` and friends.
"""

import logging
import re
from typing import Any, Dict, Iterable, List

logger = logging.getLogger(__name__)

BOM = "\ufeff"

# Canonical FOCUS name -> known aliases, in priority order.
# Aliases are compared after normalization (lowercase, no separators).
COLUMN_ALIASES: Dict[str, List[str]] = {
    "BilledCost": [
        "billed_cost",
        "lineItem/UnblendedCost",
        "line_item_unblended_cost",
        "unblended_cost",
        "lineItem/NetUnblendedCost",
        "CostInBillingCurrency",
        "PreTaxCost",
        "cost_usd",
    ],
    "EffectiveCost": ["effective_cost", "lineItem/BlendedCost", "line_item_blended_cost", "AmortizedCost"],
    "ListCost": ["list_cost", "pricing/publicOnDemandCost", "PaygCostInBillingCurrency"],
    "ChargePeriodStart": [
        "charge_period_start",
        "lineItem/UsageStartDate",
        "line_item_usage_start_date",
        "UsageStartDate",
        "usage_start_time",
        "Date",
        "UsageDate",
    ],
    "ChargePeriodEnd": ["charge_period_end", "lineItem/UsageEndDate", "line_item_usage_end_date", "usage_end_time"],
    "BillingPeriodStart": [
        "billing_period_start",
        "bill/BillingPeriodStartDate",
        "bill_billing_period_start_date",
        "BillingPeriodStartDate",
    ],
    "ServiceName": [
        "service_name",
        "product/ProductName",
        "product_product_name",
        "lineItem/ProductCode",
        "line_item_product_code",
        "MeterCategory",
        "ConsumedService",
        "service_description",
        "service",
    ],
    "ServiceCategory": ["service_category", "product/productFamily", "product_product_family"],
    "RegionName": [
        "region_name",
        "product/region",
        "product_region",
        "ResourceLocation",
        "location_region",
        "Region",
    ],
    "ProviderName": ["provider_name", "Provider", "cloud_provider"],
    "ResourceId": [
        "resource_id",
        "lineItem/ResourceId",
        "line_item_resource_id",
        "InstanceId",
        "ResourceID",
    ],
    "ResourceName": ["resource_name", "resource_global_name"],
    "ResourceType": ["resource_type", "product/instanceType"],
    "SubAccountId": [
        "sub_account_id",
        "lineItem/UsageAccountId",
        "line_item_usage_account_id",
        "SubscriptionGuid",
        "project_id",
    ],
    "SubAccountName": ["sub_account_name", "SubscriptionName", "project_name", "AccountName"],
    "PayerAccountId": ["payer_account_id", "bill/PayerAccountId", "bill_payer_account_id", "BillingAccountId"],
    "Tags": ["tags", "resourceTags", "resource_tags", "labels"],
    "CommitmentDiscountStatus": ["commitment_discount_status"],
    "ChargeCategory": ["charge_category", "lineItem/LineItemType", "line_item_line_item_type", "ChargeType"],
    "UsageQuantity": [
        "usage_quantity",
        "lineItem/UsageAmount",
        "line_item_usage_amount",
        "Quantity",
        "usage_amount",
    ],
    "ItemDescription": ["item_description", "lineItem/LineItemDescription", "line_item_line_item_description"],
}


def clean_header(header: str) -> str:
    """Trim whitespace and strip a UTF-8 byte order mark."""
    return header.strip().lstrip(BOM).strip()


def _normalize(name: str) -> str:
    return re.sub(r"[\s_/\-.]", "", name).lower()


def detect_columns(headers: Iterable[str]) -> Dict[str, str]:
    """
    Map canonical FOCUS names to source headers.

    Exact header names win; otherwise the canonical name and its aliases
    are matched separator- and case-insensitively. A source header is
    mapped to at most one canonical name.

    Args:
        headers: Source CSV headers (or the keys of the first row)

    Returns:
        Dict of canonical name -> source header
    """
    cleaned = [clean_header(h) for h in headers]
    by_normalized: Dict[str, str] = {}
    for header in cleaned:
        by_normalized.setdefault(_normalize(header), header)

    mapping: Dict[str, str] = {}
    used = set()

    for canonical in COLUMN_ALIASES:
        if canonical in cleaned:
            mapping[canonical] = canonical
            used.add(canonical)

    for canonical, aliases in COLUMN_ALIASES.items():
        if canonical in mapping:
            continue
        for candidate in [canonical, *aliases]:
            source = by_normalized.get(_normalize(candidate))
            if source and source not in used:
                mapping[canonical] = source
                used.add(source)
                break

    for canonical, source in mapping.items():
        if canonical != source:
            logger.debug(f"Mapped '{source}' to '{canonical}'")

    return mapping


def normalize_row(row: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    """
    Re-key a row by canonical names.

    Mapped columns take their canonical name; unmapped source columns are
    kept unchanged. Column order follows the source row.
    """
    renames = {source: canonical for canonical, source in mapping.items()}
    normalized: Dict[str, Any] = {}
    for key, value in row.items():
        clean_key = clean_header(key)
        normalized[renames.get(clean_key, clean_key)] = value
    return normalized
