"""
Billing Column Constants

Canonical FOCUS column names and display defaults shared by the ingest
pipeline and the dashboard views.
"""

# =============================================================================
# FOCUS Column Names
# =============================================================================

COL_BILLED_COST = "BilledCost"
COL_COST = "Cost"
COL_CHARGE_PERIOD_START = "ChargePeriodStart"
COL_BILLING_PERIOD_START = "BillingPeriodStart"
COL_SERVICE_NAME = "ServiceName"
COL_REGION_NAME = "RegionName"
COL_PROVIDER_NAME = "ProviderName"
COL_RESOURCE_ID = "ResourceId"
COL_RESOURCE_NAME = "ResourceName"
COL_ITEM_DESCRIPTION = "ItemDescription"
COL_SUB_ACCOUNT_NAME = "SubAccountName"
COL_PAYER_ACCOUNT_ID = "PayerAccountId"
COL_TAGS = "Tags"
COL_COMMITMENT_STATUS = "CommitmentDiscountStatus"
COL_USAGE_QUANTITY = "UsageQuantity"

# Columns whose absence counts as missing metadata
METADATA_COLUMNS = (COL_SERVICE_NAME, COL_REGION_NAME, COL_RESOURCE_NAME)


# =============================================================================
# Display Defaults
# =============================================================================

UNKNOWN = "Unknown"
GLOBAL = "Global"
OTHER = "Other"
OTHERS = "Others"
UNTAGGED = "Untagged"
EMPTY_GROUP = "(Empty)"
NOT_AVAILABLE = "N/A"

# Filter value that disables a dashboard filter
ALL = "All"

# Column filter sentinel selecting empty cells
EMPTY_FILTER = "__EMPTY__"


# =============================================================================
# Commitment Coverage
# =============================================================================

# A CommitmentDiscountStatus containing any of these marks a covered line item
COVERED_STATUS_KEYWORDS = ("used", "covered", "reserved", "savings")

# Minimum cost for an uncovered line item to count as leakage
LEAKAGE_MIN_COST = 0.0001

UNCOVERED_STATUS = "Uncovered"


# =============================================================================
# Resource Status
# =============================================================================

STATUS_SPIKING = "Spiking"
STATUS_ZOMBIE = "Zombie"
STATUS_NEW = "New"
STATUS_ACTIVE = "Active"

# end > start * SPIKE_RATIO with start above SPIKE_MIN_START marks a spike
SPIKE_RATIO = 1.5
SPIKE_MIN_START = 0.1

# Values treated as "no tag"
UNTAGGED_VALUES = frozenset(["", "null", "none"])
