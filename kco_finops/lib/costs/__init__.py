"""
Cost Calculation Library

Centralized cost aggregation, filtering and analytics functions over
uploaded billing rows. Uses Polars for high-performance calculations.

Usage:
    from kco_finops.lib.costs import (
        records_to_frame,
        aggregate_by_dimension,
        compare_periods,
    )

    df = records_to_frame(raw_records)

    # Spend by service, top 8
    services = aggregate_by_dimension(df, "ServiceName", limit=8)

    # Week-over-week drivers
    drivers = compare_periods(df, period_days=7, dimension="ServiceName")
"""

from kco_finops.lib.costs.frames import (
    records_to_frame,
    frame_to_records,
    cost_expr,
    date_expr,
    day_expr,
    label_expr,
    total_cost,
    parse_cost,
    parse_tags,
    get_tag,
    is_untagged,
)

from kco_finops.lib.costs.aggregations import (
    aggregate_by_date,
    aggregate_by_dimension,
    aggregate_by_tag,
    top_entry,
    top_entry_or_na,
    calculate_untagged_cost,
    calculate_missing_metadata_cost,
    calculate_spend_change,
    detect_anomalies,
    pivot,
    quick_stats,
    column_summaries,
    stacked_daily_top_n,
)

from kco_finops.lib.costs.calculations import (
    # Percentage calculations
    calculate_percentage,
    calculate_percentage_change,
    calculate_driver_pct,
    calculate_efficiency_score,
    # Statistics
    mean_and_stddev,
    calculate_predictability,
    calculate_concentration,
    Predictability,
    # Rate calculations
    calculate_daily_rate,
    calculate_monthly_forecast,
    calculate_annual_forecast,
    calculate_forecasts,
    billing_period,
)

from kco_finops.lib.costs.filters import (
    DashboardFilters,
    apply_dashboard_filters,
    limit_by_cost,
    filter_options,
    global_search,
    apply_column_filters,
    sort_records,
)

from kco_finops.lib.costs.leakage import calculate_leakage
from kco_finops.lib.costs.drivers import compare_periods, driver_detail
from kco_finops.lib.costs.inventory import (
    build_inventory,
    classify_resource,
    inventory_stats,
    group_resources,
    filter_resources,
    paginate,
    tag_matrix,
    resource_detail,
)
from kco_finops.lib.costs.explorer import (
    ExplorerQuery,
    explore,
    explorer_pivot,
    drill_down_filter,
    export_csv,
    export_frame,
)
from kco_finops.lib.costs.accounts import (
    build_accounts,
    filter_accounts,
    sort_accounts,
    suggest_owner,
)
from kco_finops.lib.costs.optimization import (
    find_opportunities,
    idle_resources,
    filter_idle_resources,
    optimization_summary,
)
from kco_finops.lib.costs.reports import build_report

__all__ = [
    # Frames
    "records_to_frame",
    "frame_to_records",
    "cost_expr",
    "date_expr",
    "day_expr",
    "label_expr",
    "total_cost",
    "parse_cost",
    "parse_tags",
    "get_tag",
    "is_untagged",
    # Aggregations
    "aggregate_by_date",
    "aggregate_by_dimension",
    "aggregate_by_tag",
    "top_entry",
    "top_entry_or_na",
    "calculate_untagged_cost",
    "calculate_missing_metadata_cost",
    "calculate_spend_change",
    "detect_anomalies",
    "pivot",
    "quick_stats",
    "column_summaries",
    "stacked_daily_top_n",
    # Percentage calculations
    "calculate_percentage",
    "calculate_percentage_change",
    "calculate_driver_pct",
    "calculate_efficiency_score",
    # Statistics
    "mean_and_stddev",
    "calculate_predictability",
    "calculate_concentration",
    "Predictability",
    # Rate calculations
    "calculate_daily_rate",
    "calculate_monthly_forecast",
    "calculate_annual_forecast",
    "calculate_forecasts",
    "billing_period",
    # Filters
    "DashboardFilters",
    "apply_dashboard_filters",
    "limit_by_cost",
    "filter_options",
    "global_search",
    "apply_column_filters",
    "sort_records",
    # Views
    "calculate_leakage",
    "compare_periods",
    "driver_detail",
    "build_inventory",
    "classify_resource",
    "inventory_stats",
    "group_resources",
    "filter_resources",
    "paginate",
    "tag_matrix",
    "resource_detail",
    "ExplorerQuery",
    "explore",
    "explorer_pivot",
    "drill_down_filter",
    "export_csv",
    "export_frame",
    "build_accounts",
    "filter_accounts",
    "sort_accounts",
    "suggest_owner",
    "find_opportunities",
    "idle_resources",
    "filter_idle_resources",
    "optimization_summary",
    "build_report",
]
