"""
KCO FinOps Calculation Libraries

Pure Polars modules used by the services so every endpoint computes costs
the same way.

Modules:
- costs: Cost aggregation, drivers, inventory, explorer and reports
- ingest: Column detection for billing exports
"""

from kco_finops.lib.costs import (
    # Frames
    records_to_frame,
    frame_to_records,
    # Aggregations
    aggregate_by_date,
    aggregate_by_dimension,
    # Calculations
    calculate_percentage,
    calculate_efficiency_score,
    # Filters
    DashboardFilters,
    apply_dashboard_filters,
)

from kco_finops.lib.ingest import (
    detect_columns,
    normalize_row,
)

__all__ = [
    # Costs
    "records_to_frame",
    "frame_to_records",
    "aggregate_by_date",
    "aggregate_by_dimension",
    "calculate_percentage",
    "calculate_efficiency_score",
    "DashboardFilters",
    "apply_dashboard_filters",
    # Ingest
    "detect_columns",
    "normalize_row",
]
