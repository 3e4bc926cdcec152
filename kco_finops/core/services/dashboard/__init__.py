"""
Dashboard Service

Read-only dashboard analytics over uploaded billing datasets.
Uses Polars + LRU Cache + lib/costs/ for every view.

Usage:
    from kco_finops.core.services.dashboard import (
        get_dashboard_service,
        DashboardFilters,
        InventoryQuery,
    )

    service = get_dashboard_service()

    # Overview for one provider
    overview = await service.get_overview(
        dataset_id,
        filters=DashboardFilters(provider="AWS"),
        group_by="ServiceName",
    )

    # Zombie resources, page 2
    inventory = await service.get_resource_inventory(
        dataset_id,
        InventoryQuery(tab="zombie", page=2),
    )
"""

from kco_finops.core.services.dashboard.models import (
    AccountsQuery,
    ChartLimits,
    DashboardResponse,
    IdleResourceQuery,
    InventoryQuery,
)
from kco_finops.core.services.dashboard.service import DashboardService, get_dashboard_service
from kco_finops.lib.costs import DashboardFilters, ExplorerQuery

__all__ = [
    "AccountsQuery",
    "ChartLimits",
    "DashboardResponse",
    "IdleResourceQuery",
    "InventoryQuery",
    "DashboardService",
    "get_dashboard_service",
    "DashboardFilters",
    "ExplorerQuery",
]
