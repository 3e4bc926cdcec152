"""
Dashboard Service

Read-only analytics over stored billing datasets, one method per dashboard
view. Every view runs lib/costs/ functions over the dataset's Polars frame
and caches its result per dataset and parameters.

Features:
- Overview, cost drivers, cost analysis, resource inventory
- Data explorer with pivot and CSV export, saved explorer views
- Accounts & ownership, optimization opportunities, report summary
- LRU cache with TTL, invalidated when a dataset is deleted
"""

import logging
import time
from dataclasses import asdict
from typing import Optional, List, Dict, Any, Callable

import polars as pl

from kco_finops.app.config import settings
from kco_finops.core.exceptions import FinOpsException, InvalidParameterError, ResourceNotFoundError
from kco_finops.core.services._shared import LRUCache, create_cache, validate_choice
from kco_finops.core.services.dashboard.models import (
    AccountsQuery,
    ChartLimits,
    DashboardResponse,
    IdleResourceQuery,
    InventoryQuery,
    params_key,
)
from kco_finops.core.services.dataset_store import DatasetStore, SavedView, get_dataset_store
from kco_finops.core.utils.error_handling import generate_error_id
from kco_finops.core.utils.logging import safe_error_log
from kco_finops.lib.costs import (
    # Aggregations
    aggregate_by_date,
    aggregate_by_dimension,
    aggregate_by_tag,
    top_entry,
    top_entry_or_na,
    calculate_untagged_cost,
    calculate_missing_metadata_cost,
    calculate_spend_change,
    detect_anomalies,
    stacked_daily_top_n,
    total_cost,
    # Calculations
    calculate_predictability,
    calculate_concentration,
    calculate_forecasts,
    calculate_percentage,
    billing_period,
    # Filters
    DashboardFilters,
    apply_dashboard_filters,
    limit_by_cost,
    filter_options,
    # Views
    compare_periods,
    driver_detail,
    build_inventory,
    inventory_stats,
    group_resources,
    filter_resources,
    paginate,
    tag_matrix,
    resource_detail,
    ExplorerQuery,
    explore,
    explorer_pivot,
    drill_down_filter,
    export_frame,
    build_accounts,
    filter_accounts,
    sort_accounts,
    find_opportunities,
    idle_resources,
    filter_idle_resources,
    optimization_summary,
    build_report,
)
from kco_finops.lib.costs.calculations import split_halves
from kco_finops.lib.costs.constants import (
    COL_PROVIDER_NAME,
    COL_REGION_NAME,
    COL_SERVICE_NAME,
    GLOBAL,
    OTHERS,
    UNKNOWN,
)
from kco_finops.lib.costs.accounts import OWNER_FILTERS, SORT_FIELDS
from kco_finops.lib.costs.drivers import DRIVER_DIMENSIONS
from kco_finops.lib.costs.explorer import SORT_DIRECTIONS
from kco_finops.lib.costs.inventory import GROUPINGS, TABS
from kco_finops.lib.costs.optimization import IDLE_SORTS, RISK_FILTERS

logger = logging.getLogger(__name__)

TOP_N_LIMIT = 5
GROUPED_DATA_LIMIT = 10
TAG_MATRIX_LIMIT = 100


class DashboardService:
    """
    Dashboard analytics service using Polars + lib/costs/.

    READ-ONLY over datasets written by the CSV ingest service. Unknown
    datasets and invalid parameters raise FinOpsException subclasses;
    any other failure is logged and returned as an unsuccessful response.
    """

    def __init__(self, store: Optional[DatasetStore] = None, cache: Optional[LRUCache] = None):
        self._store = store
        self._cache = cache if cache is not None else create_cache("DASHBOARD", max_size=500, default_ttl=settings.dataset_cache_ttl_seconds)

    @property
    def store(self) -> DatasetStore:
        if self._store is None:
            self._store = get_dataset_store()
        return self._store

    def _run(
        self,
        dataset_id: str,
        view: str,
        params: Dict[str, Any],
        compute: Callable[[pl.DataFrame], Dict[str, Any]],
    ) -> DashboardResponse:
        """Resolve the dataset, serve from cache or compute and cache the view."""
        start_time = time.time()
        dataset = self.store.get(dataset_id)
        cache_key = f"{dataset_id}:{view}:{params_key(params)}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            return DashboardResponse(
                success=True,
                data=cached,
                cache_hit=True,
                query_time_ms=round((time.time() - start_time) * 1000, 2)
            )

        try:
            data = compute(dataset.frame)
            self._cache.set(cache_key, data)
            return DashboardResponse(
                success=True,
                data=data,
                cache_hit=False,
                query_time_ms=round((time.time() - start_time) * 1000, 2)
            )
        except FinOpsException:
            raise
        except Exception as e:
            error_id = generate_error_id()
            safe_error_log(
                logger, f"Dashboard {view} failed [{error_id}]", e,
                dataset_id=dataset_id, view=view, error_id=error_id
            )
            return DashboardResponse(
                success=False,
                error=str(e),
                error_id=error_id,
                query_time_ms=(time.time() - start_time) * 1000
            )

    def _resources(self, dataset_id: str, df: pl.DataFrame) -> List[Dict[str, Any]]:
        """Inventory rollup, computed once per dataset."""
        cache_key = f"{dataset_id}:inventory"
        resources = self._cache.get(cache_key)
        if resources is None:
            resources = build_inventory(df)
            self._cache.set(cache_key, resources)
        return resources

    # ==========================================================================
    # Overview
    # ==========================================================================

    async def get_overview(
        self,
        dataset_id: str,
        filters: Optional[DashboardFilters] = None,
        group_by: str = COL_SERVICE_NAME,
        limits: Optional[ChartLimits] = None,
    ) -> DashboardResponse:
        """KPIs, trend, grouped and region charts, anomalies for the filtered rows."""
        filters = filters or DashboardFilters()
        limits = limits or ChartLimits()

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            capped = limit_by_cost(df, limits.data_limit)
            filtered = apply_dashboard_filters(capped, filters)

            total_spend = total_cost(filtered)
            all_days = aggregate_by_date(filtered)
            dated_days = [d for d in all_days if d["date"] != UNKNOWN]
            grouped = aggregate_by_dimension(filtered, group_by, UNKNOWN, limit=limits.bar_limit)
            all_regions = aggregate_by_dimension(filtered, COL_REGION_NAME, GLOBAL)
            providers = aggregate_by_dimension(filtered, COL_PROVIDER_NAME, UNKNOWN)
            anomalies = detect_anomalies(filtered, settings.anomaly_sigma, settings.anomaly_limit)
            forecasts = calculate_forecasts(total_spend, len(dated_days))
            top_region = top_entry(all_regions)
            top_service = grouped[0] if grouped else None

            return {
                "totalSpend": total_spend,
                "dailyData": all_days[-limits.trend_limit:],
                "groupedData": grouped,
                "groupBy": group_by,
                "regionData": all_regions[:limits.pie_limit],
                "allRegionData": all_regions,
                "environmentData": aggregate_by_tag(filtered, "Environment")[:limits.pie_limit],
                "topRegion": top_region,
                "topService": top_service,
                "topRegionPercent": calculate_percentage(top_region["value"] or 0.0, total_spend),
                "topServicePercent": calculate_percentage(top_service["value"], total_spend) if top_service else 0.0,
                "billingPeriod": billing_period([d["date"] for d in dated_days]),
                "topProvider": top_entry_or_na(providers),
                "spendChangePercent": calculate_spend_change(filtered),
                "untaggedCost": calculate_untagged_cost(filtered),
                "missingMetadataCost": calculate_missing_metadata_cost(filtered),
                "anomalies": anomalies,
                "anomaliesCount": len(anomalies),
                "dailyRate": forecasts["dailyRate"],
                "monthlyForecast": forecasts["monthlyForecast"],
                "filterOptions": filter_options(df),
                "filters": filters.to_dict(),
                "recordCount": filtered.height,
            }

        params = {"filters": filters.to_dict(), "group_by": group_by, "limits": limits.to_dict()}
        return self._run(dataset_id, "overview", params, compute)

    # ==========================================================================
    # Cost Drivers
    # ==========================================================================

    async def get_cost_drivers(
        self,
        dataset_id: str,
        period: int = 7,
        dimension: str = COL_SERVICE_NAME,
        min_change: float = 0.0,
    ) -> DashboardResponse:
        """Period-over-period increases and decreases per dimension value."""
        validate_choice("dimension", dimension, DRIVER_DIMENSIONS)
        if period < 1:
            raise InvalidParameterError("period", period)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            result = compare_periods(df, period_days=period, dimension=dimension, min_change=min_change)
            return {**result, "period": period, "dimension": dimension, "minChange": min_change}

        params = {"period": period, "dimension": dimension, "min_change": min_change}
        return self._run(dataset_id, "drivers", params, compute)

    async def get_driver_detail(
        self,
        dataset_id: str,
        name: str,
        period: int = 7,
        dimension: str = COL_SERVICE_NAME,
    ) -> DashboardResponse:
        """Daily trend and top resources of one driver."""
        validate_choice("dimension", dimension, DRIVER_DIMENSIONS)
        if period < 1:
            raise InvalidParameterError("period", period)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            return driver_detail(df, name, period_days=period, dimension=dimension)

        params = {"name": name, "period": period, "dimension": dimension}
        return self._run(dataset_id, "driver_detail", params, compute)

    # ==========================================================================
    # Cost Analysis
    # ==========================================================================

    async def get_cost_analysis(
        self,
        dataset_id: str,
        filters: Optional[DashboardFilters] = None,
        group_by: str = COL_SERVICE_NAME,
    ) -> DashboardResponse:
        """Stacked daily chart with the top groups, daily KPIs and spend shape."""
        filters = filters or DashboardFilters()

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            filtered = apply_dashboard_filters(df, filters)
            stacked = stacked_daily_top_n(filtered, group_by, top_n=TOP_N_LIMIT)
            chart = stacked["chartData"]

            totals = [day["total"] for day in chart]
            grand_total = sum(totals)
            peak = max(chart, key=lambda day: day["total"]) if chart else None
            previous, current = split_halves(totals)

            category_values = {c["name"]: c["value"] for c in stacked["categoryTotals"]}
            grouped = [
                {"name": key, "value": category_values.get(key, 0.0)}
                for key in stacked["sortedKeys"][:GROUPED_DATA_LIMIT]
            ]
            group_values = [c["value"] for c in stacked["categoryTotals"] if c["name"] != OTHERS]

            return {
                "chartData": chart,
                "activeKeys": stacked["activeKeys"],
                "totalSpend": grand_total,
                "avgDaily": grand_total / len(chart) if chart else 0.0,
                "maxDaily": peak["total"] if peak else 0.0,
                "peakDay": peak["date"] if peak else None,
                "trend": ((current - previous) / previous) * 100 if previous else 0.0,
                "categoryTotals": stacked["categoryTotals"],
                "dailyData": [{"date": day["date"], "cost": day["total"]} for day in chart],
                "groupedData": grouped,
                "predictability": calculate_predictability(totals).to_dict(),
                "concentration": calculate_concentration(group_values),
                "groupBy": group_by,
                "filters": filters.to_dict(),
                "filterOptions": filter_options(df),
            }

        params = {"filters": filters.to_dict(), "group_by": group_by}
        return self._run(dataset_id, "analysis", params, compute)

    # ==========================================================================
    # Resource Inventory
    # ==========================================================================

    async def get_resource_inventory(
        self,
        dataset_id: str,
        query: Optional[InventoryQuery] = None,
    ) -> DashboardResponse:
        """Per-resource rollup with stats, grouping, tab filter and pagination."""
        query = query or InventoryQuery()
        validate_choice("grouping", query.grouping, GROUPINGS)
        validate_choice("tab", query.tab, TABS)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            resources = self._resources(dataset_id, df)
            visible = filter_resources(resources, query.tab, query.search)
            page = paginate(visible, query.page, query.page_size)
            return {
                "stats": inventory_stats(resources),
                "groups": group_resources(visible, query.grouping),
                "resources": page["items"],
                "pagination": {k: v for k, v in page.items() if k != "items"},
                "grouping": query.grouping,
                "tab": query.tab,
            }

        return self._run(dataset_id, "inventory", query.to_dict(), compute)

    async def get_tag_matrix(
        self,
        dataset_id: str,
        tab: str = "all",
        search: Optional[str] = None,
        required_tags: Optional[List[str]] = None,
    ) -> DashboardResponse:
        """Required-tag coverage of the first resources in the current tab."""
        validate_choice("tab", tab, TABS)
        required = required_tags or settings.required_tags

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            visible = filter_resources(self._resources(dataset_id, df), tab, search)
            return tag_matrix(visible, required, limit=TAG_MATRIX_LIMIT)

        params = {"tab": tab, "search": search, "required_tags": required}
        return self._run(dataset_id, "tag_matrix", params, compute)

    async def get_resource_detail(self, dataset_id: str, resource_id: str) -> DashboardResponse:
        """One resource with merged metadata and its raw billing rows."""

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            detail = resource_detail(df, resource_id)
            if detail is None:
                raise ResourceNotFoundError(dataset_id, resource_id)
            return detail

        return self._run(dataset_id, "resource", {"id": resource_id}, compute)

    # ==========================================================================
    # Data Explorer
    # ==========================================================================

    async def get_explorer(self, dataset_id: str, query: Optional[ExplorerQuery] = None) -> DashboardResponse:
        """One page of searched, filtered and sorted rows."""
        query = query or ExplorerQuery()
        validate_choice("sort_direction", query.sort_direction, SORT_DIRECTIONS)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            return {**explore(df, query), "config": query.to_config()}

        return self._run(dataset_id, "explorer", asdict(query), compute)

    async def get_pivot(
        self,
        dataset_id: str,
        group_by: str,
        query: Optional[ExplorerQuery] = None,
    ) -> DashboardResponse:
        """Pivot groups over the explorer pipeline, each with its drill-down filter value."""
        query = query or ExplorerQuery()
        validate_choice("sort_direction", query.sort_direction, SORT_DIRECTIONS)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            result = explorer_pivot(df, query, group_by)
            result["groups"] = [
                {**group, "drillDownFilter": drill_down_filter(group)}
                for group in result["groups"]
            ]
            return result

        params = {"group_by": group_by, **asdict(query)}
        return self._run(dataset_id, "pivot", params, compute)

    async def export(
        self,
        dataset_id: str,
        query: Optional[ExplorerQuery] = None,
        selected: Optional[List[int]] = None,
    ) -> str:
        """CSV text of the explorer result (or the selected positions in it)."""
        query = query or ExplorerQuery()
        dataset = self.store.get(dataset_id)
        csv_text = export_frame(dataset.frame, query, selected)
        logger.info(
            "Explorer export",
            extra={"dataset_id": dataset_id, "selected": len(selected) if selected else None}
        )
        return csv_text

    # ==========================================================================
    # Saved Views
    # ==========================================================================

    async def save_view(self, dataset_id: str, name: str, config: Dict[str, Any]) -> SavedView:
        """Save an explorer configuration under a name."""
        if not name or not name.strip():
            raise InvalidParameterError("name", name)
        return self.store.save_view(dataset_id, name.strip(), config)

    async def list_views(self, dataset_id: str) -> List[SavedView]:
        return self.store.list_views(dataset_id)

    async def delete_view(self, dataset_id: str, view_id: str) -> None:
        self.store.delete_view(dataset_id, view_id)

    # ==========================================================================
    # Accounts, Optimization, Reports
    # ==========================================================================

    async def get_accounts(self, dataset_id: str, query: Optional[AccountsQuery] = None) -> DashboardResponse:
        """Accounts with ownership, suggestions and insights."""
        query = query or AccountsQuery()
        validate_choice("owner_status", query.owner_status, OWNER_FILTERS)
        validate_choice("sort_by", query.sort_by, SORT_FIELDS)
        validate_choice("sort_order", query.sort_order, SORT_DIRECTIONS)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            result = build_accounts(df, settings.load_ownership_rules())
            accounts = filter_accounts(result["accounts"], query.search, query.owner_status, query.provider)
            return {
                "accounts": sort_accounts(accounts, query.sort_by, query.sort_order),
                "insights": result["insights"],
                "providers": result["providers"],
                "filteredCount": len(accounts),
            }

        return self._run(dataset_id, "accounts", query.to_dict(), compute)

    def _optimization(self, dataset_id: str, df: pl.DataFrame) -> Dict[str, Any]:
        resources = self._resources(dataset_id, df)
        opportunities = find_opportunities(df, resources)
        idle = idle_resources(resources)
        return {
            "opportunities": opportunities,
            "idle": idle,
            "summary": optimization_summary(opportunities, idle),
        }

    async def get_optimization(
        self,
        dataset_id: str,
        query: Optional[IdleResourceQuery] = None,
    ) -> DashboardResponse:
        """Data-derived savings opportunities and the idle-resource list."""
        query = query or IdleResourceQuery()
        validate_choice("risk", query.risk, RISK_FILTERS)
        validate_choice("sort", query.sort, IDLE_SORTS)

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            result = self._optimization(dataset_id, df)
            return {
                "opportunities": result["opportunities"],
                "idleResources": filter_idle_resources(result["idle"], query.risk, query.search, query.sort),
                "summary": result["summary"],
                "totalPotentialSavings": result["summary"]["totalPotentialSavings"],
            }

        return self._run(dataset_id, "optimization", query.to_dict(), compute)

    async def get_report(self, dataset_id: str) -> DashboardResponse:
        """Report summary with the optimization headline numbers."""

        def compute(df: pl.DataFrame) -> Dict[str, Any]:
            return build_report(df, self._optimization(dataset_id, df)["summary"])

        return self._run(dataset_id, "report", {}, compute)

    # ==========================================================================
    # Cache Management
    # ==========================================================================

    def invalidate_dataset_cache(self, dataset_id: str) -> int:
        """Invalidate all cached views of a dataset."""
        return self._cache.invalidate_prefix(f"{dataset_id}:")

    @property
    def cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return self._cache.stats


# Singleton instance
_dashboard_service: Optional[DashboardService] = None


def get_dashboard_service() -> DashboardService:
    """Get singleton dashboard service instance."""
    global _dashboard_service
    if _dashboard_service is None:
        _dashboard_service = DashboardService()
    return _dashboard_service
