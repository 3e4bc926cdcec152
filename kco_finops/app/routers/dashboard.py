"""
Dashboard API Routes

Read-only dashboard views over an uploaded dataset:
- Overview, cost drivers, cost analysis
- Resource inventory, tag matrix, resource detail
- Data explorer with pivot, CSV export and saved views
- Accounts & ownership, optimization, report summary

All views are computed by DashboardService with Polars and cached per
dataset and parameters.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from typing import Optional, List
import json
import logging

from kco_finops.app.models import DashboardDataResponse, SaveViewRequest, SavedViewResponse
from kco_finops.core.exceptions import ErrorCategory, ErrorCode, InvalidParameterError
from kco_finops.core.services.dashboard import (
    AccountsQuery,
    ChartLimits,
    DashboardFilters,
    DashboardResponse,
    DashboardService,
    ExplorerQuery,
    IdleResourceQuery,
    InventoryQuery,
    get_dashboard_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# ==============================================================================
# Helpers
# ==============================================================================

def _to_response(result: DashboardResponse, operation: str) -> DashboardDataResponse:
    """
    Convert a service result, raising 500 when the view failed.

    The exception text stays in the service log; clients get the error id.
    """
    if not result.success:
        raise HTTPException(
            status_code=500,
            detail={
                "success": False,
                "error": f"Failed to compute {operation}. Please try again or contact support.",
                "error_code": ErrorCode.INTERNAL_ERROR.value,
                "category": ErrorCategory.INTERNAL.value,
                "http_status": 500,
                "error_id": result.error_id,
            }
        )
    return DashboardDataResponse(
        success=result.success,
        data=result.data,
        cache_hit=result.cache_hit,
        query_time_ms=result.query_time_ms,
    )


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _explorer_query(
    search: Optional[str],
    filters: Optional[str],
    sort_key: Optional[str],
    sort_direction: str,
    hidden_columns: Optional[str],
    page: int,
    rows_per_page: int,
) -> ExplorerQuery:
    """Build the explorer state from query parameters. `filters` is a JSON object."""
    parsed = {}
    if filters:
        try:
            parsed = json.loads(filters)
        except json.JSONDecodeError:
            raise InvalidParameterError("filters", filters)
        if not isinstance(parsed, dict):
            raise InvalidParameterError("filters", filters)

    return ExplorerQuery(
        search=search,
        filters=parsed,
        sort_key=sort_key,
        sort_direction=sort_direction,
        hidden_columns=_split(hidden_columns),
        page=page,
        rows_per_page=rows_per_page,
    )


def _selected(value: Optional[str]) -> Optional[List[int]]:
    parts = _split(value)
    if not parts:
        return None
    try:
        return [int(part) for part in parts]
    except ValueError:
        raise InvalidParameterError("selected", value)


# ==============================================================================
# Overview, Drivers, Analysis
# ==============================================================================

@router.get(
    "/{dataset_id}/overview",
    response_model=DashboardDataResponse,
    summary="Dashboard Overview",
    description="KPIs, daily trend, grouped and region charts and anomalies"
)
async def get_overview(
    dataset_id: str,
    provider: str = Query("All", description="Provider filter"),
    service: str = Query("All", description="Service filter"),
    region: str = Query("All", description="Region filter"),
    group_by: str = Query("ServiceName", description="Column used for the grouped chart"),
    data_limit: Optional[int] = Query(None, ge=1, description="Most expensive rows analysed"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    """
    Get the dashboard overview.

    - **provider / service / region**: `All` disables the filter
    - **group_by**: column used for the grouped bar chart
    - **data_limit**: keep only the N most expensive rows before filtering
    """
    limits = ChartLimits()
    if data_limit is not None:
        limits.data_limit = data_limit

    result = await dashboard_service.get_overview(
        dataset_id,
        filters=DashboardFilters(provider=provider, service=service, region=region),
        group_by=group_by,
        limits=limits,
    )
    return _to_response(result, "overview")


@router.get(
    "/{dataset_id}/cost-drivers",
    response_model=DashboardDataResponse,
    summary="Cost Drivers",
    description="Biggest increases and decreases between the current and previous period"
)
async def get_cost_drivers(
    dataset_id: str,
    period: int = Query(7, ge=1, le=365, description="Period length in days"),
    dimension: str = Query("ServiceName", description="Dimension the drivers are grouped by"),
    min_change: float = Query(0.0, ge=0, description="Minimum absolute change"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_cost_drivers(
        dataset_id, period=period, dimension=dimension, min_change=min_change
    )
    return _to_response(result, "cost drivers")


@router.get(
    "/{dataset_id}/cost-drivers/detail",
    response_model=DashboardDataResponse,
    summary="Cost Driver Detail",
    description="Daily trend and top resources of one driver"
)
async def get_cost_driver_detail(
    dataset_id: str,
    name: str = Query(..., min_length=1, description="Driver value, e.g. a service name"),
    period: int = Query(7, ge=1, le=365, description="Period length in days"),
    dimension: str = Query("ServiceName", description="Dimension the driver belongs to"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_driver_detail(
        dataset_id, name, period=period, dimension=dimension
    )
    return _to_response(result, "cost driver detail")


@router.get(
    "/{dataset_id}/cost-analysis",
    response_model=DashboardDataResponse,
    summary="Cost Analysis",
    description="Stacked daily costs of the top groups with predictability and concentration"
)
async def get_cost_analysis(
    dataset_id: str,
    provider: str = Query("All", description="Provider filter"),
    service: str = Query("All", description="Service filter"),
    region: str = Query("All", description="Region filter"),
    group_by: str = Query("ServiceName", description="Column stacked in the chart"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_cost_analysis(
        dataset_id,
        filters=DashboardFilters(provider=provider, service=service, region=region),
        group_by=group_by,
    )
    return _to_response(result, "cost analysis")


# ==============================================================================
# Resource Inventory
# ==============================================================================

@router.get(
    "/{dataset_id}/resources",
    response_model=DashboardDataResponse,
    summary="Resource Inventory",
    description="Per-resource rollup with zombie, untagged and spiking flags"
)
async def get_resources(
    dataset_id: str,
    grouping: str = Query("none", description="none | service | region"),
    tab: str = Query("all", description="all | zombie | untagged | spiking"),
    search: Optional[str] = Query(None, description="Case-insensitive resource id search"),
    page: int = Query(1, ge=1, description="1-based page number"),
    page_size: Optional[int] = Query(None, ge=1, le=500, description="Resources per page"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    query = InventoryQuery(grouping=grouping, tab=tab, search=search, page=page)
    if page_size is not None:
        query.page_size = page_size

    result = await dashboard_service.get_resource_inventory(dataset_id, query)
    return _to_response(result, "resource inventory")


@router.get(
    "/{dataset_id}/resources/tag-matrix",
    response_model=DashboardDataResponse,
    summary="Tag Compliance Matrix",
    description="Required-tag coverage per resource"
)
async def get_tag_matrix(
    dataset_id: str,
    tab: str = Query("all", description="all | zombie | untagged | spiking"),
    search: Optional[str] = Query(None, description="Case-insensitive resource id search"),
    required_tags: Optional[str] = Query(None, description="Comma-separated tag keys"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_tag_matrix(
        dataset_id, tab=tab, search=search, required_tags=_split(required_tags) or None
    )
    return _to_response(result, "tag matrix")


@router.get(
    "/{dataset_id}/resources/detail",
    response_model=DashboardDataResponse,
    summary="Resource Detail",
    description="Merged metadata and raw billing rows of one resource"
)
async def get_resource_detail(
    dataset_id: str,
    resource_id: str = Query(..., min_length=1, description="Resource id"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    """
    Get one resource.

    - **404**: resource not present in the dataset
    """
    result = await dashboard_service.get_resource_detail(dataset_id, resource_id)
    return _to_response(result, "resource detail")


# ==============================================================================
# Data Explorer
# ==============================================================================

@router.get(
    "/{dataset_id}/explorer",
    response_model=DashboardDataResponse,
    summary="Data Explorer",
    description="Searched, filtered, sorted and paginated raw rows"
)
async def get_explorer(
    dataset_id: str,
    search: Optional[str] = Query(None, description="Global search across visible columns"),
    filters: Optional[str] = Query(None, description='JSON object, e.g. {"ServiceName": "ec2"}'),
    sort_key: Optional[str] = Query(None, description="Column to sort by"),
    sort_direction: str = Query("asc", description="asc | desc"),
    hidden_columns: Optional[str] = Query(None, description="Comma-separated columns to hide"),
    page: int = Query(1, ge=1),
    rows_per_page: int = Query(50, ge=1, le=1000),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    query = _explorer_query(search, filters, sort_key, sort_direction, hidden_columns, page, rows_per_page)
    result = await dashboard_service.get_explorer(dataset_id, query)
    return _to_response(result, "explorer")


@router.get(
    "/{dataset_id}/explorer/pivot",
    response_model=DashboardDataResponse,
    summary="Explorer Pivot",
    description="Explorer rows grouped by one column with counts and cost totals"
)
async def get_explorer_pivot(
    dataset_id: str,
    group_by: str = Query(..., min_length=1, description="Column to group by"),
    search: Optional[str] = Query(None),
    filters: Optional[str] = Query(None, description="JSON object of column filters"),
    sort_key: Optional[str] = Query(None),
    sort_direction: str = Query("asc"),
    hidden_columns: Optional[str] = Query(None),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    query = _explorer_query(search, filters, sort_key, sort_direction, hidden_columns, 1, 50)
    result = await dashboard_service.get_pivot(dataset_id, group_by, query)
    return _to_response(result, "explorer pivot")


@router.get(
    "/{dataset_id}/explorer/export",
    summary="Export Explorer CSV",
    description="CSV of the explorer result, or of the selected row positions",
    response_class=Response,
)
async def export_explorer(
    dataset_id: str,
    search: Optional[str] = Query(None),
    filters: Optional[str] = Query(None, description="JSON object of column filters"),
    sort_key: Optional[str] = Query(None),
    sort_direction: str = Query("asc"),
    hidden_columns: Optional[str] = Query(None),
    selected: Optional[str] = Query(None, description="Comma-separated row positions"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    query = _explorer_query(search, filters, sort_key, sort_direction, hidden_columns, 1, 50)
    csv_text = await dashboard_service.export(dataset_id, query, _selected(selected))
    return Response(
        content=csv_text,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="finops-export-{dataset_id}.csv"'}
    )


# ==============================================================================
# Saved Views
# ==============================================================================

@router.get(
    "/{dataset_id}/views",
    response_model=List[SavedViewResponse],
    summary="List Saved Views"
)
async def list_views(
    dataset_id: str,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    views = await dashboard_service.list_views(dataset_id)
    return [SavedViewResponse(**view.to_dict()) for view in views]


@router.post(
    "/{dataset_id}/views",
    response_model=SavedViewResponse,
    status_code=201,
    summary="Save View",
    description="Save the current explorer configuration under a name"
)
async def save_view(
    dataset_id: str,
    request: SaveViewRequest,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    view = await dashboard_service.save_view(dataset_id, request.name, request.config)
    return SavedViewResponse(**view.to_dict())


@router.delete(
    "/{dataset_id}/views/{view_id}",
    summary="Delete Saved View"
)
async def delete_view(
    dataset_id: str,
    view_id: str,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    await dashboard_service.delete_view(dataset_id, view_id)
    return {"success": True, "viewId": view_id}


# ==============================================================================
# Accounts, Optimization, Reports
# ==============================================================================

@router.get(
    "/{dataset_id}/accounts",
    response_model=DashboardDataResponse,
    summary="Accounts & Ownership",
    description="Spend per account with owner, suggested owner and attribution insights"
)
async def get_accounts(
    dataset_id: str,
    search: Optional[str] = Query(None, description="Matches account name or id"),
    owner_status: str = Query("All", description="All | Assigned | Unassigned"),
    provider: str = Query("All", description="Provider filter"),
    sort_by: str = Query("cost", description="cost | name | owner"),
    sort_order: str = Query("desc", description="asc | desc"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    query = AccountsQuery(
        search=search,
        owner_status=owner_status,
        provider=provider,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    result = await dashboard_service.get_accounts(dataset_id, query)
    return _to_response(result, "accounts")


@router.get(
    "/{dataset_id}/optimization",
    response_model=DashboardDataResponse,
    summary="Optimization",
    description="Savings opportunities derived from the data and the idle-resource list"
)
async def get_optimization(
    dataset_id: str,
    risk: str = Query("all", description="all | prod | non-prod"),
    search: Optional[str] = Query(None, description="Matches name, type or region"),
    sort: str = Query("savings-desc", description="savings-desc | savings-asc | days-desc | days-asc"),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_optimization(
        dataset_id, IdleResourceQuery(risk=risk, search=search, sort=sort)
    )
    return _to_response(result, "optimization")


@router.get(
    "/{dataset_id}/reports",
    response_model=DashboardDataResponse,
    summary="Report Summary",
    description="Headline numbers for the reports page"
)
async def get_report(
    dataset_id: str,
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    result = await dashboard_service.get_report(dataset_id)
    return _to_response(result, "report")
