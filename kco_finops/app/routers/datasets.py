"""
Dataset API Routes

Endpoints for browsing and deleting uploaded billing datasets.
"""

from fastapi import APIRouter, Depends, Query
import logging

from kco_finops.app.models import (
    CacheStat,
    DatasetDetailResponse,
    DatasetListResponse,
    DatasetRecordsResponse,
    DatasetSummary,
)
from kco_finops.core.services.dashboard import DashboardService, get_dashboard_service
from kco_finops.core.services.dataset_store import DatasetStore, get_dataset_store
from kco_finops.lib.costs import paginate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datasets", tags=["Datasets"])


@router.get(
    "",
    response_model=DatasetListResponse,
    summary="List Datasets",
    description="Live uploaded datasets, most recently used first"
)
async def list_datasets(store: DatasetStore = Depends(get_dataset_store)):
    datasets = store.list()
    return DatasetListResponse(
        datasets=[DatasetSummary(**d) for d in datasets],
        count=len(datasets),
    )


@router.get(
    "/cache/stats",
    summary="Cache Statistics",
    description="Hit/miss statistics of the dataset store and the dashboard view cache"
)
async def get_cache_stats(
    store: DatasetStore = Depends(get_dataset_store),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    return {
        "datasets": CacheStat(**store.stats()),
        "dashboard": CacheStat(**dashboard_service.cache_stats),
    }


@router.get(
    "/{dataset_id}",
    response_model=DatasetDetailResponse,
    summary="Get Dataset",
    description="Upload metadata and processing summary of one dataset"
)
async def get_dataset(dataset_id: str, store: DatasetStore = Depends(get_dataset_store)):
    """
    Get one dataset.

    - **404**: unknown or expired dataset
    """
    dataset = store.get(dataset_id)
    return DatasetDetailResponse(
        datasetId=dataset.dataset_id,
        csvMetadata=dataset.csv_metadata.to_dict(),
        finopsData=dataset.finops_data,
        recordCount=len(dataset.raw_records),
    )


@router.get(
    "/{dataset_id}/records",
    response_model=DatasetRecordsResponse,
    summary="Dataset Records",
    description="One page of the normalized raw records"
)
async def get_dataset_records(
    dataset_id: str,
    page: int = Query(1, ge=1, description="1-based page number"),
    page_size: int = Query(100, ge=1, le=1000, description="Records per page"),
    store: DatasetStore = Depends(get_dataset_store),
):
    dataset = store.get(dataset_id)
    result = paginate(dataset.raw_records, page, page_size)
    return DatasetRecordsResponse(
        datasetId=dataset.dataset_id,
        records=result["items"],
        page=result["page"],
        pageSize=result["pageSize"],
        totalItems=result["totalItems"],
        totalPages=result["totalPages"],
    )


@router.delete(
    "/{dataset_id}",
    summary="Delete Dataset",
    description="Remove a dataset and every cached dashboard view of it"
)
async def delete_dataset(
    dataset_id: str,
    store: DatasetStore = Depends(get_dataset_store),
    dashboard_service: DashboardService = Depends(get_dashboard_service),
):
    store.delete(dataset_id)
    invalidated = dashboard_service.invalidate_dataset_cache(dataset_id)
    logger.info("Dataset removed", extra={"dataset_id": dataset_id, "invalidated_views": invalidated})
    return {"success": True, "datasetId": dataset_id, "invalidatedViews": invalidated}
