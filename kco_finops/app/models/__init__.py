"""
API models package.

Exports the request and response models used by the routers.
"""

from .dashboard_models import (
    # CSV processing
    ProcessCsvResponse,

    # Datasets
    DatasetSummary,
    DatasetListResponse,
    DatasetDetailResponse,
    DatasetRecordsResponse,
    CacheStat,

    # Dashboard views
    DashboardDataResponse,
    SaveViewRequest,
    SavedViewResponse,
)

__all__ = [
    "ProcessCsvResponse",
    "DatasetSummary",
    "DatasetListResponse",
    "DatasetDetailResponse",
    "DatasetRecordsResponse",
    "CacheStat",
    "DashboardDataResponse",
    "SaveViewRequest",
    "SavedViewResponse",
]
