"""
Pydantic models for the upload, dataset and dashboard endpoints.

This module provides:
- Response models for CSV processing and stored datasets
- The dashboard view response wrapper
- Request and response models for saved explorer views

Field names follow the dashboard's camelCase JSON contract.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator


# ============================================================================
# CSV PROCESSING
# ============================================================================

class ProcessCsvResponse(BaseModel):
    """Result of processing an uploaded billing export."""
    success: bool = True
    datasetId: Optional[str] = Field(default=None, description="Id for the dashboard endpoints")
    data: Dict[str, Any] = Field(..., description="Processing summary (finopsData)")
    rawRecords: List[Dict[str, Any]] = Field(default_factory=list, description="First rows, canonical column names")
    columnMapping: Dict[str, str] = Field(default_factory=dict, description="Canonical name -> source header")
    totalRows: int = Field(..., ge=0)
    sampleSize: int = Field(..., ge=0)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "success": True,
            "datasetId": "3f2b9c0e8a1d4e6f9b7c5a3d1e0f2a4b",
            "data": {
                "totalSpend": "1234.56",
                "leakageCost": "234.10",
                "efficiencyScore": 81,
                "timelineGraph": [{"date": "2024-01-01", "cost": 41.15}],
                "productEarnings": [{"name": "Amazon EC2", "value": 812.4}],
                "regionBreakdown": [{"name": "us-east-1", "value": 900.2}],
                "leakageItems": [],
                "recordCount": 1200,
            },
            "rawRecords": [],
            "columnMapping": {"BilledCost": "lineItem/UnblendedCost"},
            "totalRows": 1200,
            "sampleSize": 1200,
        }
    })


# ============================================================================
# DATASETS
# ============================================================================

class DatasetSummary(BaseModel):
    """Stored dataset without its rows."""
    datasetId: str
    csvMetadata: Dict[str, Any]
    recordCount: int
    totalSpend: Optional[str] = None
    savedViews: int = 0


class DatasetListResponse(BaseModel):
    """Live datasets, most recently used first."""
    datasets: List[DatasetSummary]
    count: int


class DatasetDetailResponse(BaseModel):
    """Stored dataset summary with its processing summary."""
    datasetId: str
    csvMetadata: Dict[str, Any]
    finopsData: Dict[str, Any]
    recordCount: int


class DatasetRecordsResponse(BaseModel):
    """One page of a dataset's raw records."""
    datasetId: str
    records: List[Dict[str, Any]]
    page: int
    pageSize: int
    totalItems: int
    totalPages: int


class CacheStat(BaseModel):
    """Cache statistics response."""
    hits: int
    misses: int
    evictions: int
    size: int
    max_size: int
    hit_rate: float


# ============================================================================
# DASHBOARD VIEWS
# ============================================================================

class DashboardDataResponse(BaseModel):
    """Standard response wrapper for dashboard views."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    cache_hit: bool = False
    query_time_ms: float = 0.0
    error: Optional[str] = None


class SaveViewRequest(BaseModel):
    """Request model for saving an explorer view."""
    name: str = Field(..., min_length=1, max_length=100, description="View name")
    config: Dict[str, Any] = Field(
        default_factory=dict,
        description="Explorer state: filters, sortConfig, hiddenColumns, groupByCol, searchTerm"
    )

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank names."""
        if not v.strip():
            raise ValueError('name must not be blank')
        return v.strip()

    model_config = ConfigDict(extra="forbid", json_schema_extra={
        "example": {
            "name": "EC2 in us-east-1",
            "config": {
                "filters": {"ServiceName": "ec2", "RegionName": "us-east-1"},
                "sortConfig": {"key": "BilledCost", "direction": "desc"},
                "hiddenColumns": [],
                "groupByCol": None,
                "searchTerm": "",
            }
        }
    })


class SavedViewResponse(BaseModel):
    """A saved explorer view."""
    id: str
    name: str
    config: Dict[str, Any]
    createdAt: str
