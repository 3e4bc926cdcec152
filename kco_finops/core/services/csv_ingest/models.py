"""
CSV Ingest Service Models

Result of processing one uploaded billing export.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any


@dataclass
class ProcessingSummary:
    """Headline numbers computed over every row of the upload."""
    total_spend: float
    leakage_cost: float
    efficiency_score: int
    timeline_graph: List[Dict[str, Any]]
    product_earnings: List[Dict[str, Any]]
    region_breakdown: List[Dict[str, Any]]
    leakage_items: List[Dict[str, Any]]
    record_count: int

    def to_dict(self) -> Dict[str, Any]:
        """Dashboard `finopsData` shape; spend figures as 2-decimal strings."""
        return {
            "totalSpend": f"{self.total_spend:.2f}",
            "leakageCost": f"{self.leakage_cost:.2f}",
            "efficiencyScore": self.efficiency_score,
            "timelineGraph": self.timeline_graph,
            "productEarnings": self.product_earnings,
            "regionBreakdown": self.region_breakdown,
            "leakageItems": self.leakage_items,
            "recordCount": self.record_count,
        }


@dataclass
class IngestResult:
    """Processed upload: summary, sampled rows and column mapping."""
    summary: ProcessingSummary
    raw_records: List[Dict[str, Any]]
    column_mapping: Dict[str, str]
    total_rows: int
    filename: str
    dataset_id: Optional[str] = None
    skipped_cost_values: int = 0
    processing_time_ms: float = 0.0
    warnings: List[str] = field(default_factory=list)

    @property
    def sample_size(self) -> int:
        return len(self.raw_records)

    def to_response(self) -> Dict[str, Any]:
        """Upload endpoint response body."""
        return {
            "success": True,
            "datasetId": self.dataset_id,
            "data": self.summary.to_dict(),
            "rawRecords": self.raw_records,
            "columnMapping": self.column_mapping,
            "totalRows": self.total_rows,
            "sampleSize": self.sample_size,
        }
