"""
CSV Ingest Service

Turns an uploaded billing export into a processing summary and a stored
dataset for the dashboard views.

Usage:
    from kco_finops.core.services.csv_ingest import get_csv_ingest_service

    service = get_csv_ingest_service()
    result = await service.ingest(content, "billing.csv")

    result.dataset_id       # id for /api/v1/dashboard/{id}/...
    result.to_response()    # upload endpoint body
"""

from kco_finops.core.services.csv_ingest.models import IngestResult, ProcessingSummary
from kco_finops.core.services.csv_ingest.service import (
    CsvIngestService,
    get_csv_ingest_service,
    summarize,
)

__all__ = [
    "IngestResult",
    "ProcessingSummary",
    "CsvIngestService",
    "get_csv_ingest_service",
    "summarize",
]
