"""
CSV Upload Endpoint

Accepts a billing export (AWS CUR, Azure, GCP or FOCUS), computes the
processing summary and stores the sampled rows as a dataset for the
dashboard endpoints.
"""

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from typing import Optional
import logging

from kco_finops.app.config import settings
from kco_finops.app.models import ProcessCsvResponse
from kco_finops.core.exceptions import FinOpsException, MissingFileError, PayloadTooLargeError
from kco_finops.core.services.csv_ingest import CsvIngestService, get_csv_ingest_service
from kco_finops.core.utils.error_handling import safe_error_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Ingest"])


@router.post(
    "/process-csv",
    response_model=ProcessCsvResponse,
    summary="Process Billing CSV",
    description="Upload a billing export as multipart field `file`. Returns the processing summary, "
                "a sample of normalized rows and the id of the stored dataset."
)
async def process_csv(
    file: Optional[UploadFile] = File(None, description="Billing export CSV"),
    ingest_service: CsvIngestService = Depends(get_csv_ingest_service),
):
    """
    Process an uploaded billing CSV.

    - **400**: no file, empty CSV or unreadable file
    - **413**: file larger than the configured upload limit
    """
    if file is None:
        logger.warning("Upload request without file")
        raise MissingFileError()

    content = await file.read()
    if len(content) > settings.max_upload_size_bytes:
        raise PayloadTooLargeError(len(content), settings.max_upload_size_bytes)

    filename = file.filename or "upload.csv"
    try:
        result = await ingest_service.ingest(content, filename)
    except (FinOpsException, HTTPException):
        raise
    except Exception as e:
        raise safe_error_response(e, operation="CSV processing", context={"upload_filename": filename})

    return ProcessCsvResponse(**result.to_response())
