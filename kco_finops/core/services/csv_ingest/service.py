"""
CSV Ingest Service

Parses an uploaded billing export with Polars, maps provider columns onto
FOCUS names, computes the processing summary over every row and stores the
sampled rows in the dataset store for the dashboard views.

Features:
- All columns read as strings, costs and dates parsed at the point of use
- Column detection for AWS CUR, Azure and GCP exports via lib/ingest/
- Leakage, timeline and breakdowns via lib/costs/
"""

import asyncio
import io
import logging
import time
from typing import Optional, List, Dict, Any

import polars as pl

from kco_finops.app.config import settings
from kco_finops.core.exceptions import CsvIngestError, EmptyCsvError, PayloadTooLargeError
from kco_finops.core.services.csv_ingest.models import IngestResult, ProcessingSummary
from kco_finops.core.services.dataset_store import CsvMetadata, DatasetStore, get_dataset_store
from kco_finops.core.utils.logging import create_structured_logger
from kco_finops.lib.costs import (
    aggregate_by_dimension,
    calculate_efficiency_score,
    calculate_leakage,
    cost_expr,
    frame_to_records,
)
from kco_finops.lib.costs.constants import (
    COL_BILLED_COST,
    COL_BILLING_PERIOD_START,
    COL_CHARGE_PERIOD_START,
    COL_COST,
    COL_REGION_NAME,
    COL_SERVICE_NAME,
    GLOBAL,
    OTHER,
)
from kco_finops.lib.costs.frames import date_key_expr, first_present
from kco_finops.lib.ingest import clean_header, detect_columns

logger = logging.getLogger(__name__)

# Timeline date sources; ChargePeriodStart covers UsageStartDate / Date after mapping
TIMELINE_DATE_COLUMNS = (COL_BILLING_PERIOD_START, "UsageStartDate", "Date", COL_CHARGE_PERIOD_START)

COST_COLUMNS = (COL_BILLED_COST, COL_COST)


def _read_frame(content: bytes) -> pl.DataFrame:
    """Decode and parse CSV bytes into an all-string frame."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CsvIngestError(
            message="CSV file is not valid UTF-8 text",
            original_error=e,
        ) from e

    if not text.strip():
        raise EmptyCsvError()

    try:
        return pl.read_csv(
            io.BytesIO(text.encode("utf-8")),
            infer_schema_length=0,
            truncate_ragged_lines=True,
        )
    except pl.exceptions.NoDataError as e:
        raise EmptyCsvError() from e
    except pl.exceptions.PolarsError as e:
        raise CsvIngestError(
            message="Failed to parse CSV file",
            context={"reason": str(e)[:200]},
            original_error=e,
        ) from e


def _map_columns(df: pl.DataFrame) -> tuple[pl.DataFrame, Dict[str, str]]:
    """Clean headers and rename detected source columns to canonical names."""
    cleaned = {column: clean_header(column) for column in df.columns}
    duplicates = sorted({name for name in cleaned.values() if list(cleaned.values()).count(name) > 1})
    if duplicates:
        raise CsvIngestError(
            message=f"CSV has duplicate column headers: {', '.join(duplicates)}",
            context={"duplicate_columns": duplicates},
        )
    df = df.rename({old: new for old, new in cleaned.items() if old != new})

    mapping = detect_columns(df.columns)
    renames = {source: canonical for canonical, source in mapping.items() if source != canonical}
    if renames:
        df = df.rename(renames)
    return df, mapping


def _count_unparseable_costs(df: pl.DataFrame) -> int:
    source = first_present(df, COST_COLUMNS)
    if source is None:
        return 0
    parsed = source.str.replace_all(r"[$,]", "").str.strip_chars().cast(pl.Float64, strict=False)
    return int(df.select((source.is_not_null() & parsed.is_null()).sum()).item() or 0)


def _timeline(df: pl.DataFrame) -> List[Dict[str, Any]]:
    """Daily cost over ISO-dated rows, sorted by date, rounded to cents."""
    frame = (
        df.select(
            date_key_expr(df, TIMELINE_DATE_COLUMNS).alias("date"),
            cost_expr(df, COL_BILLED_COST, fallback=(COL_COST,)).alias("_cost"),
        )
        .filter(pl.col("date").str.contains(r"^\d{4}-\d{2}-\d{2}").fill_null(False))
        .group_by("date")
        .agg(pl.col("_cost").sum().round(2).alias("cost"))
        .sort("date")
    )
    return frame.to_dicts()


def summarize(df: pl.DataFrame) -> ProcessingSummary:
    """Processing summary over every row of a mapped billing frame."""
    total_spend = float(df.select(cost_expr(df, COL_BILLED_COST, fallback=(COL_COST,)).sum()).item() or 0.0)
    leakage = calculate_leakage(df, limit=settings.leakage_items_limit)

    return ProcessingSummary(
        total_spend=total_spend,
        leakage_cost=leakage["leakageCost"],
        efficiency_score=calculate_efficiency_score(total_spend, leakage["leakageCost"]),
        timeline_graph=_timeline(df),
        product_earnings=aggregate_by_dimension(
            df,
            [COL_SERVICE_NAME, "Product"],
            default=OTHER,
            limit=settings.top_services_limit,
            cost_fallback=(COL_COST,),
        ),
        region_breakdown=aggregate_by_dimension(
            df,
            [COL_REGION_NAME, "Region"],
            default=GLOBAL,
            cost_fallback=(COL_COST,),
        ),
        leakage_items=leakage["leakageItems"],
        record_count=df.height,
    )


class CsvIngestService:
    """
    Billing export ingest.

    Parsing and aggregation are CPU bound and run in the default executor so
    the event loop stays responsive during large uploads.
    """

    def __init__(self, store: Optional[DatasetStore] = None):
        self._store = store

    @property
    def store(self) -> DatasetStore:
        if self._store is None:
            self._store = get_dataset_store()
        return self._store

    def process(self, content: bytes, filename: str) -> IngestResult:
        """
        Parse and summarize an upload without storing it.

        Raises:
            PayloadTooLargeError: If the upload exceeds max_upload_size_bytes
            EmptyCsvError: If the CSV has no data rows
            CsvIngestError: If the bytes cannot be decoded or parsed
        """
        start_time = time.time()
        log = create_structured_logger(__name__, filename=filename)

        if len(content) > settings.max_upload_size_bytes:
            raise PayloadTooLargeError(len(content), settings.max_upload_size_bytes)

        df, mapping = _map_columns(_read_frame(content))
        if df.height == 0:
            raise EmptyCsvError(context={"upload_filename": filename})

        log.info("CSV parsed", record_count=df.height, column_count=df.width)

        warnings: List[str] = []
        skipped = _count_unparseable_costs(df)
        if skipped:
            log.warning("Unparseable cost values counted as zero", skipped_count=skipped)
            warnings.append(f"{skipped} rows had unparseable cost values")

        summary = summarize(df)
        raw_records = frame_to_records(df.head(settings.sample_size))

        return IngestResult(
            summary=summary,
            raw_records=raw_records,
            column_mapping=mapping,
            total_rows=df.height,
            filename=filename,
            skipped_cost_values=skipped,
            processing_time_ms=round((time.time() - start_time) * 1000, 2),
            warnings=warnings,
        )

    async def ingest(self, content: bytes, filename: str) -> IngestResult:
        """Process an upload and store it as a new dataset."""
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self.process, content, filename)

        dataset = self.store.save(
            raw_records=result.raw_records,
            finops_data=result.summary.to_dict(),
            csv_metadata=CsvMetadata(
                filename=filename,
                total_rows=result.total_rows,
                sample_size=result.sample_size,
                column_mapping=result.column_mapping,
            ),
        )
        result.dataset_id = dataset.dataset_id

        logger.info(
            "CSV ingested",
            extra={
                "dataset_id": dataset.dataset_id,
                "upload_filename": filename,
                "total_rows": result.total_rows,
                "sample_size": result.sample_size,
                "processing_time_ms": result.processing_time_ms,
            }
        )
        return result


# Singleton instance
_csv_ingest_service: Optional[CsvIngestService] = None


def get_csv_ingest_service() -> CsvIngestService:
    """Get singleton CSV ingest service instance."""
    global _csv_ingest_service
    if _csv_ingest_service is None:
        _csv_ingest_service = CsvIngestService()
    return _csv_ingest_service
