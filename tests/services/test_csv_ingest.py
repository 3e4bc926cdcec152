"""
Unit tests for the CSV ingest service.

Tests:
- Column mapping of provider exports
- Processing summary (total, leakage, timeline, breakdowns)
- Unparseable costs, empty and oversized uploads
- Storing the processed upload as a dataset
"""

import pytest

from kco_finops.app.config import settings
from kco_finops.core.exceptions import (
    CsvIngestError,
    EmptyCsvError,
    ErrorCode,
    PayloadTooLargeError,
)
from kco_finops.core.services.csv_ingest import CsvIngestService


@pytest.fixture
def ingest_service(dataset_store):
    return CsvIngestService(store=dataset_store)


class TestProcess:
    """Tests for CsvIngestService.process."""

    def test_column_mapping(self, ingest_service, aws_cur_csv):
        """Test that CUR headers are detected and rows re-keyed."""
        result = ingest_service.process(aws_cur_csv, "cur.csv")

        assert result.column_mapping == {
            "ChargePeriodStart": "lineItem/UsageStartDate",
            "BilledCost": "lineItem/UnblendedCost",
            "ServiceName": "product/ProductName",
            "RegionName": "product/region",
            "ResourceId": "lineItem/ResourceId",
        }
        assert result.raw_records[0]["BilledCost"] == "10.50"
        assert result.raw_records[1]["BilledCost"] == "$1,000.25"
        assert result.total_rows == 3
        assert result.sample_size == 3

    def test_summary(self, ingest_service, aws_cur_csv):
        """Test totals, leakage and efficiency over every row."""
        summary = ingest_service.process(aws_cur_csv, "cur.csv").summary

        assert summary.total_spend == pytest.approx(1010.75)
        assert summary.leakage_cost == pytest.approx(1010.75)
        assert summary.efficiency_score == 0
        assert summary.record_count == 3
        assert len(summary.leakage_items) == 2
        assert summary.to_dict()["totalSpend"] == "1010.75"

    def test_timeline_and_breakdowns(self, ingest_service, aws_cur_csv):
        """Test daily timeline, services and regions."""
        summary = ingest_service.process(aws_cur_csv, "cur.csv").summary

        assert summary.timeline_graph == [
            {"date": "2024-01-01", "cost": 1010.75},
            {"date": "2024-01-02", "cost": 0.0},
        ]
        assert summary.product_earnings == [
            {"name": "Amazon S3", "value": 1000.25},
            {"name": "Amazon EC2", "value": 10.5},
        ]
        assert summary.region_breakdown == [
            {"name": "us-west-2", "value": 1000.25},
            {"name": "us-east-1", "value": 10.5},
            {"name": "Global", "value": 0.0},
        ]

    def test_unparseable_costs_warned(self, ingest_service, aws_cur_csv):
        """Test that unparseable costs count as zero with a warning."""
        result = ingest_service.process(aws_cur_csv, "cur.csv")
        assert result.skipped_cost_values == 1
        assert result.warnings == ["1 rows had unparseable cost values"]

    def test_sample_size(self, ingest_service, aws_cur_csv, monkeypatch):
        """Test that only the first rows are kept while the summary covers all."""
        monkeypatch.setattr(settings, "sample_size", 2)
        result = ingest_service.process(aws_cur_csv, "cur.csv")
        assert result.sample_size == 2
        assert result.total_rows == 3
        assert result.summary.total_spend == pytest.approx(1010.75)

    def test_bom_and_focus_headers(self, ingest_service):
        """Test a FOCUS export starting with a byte order mark."""
        content = "\ufeffBilledCost,ServiceName,CommitmentDiscountStatus\n5,EC2,Used\n3,S3,\n".encode("utf-8")
        result = ingest_service.process(content, "focus.csv")

        assert result.column_mapping["BilledCost"] == "BilledCost"
        assert result.summary.total_spend == 8.0
        assert result.summary.leakage_cost == 3.0
        assert result.summary.efficiency_score == 63
        assert result.summary.timeline_graph == []

    @pytest.mark.parametrize("content", [b"", b"   \n", b"BilledCost,ServiceName\n"])
    def test_empty_upload(self, ingest_service, content):
        """Test that uploads without data rows are rejected."""
        with pytest.raises(EmptyCsvError) as exc_info:
            ingest_service.process(content, "empty.csv")
        assert exc_info.value.http_status == 400
        assert exc_info.value.error_code == ErrorCode.CSV_EMPTY

    def test_empty_cells_use_default_labels(self, ingest_service):
        """Test that blank service and region cells fall back to Other and Global."""
        result = ingest_service.process(b"BilledCost,ServiceName,RegionName\n2,,\n3,EC2,us-east-1\n", "blank.csv")

        assert result.summary.total_spend == 5.0
        assert result.summary.product_earnings == [
            {"name": "EC2", "value": 3.0},
            {"name": "Other", "value": 2.0},
        ]
        assert result.summary.region_breakdown[1] == {"name": "Global", "value": 2.0}

    def test_headers_duplicated_after_trimming(self, ingest_service):
        """Test that headers equal once trimmed are a 400 ingest error."""
        with pytest.raises(CsvIngestError) as exc_info:
            ingest_service.process(b"BilledCost,BilledCost \n1,2\n", "dupes.csv")
        assert exc_info.value.http_status == 400
        assert exc_info.value.context["duplicate_columns"] == ["BilledCost"]

    def test_invalid_encoding(self, ingest_service):
        with pytest.raises(CsvIngestError) as exc_info:
            ingest_service.process(b"\xff\xfe\xfa", "binary.csv")
        assert exc_info.value.error_code == ErrorCode.CSV_UNREADABLE

    def test_payload_too_large(self, ingest_service, aws_cur_csv, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size_bytes", 10)
        with pytest.raises(PayloadTooLargeError) as exc_info:
            ingest_service.process(aws_cur_csv, "cur.csv")
        assert exc_info.value.http_status == 413


class TestIngest:
    """Tests for CsvIngestService.ingest."""

    async def test_stores_dataset(self, ingest_service, dataset_store, aws_cur_csv):
        """Test that the processed upload is stored under the returned id."""
        result = await ingest_service.ingest(aws_cur_csv, "cur.csv")

        dataset = dataset_store.get(result.dataset_id)
        assert dataset.finops_data["totalSpend"] == "1010.75"
        assert dataset.csv_metadata.filename == "cur.csv"
        assert dataset.csv_metadata.total_rows == 3
        assert dataset.frame.height == 3

    async def test_response_body(self, ingest_service, aws_cur_csv):
        body = (await ingest_service.ingest(aws_cur_csv, "cur.csv")).to_response()
        assert body["success"] is True
        assert body["datasetId"]
        assert body["data"]["efficiencyScore"] == 0
        assert body["sampleSize"] == 3
