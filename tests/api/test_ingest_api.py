"""
API tests for the CSV upload endpoint and health endpoints.

Tests:
- Successful upload returns the summary and a usable dataset id
- Missing file, empty file and oversized uploads
- Request id and version headers
"""

import pytest

from kco_finops.app.config import settings


class TestHealth:
    """Tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "development"

    @pytest.mark.asyncio
    async def test_root_reports_docs_disabled(self, async_client):
        response = await async_client.get("/")
        assert response.json()["docs"] == "disabled"

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, async_client):
        """Test that a client request id is returned with timing headers."""
        response = await async_client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert "X-Process-Time" in response.headers
        assert response.headers["X-API-Version"] == settings.app_version


class TestProcessCsv:
    """Tests for POST /api/process-csv."""

    @pytest.mark.asyncio
    async def test_upload(self, async_client, aws_cur_csv):
        """Test that an AWS CUR export is processed and stored."""
        response = await async_client.post(
            "/api/process-csv",
            files={"file": ("billing.csv", aws_cur_csv, "text/csv")},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["totalSpend"] == "1010.75"
        assert body["data"]["efficiencyScore"] == 0
        assert body["columnMapping"]["BilledCost"] == "lineItem/UnblendedCost"
        assert body["totalRows"] == 3
        assert body["sampleSize"] == 3
        assert body["rawRecords"][0]["ServiceName"] == "Amazon EC2"

        dataset = await async_client.get(f"/api/v1/datasets/{body['datasetId']}")
        assert dataset.status_code == 200
        assert dataset.json()["csvMetadata"]["filename"] == "billing.csv"

    @pytest.mark.asyncio
    async def test_missing_file(self, async_client):
        """Test that a request without a file is a 400."""
        response = await async_client.post("/api/process-csv")
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "No file uploaded"
        assert body["error_code"] == "MISSING_FILE"
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_empty_file(self, async_client):
        """Test that an empty CSV is a 400 with the empty-file message."""
        response = await async_client.post(
            "/api/process-csv",
            files={"file": ("empty.csv", b"", "text/csv")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "CSV file appeared empty or could not be parsed."

    @pytest.mark.asyncio
    async def test_payload_too_large(self, async_client, aws_cur_csv, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_size_bytes", 16)
        response = await async_client.post(
            "/api/process-csv",
            files={"file": ("billing.csv", aws_cur_csv, "text/csv")},
        )
        assert response.status_code == 413
        assert response.json()["error_code"] == "PAYLOAD_TOO_LARGE"
