"""
API tests for the dataset and dashboard endpoints.

Tests:
- Dataset listing, detail, records paging, deletion and cache stats
- Every dashboard view over a stored dataset
- Saved views CRUD and CSV export
- 400 / 404 / 422 error responses
"""

import json

import pytest

from kco_finops.core.services.dataset_store import CsvMetadata, get_dataset_store


@pytest.fixture
def dataset_id(billing_rows):
    """billing_rows saved in the process-wide store the app uses."""
    dataset = get_dataset_store().save(
        raw_records=billing_rows,
        finops_data={"totalSpend": "34.00"},
        csv_metadata=CsvMetadata(
            filename="billing.csv",
            total_rows=len(billing_rows),
            sample_size=len(billing_rows),
            column_mapping={},
        ),
    )
    return dataset.dataset_id


class TestDatasetEndpoints:
    """Tests for /api/v1/datasets."""

    @pytest.mark.asyncio
    async def test_list(self, async_client, dataset_id):
        response = await async_client.get("/api/v1/datasets")
        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 1
        assert body["datasets"][0]["datasetId"] == dataset_id
        assert body["datasets"][0]["recordCount"] == 6

    @pytest.mark.asyncio
    async def test_detail(self, async_client, dataset_id):
        body = (await async_client.get(f"/api/v1/datasets/{dataset_id}")).json()
        assert body["finopsData"] == {"totalSpend": "34.00"}
        assert body["csvMetadata"]["totalRows"] == 6

    @pytest.mark.asyncio
    async def test_records_paging(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/datasets/{dataset_id}/records?page=2&page_size=4")
        body = response.json()
        assert len(body["records"]) == 2
        assert body["totalPages"] == 2
        assert body["totalItems"] == 6

    @pytest.mark.asyncio
    async def test_not_found(self, async_client):
        """Test the structured 404 body."""
        response = await async_client.get("/api/v1/datasets/unknown-dataset")
        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "DATASET_NOT_FOUND"
        assert body["success"] is False

    @pytest.mark.asyncio
    async def test_invalid_id(self, async_client):
        response = await async_client.get("/api/v1/datasets/a!")
        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_PARAMETER"

    @pytest.mark.asyncio
    async def test_delete_invalidates_views(self, async_client, dataset_id):
        """Test that deleting a dataset drops its cached views."""
        await async_client.get(f"/api/v1/dashboard/{dataset_id}/overview")

        response = await async_client.delete(f"/api/v1/datasets/{dataset_id}")
        assert response.status_code == 200
        assert response.json()["invalidatedViews"] == 1

        assert (await async_client.get(f"/api/v1/datasets/{dataset_id}")).status_code == 404
        assert (await async_client.get(f"/api/v1/dashboard/{dataset_id}/overview")).status_code == 404

    @pytest.mark.asyncio
    async def test_cache_stats(self, async_client, dataset_id):
        body = (await async_client.get("/api/v1/datasets/cache/stats")).json()
        assert set(body) == {"datasets", "dashboard"}
        assert body["datasets"]["size"] == 1


class TestDashboardViews:
    """Tests for /api/v1/dashboard/{dataset_id}/... views."""

    @pytest.mark.asyncio
    async def test_overview(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/overview")
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["cache_hit"] is False
        assert body["data"]["totalSpend"] == 34.0

        again = await async_client.get(f"/api/v1/dashboard/{dataset_id}/overview")
        assert again.json()["cache_hit"] is True

    @pytest.mark.asyncio
    async def test_overview_filters(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/overview",
            params={"region": "us-east-1", "data_limit": 100},
        )
        assert response.json()["data"]["totalSpend"] == 22.0

    @pytest.mark.asyncio
    async def test_cost_drivers(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/cost-drivers", params={"period": 1})
        data = response.json()["data"]
        assert [d["name"] for d in data["decreases"]] == ["S3"]

    @pytest.mark.asyncio
    async def test_cost_drivers_bad_period(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/cost-drivers", params={"period": 0})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_driver_detail(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/cost-drivers/detail",
            params={"name": "RDS", "period": 1},
        )
        assert response.json()["data"]["topResources"] == [{"id": "db-1", "cost": 6.0}]

    @pytest.mark.asyncio
    async def test_cost_analysis(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/cost-analysis")
        assert response.json()["data"]["peakDay"] == "2024-01-02"

    @pytest.mark.asyncio
    async def test_resources(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/resources",
            params={"tab": "spiking", "grouping": "region"},
        )
        data = response.json()["data"]
        assert [r["id"] for r in data["resources"]] == ["db-1"]
        assert data["groups"][0]["name"] == "eu-west-1"

    @pytest.mark.asyncio
    async def test_resources_invalid_tab(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/resources", params={"tab": "idle"})
        assert response.status_code == 400
        assert response.json()["context"]["parameter"] == "tab"

    @pytest.mark.asyncio
    async def test_tag_matrix(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/resources/tag-matrix",
            params={"required_tags": "Owner, CostCenter"},
        )
        assert response.json()["data"]["coverage"] == {"Owner": 1, "CostCenter": 0}

    @pytest.mark.asyncio
    async def test_resource_detail(self, async_client, dataset_id):
        ok = await async_client.get(f"/api/v1/dashboard/{dataset_id}/resources/detail", params={"resource_id": "b-1"})
        assert ok.json()["data"]["totalCost"] == 5.0

        missing = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/resources/detail",
            params={"resource_id": "nope"},
        )
        assert missing.status_code == 404
        assert missing.json()["error_code"] == "RESOURCE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_accounts(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/accounts",
            params={"search": "dev"},
        )
        data = response.json()["data"]
        assert [a["accountId"] for a in data["accounts"]] == ["dev-account"]

    @pytest.mark.asyncio
    async def test_optimization(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/optimization")
        assert response.json()["data"]["totalPotentialSavings"] == 29.0

    @pytest.mark.asyncio
    async def test_reports(self, async_client, dataset_id):
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/reports")
        data = response.json()["data"]
        assert data["totalSpend"] == 34.0
        assert data["topServices"][0]["name"] == "EC2"

    @pytest.mark.asyncio
    async def test_failed_view_hides_exception_text(self, async_client, dataset_id, monkeypatch):
        """Test that a failing view returns a generic 500 with an error id."""
        def fail(*args, **kwargs):
            raise RuntimeError("secret=abc in /srv/data")

        monkeypatch.setattr("kco_finops.core.services.dashboard.service.build_report", fail)
        response = await async_client.get(f"/api/v1/dashboard/{dataset_id}/reports")

        assert response.status_code == 500
        assert "secret" not in response.text
        detail = response.json()["detail"]
        assert detail["error_code"] == "INTERNAL_ERROR"
        assert detail["error_id"].startswith("ERR-")


class TestExplorerEndpoints:
    """Tests for the explorer, pivot, export and saved views."""

    @pytest.mark.asyncio
    async def test_explorer(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/explorer",
            params={
                "filters": json.dumps({"RegionName": "us-"}),
                "sort_key": "BilledCost",
                "sort_direction": "desc",
                "hidden_columns": "Tags,CommitmentDiscountStatus",
            },
        )
        data = response.json()["data"]
        assert data["totalRows"] == 4
        assert [r["BilledCost"] for r in data["rows"]] == ["12", "10", "5", "0"]
        assert "Tags" not in data["columns"]

    @pytest.mark.asyncio
    async def test_explorer_bad_filters(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/explorer",
            params={"filters": "[1, 2]"},
        )
        assert response.status_code == 400
        assert response.json()["context"]["parameter"] == "filters"

    @pytest.mark.asyncio
    async def test_pivot(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/explorer/pivot",
            params={"group_by": "SubAccountName"},
        )
        groups = response.json()["data"]["groups"]
        assert [(g["name"], g["totalCost"]) for g in groups] == [("prod-account", 22.0), ("dev-account", 12.0)]

    @pytest.mark.asyncio
    async def test_export(self, async_client, dataset_id):
        """Test the CSV attachment of selected rows."""
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/explorer/export",
            params={"sort_key": "BilledCost", "sort_direction": "desc", "selected": "0"},
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert f'filename="finops-export-{dataset_id}.csv"' in response.headers["content-disposition"]
        lines = response.text.split("\n")
        assert len(lines) == 2
        assert '"12"' in lines[1]

    @pytest.mark.asyncio
    async def test_export_bad_selection(self, async_client, dataset_id):
        response = await async_client.get(
            f"/api/v1/dashboard/{dataset_id}/explorer/export",
            params={"selected": "1,x"},
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_saved_views(self, async_client, dataset_id):
        """Test create, list and delete of saved views."""
        created = await async_client.post(
            f"/api/v1/dashboard/{dataset_id}/views",
            json={"name": "EC2", "config": {"filters": {"ServiceName": "ec2"}}},
        )
        assert created.status_code == 201
        view_id = created.json()["id"]

        listed = (await async_client.get(f"/api/v1/dashboard/{dataset_id}/views")).json()
        assert [v["id"] for v in listed] == [view_id]

        deleted = await async_client.delete(f"/api/v1/dashboard/{dataset_id}/views/{view_id}")
        assert deleted.json() == {"success": True, "viewId": view_id}

        again = await async_client.delete(f"/api/v1/dashboard/{dataset_id}/views/{view_id}")
        assert again.status_code == 404
        assert again.json()["error_code"] == "VIEW_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_blank_view_name_rejected(self, async_client, dataset_id):
        response = await async_client.post(
            f"/api/v1/dashboard/{dataset_id}/views",
            json={"name": "   ", "config": {}},
        )
        assert response.status_code == 422
