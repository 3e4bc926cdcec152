"""
Unit tests for the dashboard service.

Tests every dashboard view over a stored dataset, view caching and
invalidation, parameter validation and error propagation.
"""

import pytest

from kco_finops.core.exceptions import (
    DatasetNotFoundError,
    InvalidParameterError,
    ResourceNotFoundError,
    SavedViewNotFoundError,
)
from kco_finops.core.services._shared import LRUCache
from kco_finops.core.services.dashboard import (
    AccountsQuery,
    ChartLimits,
    DashboardFilters,
    DashboardService,
    ExplorerQuery,
    IdleResourceQuery,
    InventoryQuery,
)


class TestOverview:
    """Tests for get_overview."""

    async def test_overview(self, dashboard_service, stored_dataset):
        """Test KPIs and charts over the whole dataset."""
        result = await dashboard_service.get_overview(stored_dataset.dataset_id)

        assert result.success is True
        data = result.data
        assert data["totalSpend"] == 34.0
        assert data["dailyData"] == [
            {"date": "2024-01-01", "cost": 16.0},
            {"date": "2024-01-02", "cost": 18.0},
        ]
        assert data["topService"] == {"name": "EC2", "value": 22.0}
        assert data["topRegion"] == {"name": "us-east-1", "value": 22.0}
        assert data["topProvider"] == {"name": "AWS", "value": 34.0}
        assert data["spendChangePercent"] == pytest.approx(12.5)
        assert data["untaggedCost"] == 5.0
        assert data["missingMetadataCost"] == 34.0
        assert data["anomaliesCount"] == 0
        assert data["environmentData"] == [
            {"name": "prod", "value": 22.0},
            {"name": "dev", "value": 7.0},
            {"name": "Untagged", "value": 5.0},
        ]
        assert data["recordCount"] == 6

    async def test_headline_shares_and_period(self, dashboard_service, stored_dataset):
        """Test top region/service shares and the billing period label."""
        data = (await dashboard_service.get_overview(stored_dataset.dataset_id)).data
        assert data["topRegionPercent"] == pytest.approx(22 / 34 * 100)
        assert data["topServicePercent"] == pytest.approx(22 / 34 * 100)
        assert data["billingPeriod"] == "Jan 2024"

    async def test_headline_shares_without_spend(self, dashboard_service, stored_dataset):
        """Test that an empty selection reports zero shares and no period."""
        data = (await dashboard_service.get_overview(
            stored_dataset.dataset_id,
            filters=DashboardFilters(service="Lambda"),
        )).data
        assert data["totalSpend"] == 0.0
        assert data["topRegionPercent"] == 0.0
        assert data["topServicePercent"] == 0.0
        assert data["billingPeriod"] is None

    async def test_filters_keep_full_options(self, dashboard_service, stored_dataset):
        """Test that filter options come from the unfiltered dataset."""
        result = await dashboard_service.get_overview(
            stored_dataset.dataset_id,
            filters=DashboardFilters(service="S3"),
        )
        assert result.data["totalSpend"] == 5.0
        assert result.data["filterOptions"]["services"] == ["EC2", "RDS", "S3"]
        assert result.data["filters"]["service"] == "S3"

    async def test_chart_limits(self, dashboard_service, stored_dataset):
        """Test the row cap and chart sizes."""
        limits = ChartLimits(data_limit=2, trend_limit=1, bar_limit=1, pie_limit=1)
        data = (await dashboard_service.get_overview(stored_dataset.dataset_id, limits=limits)).data
        assert data["recordCount"] == 2
        assert data["totalSpend"] == 22.0
        assert len(data["dailyData"]) == 1
        assert len(data["groupedData"]) == 1
        assert len(data["regionData"]) == 1

    async def test_cached(self, dashboard_service, stored_dataset):
        """Test that a repeated request is served from cache."""
        first = await dashboard_service.get_overview(stored_dataset.dataset_id)
        second = await dashboard_service.get_overview(stored_dataset.dataset_id)
        assert first.cache_hit is False
        assert second.cache_hit is True
        assert second.data == first.data

        other = await dashboard_service.get_overview(stored_dataset.dataset_id, group_by="RegionName")
        assert other.cache_hit is False

    async def test_unknown_dataset(self, dashboard_service):
        with pytest.raises(DatasetNotFoundError):
            await dashboard_service.get_overview("unknown-dataset")


class TestDriversAndAnalysis:
    """Tests for cost drivers and cost analysis."""

    async def test_drivers(self, dashboard_service, stored_dataset):
        result = await dashboard_service.get_cost_drivers(stored_dataset.dataset_id, period=1)
        data = result.data
        assert [d["name"] for d in data["increases"]] == ["RDS", "EC2"]
        assert data["overallStats"]["totalCurr"] == 18.0
        assert data["period"] == 1

    async def test_invalid_dimension(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.get_cost_drivers(stored_dataset.dataset_id, dimension="Tags")

    async def test_invalid_period(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.get_cost_drivers(stored_dataset.dataset_id, period=0)

    async def test_driver_detail(self, dashboard_service, stored_dataset):
        result = await dashboard_service.get_driver_detail(stored_dataset.dataset_id, "EC2", period=1)
        assert result.data["topResources"] == [{"id": "i-1", "cost": 12.0}]

    async def test_cost_analysis(self, dashboard_service, stored_dataset):
        """Test daily KPIs, trend and spend shape."""
        data = (await dashboard_service.get_cost_analysis(stored_dataset.dataset_id)).data
        assert data["totalSpend"] == 34.0
        assert data["avgDaily"] == 17.0
        assert data["maxDaily"] == 18.0
        assert data["peakDay"] == "2024-01-02"
        assert data["trend"] == pytest.approx(12.5)
        assert [g["name"] for g in data["groupedData"]] == ["EC2", "RDS", "S3"]
        assert data["predictability"]["band"] == "High"
        assert data["concentration"]["topShare"] == pytest.approx(22 / 34 * 100)


class TestInventory:
    """Tests for the resource inventory views."""

    async def test_inventory_tab(self, dashboard_service, stored_dataset):
        """Test stats over all resources and the zombie tab."""
        result = await dashboard_service.get_resource_inventory(
            stored_dataset.dataset_id,
            InventoryQuery(tab="zombie"),
        )
        data = result.data
        assert data["stats"]["total"] == 3
        assert [r["id"] for r in data["resources"]] == ["b-1"]
        assert data["pagination"]["totalItems"] == 1

    async def test_grouping(self, dashboard_service, stored_dataset):
        result = await dashboard_service.get_resource_inventory(
            stored_dataset.dataset_id,
            InventoryQuery(grouping="service"),
        )
        assert [g["name"] for g in result.data["groups"]] == ["EC2", "RDS", "S3"]

    async def test_invalid_tab(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.get_resource_inventory(stored_dataset.dataset_id, InventoryQuery(tab="idle"))

    async def test_tag_matrix_defaults(self, dashboard_service, stored_dataset):
        """Test that the configured required tags are used by default."""
        data = (await dashboard_service.get_tag_matrix(stored_dataset.dataset_id)).data
        assert data["coverage"] == {"Owner": 1, "Environment": 2, "Project": 0}

    async def test_resource_detail(self, dashboard_service, stored_dataset):
        data = (await dashboard_service.get_resource_detail(stored_dataset.dataset_id, "i-1")).data
        assert data["totalCost"] == 22.0

    async def test_unknown_resource(self, dashboard_service, stored_dataset):
        with pytest.raises(ResourceNotFoundError):
            await dashboard_service.get_resource_detail(stored_dataset.dataset_id, "nope")


class TestExplorer:
    """Tests for the data explorer, export and saved views."""

    async def test_explorer_page(self, dashboard_service, stored_dataset):
        query = ExplorerQuery(sort_key="BilledCost", sort_direction="desc", rows_per_page=2)
        data = (await dashboard_service.get_explorer(stored_dataset.dataset_id, query)).data
        assert data["totalPages"] == 3
        assert [r["BilledCost"] for r in data["rows"]] == ["12", "10"]
        assert data["config"]["sortConfig"] == {"key": "BilledCost", "direction": "desc"}

    async def test_invalid_sort_direction(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.get_explorer(stored_dataset.dataset_id, ExplorerQuery(sort_direction="up"))

    async def test_pivot_drill_down(self, dashboard_service, stored_dataset):
        data = (await dashboard_service.get_pivot(stored_dataset.dataset_id, "RegionName")).data
        assert data["groups"][0]["name"] == "us-east-1"
        assert data["groups"][0]["drillDownFilter"] == "us-east-1"

    async def test_export(self, dashboard_service, stored_dataset):
        csv_text = await dashboard_service.export(
            stored_dataset.dataset_id,
            ExplorerQuery(filters={"ServiceName": "rds"}),
        )
        lines = csv_text.split("\n")
        assert lines[0].startswith('"ChargePeriodStart","BilledCost"')
        assert len(lines) == 3

    async def test_saved_views(self, dashboard_service, stored_dataset):
        dataset_id = stored_dataset.dataset_id
        view = await dashboard_service.save_view(dataset_id, "  Top costs ", {"searchTerm": "ec2"})
        assert view.name == "Top costs"
        assert [v.id for v in await dashboard_service.list_views(dataset_id)] == [view.id]

        await dashboard_service.delete_view(dataset_id, view.id)
        with pytest.raises(SavedViewNotFoundError):
            await dashboard_service.delete_view(dataset_id, view.id)

    async def test_blank_view_name(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.save_view(stored_dataset.dataset_id, "   ", {})


class TestAccountsOptimizationReports:
    """Tests for accounts, optimization and report views."""

    async def test_accounts(self, dashboard_service, stored_dataset):
        data = (await dashboard_service.get_accounts(stored_dataset.dataset_id)).data
        assert [a["accountId"] for a in data["accounts"]] == ["prod-account", "dev-account"]
        assert data["accounts"][1]["suggestedOwner"] == "DevOps Team"
        assert data["filteredCount"] == 2

    async def test_accounts_filtered(self, dashboard_service, stored_dataset):
        query = AccountsQuery(owner_status="Assigned", sort_by="name", sort_order="asc")
        data = (await dashboard_service.get_accounts(stored_dataset.dataset_id, query)).data
        assert [a["accountId"] for a in data["accounts"]] == ["prod-account"]
        assert data["insights"]["totalAccounts"] == 2

    async def test_invalid_owner_status(self, dashboard_service, stored_dataset):
        with pytest.raises(InvalidParameterError):
            await dashboard_service.get_accounts(stored_dataset.dataset_id, AccountsQuery(owner_status="Maybe"))

    async def test_optimization(self, dashboard_service, stored_dataset):
        data = (await dashboard_service.get_optimization(stored_dataset.dataset_id)).data
        assert data["totalPotentialSavings"] == 29.0
        assert [o["id"] for o in data["opportunities"]][0] == "uncovered-commitments"
        assert [r["id"] for r in data["idleResources"]] == ["b-1"]

    async def test_optimization_risk_filter(self, dashboard_service, stored_dataset):
        query = IdleResourceQuery(risk="prod")
        data = (await dashboard_service.get_optimization(stored_dataset.dataset_id, query)).data
        assert data["idleResources"] == []

    async def test_report(self, dashboard_service, stored_dataset):
        data = (await dashboard_service.get_report(stored_dataset.dataset_id)).data
        assert data["period"] == "2024-01-01"
        assert data["optimization"]["totalPotentialSavings"] == 29.0

    async def test_unexpected_error_returns_failure(self, dashboard_service, stored_dataset, monkeypatch):
        """Test that non-FinOps errors become an unsuccessful response."""
        def boom(*args, **kwargs):
            raise RuntimeError("report failed")

        monkeypatch.setattr("kco_finops.core.services.dashboard.service.build_report", boom)
        result = await dashboard_service.get_report(stored_dataset.dataset_id)
        assert result.success is False
        assert result.error == "report failed"
        assert result.error_id.startswith("ERR-")


class TestCacheInvalidation:
    """Tests for per-dataset cache invalidation."""

    async def test_invalidate_dataset(self, dashboard_service, stored_dataset):
        dataset_id = stored_dataset.dataset_id
        await dashboard_service.get_overview(dataset_id)
        await dashboard_service.get_resource_inventory(dataset_id)

        # overview, inventory rollup and inventory view
        assert dashboard_service.invalidate_dataset_cache(dataset_id) == 3
        assert (await dashboard_service.get_overview(dataset_id)).cache_hit is False

    async def test_cache_stats(self, dashboard_service, stored_dataset):
        await dashboard_service.get_overview(stored_dataset.dataset_id)
        await dashboard_service.get_overview(stored_dataset.dataset_id)
        assert dashboard_service.cache_stats["hits"] == 1

    async def test_injected_cache_is_used(self, dataset_store, stored_dataset):
        """Test that an empty injected cache receives the computed views."""
        cache = LRUCache(max_size=3, default_ttl=60)
        service = DashboardService(store=dataset_store, cache=cache)
        await service.get_overview(stored_dataset.dataset_id)
        assert len(cache) == 1
        assert service.cache_stats["max_size"] == 3
