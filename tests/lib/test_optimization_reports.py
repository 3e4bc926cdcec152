"""
Unit tests for leakage, optimization opportunities and report summaries.
"""

import pytest

from kco_finops.lib.costs import (
    build_inventory,
    build_report,
    calculate_leakage,
    filter_idle_resources,
    find_opportunities,
    idle_resources,
    optimization_summary,
    records_to_frame,
)


class TestLeakage:
    """Tests for calculate_leakage."""

    def test_uncovered_rows(self, billing_frame):
        """Test that covered and zero-cost rows are not leakage."""
        result = calculate_leakage(billing_frame)
        assert result["leakageCost"] == 12.0
        assert result["leakageCount"] == 3
        assert [item["name"] for item in result["leakageItems"]] == ["b-1", "db-1", "db-1"]
        assert all(item["CommitmentDiscountStatus"] == "Uncovered" for item in result["leakageItems"])

    def test_limit_only_trims_items(self, billing_frame):
        result = calculate_leakage(billing_frame, limit=1)
        assert len(result["leakageItems"]) == 1
        assert result["leakageCount"] == 3

    @pytest.mark.parametrize("status", ["Used", "Fully Covered", "RESERVED", "SavingsPlan"])
    def test_covered_statuses(self, status):
        """Test coverage keywords, case-insensitive."""
        df = records_to_frame([{"BilledCost": "5", "CommitmentDiscountStatus": status}])
        assert calculate_leakage(df)["leakageCost"] == 0.0

    def test_cost_fallback_and_defaults(self):
        """Test the Cost column fallback and item labels for bare rows."""
        item = calculate_leakage(records_to_frame([{"Cost": "2.5"}]))["leakageItems"][0]
        assert item["cost"] == 2.5
        assert item["name"] == "Unknown Resource"
        assert item["service"] == "Unknown Service"
        assert item["region"] == "Global"

    def test_empty(self):
        assert calculate_leakage(records_to_frame([])) == {"leakageCost": 0.0, "leakageCount": 0, "leakageItems": []}


class TestOpportunities:
    """Tests for find_opportunities and optimization_summary."""

    @pytest.fixture
    def resources(self, billing_frame):
        return build_inventory(billing_frame)

    def test_opportunities(self, billing_frame, resources):
        """Test data-derived opportunities, largest savings first."""
        opportunities = find_opportunities(billing_frame, resources)
        assert [(o["id"], o["savings"]) for o in opportunities] == [
            ("uncovered-commitments", 12.0),
            ("spiking-resources", 7.0),
            ("zombie-resources", 5.0),
            ("untagged-spend", 5.0),
        ]
        zombie = opportunities[2]
        assert zombie["confidence"] == "High"
        assert zombie["affectedResources"] == 1
        assert zombie["regions"] == ["us-west-2"]
        assert zombie["priority"] == "HIGH IMPACT"
        assert zombie["costImpact"]["percentOfSpend"] == pytest.approx(5 / 34 * 100)

    def test_no_opportunities_for_covered_tagged_spend(self):
        df = records_to_frame([
            {"ResourceId": "i-1", "BilledCost": "3", "ChargePeriodStart": "2024-01-01",
             "CommitmentDiscountStatus": "Used", "Tags": '{"Owner": "a"}'},
        ])
        assert find_opportunities(df, build_inventory(df)) == []

    def test_summary(self, billing_frame, resources):
        """Test total savings and the high-confidence share."""
        opportunities = find_opportunities(billing_frame, resources)
        summary = optimization_summary(opportunities, idle_resources(resources))
        assert summary["totalPotentialSavings"] == 29.0
        assert summary["highConfidencePercent"] == pytest.approx(5 / 29 * 100)
        assert summary["opportunityCount"] == 4
        assert summary["idleResources"] == 1
        assert len(summary["topOpportunities"]) == 3


class TestIdleResources:
    """Tests for idle_resources and filter_idle_resources."""

    def test_idle_entry(self, billing_frame):
        """Test days idle, risk and last activity of a zombie."""
        idle = idle_resources(build_inventory(billing_frame))
        assert len(idle) == 1
        entry = idle[0]
        assert entry["id"] == "b-1"
        assert entry["name"] == "b-1"
        assert entry["daysIdle"] == 1
        assert entry["lastActivity"] == "2024-01-01"
        assert entry["risk"] == "Non-prod"
        assert entry["savings"] == 5.0

    def test_filters(self, billing_frame):
        idle = idle_resources(build_inventory(billing_frame))
        assert filter_idle_resources(idle, risk="prod") == []
        assert len(filter_idle_resources(idle, search="s3")) == 1
        assert filter_idle_resources(idle, search="lambda") == []

    def test_sorts(self):
        idle = [
            {"name": "a", "type": "x", "region": "r", "risk": "Prod", "savings": 1.0, "daysIdle": 9},
            {"name": "b", "type": "x", "region": "r", "risk": "Prod", "savings": 5.0, "daysIdle": 2},
        ]
        assert [r["name"] for r in filter_idle_resources(idle)] == ["b", "a"]
        assert [r["name"] for r in filter_idle_resources(idle, sort="days-desc")] == ["a", "b"]
        assert [r["name"] for r in filter_idle_resources(idle, sort="savings-asc")] == ["a", "b"]


class TestReport:
    """Tests for build_report."""

    def test_report(self, billing_frame):
        """Test period, top lists, tag coverage and prod share."""
        report = build_report(billing_frame, {"totalPotentialSavings": 29.0})
        assert report["period"] == "2024-01-01"
        assert report["totalSpend"] == 34.0
        assert report["topServices"][0] == {"name": "EC2", "cost": 22.0}
        assert [r["name"] for r in report["topRegions"]] == ["us-east-1", "eu-west-1", "us-west-2"]
        assert report["topServicePercent"] == pytest.approx(22 / 34 * 100)
        assert report["taggedPercent"] == pytest.approx(29 / 34 * 100)
        assert report["prodPercent"] == pytest.approx(22 / 34 * 100)
        assert report["optimization"] == {"totalPotentialSavings": 29.0}

    def test_empty(self):
        report = build_report(records_to_frame([]))
        assert report["totalSpend"] == 0.0
        assert report["topServices"] == []
        assert report["topServicePercent"] == 0.0
