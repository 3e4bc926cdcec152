"""
Root conftest.py - Sets environment variables before any module imports.

This file is loaded by pytest before any test modules, ensuring environment
variables are set before the settings module is imported.

Fixtures:
- billing_rows / billing_frame: a small two-day FOCUS dataset
- aws_cur_csv: an AWS CUR style export with provider column names
- dataset_store / dashboard_service: isolated instances per test
- async_client: httpx client against the FastAPI app
"""

import os

# Set environment variables BEFORE any imports that might load settings
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("ENABLE_API_DOCS", "false")

import json
import pytest
from httpx import AsyncClient, ASGITransport

from kco_finops.core.services._shared import LRUCache
from kco_finops.core.services.dashboard import DashboardService, get_dashboard_service
from kco_finops.core.services.dataset_store import CsvMetadata, DatasetStore, get_dataset_store
from kco_finops.lib.costs import records_to_frame


PROD_TAGS = json.dumps({"Owner": "alice", "Environment": "prod"})
DEV_TAGS = json.dumps({"Environment": "dev"})


def _row(day, cost, service, region, resource, account, tags, status):
    return {
        "ChargePeriodStart": f"{day}T00:00:00Z",
        "BilledCost": cost,
        "ServiceName": service,
        "RegionName": region,
        "ProviderName": "AWS",
        "ResourceId": resource,
        "SubAccountName": account,
        "Tags": tags,
        "CommitmentDiscountStatus": status,
    }


# ============================================
# Billing Data
# ============================================

@pytest.fixture
def billing_rows():
    """
    Two days of billing rows, 34.00 in total.

    - i-1 (EC2, us-east-1): 10 then 12, covered, tagged prod with an owner -> Active
    - b-1 (S3, us-west-2): 5 then 0, uncovered, untagged -> Zombie
    - db-1 (RDS, eu-west-1): 1 then 6, uncovered, tagged dev -> Spiking
    """
    return [
        _row("2024-01-01", "10", "EC2", "us-east-1", "i-1", "prod-account", PROD_TAGS, "Used"),
        _row("2024-01-02", "12", "EC2", "us-east-1", "i-1", "prod-account", PROD_TAGS, "Used"),
        _row("2024-01-01", "5", "S3", "us-west-2", "b-1", "dev-account", "", ""),
        _row("2024-01-02", "0", "S3", "us-west-2", "b-1", "dev-account", "", ""),
        _row("2024-01-01", "1", "RDS", "eu-west-1", "db-1", "dev-account", DEV_TAGS, ""),
        _row("2024-01-02", "6", "RDS", "eu-west-1", "db-1", "dev-account", DEV_TAGS, ""),
    ]


@pytest.fixture
def billing_frame(billing_rows):
    """billing_rows as a Polars frame."""
    return records_to_frame(billing_rows)


@pytest.fixture
def aws_cur_csv():
    """AWS CUR style export: provider headers, a formatted and an unparseable cost."""
    return (
        "lineItem/UsageStartDate,lineItem/UnblendedCost,product/ProductName,product/region,lineItem/ResourceId\n"
        "2024-01-01T00:00:00Z,10.50,Amazon EC2,us-east-1,i-1\n"
        '2024-01-01T05:00:00Z,"$1,000.25",Amazon S3,us-west-2,b-1\n'
        "2024-01-02T00:00:00Z,abc,Amazon EC2,,i-1\n"
    ).encode("utf-8")


# ============================================
# Services
# ============================================

@pytest.fixture
def dataset_store():
    """Isolated dataset store."""
    return DatasetStore(cache=LRUCache(max_size=10, default_ttl=60))


@pytest.fixture
def dashboard_service(dataset_store):
    """Dashboard service over the isolated store."""
    return DashboardService(store=dataset_store, cache=LRUCache(max_size=100, default_ttl=60))


@pytest.fixture
def stored_dataset(dataset_store, billing_rows):
    """billing_rows saved in the isolated store."""
    return dataset_store.save(
        raw_records=billing_rows,
        finops_data={"totalSpend": "34.00"},
        csv_metadata=CsvMetadata(
            filename="billing.csv",
            total_rows=len(billing_rows),
            sample_size=len(billing_rows),
            column_mapping={},
        ),
    )


@pytest.fixture(autouse=True)
def reset_shared_state():
    """Clear the process-wide store and view cache between tests."""
    yield
    get_dataset_store().clear()
    get_dashboard_service()._cache.clear()


# ============================================
# FastAPI Test Client
# ============================================

@pytest.fixture
async def async_client():
    """
    Async HTTP client for testing FastAPI endpoints.

    Uses httpx.AsyncClient with ASGITransport for testing FastAPI.
    """
    # Import app here to ensure env vars are set first
    from kco_finops.app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
