"""
Dashboard Service Models

Query parameters for the dashboard views and the response wrapper.
"""

import hashlib
import json
from dataclasses import asdict, dataclass, field
from typing import Optional, List, Dict, Any

from kco_finops.app.config import settings


def params_key(params: Dict[str, Any]) -> str:
    """Stable hash of view parameters for cache keys."""
    key_str = json.dumps(params, sort_keys=True, default=str)
    return hashlib.md5(key_str.encode()).hexdigest()


@dataclass
class ChartLimits:
    """Overview chart sizes."""
    data_limit: int = field(default_factory=lambda: settings.dashboard_data_limit)
    trend_limit: int = field(default_factory=lambda: settings.trend_limit)
    bar_limit: int = field(default_factory=lambda: settings.bar_limit)
    pie_limit: int = field(default_factory=lambda: settings.pie_limit)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class InventoryQuery:
    """Resource inventory view state."""
    grouping: str = "none"
    tab: str = "all"
    search: Optional[str] = None
    page: int = 1
    page_size: int = field(default_factory=lambda: settings.inventory_page_size)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AccountsQuery:
    """Accounts & ownership table state."""
    search: Optional[str] = None
    owner_status: str = "All"
    provider: str = "All"
    sort_by: str = "cost"
    sort_order: str = "desc"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IdleResourceQuery:
    """Idle-resource list state on the optimization view."""
    risk: str = "all"
    search: Optional[str] = None
    sort: str = "savings-desc"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DashboardResponse:
    """Response wrapper for dashboard views."""
    success: bool
    data: Optional[Dict[str, Any]] = None
    cache_hit: bool = False
    query_time_ms: float = 0.0
    error: Optional[str] = None
    error_id: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
