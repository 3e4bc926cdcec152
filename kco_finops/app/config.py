"""
Settings for the FinOps API, read from the environment and `.env` files.

Field names map to upper-case variables (`sample_size` -> `SAMPLE_SIZE`).
The groups below are the ones worth knowing about when deploying:

  Upload limits     MAX_UPLOAD_SIZE_BYTES (200MB), SAMPLE_SIZE (5000),
                    LEAKAGE_ITEMS_LIMIT (100), TOP_SERVICES_LIMIT (10)
  Dashboard charts  DASHBOARD_DATA_LIMIT (1000), TREND_LIMIT / BAR_LIMIT /
                    PIE_LIMIT (30 / 8 / 8), ANOMALY_SIGMA (2.0),
                    ANOMALY_LIMIT (10), REQUIRED_TAGS
  Dataset store     DATASET_CACHE_MAX_SIZE (50 uploads),
                    DATASET_CACHE_TTL_SECONDS (one day)
  Owner rules       OWNERSHIP_RULES_PATH, a YAML file with an `ownership`
                    mapping (see configs/finops/ownership_rules.yml)

CORS_ORIGINS is a JSON array; a lone "*" is rejected because credentials
are allowed.
"""


import yaml
from typing import List, Optional, Dict, Any
from functools import lru_cache
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Parsed ownership rules, loaded once per process
_OWNERSHIP_RULES_CACHE: Optional[Dict[str, Any]] = None


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables.
    Supports .env file loading in development.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================
    # Application Settings
    # ============================================
    app_name: str = Field(
        default="kco-finops",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Runtime environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )

    # ============================================
    # API Configuration
    # ============================================
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000, ge=1024, le=65535, description="Default port for the FinOps API")
    enable_api_docs: bool = Field(
        default=True,
        description="Enable OpenAPI documentation (/docs and /redoc endpoints)"
    )

    # CORS settings
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins. Wildcard '*' is NOT allowed when credentials=true."
    )
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(
        default=["GET", "POST", "DELETE", "OPTIONS"],
        description="Allowed HTTP methods for CORS"
    )
    cors_allow_headers: List[str] = Field(
        default=["Content-Type", "X-Request-ID"],
        description="Allowed request headers for CORS"
    )
    expose_error_details: bool = Field(
        default=False,
        description="Include exception messages in 500 responses"
    )

    @field_validator('cors_origins')
    @classmethod
    def reject_lone_cors_wildcard(cls, v: List[str]) -> List[str]:
        """Browsers refuse credentialed requests to `Access-Control-Allow-Origin: *`."""
        if v == ['*']:
            raise ValueError(
                "CORS_ORIGINS cannot be ['*'] while credentials are allowed; "
                "list the dashboard origins explicitly"
            )
        return v

    # ============================================
    # CSV Ingest
    # ============================================
    max_upload_size_bytes: int = Field(
        default=200 * 1024 * 1024,
        ge=1024,
        description="Largest accepted CSV upload in bytes"
    )
    sample_size: int = Field(
        default=5000,
        ge=1,
        description="Number of normalized raw records returned and cached per upload"
    )
    leakage_items_limit: int = Field(
        default=100,
        ge=1,
        description="Maximum number of uncovered line items listed in the processing summary"
    )
    top_services_limit: int = Field(
        default=10,
        ge=1,
        description="Number of services reported in productEarnings"
    )

    # ============================================
    # Dashboard
    # ============================================
    dashboard_data_limit: int = Field(
        default=1000,
        ge=1,
        description="Overview keeps at most this many rows, most expensive first"
    )
    trend_limit: int = Field(default=30, ge=1, description="Days shown in the overview trend chart")
    bar_limit: int = Field(default=8, ge=1, description="Bars shown in the overview grouped chart")
    pie_limit: int = Field(default=8, ge=1, description="Slices shown in the overview region chart")
    anomaly_sigma: float = Field(
        default=2.0,
        gt=0,
        description="Rows costing more than mean + sigma * stddev are reported as anomalies"
    )
    anomaly_limit: int = Field(default=10, ge=1, description="Maximum anomalies reported")
    inventory_page_size: int = Field(default=50, ge=1, description="Resources per inventory page")
    required_tags: List[str] = Field(
        default=["Owner", "Environment", "Project"],
        description="Tag keys every resource is expected to carry"
    )

    # ============================================
    # Dataset Store
    # ============================================
    dataset_cache_max_size: int = Field(
        default=50,
        ge=1,
        description="Maximum number of uploaded datasets kept in memory"
    )
    dataset_cache_ttl_seconds: int = Field(
        default=86400,
        ge=1,
        description="Seconds an uploaded dataset stays available"
    )
    ownership_rules_path: str = Field(
        default="configs/finops/ownership_rules.yml",
        description="Path to the YAML rules used to suggest account owners"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    def load_ownership_rules(self) -> Dict[str, Any]:
        """
        The `ownership` section of the owner-suggestion rules file.

        Relative paths are tried from the working directory first, then
        from the repository root. The file is parsed once per process.

        Returns:
            Mapping with name_rules, service_rules, cost_rules and default_owner.
            An empty mapping when the file does not exist.
        """
        global _OWNERSHIP_RULES_CACHE

        if _OWNERSHIP_RULES_CACHE is not None:
            return _OWNERSHIP_RULES_CACHE

        config_path = Path(self.ownership_rules_path)
        if not config_path.is_absolute() and not config_path.exists():
            config_path = Path(__file__).resolve().parents[2] / self.ownership_rules_path

        if not config_path.exists():
            return {}

        with open(config_path, 'r') as f:
            config = yaml.safe_load(f) or {}

        _OWNERSHIP_RULES_CACHE = config.get('ownership', {})
        return _OWNERSHIP_RULES_CACHE


@lru_cache()
def get_settings() -> Settings:
    """Process-wide Settings, built on first use."""
    return Settings()


# Convenience export
settings = get_settings()
