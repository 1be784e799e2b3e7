"""Configuration models and YAML loader for the affiliate scout engine."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator


class JobActorsConfig(BaseModel):
    """Job-style provider actors, one per enrichment kind."""

    youtube: str = "streamers~youtube-scraper"
    instagram: str = "apify~instagram-profile-scraper"
    tiktok: str = "clockworks~tiktok-scraper"
    traffic: str = "tri_angle~similarweb-scraper"


class ProvidersConfig(BaseModel):
    """Endpoints and credential env vars for the platform providers.

    Tokens are never stored in YAML, only the name of the env var holding them.
    """

    search_base_url: str = "https://google.serper.dev"
    search_token_env: str = "SEARCH_API_KEY"
    jobs_base_url: str = "https://api.apify.com/v2"
    jobs_token_env: str = "JOBS_API_TOKEN"
    actors: JobActorsConfig = Field(default_factory=JobActorsConfig)
    traffic_enabled: bool = True


class PollingConfig(BaseModel):
    """Job poller cadence."""

    interval_s: float = Field(default=3.0, gt=0.0)
    max_wait_s: float = Field(default=120.0, gt=0.0)


class RetryConfig(BaseModel):
    """Retry policy applied at the adapter boundary."""

    max_retries: int = Field(default=3, ge=1, le=10)
    backoff_s: float = Field(default=2.0, ge=0.0)
    timeout_s: float = Field(default=30.0, gt=0.0)


class BudgetConfig(BaseModel):
    """Wall-clock budgets for a single search request."""

    request_timeout_s: float = Field(default=120.0, gt=0.0, le=600.0)
    enrichment_timeout_s: float = Field(default=45.0, gt=0.0)
    enrichment_grace_s: float = Field(default=30.0, ge=0.0)


class CreditsConfig(BaseModel):
    """Credit ledger settings."""

    enforce: bool = False
    kind: str = "topic_search"
    default_balance: int = Field(default=10, ge=-1)


class SearchTuning(BaseModel):
    """Query fan-out knobs per platform."""

    results_per_query: int = Field(default=25, ge=1, le=100)
    max_results_per_platform: int = Field(default=100, ge=1)
    include_localized: bool = True


class ScoringConfig(BaseModel):
    """Weights for rule-based affiliate scoring."""

    creator_signal_bonus: float = 25.0
    disclosure_bonus: float = 20.0
    email_bonus: float = 15.0
    verified_bonus: float = 5.0
    audience_weight: float = Field(default=1.0, ge=0.0, le=2.0)
    traffic_weight: float = Field(default=1.0, ge=0.0, le=2.0)


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/affiliates.db"


class ApiConfig(BaseModel):
    """HTTP server bind address."""

    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    credits: CreditsConfig = Field(default_factory=CreditsConfig)
    search: SearchTuning = Field(default_factory=SearchTuning)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator("budget")
    @classmethod
    def enrichment_fits_budget(cls, v: BudgetConfig) -> BudgetConfig:
        if v.enrichment_timeout_s > v.request_timeout_s:
            msg = "enrichment_timeout_s must not exceed request_timeout_s"
            raise ValueError(msg)
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
