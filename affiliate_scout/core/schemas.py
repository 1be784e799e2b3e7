"""Core data models for the affiliate scout engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from affiliate_scout.core.urls import normalize_domain


class Platform(str, Enum):
    """Content platforms the engine can search.

    YouTube, Instagram and TikTok are profile-bearing ("social") platforms.
    """

    WEB = "Web"
    YOUTUBE = "YouTube"
    INSTAGRAM = "Instagram"
    TIKTOK = "TikTok"

    @property
    def is_social(self) -> bool:
        return self is not Platform.WEB


class RunStatus(str, Enum):
    """Lifecycle of an external provider job."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    ABORTED = "ABORTED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self not in (RunStatus.PENDING, RunStatus.RUNNING)


class InvalidTransitionError(ValueError):
    """Raised when a ProviderRun would move backwards or leave a terminal state."""


class SearchRequest(BaseModel):
    """A caller's search, immutable once accepted."""

    model_config = ConfigDict(frozen=True)

    keyword: str
    platforms: tuple[Platform, ...]
    country: str | None = None
    language: str | None = None
    brand_domain: str | None = None
    competitors: tuple[str, ...] = ()
    exclude_domains: tuple[str, ...] = ()
    timeout_s: float = Field(default=120.0, ge=1.0, le=600.0)
    owner: str = "anonymous"
    mode: Literal["stream", "job"] = "stream"

    @field_validator("keyword")
    @classmethod
    def keyword_not_empty(cls, v: str) -> str:
        if not v.strip():
            msg = "keyword must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("platforms", mode="before")
    @classmethod
    def platforms_deduplicated(cls, v: Any) -> tuple[Any, ...]:
        if isinstance(v, (str, Platform)):
            v = [v]
        seen: list[Any] = []
        for p in v or []:
            if p not in seen:
                seen.append(p)
        if not seen:
            msg = "at least one platform must be requested"
            raise ValueError(msg)
        return tuple(seen)

    @field_validator("country", "language", "brand_domain")
    @classmethod
    def blank_is_none(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("brand_domain")
    @classmethod
    def brand_normalized(cls, v: str | None) -> str | None:
        return normalize_domain(v) if v else None

    @field_validator("competitors", "exclude_domains", mode="before")
    @classmethod
    def domains_normalized(cls, v: Any) -> tuple[str, ...]:
        if v is None:
            return ()
        cleaned = [normalize_domain(d) for d in v if isinstance(d, str) and d.strip()]
        return tuple(dict.fromkeys(d for d in cleaned if d))


class ProviderRun(BaseModel):
    """One platform's external job within a request.

    Owned by the JobPoller; status only moves forward.
    """

    platform: str
    handle: str | None = None
    dataset_id: str | None = None
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    def advance(self, status: RunStatus) -> None:
        """Move to ``status``, refusing backward or post-terminal transitions."""
        if status == self.status:
            return
        if self.status.is_terminal:
            msg = f"run {self.handle} already {self.status.value}, cannot move to {status.value}"
            raise InvalidTransitionError(msg)
        if status == RunStatus.PENDING:
            msg = f"run {self.handle} cannot return to PENDING from {self.status.value}"
            raise InvalidTransitionError(msg)
        self.status = status
        if status.is_terminal:
            self.finished_at = datetime.now()


class ProfileMetadata(BaseModel):
    """Flat, platform-agnostic profile stats attached by profile enrichment."""

    model_config = ConfigDict(frozen=True)

    username: str | None = None
    display_name: str | None = None
    bio: str | None = None
    followers: int | None = None
    following: int | None = None
    posts: int | None = None
    subscribers: int | None = None
    views: int | None = None
    likes: int | None = None
    comments: int | None = None
    shares: int | None = None
    videos: int | None = None
    hearts: int | None = None
    verified: bool | None = None
    is_business: bool | None = None
    avatar_url: str | None = None
    profile_url: str | None = None

    @property
    def audience(self) -> int:
        """Best available audience size (followers, else subscribers)."""
        return self.followers or self.subscribers or 0


class TopKeyword(BaseModel):
    model_config = ConfigDict(frozen=True)

    keyword: str
    estimated_value: float | None = None
    cpc: float | None = None


class TopCountry(BaseModel):
    model_config = ConfigDict(frozen=True)

    country_code: str
    share: float | None = None


class EnrichmentRecord(BaseModel):
    """Traffic/rank metrics for one domain or content URL."""

    model_config = ConfigDict(frozen=True)

    key: str
    monthly_visits: int | None = None
    global_rank: int | None = None
    country_rank: int | None = None
    country_code: str | None = None
    bounce_rate: float | None = None
    pages_per_visit: float | None = None
    time_on_site: float | None = None
    traffic_sources: dict[str, float] = Field(default_factory=dict)
    top_countries: list[TopCountry] = Field(default_factory=list)
    category: str | None = None
    top_keywords: list[TopKeyword] = Field(default_factory=list)
    snapshot_date: str | None = None


class CandidateResult(BaseModel):
    """A discovered item representing a potential affiliate partner.

    Frozen: the pipeline drops candidates, enrichment replaces them via model_copy.
    """

    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    snippet: str = ""
    platform: Platform
    domain: str = ""
    profile: ProfileMetadata | None = None
    email: str | None = None
    is_enriching: bool = False
    traffic: EnrichmentRecord | None = None
    score: float = Field(default=0.0, ge=0.0, le=100.0)
    query: str = ""
    found_at: datetime = Field(default_factory=datetime.now)

    @property
    def text(self) -> str:
        """Combined title+snippet used by the text classifiers."""
        return f"{self.title} {self.snippet}".strip()


class FilterDecision(BaseModel):
    """Outcome of a single filter on a single candidate."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    reason: str = "ok"
    detail: str = ""

    @classmethod
    def keep(cls, detail: str = "") -> "FilterDecision":
        return cls(passed=True, reason="ok", detail=detail)

    @classmethod
    def reject(cls, reason: str, detail: str = "") -> "FilterDecision":
        return cls(passed=False, reason=reason, detail=detail)


class FilterStats(BaseModel):
    """Per-branch filter accounting: how many went in, out, and why."""

    input_count: int = 0
    output_count: int = 0
    rejected: dict[str, int] = Field(default_factory=dict)

    def record(self, reason: str) -> None:
        self.rejected[reason] = self.rejected.get(reason, 0) + 1


class PlatformOutcome(BaseModel):
    """How one platform task ended."""

    platform: Platform
    status: Literal["succeeded", "failed", "timed_out", "cancelled"]
    raw_count: int = 0
    filtered_count: int = 0
    error: str | None = None
    filter_stats: FilterStats | None = None


class SearchSummary(BaseModel):
    """Summary carried by the Done event."""

    keyword: str
    total: int = 0
    timed_out: bool = False
    cancelled: bool = False
    enrichment_started: bool = False
    outcomes: list[PlatformOutcome] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def failed_platforms(self) -> list[Platform]:
        return [o.platform for o in self.outcomes if o.status != "succeeded"]


# --- Stream events ---


class CandidateFound(BaseModel):
    type: Literal["candidate"] = "candidate"
    candidate: CandidateResult


class EnrichmentUpdated(BaseModel):
    type: Literal["enrichment"] = "enrichment"
    key: str
    record: EnrichmentRecord


class Done(BaseModel):
    type: Literal["done"] = "done"
    summary: SearchSummary


class Error(BaseModel):
    type: Literal["error"] = "error"
    message: str
    platform: Platform | None = None


Event = CandidateFound | EnrichmentUpdated | Done | Error
