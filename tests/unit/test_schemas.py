"""Tests for core data models."""

import pytest
from pydantic import ValidationError

from affiliate_scout.core.schemas import (
    CandidateFound,
    CandidateResult,
    FilterDecision,
    FilterStats,
    InvalidTransitionError,
    Platform,
    PlatformOutcome,
    ProfileMetadata,
    ProviderRun,
    RunStatus,
    SearchRequest,
    SearchSummary,
)


class TestPlatform:
    def test_values(self) -> None:
        assert [p.value for p in Platform] == ["Web", "YouTube", "Instagram", "TikTok"]

    def test_is_social(self) -> None:
        assert Platform.WEB.is_social is False
        assert Platform.YOUTUBE.is_social is True
        assert Platform.TIKTOK.is_social is True


class TestSearchRequest:
    def test_minimal(self) -> None:
        r = SearchRequest(keyword="nail serum", platforms=["Web"])
        assert r.platforms == (Platform.WEB,)
        assert r.timeout_s == 120.0
        assert r.mode == "stream"

    def test_keyword_stripped(self) -> None:
        r = SearchRequest(keyword="  nail serum  ", platforms=["Web"])
        assert r.keyword == "nail serum"

    def test_empty_keyword_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchRequest(keyword="   ", platforms=["Web"])

    def test_empty_platforms_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchRequest(keyword="serum", platforms=[])

    def test_unknown_platform_rejected(self) -> None:
        with pytest.raises(ValidationError):
            SearchRequest(keyword="serum", platforms=["MySpace"])

    def test_platforms_deduplicated_in_order(self) -> None:
        r = SearchRequest(keyword="serum", platforms=["TikTok", "Web", "TikTok"])
        assert r.platforms == (Platform.TIKTOK, Platform.WEB)

    def test_single_platform_string(self) -> None:
        r = SearchRequest(keyword="serum", platforms="YouTube")
        assert r.platforms == (Platform.YOUTUBE,)

    def test_blank_optionals_become_none(self) -> None:
        r = SearchRequest(keyword="serum", platforms=["Web"], country=" ", language="")
        assert r.country is None
        assert r.language is None

    def test_domains_normalized(self) -> None:
        r = SearchRequest(
            keyword="serum",
            platforms=["Web"],
            brand_domain="https://www.Bedrop.de/shop",
            competitors=["www.rival.com", "rival.com", " "],
            exclude_domains=["HTTPS://Blocked.org/page"],
        )
        assert r.brand_domain == "bedrop.de"
        assert r.competitors == ("rival.com",)
        assert r.exclude_domains == ("blocked.org",)

    def test_timeout_bounds(self) -> None:
        with pytest.raises(ValidationError):
            SearchRequest(keyword="serum", platforms=["Web"], timeout_s=0.5)
        with pytest.raises(ValidationError):
            SearchRequest(keyword="serum", platforms=["Web"], timeout_s=601)

    def test_frozen(self) -> None:
        r = SearchRequest(keyword="serum", platforms=["Web"])
        with pytest.raises(ValidationError):
            r.keyword = "other"  # type: ignore[misc]


class TestProviderRun:
    def test_forward_transitions(self) -> None:
        run = ProviderRun(platform="YouTube", handle="r1")
        run.advance(RunStatus.RUNNING)
        run.advance(RunStatus.SUCCEEDED)
        assert run.status == RunStatus.SUCCEEDED
        assert run.finished_at is not None

    def test_pending_straight_to_terminal(self) -> None:
        run = ProviderRun(platform="YouTube", handle="r1")
        run.advance(RunStatus.FAILED)
        assert run.status == RunStatus.FAILED

    def test_same_status_is_noop(self) -> None:
        run = ProviderRun(platform="YouTube", handle="r1", status=RunStatus.RUNNING)
        run.advance(RunStatus.RUNNING)
        assert run.status == RunStatus.RUNNING

    def test_cannot_leave_terminal(self) -> None:
        run = ProviderRun(platform="YouTube", handle="r1", status=RunStatus.TIMED_OUT)
        with pytest.raises(InvalidTransitionError):
            run.advance(RunStatus.SUCCEEDED)

    def test_cannot_return_to_pending(self) -> None:
        run = ProviderRun(platform="YouTube", handle="r1", status=RunStatus.RUNNING)
        with pytest.raises(InvalidTransitionError):
            run.advance(RunStatus.PENDING)

    def test_terminal_states(self) -> None:
        assert RunStatus.PENDING.is_terminal is False
        assert RunStatus.RUNNING.is_terminal is False
        for s in (RunStatus.SUCCEEDED, RunStatus.FAILED, RunStatus.ABORTED, RunStatus.TIMED_OUT):
            assert s.is_terminal is True


class TestProfileMetadata:
    def test_audience_prefers_followers(self) -> None:
        assert ProfileMetadata(followers=500, subscribers=900).audience == 500

    def test_audience_falls_back_to_subscribers(self) -> None:
        assert ProfileMetadata(subscribers=900).audience == 900

    def test_audience_zero_when_unknown(self) -> None:
        assert ProfileMetadata().audience == 0


class TestCandidateResult:
    def test_text_combines_title_and_snippet(self) -> None:
        c = CandidateResult(title="My review", url="https://a.com", snippet="great", platform=Platform.WEB)
        assert c.text == "My review great"

    def test_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            CandidateResult(title="t", url="https://a.com", platform=Platform.WEB, score=101)

    def test_event_serialization(self) -> None:
        c = CandidateResult(title="t", url="https://a.com", platform=Platform.WEB)
        line = CandidateFound(candidate=c).model_dump_json()
        assert '"type":"candidate"' in line
        assert '"platform":"Web"' in line


class TestFilterModels:
    def test_decisions(self) -> None:
        assert FilterDecision.keep().passed is True
        rejected = FilterDecision.reject("shop_url", "/cart")
        assert rejected.passed is False
        assert rejected.reason == "shop_url"

    def test_stats_record(self) -> None:
        stats = FilterStats()
        stats.record("blocked_domain")
        stats.record("blocked_domain")
        assert stats.rejected == {"blocked_domain": 2}


class TestSearchSummary:
    def test_failed_platforms(self) -> None:
        s = SearchSummary(
            keyword="serum",
            outcomes=[
                PlatformOutcome(platform=Platform.WEB, status="succeeded"),
                PlatformOutcome(platform=Platform.TIKTOK, status="timed_out"),
            ],
        )
        assert s.failed_platforms == [Platform.TIKTOK]
