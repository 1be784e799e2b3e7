"""Tests for rule-based affiliate scoring."""

from affiliate_scout.core.config import ScoringConfig
from affiliate_scout.core.schemas import (
    CandidateResult,
    EnrichmentRecord,
    Platform,
    ProfileMetadata,
)
from affiliate_scout.pipeline.scorer import score_candidate, score_candidates


def _candidate(
    *,
    title: str = "Nail serum",
    snippet: str = "",
    email: str | None = None,
    profile: ProfileMetadata | None = None,
    traffic: EnrichmentRecord | None = None,
    url: str = "https://blog.example.com/post",
) -> CandidateResult:
    return CandidateResult(
        title=title,
        url=url,
        snippet=snippet,
        platform=Platform.WEB if profile is None else Platform.INSTAGRAM,
        domain="blog.example.com",
        email=email,
        profile=profile,
        traffic=traffic,
    )


class TestScoreCandidate:
    def test_plain_candidate_scores_zero(self) -> None:
        assert score_candidate(_candidate(), ScoringConfig()).score == 0.0

    def test_creator_signal(self) -> None:
        scored = score_candidate(_candidate(title="My honest review"), ScoringConfig())
        assert scored.score == 25.0

    def test_disclosure_and_email(self) -> None:
        c = _candidate(snippet="Werbelink im Text", email="hi@blog.com")
        assert score_candidate(c, ScoringConfig()).score == 35.0

    def test_affiliate_wording_counts_twice(self) -> None:
        c = _candidate(snippet="This post contains affiliate links")
        assert score_candidate(c, ScoringConfig()).score == 45.0

    def test_bio_counts_as_text(self) -> None:
        c = _candidate(profile=ProfileMetadata(bio="Beauty blogger from Berlin"))
        assert score_candidate(c, ScoringConfig()).score == 25.0

    def test_audience_tiers(self) -> None:
        config = ScoringConfig()
        small = score_candidate(_candidate(profile=ProfileMetadata(followers=500)), config)
        mid = score_candidate(_candidate(profile=ProfileMetadata(followers=50_000)), config)
        big = score_candidate(_candidate(profile=ProfileMetadata(subscribers=2_000_000)), config)
        assert small.score == 0.0
        assert mid.score == 12.0
        assert big.score == 20.0

    def test_verified(self) -> None:
        c = _candidate(profile=ProfileMetadata(verified=True))
        assert score_candidate(c, ScoringConfig()).score == 5.0

    def test_traffic_tier_weighted(self) -> None:
        c = _candidate(traffic=EnrichmentRecord(key="blog.example.com", monthly_visits=150_000))
        assert score_candidate(c, ScoringConfig(traffic_weight=2.0)).score == 30.0

    def test_clamped_to_100(self) -> None:
        config = ScoringConfig(creator_signal_bonus=90, disclosure_bonus=90)
        c = _candidate(title="My review", snippet="affiliate links inside")
        assert score_candidate(c, config).score == 100.0

    def test_returns_copy(self) -> None:
        c = _candidate(title="My review")
        scored = score_candidate(c, ScoringConfig())
        assert c.score == 0.0
        assert scored is not c


class TestScoreCandidates:
    def test_sorted_desc(self) -> None:
        low = _candidate(url="https://a.com/1")
        high = _candidate(url="https://b.com/1", title="My review", email="x@b.com")
        result = score_candidates([low, high], ScoringConfig())
        assert [c.url for c in result] == ["https://b.com/1", "https://a.com/1"]
