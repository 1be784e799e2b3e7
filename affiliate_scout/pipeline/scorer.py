"""Rule-based affiliate scoring for candidates.

Score range: 0-100 (clamped). Individual bonuses from ScoringConfig.
Audience and traffic add log-scaled tier bonuses.

Scores feed exports and storage only; they never reorder the live stream.
"""

import logging

from affiliate_scout.core.config import ScoringConfig
from affiliate_scout.core.schemas import CandidateResult
from affiliate_scout.pipeline.classifier import has_affiliate_disclosure, has_creator_signal

logger = logging.getLogger(__name__)

# (minimum audience, bonus) - first match wins.
_AUDIENCE_TIERS: list[tuple[int, float]] = [
    (1_000_000, 20.0),
    (100_000, 16.0),
    (10_000, 12.0),
    (1_000, 6.0),
]

# (minimum monthly visits, bonus) - first match wins.
_TRAFFIC_TIERS: list[tuple[int, float]] = [
    (1_000_000, 20.0),
    (100_000, 15.0),
    (10_000, 10.0),
    (1_000, 5.0),
]


def score_candidate(candidate: CandidateResult, config: ScoringConfig) -> CandidateResult:
    """Score a single candidate using rule-based bonuses.

    Args:
        candidate: The candidate to score.
        config: Scoring weights from settings.

    Returns:
        A copy of the candidate with ``score`` set (0-100).
    """
    score = 0.0
    text = candidate.text
    if candidate.profile is not None and candidate.profile.bio:
        text = f"{text} {candidate.profile.bio}"

    if has_creator_signal(text):
        score += config.creator_signal_bonus

    if has_affiliate_disclosure(text):
        score += config.disclosure_bonus

    if candidate.email:
        score += config.email_bonus

    if candidate.profile is not None:
        if candidate.profile.verified:
            score += config.verified_bonus
        score += _tier_bonus(candidate.profile.audience, _AUDIENCE_TIERS) * config.audience_weight

    if candidate.traffic is not None and candidate.traffic.monthly_visits:
        score += _tier_bonus(candidate.traffic.monthly_visits, _TRAFFIC_TIERS) * config.traffic_weight

    score = max(0.0, min(100.0, score))
    return candidate.model_copy(update={"score": score})


def score_candidates(
    candidates: list[CandidateResult],
    config: ScoringConfig,
) -> list[CandidateResult]:
    """Score a batch of candidates, returning them sorted by score desc."""
    scored = [score_candidate(c, config) for c in candidates]
    scored.sort(key=lambda c: c.score, reverse=True)
    return scored


def _tier_bonus(value: int, tiers: list[tuple[int, float]]) -> float:
    for minimum, bonus in tiers:
        if value >= minimum:
            return bonus
    return 0.0
