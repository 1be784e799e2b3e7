"""Filter chains for candidate matching.

Web branch order:
  1. DomainBlocklistFilter  - marketplaces, publishers, social, brand, exclusions
  2. ShopUrlFilter          - shop-page paths unless a creator signal is present
  3. ShopContentFilter      - >=2 shop phrases and no creator signal
  4. CountryTldFilter       - TLD allow-list for the target country
  5. LanguageFilter         - detected language vs target language
  6. CreatorSignalSort      - stable sort, creator-signal items first

Social branch order:
  1. EnrichmentRequiredFilter - drop hits whose profile never got attached
  2. BrandExclusionFilter     - brand/competitor-owned profiles
  3. LanguageFilter

Every filter preserves the relative order of survivors.
"""

import logging
from collections.abc import Callable

from affiliate_scout.core.schemas import (
    CandidateResult,
    FilterDecision,
    FilterStats,
    SearchRequest,
)
from affiliate_scout.pipeline.classifier import (
    brand_tokens,
    check_brand_match,
    check_domain,
    check_shop_content,
    check_shop_url,
    has_creator_signal,
)
from affiliate_scout.pipeline.location import detect_language, is_tld_allowed

logger = logging.getLogger(__name__)

# A filter is a callable that takes candidates and returns a subset.
Filter = Callable[[list[CandidateResult]], list[CandidateResult]]


class DecisionFilter:
    """Base for filters that decide one candidate at a time.

    Rejections are counted into the shared FilterStats, keyed by reason code.
    """

    name = "DecisionFilter"

    def __init__(self, stats: FilterStats | None = None) -> None:
        self._stats = stats

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        raise NotImplementedError

    def __call__(self, candidates: list[CandidateResult]) -> list[CandidateResult]:
        result: list[CandidateResult] = []
        for c in candidates:
            decision = self.decide(c)
            if decision.passed:
                result.append(c)
            else:
                if self._stats is not None:
                    self._stats.record(decision.reason)
                logger.debug(
                    "%s: rejected %s (%s: %s)",
                    self.name, c.url, decision.reason, decision.detail,
                )
        removed = len(candidates) - len(result)
        if removed:
            logger.debug("%s: removed %d candidates", self.name, removed)
        return result


class DomainBlocklistFilter(DecisionFilter):
    """Remove known non-affiliate domains, the requester's brand, and exclusions."""

    name = "DomainBlocklistFilter"

    def __init__(
        self,
        brand_domain: str | None = None,
        exclusions: tuple[str, ...] = (),
        stats: FilterStats | None = None,
    ) -> None:
        super().__init__(stats)
        self._brand_domain = brand_domain
        self._exclusions = exclusions

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        return check_domain(candidate.domain, self._brand_domain, self._exclusions)


class ShopUrlFilter(DecisionFilter):
    name = "ShopUrlFilter"

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        return check_shop_url(candidate)


class ShopContentFilter(DecisionFilter):
    name = "ShopContentFilter"

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        return check_shop_content(candidate)


class CountryTldFilter(DecisionFilter):
    """Keep only domains whose TLD is on the target country's allow-list.

    No-op when no country is set.
    """

    name = "CountryTldFilter"

    def __init__(self, country: str | None, stats: FilterStats | None = None) -> None:
        super().__init__(stats)
        self._country = country

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        if is_tld_allowed(candidate.domain or candidate.url, self._country):
            return FilterDecision.keep()
        return FilterDecision.reject("tld_not_allowed", candidate.domain)

    def __call__(self, candidates: list[CandidateResult]) -> list[CandidateResult]:
        if not self._country:
            return candidates
        return super().__call__(candidates)


class LanguageFilter(DecisionFilter):
    """Drop candidates whose text is confidently in another language.

    Short texts are skipped, not rejected. No-op when no language is set.
    """

    name = "LanguageFilter"

    def __init__(self, language: str | None, stats: FilterStats | None = None) -> None:
        super().__init__(stats)
        self._language = language

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        if not self._language:
            return FilterDecision.keep()
        text = candidate.text
        if candidate.profile is not None and candidate.profile.bio:
            text = f"{text} {candidate.profile.bio}"
        detection = detect_language(text, self._language)
        if detection.is_match:
            return FilterDecision.keep(f"{detection.confidence}: {detection.reason}")
        return FilterDecision.reject("language_mismatch", detection.reason)

    def __call__(self, candidates: list[CandidateResult]) -> list[CandidateResult]:
        if not self._language:
            return candidates
        return super().__call__(candidates)


class EnrichmentRequiredFilter(DecisionFilter):
    """Drop social hits that never got profile metadata attached."""

    name = "EnrichmentRequiredFilter"

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        if candidate.profile is None:
            return FilterDecision.reject("missing_enrichment")
        return FilterDecision.keep()


class BrandExclusionFilter(DecisionFilter):
    """Remove profiles owned by the requester's brand or a competitor."""

    name = "BrandExclusionFilter"

    def __init__(
        self,
        brand_domain: str | None,
        competitors: tuple[str, ...] = (),
        stats: FilterStats | None = None,
    ) -> None:
        super().__init__(stats)
        self._tokens = brand_tokens(brand_domain, competitors)

    def decide(self, candidate: CandidateResult) -> FilterDecision:
        return check_brand_match(candidate, self._tokens)


class CreatorSignalSort:
    """Stable sort: candidates with a creator/partnership signal come first."""

    def __call__(self, candidates: list[CandidateResult]) -> list[CandidateResult]:
        # sorted() is stable, so original order holds within each group.
        return sorted(candidates, key=lambda c: not has_creator_signal(c.text))


class DeduplicationFilter:
    """Remove repeated URLs within a single request.

    Stateful: tracks seen URLs across calls within the same filter instance,
    so overlapping platforms or pages only emit a URL once.
    """

    def __init__(self) -> None:
        self._seen: set[str] = set()

    def __call__(self, candidates: list[CandidateResult]) -> list[CandidateResult]:
        result: list[CandidateResult] = []
        for c in candidates:
            if c.url not in self._seen:
                self._seen.add(c.url)
                result.append(c)
        deduped = len(candidates) - len(result)
        if deduped:
            logger.debug("DeduplicationFilter: removed %d duplicates", deduped)
        return result


def build_web_filters(request: SearchRequest, stats: FilterStats | None = None) -> list[Filter]:
    """Build the web branch chain for a request."""
    return [
        DomainBlocklistFilter(request.brand_domain, request.exclude_domains, stats),
        ShopUrlFilter(stats),
        ShopContentFilter(stats),
        CountryTldFilter(request.country, stats),
        LanguageFilter(request.language, stats),
        CreatorSignalSort(),
    ]


def build_social_filters(request: SearchRequest, stats: FilterStats | None = None) -> list[Filter]:
    """Build the social (profile-bearing) branch chain for a request."""
    return [
        EnrichmentRequiredFilter(stats),
        BrandExclusionFilter(request.brand_domain, request.competitors, stats),
        LanguageFilter(request.language, stats),
    ]


def run_filter_chain(
    candidates: list[CandidateResult],
    filters: list[Filter],
    stats: FilterStats | None = None,
) -> list[CandidateResult]:
    """Apply filters in order, returning the surviving candidates."""
    result = candidates
    for f in filters:
        result = f(result)
    if stats is not None:
        stats.input_count += len(candidates)
        stats.output_count += len(result)
    return result
