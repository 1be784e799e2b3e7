"""Social platform adapters: site-restricted discovery, then one profile job.

Discovery goes through the query-style search API with a ``site:``
operator. The discovered URLs are then sent to the platform's profile job
in a single run; items are matched back to URLs and attached as
ProfileMetadata. Hits the job does not cover keep ``profile=None``; a job
that ends FAILED, ABORTED or TIMED_OUT fails the platform.
"""

import logging
from typing import Any

from affiliate_scout.core.config import SearchTuning, Settings
from affiliate_scout.core.schemas import CandidateResult, Platform, SearchRequest
from affiliate_scout.core.urls import extract_domain
from affiliate_scout.pipeline.job_poller import JobPoller, JobSpec
from affiliate_scout.pipeline.location import country_code, language_code
from affiliate_scout.platforms.base import AdapterMode, PlatformAdapter
from affiliate_scout.platforms.client import ProviderError, SearchApiClient
from affiliate_scout.platforms.profiles import (
    PROFILE_SOURCES,
    ProfileSource,
    filter_urls,
    index_items,
)
from affiliate_scout.platforms.queries import (
    build_site_query,
    categorize_platform,
    sanitize_social_keyword,
)

logger = logging.getLogger(__name__)


class SocialAdapter(PlatformAdapter):
    """Shared discovery + profile-enrichment flow, parameterized by platform."""

    _platform: Platform

    def __init__(
        self,
        client: SearchApiClient,
        poller: JobPoller,
        actor_id: str,
        tuning: SearchTuning,
    ) -> None:
        self._client = client
        self._poller = poller
        self._actor_id = actor_id
        self._tuning = tuning
        self._source: ProfileSource = PROFILE_SOURCES[self._platform]

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        search_client: SearchApiClient,
        poller: JobPoller,
    ) -> "SocialAdapter":
        actor_id = getattr(settings.providers.actors, cls._platform.value.lower())
        return cls(search_client, poller, actor_id, settings.search)

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def mode(self) -> AdapterMode:
        return "job"

    async def search(
        self,
        request: SearchRequest,
        deadline: float | None = None,
    ) -> list[CandidateResult]:
        candidates = await self.discover(request)
        if not candidates:
            return []
        return await self.attach_profiles(candidates, deadline)

    async def discover(self, request: SearchRequest) -> list[CandidateResult]:
        """Site-restricted search. Results from other hosts are dropped."""
        gl = country_code(request.country)
        hl = language_code(request.language)
        query = build_site_query(self._platform, request.keyword)
        try:
            organic = await self._client.search(
                query, num=self._tuning.results_per_query, gl=gl, hl=hl,
            )
        except ProviderError as exc:
            if exc.status_code != 400:
                raise
            # Some accounts may not use site:, so search by platform name instead.
            query = f"{sanitize_social_keyword(request.keyword)} {self._platform.value.lower()}"
            logger.warning("%s site: query rejected, retrying as '%s'", self._platform.value, query)
            organic = await self._client.search(
                query, num=self._tuning.results_per_query, gl=gl, hl=hl,
            )

        seen: dict[str, CandidateResult] = {}
        for item in organic:
            candidate = self._to_candidate(item, query)
            if candidate is not None and candidate.url not in seen:
                seen[candidate.url] = candidate
        results = list(seen.values())[: self._tuning.max_results_per_platform]
        logger.info("%s: %d raw results", self._platform.value, len(results))
        return results

    async def attach_profiles(
        self,
        candidates: list[CandidateResult],
        deadline: float | None = None,
    ) -> list[CandidateResult]:
        """Run one profile job for all accepted URLs and merge the results.

        A job that does not succeed raises JobFailedError, which fails the
        platform as a whole.
        """
        urls = filter_urls([c.url for c in candidates], self._source.accepts)
        if not urls:
            logger.info("%s: no URLs eligible for profile enrichment", self._platform.value)
            return candidates

        spec = JobSpec(actor_id=self._actor_id, run_input=self._source.build_input(urls))
        items = await self._poller.run_to_completion(
            self._platform.value, spec, deadline, strict=True,
        )

        profiles = index_items(urls, items, self._source)
        logger.info(
            "%s: profiles for %d/%d URLs", self._platform.value, len(profiles), len(urls),
        )
        enriched: list[CandidateResult] = []
        for c in candidates:
            match = profiles.get(c.url)
            if match is None:
                enriched.append(c)
                continue
            profile, email = match
            enriched.append(c.model_copy(update={"profile": profile, "email": email or c.email}))
        return enriched

    def _to_candidate(self, item: dict[str, Any], query: str) -> CandidateResult | None:
        link = item.get("link")
        if not link or categorize_platform(str(link)) != self._platform:
            return None
        return CandidateResult(
            title=str(item.get("title") or ""),
            url=str(link),
            snippet=str(item.get("snippet") or ""),
            platform=self._platform,
            domain=extract_domain(str(link)),
            query=query,
        )


class YouTubeAdapter(SocialAdapter):
    _platform = Platform.YOUTUBE


class InstagramAdapter(SocialAdapter):
    _platform = Platform.INSTAGRAM


class TikTokAdapter(SocialAdapter):
    _platform = Platform.TIKTOK
