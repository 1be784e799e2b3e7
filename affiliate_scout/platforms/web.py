"""Web platform adapter: query-style search, one call per query."""

import asyncio
import logging
from typing import Any

from affiliate_scout.core.config import SearchTuning, Settings
from affiliate_scout.core.schemas import CandidateResult, Platform, SearchRequest
from affiliate_scout.core.urls import extract_domain
from affiliate_scout.pipeline.job_poller import JobPoller
from affiliate_scout.pipeline.location import country_code, language_code
from affiliate_scout.platforms.base import AdapterMode, PlatformAdapter
from affiliate_scout.platforms.client import ProviderError, SearchApiClient
from affiliate_scout.platforms.queries import (
    build_brand_queries,
    build_competitor_queries,
    build_web_queries,
)

logger = logging.getLogger(__name__)


class WebAdapter(PlatformAdapter):
    """Finds blogs and review sites through organic web search.

    Queries run in order: the affiliate query, the localized review query,
    then brand and competitor queries when the request names them. A query
    the provider rejects with HTTP 400 is retried once as the bare keyword.
    """

    def __init__(self, client: SearchApiClient, tuning: SearchTuning) -> None:
        self._client = client
        self._tuning = tuning

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        search_client: SearchApiClient,
        poller: JobPoller,
    ) -> "WebAdapter":
        return cls(search_client, settings.search)

    @property
    def platform(self) -> Platform:
        return Platform.WEB

    @property
    def mode(self) -> AdapterMode:
        return "sync"

    async def search(
        self,
        request: SearchRequest,
        deadline: float | None = None,
    ) -> list[CandidateResult]:
        """Run every query and merge organic results, first URL wins."""
        gl = country_code(request.country)
        hl = language_code(request.language)
        loop = asyncio.get_running_loop()

        seen: dict[str, CandidateResult] = {}
        errors: list[ProviderError] = []
        fallback_used = False
        queries = request_queries(request, self._tuning.include_localized)

        for i, query in enumerate(queries):
            if deadline is not None and loop.time() >= deadline:
                logger.info("Web search out of time after %d/%d queries", i, len(queries))
                break
            try:
                organic = await self._client.search(
                    query, num=self._tuning.results_per_query, gl=gl, hl=hl,
                )
            except ProviderError as exc:
                if exc.status_code == 400 and i > 0 and not fallback_used:
                    fallback_used = True
                    logger.warning("Query '%s' rejected, falling back to plain keyword", query)
                    query = request.keyword
                    try:
                        organic = await self._client.search(
                            query, num=self._tuning.results_per_query, gl=gl, hl=hl,
                        )
                    except ProviderError as fallback_exc:
                        errors.append(fallback_exc)
                        continue
                else:
                    logger.warning("Web query '%s' failed: %s", query, exc)
                    errors.append(exc)
                    continue

            for item in organic:
                candidate = _to_candidate(item, query)
                if candidate is not None and candidate.url not in seen:
                    seen[candidate.url] = candidate
            if len(seen) >= self._tuning.max_results_per_platform:
                break

        if errors and len(errors) == len(queries):
            raise errors[0]

        results = list(seen.values())[: self._tuning.max_results_per_platform]
        logger.info("Web: %d raw results from %d queries", len(results), len(queries))
        return results


def request_queries(request: SearchRequest, include_localized: bool = True) -> list[str]:
    """All web queries for a request, in run order, without repeats."""
    queries = build_web_queries(request.keyword, request.language, include_localized)
    if request.brand_domain:
        queries.extend(build_brand_queries(request.brand_domain, request.language))
    for competitor in request.competitors:
        queries.extend(build_competitor_queries(competitor, request.language))
    return list(dict.fromkeys(queries))


def _to_candidate(item: dict[str, Any], query: str) -> CandidateResult | None:
    link = item.get("link")
    if not link:
        return None
    return CandidateResult(
        title=str(item.get("title") or ""),
        url=str(link),
        snippet=str(item.get("snippet") or ""),
        platform=Platform.WEB,
        domain=extract_domain(str(link)),
        query=query,
    )
