"""Traffic-analytics provider: batch-enrich domains with visits, rank and keywords.

One job covers every requested domain; results are keyed by normalized domain.
"""

import logging
from typing import Any

from affiliate_scout.core.schemas import EnrichmentRecord, TopCountry, TopKeyword
from affiliate_scout.core.urls import normalize_domain
from affiliate_scout.pipeline.job_poller import JobPoller, JobSpec

logger = logging.getLogger(__name__)

MAX_TOP_COUNTRIES = 5
MAX_TOP_KEYWORDS = 10

_SOURCE_KEYS = {
    "Direct": "direct",
    "Search": "search",
    "Social": "social",
    "Referrals": "referrals",
    "Mail": "mail",
    "Paid Referrals": "paid",
}


class TrafficProvider:
    """Job-backed traffic lookups for a list of domains."""

    def __init__(self, poller: JobPoller, actor_id: str) -> None:
        self._poller = poller
        self._actor_id = actor_id

    async def fetch_many(self, domains: list[str]) -> dict[str, EnrichmentRecord]:
        """Run one job for all ``domains`` and parse whatever comes back."""
        spec = JobSpec(actor_id=self._actor_id, run_input={"domains": domains})
        items = await self._poller.run_to_completion("traffic", spec)
        records: dict[str, EnrichmentRecord] = {}
        for item in items:
            record = parse_traffic_item(item)
            if record is not None:
                records[record.key] = record
        logger.info("Traffic lookup: %d/%d domains returned data", len(records), len(domains))
        return records


def parse_traffic_item(item: dict[str, Any]) -> EnrichmentRecord | None:
    """Map one provider item to an EnrichmentRecord; None if it has no domain."""
    domain = normalize_domain(str(item.get("domain") or ""))
    if not domain:
        return None

    country_rank = item.get("countryRank") or {}
    sources = item.get("trafficSources") or {}

    top_countries = [
        TopCountry(country_code=str(c.get("CountryCode")), share=_to_float(c.get("Value")))
        for c in (item.get("topCountryShares") or [])[:MAX_TOP_COUNTRIES]
        if isinstance(c, dict) and c.get("CountryCode")
    ]
    # The provider spells it "esitmatedValue"; accept the correct spelling too.
    top_keywords = [
        TopKeyword(
            keyword=str(kw.get("name")),
            estimated_value=_to_float(kw.get("esitmatedValue", kw.get("estimatedValue"))),
            cpc=_to_float(kw.get("cpc")),
        )
        for kw in (item.get("topKeywords") or [])[:MAX_TOP_KEYWORDS]
        if isinstance(kw, dict) and kw.get("name")
    ]

    return EnrichmentRecord(
        key=domain,
        monthly_visits=_to_int(item.get("visits")),
        global_rank=_to_int(item.get("globalRank")),
        country_rank=_to_int(country_rank.get("Rank")) if isinstance(country_rank, dict) else None,
        country_code=country_rank.get("CountryCode") if isinstance(country_rank, dict) else None,
        bounce_rate=_to_float(item.get("bounceRate")),
        pages_per_visit=_to_float(item.get("pagesPerVisit")),
        time_on_site=_to_float(item.get("timeOnSite")),
        traffic_sources={
            name: float(sources[key])
            for key, name in _SOURCE_KEYS.items()
            if isinstance(sources, dict) and _to_float(sources.get(key)) is not None
        },
        top_countries=top_countries,
        category=item.get("category") or None,
        top_keywords=top_keywords,
        snapshot_date=item.get("snapshotDate") or None,
    )


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
