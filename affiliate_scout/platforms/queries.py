"""Search query builders and small text extractors shared by the adapters.

Keyword mode:     "<keyword> affiliate" plus a localized review query.
Brand mode:       existing affiliates of the requester's brand.
Competitor mode:  creators covering a competitor who could be recruited.
"""

import re

from affiliate_scout.core.schemas import Platform
from affiliate_scout.core.urls import domain_matches, extract_brand_name, extract_domain

# "review" in the target language. English is absent on purpose: the
# universal queries already cover it.
LOCALIZED_REVIEW_TERMS: dict[str, str] = {
    "German": "erfahrung",
    "Spanish": "reseña",
    "French": "avis",
    "Portuguese": "avaliação",
    "Italian": "recensione",
    "Dutch": "ervaring",
    "Swedish": "recension",
    "Danish": "anmeldelse",
    "Norwegian": "anmeldelse",
    "Finnish": "arvostelu",
    "Polish": "recenzja",
    "Czech": "recenze",
}

SITE_OPERATORS: dict[Platform, str] = {
    Platform.YOUTUBE: "site:youtube.com",
    Platform.INSTAGRAM: "site:instagram.com",
    Platform.TIKTOK: "site:tiktok.com",
}

_PLATFORM_DOMAINS: list[tuple[str, Platform]] = [
    ("youtube.com", Platform.YOUTUBE),
    ("youtu.be", Platform.YOUTUBE),
    ("instagram.com", Platform.INSTAGRAM),
    ("tiktok.com", Platform.TIKTOK),
]

EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_SOCIAL_TLD_RE = re.compile(
    r"\.(com|de|co\.uk|net|org|io|shop|store|eu|at|ch|fr|es|it|nl|be|pl|se|no|dk|fi)$",
    re.IGNORECASE,
)


def localized_review_term(language: str | None) -> str | None:
    if not language:
        return None
    return LOCALIZED_REVIEW_TERMS.get(language)


def build_web_queries(keyword: str, language: str | None = None, include_localized: bool = True) -> list[str]:
    """Queries for the web branch: the affiliate query, then the localized one."""
    queries = [f"{keyword} affiliate"]
    term = localized_review_term(language) if include_localized else None
    if term:
        queries.append(f"{keyword} {term}")
    return queries


def build_brand_queries(brand: str, language: str | None = None) -> list[str]:
    """Queries that surface people already reviewing or promoting ``brand``."""
    name = extract_brand_name(brand)
    if not name:
        return []
    queries = [f'"{name} review"', f'"{name} affiliate"']
    term = localized_review_term(language)
    if term:
        queries.append(f'"{name} {term}"')
    return queries


def build_competitor_queries(competitor: str, language: str | None = None) -> list[str]:
    """Queries that surface creators covering a competitor."""
    name = extract_brand_name(competitor)
    if not name:
        return []
    queries = [f'"{name} alternative"', f'"{name} review"', f'"{name} vs"']
    term = localized_review_term(language)
    if term:
        queries.append(f'"{name} {term}"')
    return queries


def sanitize_social_keyword(keyword: str) -> str:
    """Make a keyword safe for social search.

    ``https://www.bedrop.de`` -> ``bedrop``; ``nail-serum!`` -> ``nail serum``.
    """
    cleaned = re.sub(r"^https?://", "", keyword.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"^www\.", "", cleaned, flags=re.IGNORECASE)
    if _SOCIAL_TLD_RE.search(cleaned):
        cleaned = re.sub(r"\.[a-z]{2,}$", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"[^a-zA-Z0-9\s]", " ", cleaned).strip()
    return re.sub(r"\s+", " ", cleaned)


def build_site_query(platform: Platform, keyword: str) -> str:
    """Discovery query for a social platform, e.g. ``nail serum site:tiktok.com``."""
    operator = SITE_OPERATORS.get(platform)
    if operator is None:
        msg = f"No site operator for platform {platform.value}"
        raise ValueError(msg)
    return f"{sanitize_social_keyword(keyword)} {operator}"


def categorize_platform(url: str) -> Platform:
    """Which platform a result URL belongs to (Web for anything else)."""
    domain = extract_domain(url)
    for platform_domain, platform in _PLATFORM_DOMAINS:
        if domain_matches(domain, platform_domain):
            return platform
    return Platform.WEB


def extract_email(text: str | None) -> str | None:
    """First email-looking token in ``text``, or None."""
    if not text:
        return None
    match = EMAIL_RE.search(text)
    return match.group(0) if match else None
