"""Country and language targeting: provider locale codes, TLD allow-lists,
and language detection.

Detection is trigram-profile based (langdetect). Every check fails open:
unknown countries, unknown languages, short or ambiguous text all pass.
"""

import logging
from typing import Literal

from langdetect import DetectorFactory, detect_langs
from langdetect.lang_detect_exception import LangDetectException
from pydantic import BaseModel, ConfigDict

from affiliate_scout.core.urls import extract_domain

logger = logging.getLogger(__name__)

# langdetect is probabilistic; a fixed seed makes decisions reproducible.
DetectorFactory.seed = 0

MIN_TEXT_LENGTH_FOR_DETECTION = 20

# Search-provider geolocation code ("gl") per country name. UK is "uk", not "gb".
COUNTRY_TO_CODE: dict[str, str] = {
    "United States": "us",
    "Canada": "ca",
    "United Kingdom": "uk",
    "Germany": "de",
    "France": "fr",
    "Netherlands": "nl",
    "Belgium": "be",
    "Switzerland": "ch",
    "Austria": "at",
    "Ireland": "ie",
    "Denmark": "dk",
    "Sweden": "se",
    "Norway": "no",
    "Finland": "fi",
    "Spain": "es",
    "Italy": "it",
    "Portugal": "pt",
    "Poland": "pl",
    "Czech Republic": "cz",
    "Australia": "au",
    "New Zealand": "nz",
    "Japan": "jp",
    "South Korea": "kr",
    "Singapore": "sg",
    "United Arab Emirates": "ae",
    "Israel": "il",
    "Saudi Arabia": "sa",
}

# ISO 639-1 code per language name, used for "hl" and for detection.
LANGUAGE_TO_CODE: dict[str, str] = {
    "English": "en",
    "Spanish": "es",
    "German": "de",
    "French": "fr",
    "Portuguese": "pt",
    "Italian": "it",
    "Dutch": "nl",
    "Swedish": "sv",
    "Danish": "da",
    "Norwegian": "no",
    "Finnish": "fi",
    "Polish": "pl",
    "Czech": "cs",
    "Japanese": "ja",
    "Korean": "ko",
    "Arabic": "ar",
    "Hebrew": "he",
}

INTERNATIONAL_TLDS = (".com", ".net", ".org", ".io")

_COUNTRY_TLDS: dict[str, tuple[str, ...]] = {
    "United States": (".us", ".ca", ".co.uk", ".au", ".nz"),
    "Canada": (".ca", ".us", ".co.uk"),
    "Germany": (".de", ".at", ".ch"),
    "Austria": (".at", ".de", ".ch"),
    "Switzerland": (".ch", ".de", ".at"),
    "United Kingdom": (".co.uk", ".uk", ".ie"),
    "Ireland": (".ie", ".co.uk", ".uk"),
    "France": (".fr", ".be", ".ch"),
    "Belgium": (".be", ".fr", ".nl"),
    "Netherlands": (".nl", ".be"),
    "Denmark": (".dk", ".se", ".no"),
    "Sweden": (".se", ".dk", ".no", ".fi"),
    "Norway": (".no", ".se", ".dk"),
    "Finland": (".fi", ".se"),
    "Spain": (".es", ".mx", ".ar"),
    "Italy": (".it", ".ch"),
    "Portugal": (".pt", ".br"),
    "Poland": (".pl",),
    "Czech Republic": (".cz", ".sk"),
    "Australia": (".au", ".nz", ".co.uk"),
    "New Zealand": (".nz", ".au"),
    "Japan": (".jp",),
    "South Korea": (".kr",),
    "Singapore": (".sg",),
    "United Arab Emirates": (".ae",),
    "Israel": (".il",),
    "Saudi Arabia": (".sa", ".ae"),
}

ALLOWED_TLDS_BY_COUNTRY: dict[str, frozenset[str]] = {
    country: frozenset(INTERNATIONAL_TLDS + tlds) for country, tlds in _COUNTRY_TLDS.items()
}

# Suffixes treated as a single TLD.
COMPOUND_TLDS = (".co.uk", ".com.au", ".co.nz", ".com.br", ".co.jp")

# Close languages the detector routinely confuses; any member counts as a match.
RELATED_LANGUAGE_GROUPS: dict[str, frozenset[str]] = {
    "no": frozenset({"no", "da", "sv"}),
    "da": frozenset({"da", "no", "sv"}),
    "sv": frozenset({"sv", "no", "da"}),
    "es": frozenset({"es", "ca", "gl"}),
    "pt": frozenset({"pt", "gl"}),
    "fi": frozenset({"fi", "et"}),
}

Confidence = Literal["high", "medium", "low", "skipped"]


class LanguageDetection(BaseModel):
    """Result of checking a text against a target language."""

    model_config = ConfigDict(frozen=True)

    detected_code: str
    is_match: bool
    confidence: Confidence
    reason: str


def country_code(country: str | None) -> str | None:
    """Provider geolocation code for a country name, or None if unknown."""
    if not country:
        return None
    code = COUNTRY_TO_CODE.get(country)
    if code is None:
        logger.warning("Unknown country '%s' - no geolocation applied", country)
    return code


def language_code(language: str | None) -> str | None:
    """ISO 639-1 code for a language name, or None if unknown."""
    if not language:
        return None
    code = LANGUAGE_TO_CODE.get(language)
    if code is None:
        logger.warning("Unknown language '%s' - no language targeting applied", language)
    return code


def extract_tld(url_or_domain: str) -> str | None:
    """Return the TLD with its leading dot (".de", ".co.uk"), or None."""
    host = extract_domain(url_or_domain)
    if not host:
        return None
    for compound in COMPOUND_TLDS:
        if host.endswith(compound):
            return compound
    parts = host.split(".")
    if len(parts) < 2 or not parts[-1]:
        return None
    return "." + parts[-1]


def is_tld_allowed(url_or_domain: str, country: str | None) -> bool:
    """True if the domain's TLD is acceptable for ``country``.

    Fails open when the country has no allow-list or no TLD can be extracted.
    A compound suffix such as ".com.au" also passes when its last label
    (".au") is allowed.
    """
    if not country:
        return True
    allowed = ALLOWED_TLDS_BY_COUNTRY.get(country)
    if allowed is None:
        return True
    tld = extract_tld(url_or_domain)
    if tld is None:
        return True
    if tld in allowed:
        return True
    return "." + tld.rsplit(".", 1)[-1] in allowed


def detect_language(text: str, target_language: str) -> LanguageDetection:
    """Check whether ``text`` is written in ``target_language`` (a language name).

    Texts shorter than MIN_TEXT_LENGTH_FOR_DETECTION and unknown targets are
    skipped (treated as a match); undetectable text is a low-confidence match.
    """
    stripped = (text or "").strip()
    if len(stripped) < MIN_TEXT_LENGTH_FOR_DETECTION:
        return LanguageDetection(
            detected_code="und",
            is_match=True,
            confidence="skipped",
            reason=f"Text too short ({len(stripped)} chars < {MIN_TEXT_LENGTH_FOR_DETECTION} min)",
        )

    expected = LANGUAGE_TO_CODE.get(target_language)
    if expected is None:
        return LanguageDetection(
            detected_code="und",
            is_match=True,
            confidence="skipped",
            reason=f"Unknown target language: {target_language}",
        )

    try:
        candidates = detect_langs(stripped)
    except LangDetectException:
        candidates = []
    if not candidates:
        return LanguageDetection(
            detected_code="und",
            is_match=True,
            confidence="low",
            reason="Language could not be determined (ambiguous text)",
        )

    best = candidates[0]
    detected = best.lang.split("-", 1)[0]
    group = RELATED_LANGUAGE_GROUPS.get(expected, frozenset({expected}))
    is_match = detected in group
    if not is_match:
        reason = f"Detected {detected}, expected {expected}"
    elif detected == expected:
        reason = "Language matches target"
    else:
        reason = f"Related language accepted ({detected} ~ {expected})"
    return LanguageDetection(
        detected_code=detected,
        is_match=is_match,
        confidence=_confidence(best.prob),
        reason=reason,
    )


def _confidence(probability: float) -> Confidence:
    if probability >= 0.9:
        return "high"
    if probability >= 0.6:
        return "medium"
    return "low"
