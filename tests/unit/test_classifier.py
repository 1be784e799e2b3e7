"""Tests for the candidate classifiers."""

from affiliate_scout.core.schemas import CandidateResult, Platform, ProfileMetadata
from affiliate_scout.pipeline.classifier import (
    brand_tokens,
    check_brand_match,
    check_domain,
    check_shop_content,
    check_shop_url,
    has_affiliate_disclosure,
    has_creator_signal,
    is_shop_url,
    normalize_token,
)


def _candidate(
    *,
    title: str = "Nail serum",
    url: str = "https://blog.example.com/post",
    snippet: str = "",
    platform: Platform = Platform.WEB,
    profile: ProfileMetadata | None = None,
) -> CandidateResult:
    return CandidateResult(
        title=title,
        url=url,
        snippet=snippet,
        platform=platform,
        domain="blog.example.com",
        profile=profile,
    )


# ---------------------------------------------------------------------------
# Signals
# ---------------------------------------------------------------------------


class TestSignals:
    def test_creator_signal_case_insensitive(self) -> None:
        assert has_creator_signal("My HONEST REVIEW of the serum")
        assert has_creator_signal("Meine Erfahrung mit dem Serum")
        assert not has_creator_signal("Nail serum 30ml")

    def test_affiliate_disclosure(self) -> None:
        assert has_affiliate_disclosure("This post contains affiliate links")
        assert has_affiliate_disclosure("#Werbung")
        assert not has_affiliate_disclosure("plain text")


# ---------------------------------------------------------------------------
# Domain checks
# ---------------------------------------------------------------------------


class TestCheckDomain:
    def test_marketplace_rejected(self) -> None:
        decision = check_domain("amazon.com")
        assert decision.passed is False
        assert decision.reason == "blocked_domain"

    def test_marketplace_subdomain_rejected(self) -> None:
        assert check_domain("smile.amazon.de").passed is False

    def test_social_rejected_on_web(self) -> None:
        assert check_domain("youtube.com").passed is False

    def test_brand_rejected(self) -> None:
        decision = check_domain("shop.bedrop.de", brand_domain="bedrop.de")
        assert decision.reason == "brand_domain"

    def test_exclusion_rejected(self) -> None:
        decision = check_domain("spam.net", exclusions=("spam.net",))
        assert decision.reason == "excluded_domain"

    def test_blog_kept(self) -> None:
        assert check_domain("beautyblog.de").passed is True

    def test_empty_domain_kept(self) -> None:
        assert check_domain("").passed is True


# ---------------------------------------------------------------------------
# Shop checks
# ---------------------------------------------------------------------------


class TestShopUrl:
    def test_shop_paths(self) -> None:
        assert is_shop_url("https://a.com/product/123")
        assert is_shop_url("https://a.com/warenkorb")
        assert is_shop_url("https://a.com/collections/serums")
        assert not is_shop_url("https://a.com/blog/serum-review")

    def test_product_page_rejected(self) -> None:
        decision = check_shop_url(_candidate(url="https://a.com/product/123"))
        assert decision.passed is False
        assert decision.reason == "shop_url"

    def test_creator_signal_overrides(self) -> None:
        c = _candidate(url="https://a.com/product/123", title="Serum - honest review")
        assert check_shop_url(c).passed is True


class TestShopContent:
    def test_two_phrases_rejected(self) -> None:
        c = _candidate(snippet="Add to cart today. Free shipping on all orders.")
        decision = check_shop_content(c)
        assert decision.passed is False
        assert decision.reason == "shop_content"

    def test_single_phrase_kept(self) -> None:
        assert check_shop_content(_candidate(snippet="Free shipping over 50 EUR")).passed is True

    def test_creator_signal_overrides(self) -> None:
        c = _candidate(snippet="Add to cart, free shipping. I tested it for a month.")
        assert check_shop_content(c).passed is True


# ---------------------------------------------------------------------------
# Brand exclusion
# ---------------------------------------------------------------------------


class TestBrandMatch:
    def test_normalize_token(self) -> None:
        assert normalize_token("Be-Drop_Official!") == "bedropofficial"

    def test_tokens_skip_short_labels(self) -> None:
        assert brand_tokens("go.com", ("rival.de", "rival.com")) == ["rival"]

    def test_handle_substring_rejected(self) -> None:
        c = _candidate(
            platform=Platform.INSTAGRAM,
            profile=ProfileMetadata(username="bedrop_official"),
        )
        decision = check_brand_match(c, ["bedrop"])
        assert decision.passed is False
        assert decision.reason == "brand_match"

    def test_title_prefix_rejected(self) -> None:
        c = _candidate(title="Bedrop Official - new serum", platform=Platform.YOUTUBE)
        assert check_brand_match(c, ["bedrop"]).passed is False

    def test_title_mention_kept(self) -> None:
        c = _candidate(title="Why I stopped using Bedrop", platform=Platform.YOUTUBE)
        assert check_brand_match(c, ["bedrop"]).passed is True

    def test_no_tokens_kept(self) -> None:
        assert check_brand_match(_candidate(), []).passed is True
