"""Tests for URL and domain helpers."""

import pytest

from affiliate_scout.core.urls import (
    domain_matches,
    extract_brand_name,
    extract_domain,
    normalize_domain,
    url_path,
)


class TestNormalizeDomain:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("https://www.Brand.de/shop?x=1", "brand.de"),
            ("brand.de", "brand.de"),
            ("  WWW.brand.com  ", "brand.com"),
            ("http://brand.com:8080/path", "brand.com"),
            ("brand.com.", "brand.com"),
        ],
    )
    def test_normalize(self, value: str, expected: str) -> None:
        assert normalize_domain(value) == expected


class TestExtractDomain:
    def test_strips_www(self) -> None:
        assert extract_domain("https://www.example.com/post") == "example.com"

    def test_keeps_subdomain(self) -> None:
        assert extract_domain("https://blog.example.co.uk/a") == "blog.example.co.uk"

    def test_scheme_less(self) -> None:
        assert extract_domain("example.de/page") == "example.de"

    def test_empty(self) -> None:
        assert extract_domain("") == ""


class TestUrlPath:
    def test_lowercases(self) -> None:
        assert url_path("https://a.com/Products/X") == "/products/x"


class TestDomainMatches:
    def test_exact(self) -> None:
        assert domain_matches("amazon.de", "amazon.de")

    def test_subdomain(self) -> None:
        assert domain_matches("smile.amazon.de", "amazon.de")

    def test_suffix_without_dot_is_not_a_match(self) -> None:
        assert not domain_matches("notamazon.de", "amazon.de")


class TestExtractBrandName:
    @pytest.mark.parametrize(
        ("domain", "expected"),
        [
            ("guffles.com", "guffles"),
            ("https://www.leadfeeder.io/pricing", "leadfeeder"),
            ("my-brand.co.uk", "my-brand"),
            ("app.hubspot.com", "hubspot"),
            ("shop.brand.com.au", "brand"),
            ("", ""),
        ],
    )
    def test_extract(self, domain: str, expected: str) -> None:
        assert extract_brand_name(domain) == expected
