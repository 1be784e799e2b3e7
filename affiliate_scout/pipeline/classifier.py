"""Text/URL classifiers for candidate filtering.

Pure functions, no I/O. Each ``check_*`` returns a FilterDecision so the
pipeline's choices can be tested one rule at a time.

Signal matching is case-insensitive substring membership.
"""

import re

from affiliate_scout.core.schemas import CandidateResult, FilterDecision
from affiliate_scout.core.urls import domain_matches, extract_brand_name, url_path

# --- Domain blocklist: never affiliate partners ---

MARKETPLACE_DOMAINS = frozenset({
    "amazon.com", "amazon.de", "amazon.co.uk", "amazon.fr", "amazon.es", "amazon.it",
    "amazon.nl", "amazon.se", "amazon.pl", "amazon.ca", "amazon.com.au", "amzn.to",
    "ebay.com", "ebay.de", "ebay.co.uk", "ebay.fr", "etsy.com", "walmart.com",
    "target.com", "bestbuy.com", "aliexpress.com", "alibaba.com", "temu.com",
    "shein.com", "wish.com", "rakuten.com", "otto.de", "zalando.de", "zalando.com",
    "idealo.de", "kaufland.de", "mediamarkt.de", "bol.com", "cdiscount.com",
    "allegro.pl", "costco.com", "homedepot.com", "ikea.com",
})

PUBLISHER_DOMAINS = frozenset({
    "wikipedia.org", "nytimes.com", "washingtonpost.com", "cnn.com", "bbc.com",
    "bbc.co.uk", "theguardian.com", "forbes.com", "businessinsider.com",
    "huffpost.com", "usatoday.com", "reuters.com", "bloomberg.com", "cnbc.com",
    "spiegel.de", "bild.de", "focus.de", "stern.de", "welt.de", "zeit.de",
    "faz.net", "sueddeutsche.de", "chip.de", "lemonde.fr", "lefigaro.fr",
    "elpais.com", "corriere.it", "yelp.com", "trustpilot.com", "tripadvisor.com",
    "quora.com", "reddit.com", "stiftung-warentest.de", "consumerreports.org",
})

SOCIAL_DOMAINS = frozenset({
    "facebook.com", "instagram.com", "youtube.com", "youtu.be", "tiktok.com",
    "twitter.com", "x.com", "linkedin.com", "pinterest.com", "pinterest.de",
    "snapchat.com", "threads.net", "twitch.tv",
})

BLOCKED_DOMAINS = MARKETPLACE_DOMAINS | PUBLISHER_DOMAINS | SOCIAL_DOMAINS

# --- Shop pages ---

SHOP_URL_PATTERN = re.compile(
    r"/(cart|checkout|basket|warenkorb|kasse|panier|carrito)(/|$)"
    r"|/(product|products|produkt|produkte|produit|producto|prodotto|p|dp|item|items"
    r"|shop|store|collections|category|categories|kategorie|buy)(/|$)",
)

SHOP_PHRASES = (
    "add to cart", "add to basket", "buy now", "shop now", "order now",
    "free shipping", "in stock", "out of stock", "checkout", "price match",
    "in den warenkorb", "jetzt kaufen", "kostenloser versand", "versandkostenfrei",
    "auf lager", "lieferzeit", "zum shop", "ajouter au panier", "livraison gratuite",
    "acheter maintenant", "añadir al carrito", "envío gratis", "comprar ahora",
    "aggiungi al carrello", "spedizione gratuita", "in winkelwagen", "gratis verzending",
    "lägg i varukorg", "fri frakt", "læg i kurv", "dodaj do koszyka",
)

SHOP_PHRASE_THRESHOLD = 2

# --- Creator / partnership signals ---

CREATOR_SIGNALS = (
    "honest review", "my review", "in my opinion", "i tested", "i've tested",
    "i have tested", "i've been using", "my experience", "hands-on", "blogger",
    "blog", "influencer", "creator", "affiliate", "partner link", "sponsored",
    "collab", "erfahrungsbericht", "meine erfahrung", "ehrliche meinung",
    "ich habe getestet", "werbung", "bloggerin", "mon avis", "mon expérience",
    "j'ai testé", "blogueuse", "blogueur", "mi opinión", "mi experiencia",
    "he probado", "bloguera", "minha opinião", "minha experiência", "eu testei",
    "la mia opinione", "la mia esperienza", "ho provato", "mijn ervaring",
    "mijn eerlijke mening", "ik heb getest", "min erfarenhet", "jag har testat",
    "min erfaring", "jeg har testet", "kokemukseni", "olen testannut",
    "moja opinia", "moje doświadczenie", "przetestowałam",
)

AFFILIATE_DISCLOSURES = (
    "affiliate link", "affiliate links", "affiliate-links", "contains affiliate",
    "werbelink", "partnerlink", "enthält affiliate", "liens affiliés",
    "lien affilié", "enlaces de afiliados", "links de afiliados", "link affiliati",
    "affiliate-länkar", "affiliate-lenker", "linki afiliacyjne", "#ad", "#werbung",
    "#anzeige", "#sponsored",
)


def creator_signals(text: str) -> list[str]:
    """Creator/partnership signals present in ``text``."""
    lowered = text.lower()
    return [s for s in CREATOR_SIGNALS if s in lowered]


def has_creator_signal(text: str) -> bool:
    lowered = text.lower()
    return any(s in lowered for s in CREATOR_SIGNALS)


def has_affiliate_disclosure(text: str) -> bool:
    lowered = text.lower()
    return any(s in lowered for s in AFFILIATE_DISCLOSURES)


def shop_phrases(text: str) -> set[str]:
    """Distinct shop-content phrases present in ``text``."""
    lowered = text.lower()
    return {p for p in SHOP_PHRASES if p in lowered}


def is_shop_url(url: str) -> bool:
    return bool(SHOP_URL_PATTERN.search(url_path(url)))


def check_domain(
    domain: str,
    brand_domain: str | None = None,
    exclusions: tuple[str, ...] = (),
) -> FilterDecision:
    """Reject blocklisted, brand-owned, and explicitly excluded domains."""
    if not domain:
        return FilterDecision.keep("no domain")
    if brand_domain and domain_matches(domain, brand_domain):
        return FilterDecision.reject("brand_domain", domain)
    for excluded in exclusions:
        if domain_matches(domain, excluded):
            return FilterDecision.reject("excluded_domain", domain)
    for blocked in BLOCKED_DOMAINS:
        if domain_matches(domain, blocked):
            return FilterDecision.reject("blocked_domain", blocked)
    return FilterDecision.keep()


def check_shop_url(candidate: CandidateResult) -> FilterDecision:
    """Reject shop-page URLs unless title+snippet carries a creator signal."""
    if not is_shop_url(candidate.url):
        return FilterDecision.keep()
    signals = creator_signals(candidate.text)
    if signals:
        return FilterDecision.keep(f"shop url overridden by '{signals[0]}'")
    return FilterDecision.reject("shop_url", url_path(candidate.url))


def check_shop_content(candidate: CandidateResult) -> FilterDecision:
    """Reject text that reads like a storefront and has no creator voice."""
    found = shop_phrases(candidate.text)
    if len(found) < SHOP_PHRASE_THRESHOLD:
        return FilterDecision.keep()
    if has_creator_signal(candidate.text):
        return FilterDecision.keep("shop phrases overridden by creator signal")
    return FilterDecision.reject("shop_content", ", ".join(sorted(found)))


# --- Brand exclusion (social branch) ---

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_token(value: str) -> str:
    """Lowercase and drop everything but letters and digits."""
    return _NON_ALNUM_RE.sub("", value.lower())


def brand_tokens(brand_domain: str | None, competitors: tuple[str, ...] = ()) -> list[str]:
    """Normalized brand labels for the requester's brand and its competitors."""
    tokens: list[str] = []
    for domain in (brand_domain, *competitors):
        if not domain:
            continue
        token = normalize_token(extract_brand_name(domain))
        # Very short labels ("go", "ab") match too many handles.
        if len(token) >= 3 and token not in tokens:
            tokens.append(token)
    return tokens


def check_brand_match(candidate: CandidateResult, tokens: list[str]) -> FilterDecision:
    """Reject profiles that belong to the brand or a competitor.

    Handle/display name are checked by substring; the title by prefix, which
    catches "Brand Official" style channel names.
    """
    if not tokens:
        return FilterDecision.keep()
    names: list[str] = []
    if candidate.profile is not None:
        names = [
            normalize_token(n)
            for n in (candidate.profile.username, candidate.profile.display_name)
            if n
        ]
    title = normalize_token(candidate.title)
    for token in tokens:
        if any(token in name for name in names):
            return FilterDecision.reject("brand_match", token)
        if title.startswith(token):
            return FilterDecision.reject("brand_match", token)
    return FilterDecision.keep()
