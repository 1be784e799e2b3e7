"""URL and domain helpers shared by adapters, filters and request validation.

Pure functions, no I/O.
"""

import re
from urllib.parse import urlparse

_PROTOCOL_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_domain(value: str) -> str:
    """Reduce a user-supplied domain or URL to a bare lowercase host.

    ``https://www.Brand.de/shop?x=1`` -> ``brand.de``. Ports are dropped.
    """
    host = _PROTOCOL_RE.sub("", value.strip().lower())
    host = re.split(r"[/?#]", host, maxsplit=1)[0]
    host = host.split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host.strip(".")


def extract_domain(url: str) -> str:
    """Return the host of ``url`` without a leading ``www.``.

    Falls back to :func:`normalize_domain` for scheme-less input.
    Returns "" when nothing host-like can be recovered.
    """
    if not url:
        return ""
    parsed = urlparse(url if _PROTOCOL_RE.match(url) else f"https://{url}")
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def url_path(url: str) -> str:
    """Lowercased path component of ``url`` ("" if unparsable)."""
    try:
        return urlparse(url).path.lower()
    except ValueError:
        return ""


def domain_matches(domain: str, blocked: str) -> bool:
    """True if ``domain`` equals ``blocked`` or is one of its subdomains."""
    return domain == blocked or domain.endswith("." + blocked)


_COMPOUND_SUFFIX_RE = re.compile(r"^(co|com|org|net)\.[a-z]{2}$")
_TRAILING_TLD_RE = re.compile(
    r"\.(com|io|co|net|org|app|de|uk|fr|es|it|nl|be|at|ch|se|no|dk|fi|pl|cz|hu|pt|gr"
    r"|ie|au|nz|ca|us|in|jp|kr|cn|sg|hk|tw|br|mx|ar|cl|co\.uk|com\.au|co\.nz|com\.br)$",
)


def extract_brand_name(domain: str) -> str:
    """Extract the brand label from a domain or URL.

    Examples::

        "guffles.com"                         -> "guffles"
        "https://www.leadfeeder.io/pricing"   -> "leadfeeder"
        "my-brand.co.uk"                      -> "my-brand"
        "app.hubspot.com"                     -> "hubspot"
    """
    if not domain:
        return ""
    host = normalize_domain(domain)
    parts = host.split(".")
    if len(parts) > 2:
        if _COMPOUND_SUFFIX_RE.match(".".join(parts[-2:])):
            host = parts[-3]
        else:
            host = parts[-2]
    elif len(parts) == 2:
        host = parts[0]
    return _TRAILING_TLD_RE.sub("", host)
