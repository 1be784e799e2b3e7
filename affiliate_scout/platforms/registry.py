"""Platform adapter registry with lazy loading.

Usage:
    from affiliate_scout.platforms.registry import build_adapters

    adapters = build_adapters(request.platforms, settings, search_client, poller)
    results = await adapters[Platform.WEB].search(request, deadline)
"""

import importlib
from collections.abc import Iterable

from affiliate_scout.core.config import Settings
from affiliate_scout.core.schemas import Platform
from affiliate_scout.pipeline.job_poller import JobPoller
from affiliate_scout.platforms.base import PlatformAdapter
from affiliate_scout.platforms.client import SearchApiClient

# Lazy registry: maps platform → (module_path, class_name)
_REGISTRY: dict[Platform, tuple[str, str]] = {
    Platform.WEB: ("affiliate_scout.platforms.web", "WebAdapter"),
    Platform.YOUTUBE: ("affiliate_scout.platforms.social", "YouTubeAdapter"),
    Platform.INSTAGRAM: ("affiliate_scout.platforms.social", "InstagramAdapter"),
    Platform.TIKTOK: ("affiliate_scout.platforms.social", "TikTokAdapter"),
}


def get_adapter(
    platform: Platform | str,
    settings: Settings,
    search_client: SearchApiClient,
    poller: JobPoller,
) -> PlatformAdapter:
    """Instantiate the adapter for a platform.

    Raises:
        ValueError: If the platform is unknown.
    """
    try:
        key = Platform(platform)
    except ValueError:
        key = None
    if key is None or key not in _REGISTRY:
        valid = ", ".join(p.value for p in _REGISTRY)
        msg = f"Unknown platform '{platform}'. Available: {valid}"
        raise ValueError(msg)

    module_path, class_name = _REGISTRY[key]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)
    return cls.from_settings(settings, search_client, poller)  # type: ignore[no-any-return]


def build_adapters(
    platforms: Iterable[Platform],
    settings: Settings,
    search_client: SearchApiClient,
    poller: JobPoller,
) -> dict[Platform, PlatformAdapter]:
    """One adapter per requested platform, in request order."""
    return {p: get_adapter(p, settings, search_client, poller) for p in platforms}


def available_platforms() -> list[str]:
    return [p.value for p in _REGISTRY]
