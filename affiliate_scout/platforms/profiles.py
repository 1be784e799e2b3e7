"""Profile enrichment sources for the social platforms.

Each source knows which discovered URLs its job accepts, how to build the
job input, and how to map the job's items back to those URLs as
ProfileMetadata (plus a contact email if the bio carries one).
"""

import logging
import re
from collections.abc import Callable
from typing import Any, NamedTuple

from affiliate_scout.core.schemas import Platform, ProfileMetadata
from affiliate_scout.platforms.queries import extract_email

logger = logging.getLogger(__name__)

ParsedProfile = tuple[ProfileMetadata, str | None]


class ProfileSource(NamedTuple):
    platform: Platform
    accepts: Callable[[str], bool]
    build_input: Callable[[list[str]], dict[str, Any]]
    item_keys: Callable[[dict[str, Any]], list[str]]
    url_id: Callable[[str], str | None]
    parse_item: Callable[[dict[str, Any]], ParsedProfile]


def filter_urls(urls: list[str], accepts: Callable[[str], bool]) -> list[str]:
    """Keep accepted URLs once each, in order. The jobs reject duplicate inputs."""
    return list(dict.fromkeys(u for u in urls if u and accepts(u)))


def index_items(
    urls: list[str],
    items: list[dict[str, Any]],
    source: ProfileSource,
) -> dict[str, ParsedProfile]:
    """Map each submitted URL to its parsed item.

    Items are matched by the keys they report; URLs still unmatched fall
    back to comparing the video/profile id embedded in the URL.
    """
    by_key: dict[str, dict[str, Any]] = {}
    for item in items:
        for key in source.item_keys(item):
            by_key.setdefault(key, item)

    by_id: dict[str, dict[str, Any]] = {}
    for key, item in by_key.items():
        item_id = source.url_id(key)
        if item_id:
            by_id.setdefault(item_id, item)

    result: dict[str, ParsedProfile] = {}
    for url in urls:
        item = by_key.get(url)
        if item is None:
            url_id = source.url_id(url)
            item = by_id.get(url_id) if url_id else None
        if item is None:
            continue
        try:
            result[url] = source.parse_item(item)
        except (TypeError, ValueError) as exc:
            logger.warning("Unparsable %s item for %s: %s", source.platform.value, url, exc)
    return result


def _int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _str(value: Any) -> str | None:
    return str(value) if value else None


# --- YouTube ---

_YOUTUBE_ID_RE = re.compile(r"(?:[?&]v=|youtu\.be/)([^&?/#]+)")


def youtube_accepts(url: str) -> bool:
    return "youtube.com/watch" in url or "youtu.be/" in url


def youtube_input(urls: list[str]) -> dict[str, Any]:
    return {
        "startUrls": [{"url": u} for u in urls],
        "maxResults": 1,
        "maxResultsShorts": 0,
        "maxResultStreams": 0,
    }


def youtube_keys(item: dict[str, Any]) -> list[str]:
    return [item["url"]] if item.get("url") else []


def youtube_id(url: str) -> str | None:
    match = _YOUTUBE_ID_RE.search(url)
    return match.group(1) if match else None


def parse_youtube_item(item: dict[str, Any]) -> ParsedProfile:
    description = _str(item.get("text") or item.get("description"))
    profile = ProfileMetadata(
        username=_str(item.get("channelUsername")),
        display_name=_str(item.get("channelName")),
        bio=description,
        subscribers=_int(item.get("numberOfSubscribers")),
        views=_int(item.get("viewCount")),
        likes=_int(item.get("likes")),
        comments=_int(item.get("commentsCount")),
        verified=bool(item["isVerified"]) if "isVerified" in item else None,
        profile_url=_str(item.get("channelUrl")),
    )
    return profile, extract_email(description)


# --- Instagram ---

_INSTAGRAM_USER_RE = re.compile(r"instagram\.com/([^/?#]+)")
_INSTAGRAM_NON_PROFILE = frozenset({"p", "reel", "reels", "tv", "explore", "stories"})


def instagram_accepts(url: str) -> bool:
    return "instagram.com" in url


def instagram_input(urls: list[str]) -> dict[str, Any]:
    return {
        "directUrls": urls,
        "resultsType": "details",
        "resultsLimit": 1,
        "addParentData": False,
    }


def instagram_keys(item: dict[str, Any]) -> list[str]:
    keys = [item.get("inputUrl"), item.get("url")]
    return list(dict.fromkeys(k for k in keys if k))


def instagram_id(url: str) -> str | None:
    """Lowercased username for profile URLs; None for post/reel URLs."""
    match = _INSTAGRAM_USER_RE.search(url)
    if not match or match.group(1).lower() in _INSTAGRAM_NON_PROFILE:
        return None
    return match.group(1).lower()


def parse_instagram_item(item: dict[str, Any]) -> ParsedProfile:
    bio = _str(item.get("biography"))
    profile = ProfileMetadata(
        username=_str(item.get("username")),
        display_name=_str(item.get("fullName")),
        bio=bio,
        followers=_int(item.get("followersCount")),
        following=_int(item.get("followsCount")),
        posts=_int(item.get("postsCount")),
        verified=bool(item["verified"]) if "verified" in item else None,
        is_business=bool(item["isBusinessAccount"]) if "isBusinessAccount" in item else None,
        avatar_url=_str(item.get("profilePicUrl")),
        profile_url=_str(item.get("url") or item.get("inputUrl")),
    )
    return profile, extract_email(bio)


# --- TikTok ---

_TIKTOK_VIDEO_RE = re.compile(r"/video/(\d+)")


def tiktok_accepts(url: str) -> bool:
    return "tiktok.com" in url and "/video/" in url


def tiktok_input(urls: list[str]) -> dict[str, Any]:
    return {"postURLs": urls, "resultsPerPage": 1}


def tiktok_keys(item: dict[str, Any]) -> list[str]:
    return [item["webVideoUrl"]] if item.get("webVideoUrl") else []


def tiktok_id(url: str) -> str | None:
    match = _TIKTOK_VIDEO_RE.search(url)
    return match.group(1) if match else None


def parse_tiktok_item(item: dict[str, Any]) -> ParsedProfile:
    author = item.get("authorMeta") or {}
    if not isinstance(author, dict):
        author = {}
    bio = _str(author.get("signature"))
    profile = ProfileMetadata(
        username=_str(author.get("name")),
        display_name=_str(author.get("nickName")),
        bio=bio,
        followers=_int(author.get("fans")),
        hearts=_int(author.get("heart")),
        videos=_int(author.get("video")),
        verified=bool(author["verified"]) if "verified" in author else None,
        avatar_url=_str(author.get("avatar")),
        profile_url=_str(author.get("profileUrl")),
        views=_int(item.get("playCount")),
        likes=_int(item.get("diggCount")),
        comments=_int(item.get("commentCount")),
        shares=_int(item.get("shareCount")),
    )
    return profile, extract_email(bio)


PROFILE_SOURCES: dict[Platform, ProfileSource] = {
    Platform.YOUTUBE: ProfileSource(
        Platform.YOUTUBE, youtube_accepts, youtube_input, youtube_keys, youtube_id,
        parse_youtube_item,
    ),
    Platform.INSTAGRAM: ProfileSource(
        Platform.INSTAGRAM, instagram_accepts, instagram_input, instagram_keys, instagram_id,
        parse_instagram_item,
    ),
    Platform.TIKTOK: ProfileSource(
        Platform.TIKTOK, tiktok_accepts, tiktok_input, tiktok_keys, tiktok_id,
        parse_tiktok_item,
    ),
}
