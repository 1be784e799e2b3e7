"""Enrichment batcher: one provider call per enrichment kind, never per key.

Best-effort relative to discovery: provider errors and timeouts produce an
empty map, and keys missing from a partial response are simply absent.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A batch fetch takes unique keys and returns whatever subset it could resolve.
BatchFetch = Callable[[list[str]], Awaitable[dict[str, T]]]


def dedupe_keys(keys: Iterable[str]) -> list[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for k in keys:
        k = (k or "").strip()
        if k and k not in seen:
            seen[k] = None
    return list(seen)


class EnrichmentBatcher(Generic[T]):
    """Wraps a batch fetch with dedup, a sub-budget, and failure isolation.

    Usage::

        batcher = EnrichmentBatcher("traffic", provider.fetch_many, timeout_s=45)
        records = await batcher.enrich_many(["a.com", "a.com", "b.com"])
    """

    def __init__(self, kind: str, fetch: BatchFetch[T], timeout_s: float) -> None:
        self.kind = kind
        self._fetch = fetch
        self._timeout_s = timeout_s

    async def enrich_many(
        self,
        keys: Iterable[str],
        timeout_s: float | None = None,
    ) -> dict[str, T]:
        """Enrich all keys with a single underlying call.

        Args:
            keys: Domains or content URLs; duplicates and blanks are ignored.
            timeout_s: Override for this call's budget (defaults to the batcher's).

        Returns:
            Map of key to enrichment for the keys the provider resolved.
        """
        unique = dedupe_keys(keys)
        if not unique:
            return {}
        budget = self._timeout_s if timeout_s is None else timeout_s
        if budget <= 0:
            logger.info("%s enrichment skipped: no budget left", self.kind)
            return {}

        logger.info("Enriching %d %s keys in one batch", len(unique), self.kind)
        try:
            response = await asyncio.wait_for(self._fetch(unique), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning("%s enrichment timed out after %.1fs", self.kind, budget)
            return {}
        except Exception:
            logger.warning("%s enrichment failed", self.kind, exc_info=True)
            return {}

        result = {k: response[k] for k in unique if k in response}
        missing = len(unique) - len(result)
        if missing:
            logger.debug("%s enrichment: %d keys absent from response", self.kind, missing)
        logger.info("%s enrichment: %d/%d keys resolved", self.kind, len(result), len(unique))
        return result
