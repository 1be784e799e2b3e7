"""HTTP clients for the two provider shapes: query-style search and job-style scrape runs.

Both retry transient failures (transport errors, 5xx, 429) with linear
backoff plus jitter; other 4xx responses fail immediately.
"""

import asyncio
import logging
import os
import random
from typing import Any

import httpx

from affiliate_scout.core.config import ProvidersConfig, RetryConfig

logger = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class ProviderError(Exception):
    """A provider call failed after retries (or with a non-retryable status)."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.status_code = status_code


class ProviderClient:
    """Shared retrying request loop around an httpx.AsyncClient.

    The client may be injected (tests pass one built on httpx.MockTransport);
    otherwise one is created lazily and closed by ``aclose``.
    """

    provider = "provider"

    def __init__(
        self,
        base_url: str,
        token_env: str,
        retry: RetryConfig,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_env = token_env
        self._retry = retry
        self._http = http
        self._owns_http = http is None

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None

    def _token(self) -> str:
        token = os.environ.get(self._token_env, "")
        if not token:
            msg = f"{self._token_env} environment variable is required"
            raise ProviderError(self.provider, msg)
        return token

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._retry.timeout_s)
        return self._http

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request with retries and return the decoded JSON body."""
        url = f"{self._base_url}{path}"
        attempts = self._retry.max_retries
        for attempt in range(1, attempts + 1):
            try:
                response = await self._client().request(method, url, **kwargs)
            except httpx.TransportError as exc:
                logger.warning(
                    "%s %s failed (attempt %d/%d): %s",
                    self.provider, path, attempt, attempts, exc,
                )
                if attempt == attempts:
                    raise ProviderError(self.provider, f"transport error: {exc}") from exc
                await self._backoff(attempt)
                continue

            if response.status_code in _RETRYABLE_STATUS and attempt < attempts:
                logger.warning(
                    "%s %s returned %d (attempt %d/%d), retrying",
                    self.provider, path, response.status_code, attempt, attempts,
                )
                await self._backoff(attempt)
                continue

            if response.is_error:
                msg = f"HTTP {response.status_code}: {response.text[:200]}"
                raise ProviderError(self.provider, msg, response.status_code)

            try:
                return response.json()
            except ValueError as exc:
                msg = "response body is not valid JSON"
                raise ProviderError(self.provider, msg, response.status_code) from exc

        # Unreachable: the loop either returns or raises on the last attempt.
        msg = "retries exhausted"
        raise ProviderError(self.provider, msg)

    async def _backoff(self, attempt: int) -> None:
        base = attempt * self._retry.backoff_s
        await asyncio.sleep(base + random.uniform(0, base * 0.25))


class SearchApiClient(ProviderClient):
    """Query-style web search endpoint (synchronous results)."""

    provider = "search"

    @classmethod
    def from_config(
        cls,
        providers: ProvidersConfig,
        retry: RetryConfig,
        http: httpx.AsyncClient | None = None,
    ) -> "SearchApiClient":
        return cls(providers.search_base_url, providers.search_token_env, retry, http)

    async def search(
        self,
        query: str,
        *,
        num: int = 25,
        gl: str | None = None,
        hl: str | None = None,
    ) -> list[dict[str, Any]]:
        """Run one query and return its organic results."""
        payload: dict[str, Any] = {"q": query, "num": num}
        if gl:
            payload["gl"] = gl
        if hl:
            payload["hl"] = hl
        data = await self._request(
            "POST",
            "/search",
            json=payload,
            headers={"X-API-KEY": self._token(), "Content-Type": "application/json"},
        )
        organic = data.get("organic") if isinstance(data, dict) else None
        return [r for r in organic or [] if isinstance(r, dict)]


class JobApiClient(ProviderClient):
    """Job-style scrape endpoint: start a run, check its status, read its dataset."""

    provider = "jobs"

    @classmethod
    def from_config(
        cls,
        providers: ProvidersConfig,
        retry: RetryConfig,
        http: httpx.AsyncClient | None = None,
    ) -> "JobApiClient":
        return cls(providers.jobs_base_url, providers.jobs_token_env, retry, http)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token()}"}

    async def start_run(self, actor_id: str, run_input: dict[str, Any]) -> dict[str, Any]:
        """Start a run; returns the run record (id, status, defaultDatasetId)."""
        data = await self._request(
            "POST", f"/acts/{actor_id}/runs", json=run_input, headers=self._headers(),
        )
        return _unwrap(data)

    async def get_run(self, run_id: str) -> dict[str, Any]:
        data = await self._request("GET", f"/actor-runs/{run_id}", headers=self._headers())
        return _unwrap(data)

    async def abort_run(self, run_id: str) -> None:
        await self._request("POST", f"/actor-runs/{run_id}/abort", headers=self._headers())

    async def get_items(self, dataset_id: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json"},
            headers=self._headers(),
        )
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]


def _unwrap(data: Any) -> dict[str, Any]:
    if isinstance(data, dict) and isinstance(data.get("data"), dict):
        return data["data"]  # type: ignore[no-any-return]
    return data if isinstance(data, dict) else {}
