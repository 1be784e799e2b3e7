"""Orchestrator: fans a search out to the platform adapters and streams results.

Data flow per request:
  1. One task per requested platform, all running in parallel
  2. As each task completes: filter chain → dedup → score → persist → emit
  3. Deadline or cancellation: cancel what is left, record partial outcomes
  4. Done(summary)
  5. Detached traffic enrichment for web candidates, bounded by its own
     sub-deadline; its updates are persisted and streamed after Done
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import AsyncIterator
from datetime import datetime

from affiliate_scout.core.config import BudgetConfig, Settings
from affiliate_scout.core.db import insert_search_run
from affiliate_scout.core.schemas import (
    CandidateFound,
    CandidateResult,
    Done,
    EnrichmentRecord,
    EnrichmentUpdated,
    Error,
    Event,
    FilterStats,
    Platform,
    PlatformOutcome,
    RunStatus,
    SearchRequest,
    SearchSummary,
)
from affiliate_scout.pipeline.credit_ledger import CreditLedger, InsufficientCreditsError
from affiliate_scout.pipeline.enrichment import EnrichmentBatcher
from affiliate_scout.pipeline.job_poller import JobFailedError, JobPoller
from affiliate_scout.pipeline.matcher import (
    DeduplicationFilter,
    build_social_filters,
    build_web_filters,
    run_filter_chain,
)
from affiliate_scout.pipeline.persistence import CandidateWriter
from affiliate_scout.pipeline.scorer import score_candidate
from affiliate_scout.platforms.base import PlatformAdapter
from affiliate_scout.platforms.client import JobApiClient, SearchApiClient
from affiliate_scout.platforms.registry import build_adapters
from affiliate_scout.platforms.traffic import TrafficProvider

logger = logging.getLogger(__name__)

END_FRAME = '{"type": "end"}'


class SearchOrchestrator:
    """Runs searches end to end and yields events as they become available.

    Usage::

        orchestrator = SearchOrchestrator.from_clients(settings, conn, search, jobs)
        async for event in orchestrator.run(request):
            ...
        await orchestrator.wait_background()
    """

    def __init__(
        self,
        settings: Settings,
        adapters: dict[Platform, PlatformAdapter],
        traffic: EnrichmentBatcher[EnrichmentRecord] | None = None,
        conn: sqlite3.Connection | None = None,
        ledger: CreditLedger | None = None,
    ) -> None:
        self._settings = settings
        self._adapters = adapters
        self._traffic = traffic
        self._conn = conn
        self._ledger = ledger
        self._background: set[asyncio.Task[None]] = set()

    @classmethod
    def from_clients(
        cls,
        settings: Settings,
        conn: sqlite3.Connection | None,
        search_client: SearchApiClient,
        job_client: JobApiClient,
        ledger: CreditLedger | None = None,
    ) -> "SearchOrchestrator":
        """Wire adapters, poller and the traffic batcher from settings."""
        poller = JobPoller(job_client, settings.polling)
        adapters = build_adapters(list(Platform), settings, search_client, poller)
        traffic = None
        if settings.providers.traffic_enabled:
            provider = TrafficProvider(poller, settings.providers.actors.traffic)
            traffic = EnrichmentBatcher(
                "traffic", provider.fetch_many, settings.budget.enrichment_timeout_s,
            )
        return cls(settings, adapters, traffic=traffic, conn=conn, ledger=ledger)

    @property
    def ledger(self) -> CreditLedger | None:
        return self._ledger

    @ledger.setter
    def ledger(self, ledger: CreditLedger | None) -> None:
        self._ledger = ledger

    @property
    def background_tasks(self) -> set[asyncio.Task[None]]:
        return self._background

    async def wait_background(self) -> None:
        """Wait for detached enrichment tasks (used at shutdown and in the CLI)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def run(
        self,
        request: SearchRequest,
        cancel: asyncio.Event | None = None,
        job_id: str | None = None,
    ) -> AsyncIterator[Event]:
        """Yield CandidateFound/Error events, then Done, then EnrichmentUpdated events."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + request.timeout_s
        summary = SearchSummary(keyword=request.keyword)
        writer = CandidateWriter(self._conn, request.owner, job_id)
        dedup = DeduplicationFilter()
        will_enrich = self._traffic is not None
        outcomes: dict[Platform, PlatformOutcome] = {}
        web_candidates: list[CandidateResult] = []
        enrichment: asyncio.Task[None] | None = None
        queue: asyncio.Queue[EnrichmentUpdated | None] = asyncio.Queue()

        logger.info(
            "Search '%s' for %s on %s (timeout %.0fs)",
            request.keyword, request.owner,
            ", ".join(p.value for p in request.platforms), request.timeout_s,
        )

        tasks: dict[asyncio.Task[list[CandidateResult]], Platform] = {}
        for platform in request.platforms:
            adapter = self._adapters.get(platform)
            if adapter is None:
                message = f"no adapter configured for {platform.value}"
                outcomes[platform] = PlatformOutcome(platform=platform, status="failed", error=message)
                yield Error(message=message, platform=platform)
                continue
            task = asyncio.ensure_future(adapter.search(request, deadline))
            tasks[task] = platform

        cancel_wait = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        pending = set(tasks)

        try:
            while pending:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    summary.timed_out = True
                    break
                waiting: set[asyncio.Future[object]] = set(pending)  # type: ignore[arg-type]
                if cancel_wait is not None:
                    waiting.add(cancel_wait)  # type: ignore[arg-type]
                done, _ = await asyncio.wait(
                    waiting, timeout=remaining, return_when=asyncio.FIRST_COMPLETED,
                )
                if cancel_wait is not None and cancel_wait in done:
                    summary.cancelled = True
                    break
                if not done:
                    summary.timed_out = True
                    break

                # Stable order when several platforms finish in the same tick.
                finished = sorted(
                    (t for t in done if t in tasks),
                    key=lambda t: request.platforms.index(tasks[t]),
                )
                for task in finished:
                    pending.discard(task)
                    platform = tasks[task]
                    exc = task.exception()
                    if exc is not None:
                        logger.warning("%s search failed: %s", platform.value, exc)
                        timed_out = (
                            isinstance(exc, JobFailedError)
                            and exc.status == RunStatus.TIMED_OUT
                        )
                        outcomes[platform] = PlatformOutcome(
                            platform=platform,
                            status="timed_out" if timed_out else "failed",
                            error=str(exc),
                        )
                        yield Error(message=str(exc), platform=platform)
                        continue

                    raw = task.result()
                    stats = FilterStats()
                    filters = (
                        build_social_filters(request, stats)
                        if platform.is_social
                        else build_web_filters(request, stats)
                    )
                    survivors = dedup(run_filter_chain(raw, filters, stats))
                    outcomes[platform] = PlatformOutcome(
                        platform=platform,
                        status="succeeded",
                        raw_count=len(raw),
                        filtered_count=len(survivors),
                        filter_stats=stats,
                    )
                    logger.info(
                        "%s: %d raw, %d after filtering",
                        platform.value, len(raw), len(survivors),
                    )
                    for candidate in survivors:
                        if platform is Platform.WEB:
                            candidate = candidate.model_copy(
                                update={"is_enriching": will_enrich and bool(candidate.domain)},
                            )
                        candidate = score_candidate(candidate, self._settings.scoring)
                        if platform is Platform.WEB and candidate.is_enriching:
                            web_candidates.append(candidate)
                        writer.insert_if_absent(candidate.url, candidate)
                        summary.total += 1
                        yield CandidateFound(candidate=candidate)
        finally:
            if cancel_wait is not None and not cancel_wait.done():
                cancel_wait.cancel()
            leftover = [t for t in tasks if not t.done()]
            for task in leftover:
                task.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)

        # A job that hit the shared deadline inside its adapter still counts as a timeout.
        if not summary.cancelled and loop.time() >= deadline:
            summary.timed_out = True

        for task in leftover:
            platform = tasks[task]
            status = "cancelled" if summary.cancelled else "timed_out"
            outcomes[platform] = PlatformOutcome(platform=platform, status=status)
            logger.warning("%s did not finish: %s", platform.value, status)

        summary.outcomes = [outcomes[p] for p in request.platforms if p in outcomes]
        summary.finished_at = datetime.now()

        interrupted = summary.timed_out or summary.cancelled
        if web_candidates and not interrupted and self._traffic is not None:
            budget = enrichment_budget(loop.time(), deadline, self._settings.budget)
            if budget > 0:
                summary.enrichment_started = True
                enrichment = asyncio.ensure_future(
                    self._enrich(web_candidates, writer, queue, budget),
                )
                self._background.add(enrichment)
                enrichment.add_done_callback(self._background.discard)

        if enrichment is None:
            # Rows were stored as enriching; nothing will enrich them now.
            for candidate in web_candidates:
                writer.update_by_key(candidate.url, {"is_enriching": False})
            writer.close()

        self._record_run(request, summary)
        self._consume_credit(request, summary, job_id)
        logger.info(
            "Search '%s' done: %d candidates%s",
            request.keyword, summary.total,
            " (timed out)" if summary.timed_out else " (cancelled)" if summary.cancelled else "",
        )
        yield Done(summary=summary)

        if enrichment is not None:
            while True:
                if not queue.empty():
                    update = queue.get_nowait()
                elif enrichment.done():
                    # Cancelled before its first step, so no end marker was queued.
                    logger.info("Traffic enrichment ended without a result")
                    break
                else:
                    getter = asyncio.ensure_future(queue.get())
                    try:
                        await asyncio.wait(
                            {getter, enrichment}, return_when=asyncio.FIRST_COMPLETED,
                        )
                    finally:
                        if not getter.done():
                            getter.cancel()
                    if not getter.done():
                        continue
                    update = getter.result()
                if update is None:
                    break
                yield update

    async def _enrich(
        self,
        candidates: list[CandidateResult],
        writer: CandidateWriter,
        queue: "asyncio.Queue[EnrichmentUpdated | None]",
        budget: float,
    ) -> None:
        """Detached traffic enrichment. Never raises; always closes the writer."""
        assert self._traffic is not None
        resolved = 0
        try:
            records = await self._traffic.enrich_many(
                [c.domain for c in candidates], timeout_s=budget,
            )
            for domain, record in records.items():
                queue.put_nowait(EnrichmentUpdated(key=domain, record=record))
            for c in candidates:
                record = records.get(c.domain)
                fields: dict[str, object] = {"is_enriching": False}
                if record is not None:
                    resolved += 1
                    rescored = score_candidate(
                        c.model_copy(update={"traffic": record}), self._settings.scoring,
                    )
                    fields["traffic_json"] = record.model_dump_json()
                    fields["score"] = rescored.score
                writer.update_by_key(c.url, fields)
        except Exception:
            logger.warning("Traffic enrichment task failed", exc_info=True)
        finally:
            writer.close()
            queue.put_nowait(None)
        logger.info("Traffic enrichment finished: %d/%d candidates enriched", resolved, len(candidates))

    def _record_run(self, request: SearchRequest, summary: SearchSummary) -> None:
        if self._conn is None:
            return
        try:
            insert_search_run(self._conn, request.owner, summary)
        except sqlite3.Error as exc:
            logger.warning("Could not record search run: %s", exc)

    def _consume_credit(
        self,
        request: SearchRequest,
        summary: SearchSummary,
        job_id: str | None,
    ) -> None:
        if self._ledger is None or not self._ledger.enforced or summary.total == 0:
            return
        kind = self._settings.credits.kind
        try:
            remaining = self._ledger.consume(request.owner, kind, 1, reference=job_id or request.keyword)
        except (InsufficientCreditsError, sqlite3.Error) as exc:
            logger.warning("Could not consume %s credit for '%s': %s", kind, request.owner, exc)
            return
        logger.info("Consumed 1 %s credit for '%s' (%d left)", kind, request.owner, remaining)


def enrichment_budget(now: float, deadline: float, budget: BudgetConfig) -> float:
    """Seconds left for background enrichment, starting at loop time ``now``.

    The sub-deadline is the earlier of the enrichment timeout and the request
    deadline extended by ``enrichment_grace_s``. The grace window is the short
    period a request may outlive its deadline while enrichment finishes; with
    ``enrichment_grace_s=0`` enrichment ends at the request deadline. A result
    of zero or less means enrichment must not start.
    """
    sub_deadline = min(
        now + budget.enrichment_timeout_s,
        deadline + budget.enrichment_grace_s,
    )
    return sub_deadline - now


def apply_enrichment(
    candidates: list[CandidateResult],
    update: EnrichmentUpdated,
) -> list[CandidateResult]:
    """Attach a traffic record to every candidate on the updated domain."""
    return [
        c.model_copy(update={"traffic": update.record, "is_enriching": False})
        if c.domain == update.key
        else c
        for c in candidates
    ]


def event_to_ndjson(event: Event) -> str:
    """One NDJSON line for an event (no trailing newline)."""
    return event.model_dump_json()


def export_results_json(candidates: list[CandidateResult]) -> str:
    """Export candidates as a JSON string, best score first."""
    ranked = sorted(candidates, key=lambda c: c.score, reverse=True)
    data = []
    for c in ranked:
        data.append({
            "platform": c.platform.value,
            "title": c.title,
            "url": c.url,
            "domain": c.domain,
            "snippet": c.snippet,
            "email": c.email,
            "score": c.score,
            "query": c.query,
            "profile": c.profile.model_dump(exclude_none=True) if c.profile else None,
            "traffic": c.traffic.model_dump(exclude_none=True) if c.traffic else None,
        })
    return json.dumps(data, indent=2, ensure_ascii=False)
