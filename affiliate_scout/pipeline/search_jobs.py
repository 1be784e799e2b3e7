"""Polling-protocol search jobs: run a search in the background, report progress.

Job states:
  running   - platforms still searching
  enriching - discovery done, traffic enrichment still in flight
  done      - finished (enrichment included)
  timeout   - request deadline hit; partial results stored
  failed    - the search itself raised
"""

import asyncio
import json
import logging
import sqlite3
import uuid
from typing import Any

from affiliate_scout.core.db import (
    create_search_job,
    get_search_job,
    list_candidates,
    update_search_job,
)
from affiliate_scout.core.schemas import CandidateFound, Done, SearchRequest
from affiliate_scout.pipeline.orchestrator import SearchOrchestrator

logger = logging.getLogger(__name__)


class SearchJobRegistry:
    """Starts background searches and answers status/results polls from SQLite.

    Usage::

        registry = SearchJobRegistry(orchestrator, conn)
        job_id = registry.start(request)
        registry.status(job_id, owner)   # {"jobId": ..., "state": "running", ...}
    """

    def __init__(self, orchestrator: SearchOrchestrator, conn: sqlite3.Connection) -> None:
        self._orchestrator = orchestrator
        self._conn = conn
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def start(self, request: SearchRequest) -> str:
        """Register a job and launch it. Must be called from a running event loop."""
        job_id = uuid.uuid4().hex
        create_search_job(
            self._conn, job_id, request.owner, request.keyword,
            [p.value for p in request.platforms],
        )
        task = asyncio.ensure_future(self._run(job_id, request))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))
        logger.info("Started search job %s for '%s'", job_id, request.keyword)
        return job_id

    def is_active(self, job_id: str) -> bool:
        return job_id in self._tasks

    async def wait(self, job_id: str) -> None:
        """Wait for a job's background task (no-op if it already finished)."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def status(self, job_id: str, owner: str) -> dict[str, Any] | None:
        """Polling view of a job, or None if unknown or owned by someone else."""
        job = get_search_job(self._conn, job_id)
        if job is None or job["owner"] != owner:
            return None
        return {
            "jobId": job["job_id"],
            "state": job["state"],
            "partialCounts": job["partial_counts"],
            "total": job["total"],
            "error": job["error"],
        }

    def results(self, job_id: str, owner: str) -> list[dict[str, Any]] | None:
        job = get_search_job(self._conn, job_id)
        if job is None or job["owner"] != owner:
            return None
        return list_candidates(self._conn, owner, job_id)

    async def _run(self, job_id: str, request: SearchRequest) -> None:
        counts = {p.value: 0 for p in request.platforms}
        total = 0
        state = "running"
        try:
            async for event in self._orchestrator.run(request, job_id=job_id):
                if isinstance(event, CandidateFound):
                    platform = event.candidate.platform.value
                    counts[platform] = counts.get(platform, 0) + 1
                    total += 1
                    self._update(job_id, partial_counts_json=_dumps(counts), total=total)
                elif isinstance(event, Done):
                    summary = event.summary
                    if summary.timed_out:
                        state = "timeout"
                    elif summary.enrichment_started:
                        state = "enriching"
                    else:
                        state = "done"
                    self._update(
                        job_id, state=state, total=summary.total,
                        partial_counts_json=_dumps(counts),
                    )
            if state in ("running", "enriching"):
                state = "done"
                self._update(job_id, state=state)
        except Exception as exc:
            logger.exception("Search job %s failed", job_id)
            self._update(job_id, state="failed", error=str(exc))
            return
        logger.info("Search job %s finished: %s (%d candidates)", job_id, state, total)

    def _update(self, job_id: str, **fields: Any) -> None:
        try:
            update_search_job(self._conn, job_id, **fields)
        except sqlite3.Error as exc:
            logger.warning("Could not update search job %s: %s", job_id, exc)


def _dumps(counts: dict[str, int]) -> str:
    return json.dumps(counts)
