"""Job poller: drives asynchronous provider jobs to a terminal state.

State machine (per ProviderRun):
  PENDING  -> RUNNING -> SUCCEEDED | FAILED | ABORTED | TIMED_OUT
  PENDING  -> any terminal state (job finished before the first poll)

Polling is a scheduled re-check at a fixed interval, not a retry. Exceeding
the max wait (or the caller's deadline) ends the run as TIMED_OUT, which is
distinct from a provider-reported FAILED/ABORTED.
"""

import asyncio
import logging
from typing import Any

import httpx
from pydantic import BaseModel, Field

from affiliate_scout.core.config import PollingConfig
from affiliate_scout.core.schemas import ProviderRun, RunStatus
from affiliate_scout.platforms.client import JobApiClient, ProviderError

logger = logging.getLogger(__name__)

# Provider status strings -> RunStatus. Unknown strings leave the run unchanged.
STATUS_MAP: dict[str, RunStatus] = {
    "READY": RunStatus.PENDING,
    "RUNNING": RunStatus.RUNNING,
    "SUCCEEDED": RunStatus.SUCCEEDED,
    "FAILED": RunStatus.FAILED,
    "ABORTING": RunStatus.ABORTED,
    "ABORTED": RunStatus.ABORTED,
    "TIMING-OUT": RunStatus.TIMED_OUT,
    "TIMED-OUT": RunStatus.TIMED_OUT,
}


class JobNotReadyError(RuntimeError):
    """Results were requested for a run that has not SUCCEEDED."""


class JobFailedError(ProviderError):
    """A job ended in a terminal state other than SUCCEEDED."""

    def __init__(self, platform: str, handle: str | None, status: RunStatus) -> None:
        super().__init__(platform, f"job {handle} ended {status.value}")
        self.status = status


class JobSpec(BaseModel):
    """What to start: an actor and its input."""

    actor_id: str
    run_input: dict[str, Any] = Field(default_factory=dict)


class JobPoller:
    """Starts, polls, and collects provider jobs.

    Usage::

        poller = JobPoller(jobs_client, settings.polling)
        run = await poller.start("YouTube", JobSpec(actor_id=..., run_input=...))
        if await poller.wait(run, deadline) == RunStatus.SUCCEEDED:
            items = await poller.fetch_results(run)
    """

    def __init__(self, client: JobApiClient, polling: PollingConfig) -> None:
        self._client = client
        self._interval = polling.interval_s
        self._max_wait = polling.max_wait_s
        self._aborts: set[asyncio.Task[None]] = set()

    async def start(self, platform: str, spec: JobSpec) -> ProviderRun:
        """Start a job and return its run in PENDING (or later, if already reported)."""
        record = await self._client.start_run(spec.actor_id, spec.run_input)
        handle = record.get("id")
        if not handle:
            msg = f"provider returned no run id for actor {spec.actor_id}"
            raise ProviderError("jobs", msg)
        run = ProviderRun(
            platform=platform,
            handle=str(handle),
            dataset_id=record.get("defaultDatasetId"),
        )
        self._apply(run, record.get("status"))
        logger.info("Started %s job %s (%s)", platform, run.handle, spec.actor_id)
        return run

    async def poll(self, run: ProviderRun) -> RunStatus:
        """Check the provider once and advance the run. Transport errors count as no change."""
        if run.status.is_terminal or run.handle is None:
            return run.status
        try:
            record = await self._client.get_run(run.handle)
        except ProviderError as exc:
            logger.warning("Poll of %s job %s failed: %s", run.platform, run.handle, exc)
            return run.status
        if record.get("defaultDatasetId"):
            run.dataset_id = record["defaultDatasetId"]
        self._apply(run, record.get("status"))
        return run.status

    async def fetch_results(self, run: ProviderRun) -> list[dict[str, Any]]:
        """Read the run's dataset. Only valid once the run SUCCEEDED."""
        if run.status != RunStatus.SUCCEEDED:
            msg = f"{run.platform} job {run.handle} is {run.status.value}, not SUCCEEDED"
            raise JobNotReadyError(msg)
        if not run.dataset_id:
            logger.warning("%s job %s succeeded without a dataset", run.platform, run.handle)
            return []
        return await self._client.get_items(run.dataset_id)

    async def wait(self, run: ProviderRun, deadline: float | None = None) -> RunStatus:
        """Poll until a terminal state, max_wait_s, or ``deadline`` (loop time).

        Cancellation marks the run ABORTED and asks the provider to stop.
        """
        loop = asyncio.get_running_loop()
        limit = loop.time() + self._max_wait
        if deadline is not None:
            limit = min(limit, deadline)

        try:
            while not run.status.is_terminal:
                status = await self.poll(run)
                if status.is_terminal:
                    break
                remaining = limit - loop.time()
                if remaining <= 0:
                    logger.warning(
                        "%s job %s still %s at wait limit, timing out",
                        run.platform, run.handle, status.value,
                    )
                    run.advance(RunStatus.TIMED_OUT)
                    self._abort_detached(run)
                    break
                await asyncio.sleep(min(self._interval, remaining))
        except asyncio.CancelledError:
            if not run.status.is_terminal:
                run.advance(RunStatus.ABORTED)
                self._abort_detached(run)
            raise

        logger.info("%s job %s finished: %s", run.platform, run.handle, run.status.value)
        return run.status

    async def run_to_completion(
        self,
        platform: str,
        spec: JobSpec,
        deadline: float | None = None,
        strict: bool = False,
    ) -> list[dict[str, Any]]:
        """Start, wait, fetch. Returns [] unless the run SUCCEEDED.

        With ``strict`` an unsuccessful run raises JobFailedError instead.
        """
        run = await self.start(platform, spec)
        status = await self.wait(run, deadline)
        if status != RunStatus.SUCCEEDED:
            if strict:
                raise JobFailedError(platform, run.handle, status)
            return []
        return await self.fetch_results(run)

    @staticmethod
    def all_done(runs: list[ProviderRun]) -> bool:
        """True when every run has reached any terminal state."""
        return all(r.status.is_terminal for r in runs)

    def _apply(self, run: ProviderRun, raw_status: Any) -> None:
        status = STATUS_MAP.get(str(raw_status or "").upper())
        if status is None:
            if raw_status:
                logger.warning("Unknown job status '%s' for %s", raw_status, run.handle)
            return
        if status == RunStatus.PENDING and run.status != RunStatus.PENDING:
            return
        run.advance(status)

    def _abort_detached(self, run: ProviderRun) -> None:
        """Ask the provider to stop a run without blocking the caller."""
        if run.handle is None:
            return
        task = asyncio.ensure_future(self._abort(run.handle))
        self._aborts.add(task)
        task.add_done_callback(self._aborts.discard)

    async def _abort(self, handle: str) -> None:
        try:
            await self._client.abort_run(handle)
        except (ProviderError, httpx.HTTPError, RuntimeError) as exc:
            logger.debug("Abort of job %s failed: %s", handle, exc)
