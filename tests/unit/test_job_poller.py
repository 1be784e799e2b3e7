"""Tests for the job poller state machine."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from affiliate_scout.core.config import PollingConfig
from affiliate_scout.core.schemas import ProviderRun, RunStatus
from affiliate_scout.pipeline.job_poller import (
    STATUS_MAP,
    JobFailedError,
    JobNotReadyError,
    JobPoller,
    JobSpec,
)
from affiliate_scout.platforms.client import ProviderError

SPEC = JobSpec(actor_id="actor~x", run_input={"postURLs": ["https://www.tiktok.com/@a/video/1"]})


def _client(statuses: list[str], items: list[dict[str, object]] | None = None) -> MagicMock:
    """A job client whose get_run walks through ``statuses`` (repeating the last)."""
    client = MagicMock()
    client.start_run = AsyncMock(return_value={"id": "run1", "status": "READY", "defaultDatasetId": "ds1"})
    remaining = list(statuses)

    async def get_run(run_id: str) -> dict[str, object]:
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return {"id": run_id, "status": status}

    client.get_run = AsyncMock(side_effect=get_run)
    client.get_items = AsyncMock(return_value=items or [])
    client.abort_run = AsyncMock()
    return client


def _poller(client: MagicMock, interval_s: float = 0.01, max_wait_s: float = 5.0) -> JobPoller:
    return JobPoller(client, PollingConfig(interval_s=interval_s, max_wait_s=max_wait_s))


class TestStatusMap:
    def test_provider_statuses(self) -> None:
        assert STATUS_MAP["READY"] == RunStatus.PENDING
        assert STATUS_MAP["ABORTING"] == RunStatus.ABORTED
        assert STATUS_MAP["TIMED-OUT"] == RunStatus.TIMED_OUT


class TestStart:
    async def test_start_returns_pending_run(self) -> None:
        poller = _poller(_client(["RUNNING"]))
        run = await poller.start("TikTok", SPEC)
        assert run.handle == "run1"
        assert run.dataset_id == "ds1"
        assert run.status == RunStatus.PENDING

    async def test_start_without_id_raises(self) -> None:
        client = _client(["RUNNING"])
        client.start_run = AsyncMock(return_value={"status": "READY"})
        with pytest.raises(ProviderError, match="no run id"):
            await _poller(client).start("TikTok", SPEC)


class TestPoll:
    async def test_unknown_status_leaves_run_unchanged(self) -> None:
        poller = _poller(_client(["WEIRD"]))
        run = ProviderRun(platform="TikTok", handle="run1", status=RunStatus.RUNNING)
        assert await poller.poll(run) == RunStatus.RUNNING

    async def test_poll_error_counts_as_no_change(self) -> None:
        client = _client(["RUNNING"])
        client.get_run = AsyncMock(side_effect=ProviderError("jobs", "HTTP 502", 502))
        run = ProviderRun(platform="TikTok", handle="run1", status=RunStatus.RUNNING)
        assert await _poller(client).poll(run) == RunStatus.RUNNING

    async def test_late_ready_does_not_move_backwards(self) -> None:
        poller = _poller(_client(["READY"]))
        run = ProviderRun(platform="TikTok", handle="run1", status=RunStatus.RUNNING)
        assert await poller.poll(run) == RunStatus.RUNNING


class TestWait:
    async def test_runs_to_success(self) -> None:
        poller = _poller(_client(["RUNNING", "RUNNING", "SUCCEEDED"]))
        run = await poller.start("TikTok", SPEC)
        assert await poller.wait(run) == RunStatus.SUCCEEDED

    async def test_provider_failure_is_terminal(self) -> None:
        poller = _poller(_client(["RUNNING", "FAILED"]))
        run = await poller.start("TikTok", SPEC)
        assert await poller.wait(run) == RunStatus.FAILED

    async def test_running_forever_times_out(self) -> None:
        client = _client(["RUNNING"])
        poller = _poller(client, max_wait_s=0.05)
        run = await poller.start("TikTok", SPEC)

        assert await poller.wait(run) == RunStatus.TIMED_OUT
        await asyncio.sleep(0)
        client.abort_run.assert_awaited_once_with("run1")

    async def test_deadline_caps_wait(self) -> None:
        poller = _poller(_client(["RUNNING"]), max_wait_s=60)
        run = await poller.start("TikTok", SPEC)
        deadline = asyncio.get_running_loop().time() + 0.05
        assert await poller.wait(run, deadline) == RunStatus.TIMED_OUT

    async def test_cancellation_aborts(self) -> None:
        client = _client(["RUNNING"])
        poller = _poller(client, interval_s=0.05)
        run = await poller.start("TikTok", SPEC)

        task = asyncio.ensure_future(poller.wait(run))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert run.status == RunStatus.ABORTED


class TestFetchResults:
    async def test_fetch_before_success_raises(self) -> None:
        poller = _poller(_client(["RUNNING"]))
        run = ProviderRun(platform="TikTok", handle="run1", status=RunStatus.RUNNING)
        with pytest.raises(JobNotReadyError):
            await poller.fetch_results(run)

    async def test_run_to_completion(self) -> None:
        items = [{"webVideoUrl": "https://www.tiktok.com/@a/video/1"}]
        client = _client(["SUCCEEDED"], items)
        assert await _poller(client).run_to_completion("TikTok", SPEC) == items
        client.get_items.assert_awaited_once_with("ds1")

    async def test_run_to_completion_failed_returns_empty(self) -> None:
        client = _client(["FAILED"], [{"x": 1}])
        assert await _poller(client).run_to_completion("TikTok", SPEC) == []
        client.get_items.assert_not_awaited()

    async def test_strict_failed_raises(self) -> None:
        client = _client(["FAILED"])
        with pytest.raises(JobFailedError, match="ended FAILED") as excinfo:
            await _poller(client).run_to_completion("TikTok", SPEC, strict=True)
        assert excinfo.value.status is RunStatus.FAILED
        assert isinstance(excinfo.value, ProviderError)

    async def test_strict_timeout_raises_timed_out(self) -> None:
        client = _client(["RUNNING"])
        poller = _poller(client, max_wait_s=0.05)
        with pytest.raises(JobFailedError) as excinfo:
            await poller.run_to_completion("TikTok", SPEC, strict=True)
        assert excinfo.value.status is RunStatus.TIMED_OUT

    def test_all_done(self) -> None:
        runs = [
            ProviderRun(platform="a", status=RunStatus.SUCCEEDED),
            ProviderRun(platform="b", status=RunStatus.TIMED_OUT),
        ]
        assert JobPoller.all_done(runs) is True
        runs.append(ProviderRun(platform="c", status=RunStatus.RUNNING))
        assert JobPoller.all_done(runs) is False
