"""Abstract base class for platform adapters."""

from abc import ABC, abstractmethod
from typing import Literal

from affiliate_scout.core.schemas import CandidateResult, Platform, SearchRequest

AdapterMode = Literal["sync", "job"]


class PlatformAdapter(ABC):
    """Base class that every platform adapter must implement."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        """The platform this adapter discovers candidates on."""

    @property
    @abstractmethod
    def mode(self) -> AdapterMode:
        """'sync' for query-style providers, 'job' when results come from a polled job."""

    @abstractmethod
    async def search(
        self,
        request: SearchRequest,
        deadline: float | None = None,
    ) -> list[CandidateResult]:
        """Run a search and return raw (unfiltered, unscored) candidates.

        ``deadline`` is an event-loop timestamp that job-style adapters pass
        on to the poller.
        """
