"""
Core interfaces for the refresh pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Awaitable, Union

from .models import AdapterOutcome, DiagnosticArtifact, SourceDescriptor

if TYPE_CHECKING:  # pragma: no cover
    from .infra.http import HttpClient


class SourceAdapter(ABC):
    """One external source: fetch through the transport, extract one event date.

    Adapters report expected failures as :class:`~core.models.AdapterFailure`.
    Anything they raise is caught by the orchestrator and downgraded to an
    ``unavailable`` outcome for that source only.
    """

    descriptor: SourceDescriptor

    @property
    def name(self) -> str:
        return self.descriptor.source_id

    @abstractmethod
    def run(self, http: "HttpClient") -> Union[Awaitable[AdapterOutcome], AdapterOutcome]:
        """Produce this run's outcome using the run-scoped transport."""
        ...


class DiagnosticsSink(ABC):
    """Receives debug captures of failed browser fetches.

    Purely a side channel: nothing returned here influences a fetch result.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for this sink."""
        pass

    @abstractmethod
    async def handle(self, artifact: DiagnosticArtifact) -> None:
        """Persist or forward one artifact."""
        pass
