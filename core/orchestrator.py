"""
Orchestrator: runs every source once, sequentially, and publishes the results.

Per source: adapter → classify against LKG → write live → (Fresh only) write
LKG. One adapter's crash never stops the others; only an unusable data
directory aborts the run.
"""

from __future__ import annotations

import inspect
import logging
import time
from typing import Callable, Iterable, Optional

from .classifier import Record, classify
from .config import Settings
from .errors import StoreWriteError
from .infra.http import BrowserBudget, HttpClient
from .infra.store import RecordStore
from .interfaces import DiagnosticsSink, SourceAdapter
from .models import (
    AdapterFailure,
    AdapterSuccess,
    FreshRecord,
    RunSummary,
    StaleRecord,
    utcnow,
)

logger = logging.getLogger(__name__)


class Orchestrator:
    """Drives one refresh run over a list of adapters."""

    def __init__(
        self,
        store: RecordStore,
        settings: Optional[Settings] = None,
        *,
        diagnostics: Optional[DiagnosticsSink] = None,
        http_factory: Optional[Callable[[BrowserBudget], HttpClient]] = None,
    ):
        self.store = store
        self.settings = settings or Settings()
        self.diagnostics = diagnostics
        self._http_factory = http_factory or self._default_http

    def _default_http(self, budget: BrowserBudget) -> HttpClient:
        return HttpClient(
            timeout=self.settings.timeout_s,
            max_retries=self.settings.max_retries,
            browser_budget=budget,
            headless=self.settings.headless,
            diagnostics=self.diagnostics,
        )

    async def run_all(self, adapters: Iterable[SourceAdapter]) -> RunSummary:
        """Run every adapter once and return the aggregate summary.

        Raises:
            StoreUnavailableError: the data directories are unusable.
        """
        adapters = list(adapters)
        self.store.ensure_dirs()

        summary = RunSummary()
        # Fresh budget per run: escalations never carry over between runs.
        budget = BrowserBudget(self.settings.browser_budget)
        http = self._http_factory(budget)
        async with http:
            for adapter in adapters:
                record = await self._run_one(adapter, http)
                summary.add(record)
                summary.write_errors += self._persist(record)

        summary.finished_at_utc = utcnow()
        self._log_summary(summary, http.budget)
        return summary

    async def _run_one(self, adapter: SourceAdapter, http: HttpClient) -> Record:
        descriptor = adapter.descriptor
        logger.info("Running %s...", descriptor.display_name)
        start = time.monotonic()

        try:
            result = adapter.run(http)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, (AdapterSuccess, AdapterFailure)):
                raise TypeError(f"adapter returned {type(result).__name__}, not an AdapterOutcome")
            outcome = result
        except Exception as e:  # noqa: BLE001
            logger.error("✗ %s unexpected error: %s", descriptor.display_name, e)
            logger.debug("Adapter %s crashed", descriptor.source_id, exc_info=True)
            outcome = AdapterFailure.from_exception(e)

        record = classify(descriptor, outcome, self.store.read_lkg(descriptor))
        elapsed_ms = (time.monotonic() - start) * 1000
        self._log_record(record, elapsed_ms)
        return record

    def _persist(self, record: Record) -> int:
        """Write live, then (Fresh only) the vault. Returns the number of failed writes."""
        errors = 0
        try:
            self.store.write_live(record)
        except StoreWriteError as e:
            logger.error("Cannot write live record for %s: %s", record.source_id, e)
            errors += 1
        if isinstance(record, FreshRecord):
            try:
                self.store.write_lkg(record)
            except StoreWriteError as e:
                logger.error("Cannot back up %s to LKG: %s", record.source_id, e)
                errors += 1
        return errors

    @staticmethod
    def _log_record(record: Record, elapsed_ms: float) -> None:
        mode = f" [{record.transport_mode.value.upper()}]" if record.transport_mode else ""
        status = f" (HTTP {record.http_status})" if record.http_status else ""
        if isinstance(record, FreshRecord):
            logger.info("✓ %s succeeded in %.0fms%s%s", record.display_name, elapsed_ms, mode, status)
            logger.info("  Confidence: %s", record.confidence.value)
        elif isinstance(record, StaleRecord):
            logger.warning("⚠ %s using stale data (%.0fms)%s%s", record.display_name, elapsed_ms, mode, status)
            logger.warning("  Reason: %s", record.reason)
        else:
            logger.warning("✗ %s unavailable (%.0fms)%s%s", record.display_name, elapsed_ms, mode, status)
            logger.warning("  Failure: %s - %s", record.failure_kind.value, record.explanation)

    @staticmethod
    def _log_summary(summary: RunSummary, budget: BrowserBudget) -> None:
        logger.info("=" * 60)
        logger.info(
            "Summary: %d sources | ✓ fresh %d | ⚠ stale %d | ✗ unavailable %d | browser launches %d/%d",
            summary.total,
            summary.fresh,
            summary.stale,
            summary.unavailable,
            budget.used,
            budget.limit,
        )
        for item in summary.unavailable_sources:
            logger.info("  - %s: [%s] %s", item.source_id, item.failure_kind.value, item.explanation)
        if summary.write_errors:
            logger.error("%d record(s) could not be written", summary.write_errors)
        if summary.is_catastrophic:
            logger.error(
                "Majority failure: %d of %d sources unavailable",
                summary.unavailable,
                summary.total,
            )
