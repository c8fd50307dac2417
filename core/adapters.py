"""
Base classes for source adapters.

* :class:`PageAdapter` – fetch one URL through the run's transport, then
  ``extract()`` an event date from the body.
* :class:`ComputedAdapter` – derive the date from a fixed schedule, no I/O.

Plugins subclass one of these and set ``descriptor``; see ``plugins/``.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from dateutil import parser as date_parser
from pydantic import BaseModel

from .infra.http import HttpClient
from .interfaces import SourceAdapter
from .models import (
    AdapterFailure,
    AdapterOutcome,
    AdapterSuccess,
    Confidence,
    FailureKind,
    FetchOutcome,
    utcnow,
)

logger = logging.getLogger(__name__)

# Full or abbreviated English month name, no capture groups.
MONTH_NAME = (
    r"(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
)


class Extraction(BaseModel):
    """What a parser found on a page."""
    event_time_utc: datetime
    confidence: Confidence
    source_url: Optional[str] = None
    note: Optional[str] = None


def parse_datetime(text: str, *, default_year: Optional[int] = None) -> Optional[datetime]:
    """Lenient date parsing; naive results are taken as UTC. ``None`` if unparsable."""
    if not text or not text.strip():
        return None
    default = None
    if default_year is not None:
        default = datetime(default_year, 1, 1)
    try:
        parsed = date_parser.parse(text.strip(), default=default)
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def is_plausible(when: datetime, now: Optional[datetime] = None, years: int = 2) -> bool:
    """Reject dates further than ``years`` from now in either direction."""
    now = now or utcnow()
    window = timedelta(days=365 * years)
    return now - window <= when <= now + window


class PageAdapter(SourceAdapter):
    """Adapter for a single page / feed / JSON document."""

    url: str
    allow_browser_escalation: bool = False
    headers: Optional[Dict[str, str]] = None

    async def run(self, http: HttpClient) -> AdapterOutcome:
        outcome = await http.fetch(
            self.url,
            headers=self.headers,
            allow_browser_escalation=self.allow_browser_escalation,
            source_id=self.descriptor.source_id,
        )
        if not outcome.success:
            return AdapterFailure.from_fetch(outcome)

        found = self.extract(outcome.body_text, outcome.final_url or self.url)
        if found is None:
            logger.info("%s: no usable date on %s", self.name, outcome.final_url or self.url)
            return AdapterFailure(
                failure_kind=FailureKind.PARSE_FAILED,
                explanation=self.parse_failure_message(outcome),
                http_status=outcome.http_status,
                transport_mode=outcome.transport_mode,
            )

        return AdapterSuccess(
            event_time_utc=found.event_time_utc,
            source_url=found.source_url or outcome.final_url or self.url,
            confidence=found.confidence,
            note=found.note,
            http_status=outcome.http_status,
            transport_mode=outcome.transport_mode,
        )

    def parse_failure_message(self, outcome: FetchOutcome) -> str:
        return f"Could not extract a valid date from {outcome.final_url or self.url}"

    @abstractmethod
    def extract(self, body: str, final_url: str) -> Optional[Extraction]:
        """Find the event date in ``body``; ``None`` when there is none."""
        ...


class ComputedAdapter(SourceAdapter):
    """Adapter whose date follows from a published fixed schedule."""

    source_url: str

    async def run(self, http: HttpClient) -> AdapterOutcome:
        found = self.compute(utcnow())
        return AdapterSuccess(
            event_time_utc=found.event_time_utc,
            source_url=found.source_url or self.source_url,
            confidence=found.confidence,
            note=found.note,
        )

    @abstractmethod
    def compute(self, now: datetime) -> Extraction:
        ...
