"""
Result classifier: turns one run's adapter outcome plus the last-known-good
snapshot into the record that gets published.

``classify`` is pure: it reads nothing but its arguments (and the clock, which
callers may pin with ``now``). Fallback data only ever comes from the LKG
vault, never from the live tree.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from .models import (
    AdapterFailure,
    AdapterOutcome,
    AdapterSuccess,
    FreshRecord,
    SourceDescriptor,
    StaleRecord,
    UnavailableRecord,
    utcnow,
)

Record = Union[FreshRecord, StaleRecord, UnavailableRecord]


def _base_fields(descriptor: SourceDescriptor, outcome: AdapterOutcome, now: datetime) -> dict:
    return {
        "source_id": descriptor.source_id,
        "entity": descriptor.entity,
        "event_kind": descriptor.event_kind,
        "display_name": descriptor.display_name,
        "fetched_at_utc": now,
        "http_status": outcome.http_status,
        "transport_mode": outcome.transport_mode,
    }


def classify(
    descriptor: SourceDescriptor,
    outcome: AdapterOutcome,
    lkg: Optional[Record],
    *,
    now: Optional[datetime] = None,
) -> Record:
    """Decide fresh / stale / unavailable for one source.

    Args:
        descriptor: identity of the source.
        outcome: what the adapter produced this run.
        lkg: the vault's record for this source, if one could be read.
        now: run timestamp; defaults to the current UTC time.
    """
    now = now or utcnow()
    base = _base_fields(descriptor, outcome, now)

    if isinstance(outcome, AdapterSuccess):
        return FreshRecord(
            **base,
            event_time_utc=outcome.event_time_utc,
            source_url=outcome.source_url,
            confidence=outcome.confidence,
            note=outcome.note,
            last_success_at_utc=now,
        )

    if not isinstance(outcome, AdapterFailure):
        raise TypeError(f"Unknown adapter outcome: {type(outcome).__name__}")

    if isinstance(lkg, (FreshRecord, StaleRecord)):
        return StaleRecord(
            **base,
            event_time_utc=lkg.event_time_utc,
            last_good_at_utc=lkg.success_time,
            source_url=lkg.source_url,
            confidence=lkg.confidence,
            note=lkg.note,
            reason=outcome.explanation,
            failure_kind=outcome.failure_kind,
        )

    if lkg is not None and not isinstance(lkg, UnavailableRecord):
        raise TypeError(f"Unknown record type: {type(lkg).__name__}")

    return UnavailableRecord(
        **base,
        failure_kind=outcome.failure_kind,
        explanation=outcome.explanation,
    )
