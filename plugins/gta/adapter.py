"""
GTA Online weekly reset: every Thursday at 10:00 UTC. No network access.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from core.adapters import ComputedAdapter, Extraction
from core.models import Confidence, SourceDescriptor

__all__ = ["GtaWeeklyResetAdapter", "next_weekly_reset"]

RESET_WEEKDAY = 3  # Thursday
RESET_HOUR = 10


def next_weekly_reset(now: datetime) -> datetime:
    """First Thursday 10:00 UTC strictly after ``now``."""
    candidate = now.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(RESET_WEEKDAY - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


class GtaWeeklyResetAdapter(ComputedAdapter):
    descriptor = SourceDescriptor(
        source_id="gta",
        entity="gta",
        event_kind="weekly-reset",
        display_name="GTA Online",
    )
    source_url = "https://www.rockstargames.com/gta-online"

    def compute(self, now: datetime) -> Extraction:
        return Extraction(
            event_time_utc=next_weekly_reset(now),
            confidence=Confidence.HIGH,
            note="Weekly reset occurs every Thursday at 10:00 UTC",
        )
