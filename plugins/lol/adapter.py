"""
League of Legends next patch: nearest future row of Riot's patch schedule.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup

from core.adapters import MONTH_NAME, Extraction, PageAdapter, is_plausible, parse_datetime
from core.models import Confidence, SourceDescriptor, utcnow

logger = logging.getLogger(__name__)

__all__ = ["LolNextPatchAdapter"]

PATCH_RE = re.compile(r"Patch\s+(\d+\.\d+)", re.IGNORECASE)
DATE_RE = re.compile(r"(" + MONTH_NAME + r"\.?\s+\d{1,2})(?:st|nd|rd|th)?\b(,?\s+\d{4})?")


def _row_date(text: str, now: datetime) -> Optional[datetime]:
    match = DATE_RE.search(text)
    if not match:
        return None
    day, year = match.group(1), match.group(2)
    if year:
        return parse_datetime(f"{day}{year}")
    # Schedules often omit the year: take this year's date, or next year's if already past.
    parsed = parse_datetime(day, default_year=now.year)
    if parsed is not None and parsed <= now:
        parsed = parse_datetime(day, default_year=now.year + 1)
    return parsed


class LolNextPatchAdapter(PageAdapter):
    descriptor = SourceDescriptor(
        source_id="lol",
        entity="lol",
        event_kind="next-patch",
        display_name="League of Legends",
    )
    url = (
        "https://support-leagueoflegends.riotgames.com/hc/en-us/articles/"
        "360018987893-League-of-Legends-Patch-Schedule"
    )

    def extract(self, body: str, final_url: str) -> Optional[Extraction]:
        soup = BeautifulSoup(body, "html.parser")
        now = utcnow()

        best: Optional[tuple[datetime, str]] = None
        for elem in soup.select("table tr, li, p"):
            text = elem.get_text(" ", strip=True)
            patch = PATCH_RE.search(text)
            if not patch:
                continue
            when = _row_date(text, now)
            if when is None or when <= now or not is_plausible(when, now):
                continue
            if best is None or when < best[0]:
                best = (when, patch.group(1))

        if best is None:
            return None

        when, patch_name = best
        logger.debug("LoL next patch %s on %s", patch_name, when.isoformat())
        return Extraction(
            event_time_utc=when,
            confidence=Confidence.HIGH,
            note=f"Patch {patch_name}",
        )
