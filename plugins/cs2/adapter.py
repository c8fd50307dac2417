"""
Counter-Strike 2 last update: newest entry of the Steam store news feed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import feedparser

from core.adapters import Extraction, PageAdapter, is_plausible, parse_datetime
from core.models import Confidence, SourceDescriptor

logger = logging.getLogger(__name__)

__all__ = ["Cs2LastUpdateAdapter"]


def _entry_published(entry) -> Optional[datetime]:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if parsed:
        return datetime(*parsed[:6], tzinfo=timezone.utc)
    return parse_datetime(entry.get("published", ""))


class Cs2LastUpdateAdapter(PageAdapter):
    descriptor = SourceDescriptor(
        source_id="cs2",
        entity="cs2",
        event_kind="last-update",
        display_name="Counter-Strike 2",
    )
    url = "https://store.steampowered.com/feeds/news/app/730/?l=english"
    news_url = "https://store.steampowered.com/news/app/730"

    def extract(self, body: str, final_url: str) -> Optional[Extraction]:
        feed = feedparser.parse(body)
        if not feed.entries:
            logger.info("CS2 feed has no entries (bozo=%s)", bool(feed.get("bozo")))
            return None

        latest = feed.entries[0]
        published = _entry_published(latest)
        if published is None or not is_plausible(published):
            return None

        title = (latest.get("title") or "").strip()
        return Extraction(
            event_time_utc=published,
            confidence=Confidence.HIGH,
            source_url=self.news_url,
            note=f"Latest: {title}" if title else None,
        )
