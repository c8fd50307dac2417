"""
Fortnite next season: the season end date quoted in Epic's help article.

Epic's help center regularly answers plain HTTP clients with 403, so this
source is allowed to escalate to the browser.
"""

from __future__ import annotations

import re
from typing import Optional

from bs4 import BeautifulSoup

from core.adapters import MONTH_NAME, Extraction, PageAdapter, is_plausible, parse_datetime
from core.models import Confidence, SourceDescriptor, utcnow

__all__ = ["FortniteNextSeasonAdapter"]

_MONTH_DAY_YEAR = r"(" + MONTH_NAME + r"\.?\s+\d{1,2},?\s+\d{4})"
DATE_PATTERNS = (
    re.compile(r"ends?\s+(?:on\s+)?" + _MONTH_DAY_YEAR, re.IGNORECASE),
    re.compile(r"until\s+" + _MONTH_DAY_YEAR, re.IGNORECASE),
    re.compile(_MONTH_DAY_YEAR),
)


class FortniteNextSeasonAdapter(PageAdapter):
    descriptor = SourceDescriptor(
        source_id="fortnite",
        entity="fortnite",
        event_kind="next-season",
        display_name="Fortnite",
    )
    url = (
        "https://www.epicgames.com/help/en-US/fortnite-c5719335176219/"
        "battle-royale-c5719350646299/when-does-the-current-fortnite-season-end-a5720184470299"
    )
    allow_browser_escalation = True

    def extract(self, body: str, final_url: str) -> Optional[Extraction]:
        soup = BeautifulSoup(body, "html.parser")
        for tag in soup(["script", "style", "noscript"]):
            tag.decompose()
        containers = soup.select("article, .article-body, main") or [soup]
        text = " ".join(c.get_text(" ", strip=True) for c in containers)

        now = utcnow()
        for pattern in DATE_PATTERNS:
            for match in pattern.finditer(text):
                when = parse_datetime(match.group(1))
                if when is not None and when > now and is_plausible(when, now):
                    return Extraction(
                        event_time_utc=when,
                        confidence=Confidence.MEDIUM,
                        note="Season end date may change",
                    )
        return None
