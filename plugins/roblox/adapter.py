"""
Roblox status: last status change reported by the hostedstatus JSON API.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from core.adapters import Extraction, PageAdapter, parse_datetime
from core.models import Confidence, SourceDescriptor

__all__ = ["RobloxStatusAdapter"]


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        return parse_datetime(value)
    return None


class RobloxStatusAdapter(PageAdapter):
    descriptor = SourceDescriptor(
        source_id="roblox",
        entity="roblox",
        event_kind="status",
        display_name="Roblox",
    )
    url = "http://hostedstatus.com/1.0/status/59db90dbcdeb2f04dadcf16d"
    status_page = "https://status.roblox.com"
    headers = {"Accept": "application/json"}

    def extract(self, body: str, final_url: str) -> Optional[Extraction]:
        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            return None

        result = data.get("result") if isinstance(data, dict) else None
        overall = result.get("status_overall") if isinstance(result, dict) else None
        if not isinstance(overall, dict):
            return None
        updated = _as_datetime(overall.get("updated"))
        if updated is None:
            return None

        return Extraction(
            event_time_utc=updated,
            confidence=Confidence.HIGH,
            source_url=self.status_page,
            note=f"Current status: {overall.get('status', 'unknown')}",
        )
