"""GTA Online – weekly reset, computed from Rockstar's fixed schedule."""

from .adapter import GtaWeeklyResetAdapter, next_weekly_reset  # noqa: F401
