"""Fortnite – current season end, from the Epic Games help center."""

from .adapter import FortniteNextSeasonAdapter  # noqa: F401
