"""Roblox – service status, from the hosted status JSON API."""

from .adapter import RobloxStatusAdapter  # noqa: F401
