"""League of Legends – next patch, from Riot's published patch schedule."""

from .adapter import LolNextPatchAdapter  # noqa: F401
