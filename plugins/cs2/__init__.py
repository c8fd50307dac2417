"""Counter-Strike 2 – last game update, from the Steam news RSS feed."""

from .adapter import Cs2LastUpdateAdapter  # noqa: F401
