"""
Exception hierarchy for the refresh pipeline.

Source-level failures are never exceptions: they travel as
:class:`~core.models.FetchOutcome` / :class:`~core.models.AdapterFailure`.
Only deployment-level problems are raised.
"""


class NextResetError(Exception):
    """Base class for all pipeline errors."""


class ConfigError(NextResetError):
    """Configuration file exists but cannot be parsed or validated."""


class StoreUnavailableError(NextResetError):
    """The data directories cannot be created or written. Aborts the run."""


class StoreWriteError(NextResetError):
    """A single record file could not be written."""
