class CdxStatsError(Exception):
    """Base class for fatal cdx-stats errors."""


class ConfigError(CdxStatsError):
    """Raised when the configuration file or the options are invalid."""


class CdxFetchError(CdxStatsError):
    """Raised when streaming records from the index service fails."""


class EmptyOutputError(CdxStatsError):
    """Raised when a run finished without writing a single row."""
