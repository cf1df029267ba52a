class StrmThumbError(Exception):
    """Base class for expected pipeline failures."""


class UnsafeSourceError(StrmThumbError):
    """Input rejected before any external call (bad URL, path out of scope)."""


class SourceUnavailableError(StrmThumbError):
    """Source descriptor unreadable or remote resource unreachable."""


class ProbeError(StrmThumbError):
    """Duration could not be determined."""


class ExtractionError(StrmThumbError):
    """Frame extraction failed or timed out."""


class CorruptOutputError(StrmThumbError):
    """Produced artifact failed validation."""


class ConfigurationError(StrmThumbError):
    """Component misconfiguration; surfaced to the caller, never per-job."""


class CacheWriteError(ConfigurationError):
    """Duration cache could not be persisted."""
