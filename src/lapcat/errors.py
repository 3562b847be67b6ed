"""Error kinds raised across the crawler.

Extraction-local gaps (missing composition, missing image) are not errors:
adapters degrade them to empty strings and log a warning. Everything below
fails the task that raised it and nothing else.
"""


class LapcatError(Exception):
    """Base class for all lapcat failures."""


class TransportFailure(LapcatError):
    """Browser session or storage I/O failed."""


class ExtractionFailure(LapcatError):
    """A required page field is absent or cannot be parsed (e.g. price)."""


class DecodeFailure(LapcatError):
    """A URL-encoded or JSON payload is malformed."""


class ConfigFailure(LapcatError):
    """Startup settings are invalid."""
