"""Error types shared by the core and adapters."""

from __future__ import annotations


class PasteScopeError(Exception):
    """Base class for all pastescope errors."""


class ConfigError(PasteScopeError):
    """Invalid configuration. Fatal at startup."""


class ListError(PasteScopeError):
    """The recent paste list could not be retrieved. The cycle is skipped."""


class FetchError(PasteScopeError):
    """A paste body could not be fetched or matched. The item is skipped."""


class DeliveryError(PasteScopeError):
    """A notification could not be delivered."""
