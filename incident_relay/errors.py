"""
Error taxonomy.

Only the external collaborators (config loading, fetching, notifying)
raise these. Reconciliation and formatting never fail on well-formed input.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigInvalid(RelayError):
    """Configuration is missing or out of range. Fatal at startup."""


class FetchFailed(RelayError):
    """The status page could not be retrieved. The cycle is skipped."""


class DecodeFailed(FetchFailed):
    """The status page answered with a malformed payload."""


class NotificationFailed(RelayError):
    """The webhook rejected or never received a notification."""
