"""Exception hierarchy for Tourist Sentinel."""


class SentinelError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(SentinelError):
    """Invalid or inconsistent configuration."""


class SessionClosedError(SentinelError):
    """The tourist session is stopping or stopped and takes no more fixes."""


class EscalationStateError(SentinelError):
    """Requested escalation transition is not allowed from the current state."""


class StorageError(SentinelError):
    """The key-value collaborator failed to read or write."""


class DispatchError(SentinelError):
    """The emergency collaborator could not be reached."""


class SessionNotFoundError(SentinelError, KeyError):
    """No monitoring session exists for the tourist."""
