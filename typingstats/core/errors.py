"""Exception hierarchy for typingstats."""


class TypingStatsError(Exception):
    """Base exception for typingstats errors."""

    pass


class InvariantViolation(TypingStatsError):
    """Raised when an operation would break a data-model invariant.

    This signals a programming error (e.g. merging the records of two
    different days), never a data or environment problem.
    """

    pass


class LocalStoreError(TypingStatsError):
    """Exception raised when writing the local stats file fails."""

    pass


class RemoteStoreError(TypingStatsError):
    """Base exception for remote key-value backend errors."""

    pass


class RemoteConnectionError(RemoteStoreError):
    """Exception raised when the remote backend cannot be reached."""

    pass
