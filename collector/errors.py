"""
collector/errors.py

Error taxonomy for the collection pipeline.
None of these are fatal: each is handled and logged where it is raised.
"""


class CollectorError(Exception):
    """Base class for collection pipeline errors."""


class StorageError(CollectorError):
    """The durable queue could not be read or written."""


class TransportError(CollectorError):
    """An upload to the remote collector did not succeed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailable(CollectorError):
    """A sample provider has no current reading."""

    def __init__(self, signal: str) -> None:
        super().__init__(f"no current reading for {signal}")
        self.signal = signal
