"""Exception hierarchy for the short position harvester."""
from __future__ import annotations


class HarvestError(Exception):
    """Base class for every error raised by this package."""


class DataProviderError(HarvestError):
    """Something went wrong while obtaining positions from a regulator."""


class UnknownCompanyError(DataProviderError):
    """The regulator does not recognise the identifier that was sent."""

    def __init__(self, identifier: str | None = None) -> None:
        self.identifier = identifier
        message = "The source does not recognise the company"
        if identifier:
            message = f"{message} ({identifier})"
        super().__init__(message)


class ExternalServiceError(DataProviderError):
    """The regulator's site failed or answered with a non-200 status.

    These failures are transient; callers may retry the company later.
    """

    retryable = True

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class MalformedNumberError(DataProviderError):
    """A weight cell could not be read as a number."""


class InvalidDateError(DataProviderError):
    """A position date could not be parsed or pinned to a single UTC instant."""


class MissingIdentifierError(DataProviderError):
    """The company has no identifier the regulator can be queried with."""


class UnsupportedTimeFrameError(DataProviderError):
    """The provider cannot serve the requested time frame."""


class StorageError(HarvestError):
    """A failure reported by the storage layer."""


class CorruptRecordError(StorageError):
    """A stored row is missing a field the domain type requires."""


__all__ = [
    "HarvestError",
    "DataProviderError",
    "UnknownCompanyError",
    "ExternalServiceError",
    "MalformedNumberError",
    "InvalidDateError",
    "MissingIdentifierError",
    "UnsupportedTimeFrameError",
    "StorageError",
    "CorruptRecordError",
]
