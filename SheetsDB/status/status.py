"""Status definitions and exceptions for SheetsDB.

This module provides:
    - Status: enumeration of possible error states
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., NotFoundError) raised by the session, query and table APIs
"""
import enum
import logging
from typing import Dict, Optional


class Status(enum.StrEnum):
    """Enumeration of status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Construction and settings
    ConfigurationInvalid = enum.auto()

    # Catalog
    NotFound = enum.auto()
    TableEmpty = enum.auto()

    # Local validation
    OperatorUnsupported = enum.auto()
    ArgumentInvalid = enum.auto()

    # Remote store
    ServiceUnavailable = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',
    Status.Okay: 'Everything is okay.',

    Status.ConfigurationInvalid: 'The configuration is incomplete, or contains invalid values.',

    Status.NotFound: 'Could not find the requested table or row.',
    Status.TableEmpty: 'The table is empty. A header row is required.',

    Status.OperatorUnsupported: 'The filter operator is not supported.',
    Status.ArgumentInvalid: 'Invalid argument.',

    Status.ServiceUnavailable: 'The Google Sheets service reported an error.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in SheetsDB.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.
        message (str): The additional context passed by the raiser, if any.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: Optional[str] = None):
        self.status_message = get_message(self.status)
        self.message = message
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)


class ConfigurationError(BaseStatusException):
    """Raised when required construction parameters or settings are missing or invalid."""
    status = Status.ConfigurationInvalid


class NotFoundError(BaseStatusException, LookupError):
    """Raised when a table, or a row id within a table, does not exist."""
    status = Status.NotFound


class EmptyTableError(BaseStatusException):
    """Raised when a table has no rows at all, not even a header."""
    status = Status.TableEmpty


class UnsupportedOperatorError(BaseStatusException, ValueError):
    """Raised when a filter uses an operator outside the supported set."""
    status = Status.OperatorUnsupported


class ValidationError(BaseStatusException, ValueError):
    """Raised for invalid column, direction, or table arguments."""
    status = Status.ArgumentInvalid


class RemoteServiceError(BaseStatusException):
    """Raised when the Google Sheets service fails a fetch, append, clear or write.

    Attributes:
        http_status (int): The HTTP status reported by the service, if any.
        details (str): The store-reported error detail.
    """
    status = Status.ServiceUnavailable

    def __init__(self, message: Optional[str] = None, http_status: Optional[int] = None,
                 details: Optional[str] = None):
        self.http_status = http_status
        self.details = details
        super().__init__(message)
