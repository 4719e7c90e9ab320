"""Domain errors raised by the core services. The API layer maps them to HTTP responses."""
from __future__ import annotations


class DomainError(Exception):
    """Base domain error carrying an HTTP status code."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DomainError):
    """Entity missing or owned by another organization (deliberately indistinguishable)."""

    status_code = 404


class AlreadyOpen(DomainError):
    status_code = 409


class AlreadyClosed(DomainError):
    status_code = 409


class DuplicateEntry(DomainError):
    status_code = 409


class CapacityExceeded(DomainError):
    status_code = 409


class FeatureDisabled(DomainError):
    status_code = 403
