"""Exceptions raised by the catalog library."""
from typing import List


class CatalogError(Exception):
    """Base class for catalog errors."""


class RemoteStoreError(CatalogError):
    """The remote store rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(CatalogError):
    """An event draft or change set failed validation."""

    def __init__(self, errors: List[str]):
        super().__init__('; '.join(errors))
        self.errors = list(errors)


class PermissionDeniedError(CatalogError):
    """The caller does not own the event it tried to modify."""


class RegistrationError(CatalogError):
    """Base class for registration failures."""


class InvalidTicketQuantityError(RegistrationError):
    pass


class AlreadyRegisteredError(RegistrationError):
    pass


class CapacityExceededError(RegistrationError):
    pass
