"""
Known failure classes raised by the service layer.

Blueprints catch these per action and turn them into user-facing JSON
responses; anything else is logged and reported as a generic failure.
"""
from __future__ import annotations


class FolioError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FolioError, ValueError):
    """Input failed validation. `errors` keeps every message, `message` the first."""

    status_code = 400

    def __init__(self, errors: str | list[str]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(self.errors[0] if self.errors else "Invalid input")


class PermissionDenied(FolioError):
    status_code = 403


class NotFound(FolioError):
    status_code = 404


class ConflictError(FolioError):
    status_code = 409


class ConfigurationError(FolioError):
    status_code = 500


class DeliveryError(FolioError):
    """An outbound message (email) could not be delivered."""

    status_code = 502
