"""Workflow error taxonomy."""


class AcceptanceError(Exception):
    """Base class for errors returned to workflow callers."""

    error = "acceptance_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(AcceptanceError):
    """Required input missing or invalid for the attempted operation."""

    error = "validation_failed"
    status_code = 422


class Forbidden(AcceptanceError):
    """Actor does not match the required actor for the edge."""

    error = "forbidden"
    status_code = 403


class Conflict(AcceptanceError):
    """Status changed since the caller last observed it."""

    error = "conflict"
    status_code = 409


class NotFound(AcceptanceError):
    """Unknown acceptance id."""

    error = "not_found"
    status_code = 404
