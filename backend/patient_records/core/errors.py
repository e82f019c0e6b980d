"""
Error taxonomy for the patient record service.

Each error kind carries the HTTP status it is answered with, so the
exception handlers in ``main`` never need to inspect collaborator errors.
"""
from typing import Optional


class PatientServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class InvalidRequest(PatientServiceError):
    status_code = 400


class Unauthorized(PatientServiceError):
    status_code = 401


class NotFound(PatientServiceError):
    status_code = 404

    def __init__(self, message: str = "Patient not found"):
        super().__init__(message)


class Conflict(PatientServiceError):
    # Identifiers are generated server-side, so a collision is unexpected
    status_code = 409

    def __init__(self, message: str = "Patient already exists"):
        super().__init__(message)


class Unavailable(PatientServiceError):
    status_code = 500

    def __init__(self, message: str = "Patient store is unavailable"):
        super().__init__(message)


class SearchIndexError(Exception):
    """Raised by the search index client. Never crosses the service boundary."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
