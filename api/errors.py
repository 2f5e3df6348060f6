"""
Error taxonomy for the admin panel API.

Each error knows the HTTP status and machine-readable code it is reported
with, so handlers can turn any of them into a JSON response the same way.
"""

from typing import Any, Dict, Optional


class PatcherError(Exception):
    """Base class for errors reported to API clients."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {
            'success': False,
            'error': self.message,
            'code': self.code
        }
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationError(PatcherError):
    """Malformed input; never reaches the database."""
    status_code = 400
    code = "validation_error"


class StateError(PatcherError):
    """The operation needs an active database connection and there is none."""
    status_code = 400
    code = "not_connected"

    def __init__(self, message: str = "Not connected to database. Please connect first.",
                 details: Optional[str] = None):
        super().__init__(message, details)


class NotFoundError(PatcherError):
    """Update target does not exist."""
    status_code = 404
    code = "not_found"


class UpstreamError(PatcherError):
    """The database driver failed (auth, network, timeout)."""
    status_code = 500
    code = "upstream_error"
