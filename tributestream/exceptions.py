# tributestream/exceptions.py
"""API error types. Each carries the HTTP status the error handler answers with."""


class TributeStreamError(Exception):
    """Base exception for TributeStream errors."""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class ValidationError(TributeStreamError):
    """Raised when request data is missing or malformed."""
    status_code = 400


class AuthenticationError(TributeStreamError):
    """Raised when the caller could not be identified."""
    status_code = 401


class PermissionDenied(TributeStreamError):
    """Raised when the caller may not perform the action."""
    status_code = 403


class NotFound(TributeStreamError):
    status_code = 404


class Conflict(TributeStreamError):
    """Raised on duplicate emails and taken memorial URLs."""
    status_code = 409


class ExternalServiceError(TributeStreamError):
    """Raised when Stripe, SendGrid or Cloudflare reject a call."""
    status_code = 502
