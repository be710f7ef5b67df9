"""Domain errors surfaced to API callers as ``{"error": message}``."""


class IntakeError(Exception):
    """Base exception for intake and reconciliation errors."""
    status_code = 500

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(IntakeError):
    """Missing identifier or malformed request body/patch."""
    status_code = 400


class SignatureError(IntakeError):
    """Webhook signature rejected (only when enforcement is enabled)."""
    status_code = 401


class NotFoundError(IntakeError):
    """Unknown job, run, or missing extraction result."""
    status_code = 404


class StorageError(IntakeError):
    """Blob store write/read/delete failed."""
    status_code = 502


class PersistenceError(IntakeError):
    """Database write failed. Message is passed through for operators."""
    status_code = 500
