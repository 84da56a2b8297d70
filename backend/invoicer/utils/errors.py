"""
Custom error classes for the application.
"""
from typing import Optional


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for response."""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class AuthError(AppError):
    """Authentication related errors."""

    def __init__(self, message: str = "Authentication required", code: str = "AUTH_REQUIRED"):
        super().__init__(message, code, status_code=401)


class SessionExpiredError(AuthError):
    """Session has expired."""

    def __init__(self):
        super().__init__(
            "Your session has expired. Please sign in again.",
            "SESSION_EXPIRED"
        )


class OAuthProviderError(AppError):
    """The identity provider rejected a request or answered with garbage."""

    def __init__(self, message: str = "Couldn't reach Google. Please try again."):
        super().__init__(message, "OAUTH_PROVIDER_ERROR", status_code=502)


class InvalidRequestError(AppError):
    """Invalid request format."""

    def __init__(self, message: str = "Invalid request format."):
        super().__init__(message, "INVALID_REQUEST", status_code=400)


class InvalidCursorError(AppError):
    """Malformed pagination cursor."""

    def __init__(self, message: str = "Invalid pagination cursor."):
        super().__init__(message, "INVALID_CURSOR", status_code=400)


class SourceNotFoundError(AppError):
    """Source not found (or not owned by the caller)."""

    def __init__(self, source_id: Optional[int] = None):
        message = f"Source {source_id} not found." if source_id is not None else "Source not found."
        super().__init__(message, "SOURCE_NOT_FOUND", status_code=404)


class DuplicateSourceError(AppError):
    """The email account is already connected for this user."""

    def __init__(self, email_address: str):
        super().__init__(
            f"{email_address} is already connected.",
            "DUPLICATE_SOURCE",
            status_code=409,
            details={"email_address": email_address},
        )


class InvoiceNotFoundError(AppError):
    """Invoice not found (or not owned by the caller)."""

    def __init__(self, invoice_id: Optional[int] = None):
        message = f"Invoice {invoice_id} not found." if invoice_id is not None else "Invoice not found."
        super().__init__(message, "INVOICE_NOT_FOUND", status_code=404)
