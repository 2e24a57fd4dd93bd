"""
Error taxonomy for the fencing portal.

Every error carries a short machine `code` and a user-facing `message`. The
API layer turns any PortalError into a JSON notification payload, so nothing
raised here is fatal to a caller; retrying the action is always possible.
"""
from typing import Optional

GENERIC_MESSAGE = "An error occurred. Please try again."

AUTH_MESSAGES = {
    "invalid-credential": "Invalid email or password",
    "user-not-found": "Invalid email or password",
    "wrong-password": "Invalid email or password",
    "email-already-in-use": "An account with this email already exists",
    "weak-password": "Password should be at least 6 characters long",
    "invalid-email": "Please enter a valid email address",
    "too-many-requests": "Too many failed attempts. Please try again later",
    "network-failure": "Network error. Please check your internet connection",
    "invalid-session": "Your session has expired. Please sign in again",
    "invalid-reset-token": "This password reset link is invalid or has expired",
}


class PortalError(Exception):
    status_code = 500
    code = "error"

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message or GENERIC_MESSAGE
        super().__init__(self.message)


class ValidationError(PortalError):
    status_code = 400
    code = "validation"


class ZeroValuationError(PortalError):
    status_code = 409
    code = "zero-valuation"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Cannot approve a quote with a zero valuation. Update the cost first.")


class InvalidTransitionError(PortalError):
    status_code = 409
    code = "invalid-transition"


class BillUnavailableError(PortalError):
    status_code = 409
    code = "bill-unavailable"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Proposal is still under review")


class NotFoundError(PortalError):
    status_code = 404
    code = "not-found"


class PermissionDenied(PortalError):
    status_code = 403
    code = "forbidden"


class DeliveryError(PortalError):
    status_code = 503
    code = "delivery-failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Could not send the email. Please try again.")


class StoreError(PortalError):
    status_code = 503
    code = "store-unavailable"

    def __init__(self, message: Optional[str] = None, operation: Optional[str] = None, collection: Optional[str] = None):
        self.operation = operation
        self.collection = collection
        super().__init__(message or "Could not reach the database. Please try again.")


class AuthError(PortalError):
    status_code = 401

    def __init__(self, code: str, status_code: Optional[int] = None):
        if status_code is not None:
            self.status_code = status_code
        elif code == "too-many-requests":
            self.status_code = 429
        super().__init__(auth_error_message(code), code=code)


def auth_error_message(code: str) -> str:
    return AUTH_MESSAGES.get(code, GENERIC_MESSAGE)
