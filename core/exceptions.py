"""
Custom exceptions for Field Estimator.

Exception Hierarchy:
    FieldEstimatorError (base)
    ├── ValidationError            - Bad user input (rejected, nothing mutated)
    │   └── CustomerNameRequiredError
    ├── ConfirmationRequiredError  - Financial action attempted without confirmation
    ├── EstimateNotFoundError      - No estimate with the given id
    ├── LifecycleError             - Illegal job status transition
    ├── NoActiveSessionError       - Operation needs a signed-in session
    ├── AuthenticationError        - Login / signup rejected
    └── RemoteStoreError           - Remote store request failed (after retries)

Usage:
    Validation and lifecycle errors are raised synchronously by the engines
    before any state is touched. RemoteStoreError is raised by the gateway's
    typed methods; background reconcile threads convert it into sync status
    plus a notification instead of letting it propagate.
"""

from typing import Optional, Dict, Any


class FieldEstimatorError(Exception):
    """
    Base exception for all Field Estimator errors.

    All custom exceptions inherit from this class, allowing callers (the Flask
    error handler in particular) to catch every application error in one place.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


# =============================================================================
# USER INPUT ERRORS - rejected before any state is mutated
# =============================================================================

class ValidationError(FieldEstimatorError):
    """Input failed validation. Nothing was written to the state store."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else None
        super().__init__(message, details)
        self.field = field


class CustomerNameRequiredError(ValidationError):
    """An estimate cannot be saved without a customer name."""

    def __init__(self):
        super().__init__("Customer name is required to save an estimate", field="customerProfile.name")


class ConfirmationRequiredError(FieldEstimatorError):
    """
    A destructive or financial operation was called without explicit confirmation.

    Marking a job paid closes it financially; the caller must pass confirmed=True
    after asking the user.
    """

    def __init__(self, operation: str):
        message = f"Operation '{operation}' requires explicit confirmation"
        details = {
            "operation": operation,
            "resolution": "Ask the user to confirm, then retry with confirmed=True",
        }
        super().__init__(message, details)
        self.operation = operation


class EstimateNotFoundError(FieldEstimatorError):
    """No estimate with the requested id exists in the local collection."""

    def __init__(self, estimate_id: str):
        super().__init__(f"Estimate not found: {estimate_id}", {"estimate_id": estimate_id})
        self.estimate_id = estimate_id


class LifecycleError(FieldEstimatorError):
    """
    An illegal job status transition was attempted.

    This is a domain error, not a technical error: the status only moves
    forward through Draft -> Work Order -> Invoiced -> Paid.
    """

    def __init__(
        self,
        message: str,
        estimate_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
    ):
        details = {}
        if estimate_id:
            details["estimate_id"] = estimate_id
        if from_status:
            details["from_status"] = from_status
        if to_status:
            details["to_status"] = to_status
        super().__init__(message, details)
        self.estimate_id = estimate_id
        self.from_status = from_status
        self.to_status = to_status


# =============================================================================
# SESSION / REMOTE ERRORS
# =============================================================================

class NoActiveSessionError(FieldEstimatorError):
    """The operation needs an authenticated session and there is none."""

    def __init__(self, operation: str):
        super().__init__(
            f"Operation '{operation}' requires a signed-in session",
            {"operation": operation, "resolution": "Log in and retry"},
        )
        self.operation = operation


class AuthenticationError(FieldEstimatorError):
    """Login, signup or crew login was rejected by the remote store."""

    def __init__(self, message: str = "Authentication failed", username: Optional[str] = None):
        details = {"username": username} if username else None
        super().__init__(message, details)
        self.username = username


class RemoteStoreError(FieldEstimatorError):
    """
    A remote store request failed.

    Raised after the gateway has exhausted its retries, or when the remote
    store answered with an error envelope. The local optimistic state is never
    rolled back because of this error.
    """

    def __init__(self, action: str, message: str = "Remote request failed"):
        details = {
            "action": action,
            "resolution": "Check the connection; local changes are kept and will be pushed on the next sync",
        }
        super().__init__(f"{action}: {message}", details)
        self.action = action
        self.reason = message
