"""
Custom Exception Classes for the Consent Wallet Coordinator

This module defines the exceptions raised by the store, scheduler, state
machine and tab channel. Coordinator handlers catch and log them; the HTTP
layer turns them into the standard error envelope.
"""

from enum import Enum
from typing import Any

from fastapi import status


class ErrorCode(str, Enum):
    """Machine-readable error codes carried in error responses."""

    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    CONSENT_NOT_FOUND = "RESOURCE_CONSENT_NOT_FOUND"
    CONSENT_DUPLICATE = "VALIDATION_DUPLICATE_CONSENT"
    INVALID_TRANSITION = "STATE_INVALID_TRANSITION"
    INVALID_DEADLINE = "SCHEDULER_INVALID_DEADLINE"
    TAB_UNAVAILABLE = "TAB_UNAVAILABLE"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ConsentWalletError(Exception):
    """Base exception class for all coordinator exceptions"""

    error_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Persistence Exceptions
# ============================================================================


class StoreError(ConsentWalletError):
    """Raised when a persistent store read or write fails"""

    error_code = ErrorCode.STORE_UNAVAILABLE

    def __init__(self, message: str = "Persistent store operation failed", operation: str | None = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


# ============================================================================
# Consent Record Exceptions
# ============================================================================


class ConsentNotFoundError(ConsentWalletError):
    """Raised when no consent record exists for a token id"""

    error_code = ErrorCode.CONSENT_NOT_FOUND

    def __init__(self, token_id: Any):
        super().__init__(
            message=f"Consent with token id '{token_id}' not found",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": "Consent", "resource_id": token_id},
        )


class DuplicateConsentError(ConsentWalletError):
    """Raised when a token id is issued twice"""

    error_code = ErrorCode.CONSENT_DUPLICATE

    def __init__(self, token_id: Any):
        super().__init__(
            message=f"Consent with token id '{token_id}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": "Consent", "field": "tokenId", "value": token_id},
        )


class InvalidStatusTransitionError(ConsentWalletError):
    """Raised when an invalid status transition is attempted"""

    error_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, current_status: str, target_status: str, resource_type: str = "Consent"):
        super().__init__(
            message=f"Cannot transition {resource_type} from '{current_status}' to '{target_status}'",
            status_code=status.HTTP_409_CONFLICT,
            details={"resource_type": resource_type, "current_status": current_status, "target_status": target_status},
        )


# ============================================================================
# Scheduling & Delivery Exceptions
# ============================================================================


class InvalidDeadlineNameError(ConsentWalletError):
    """Raised when a deadline name cannot be decoded into kind and token id"""

    error_code = ErrorCode.INVALID_DEADLINE

    def __init__(self, name: str):
        super().__init__(
            message=f"Invalid deadline name '{name}'",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"deadline": name},
        )


class TabUnavailableError(ConsentWalletError):
    """Raised when a command cannot be delivered to a browsing context"""

    error_code = ErrorCode.TAB_UNAVAILABLE

    def __init__(self, tab_id: Any, reason: str = "not connected"):
        super().__init__(
            message=f"Tab '{tab_id}' is unavailable: {reason}",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"tab_id": tab_id, "reason": reason},
        )
