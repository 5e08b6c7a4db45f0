# Overview: Error taxonomy shared by the request and warehouse-access services.

"""
Every failure the fulfillment core reports to its callers is one of these.

Each error carries a stable `code` and the HTTP status the blueprints map it
to. Errors raised before commit never leave writes behind: the unit of work
rolls the session back before re-raising.
"""

from __future__ import annotations


class FulfillmentError(Exception):
    """Base class for all reported fulfillment failures."""

    code = "fulfillment_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, *, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {
            "error": self.message,
            "code": self.code,
            "changed": False,
        }
        if self.retryable:
            payload["retryable"] = True
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(FulfillmentError, ValueError):
    """400-level input problem."""
    code = "validation_error"
    http_status = 400


class NotFoundError(FulfillmentError):
    code = "not_found"
    http_status = 404


class InvalidTransitionError(FulfillmentError):
    """Requested status change is not in the transition table."""
    code = "invalid_transition"
    http_status = 409

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Invalid status transition from {current_status} to {target_status}",
            details={"current_status": current_status, "target_status": target_status},
        )
        self.current_status = current_status
        self.target_status = target_status


class InvalidOperationError(FulfillmentError):
    """Operation not permitted for the request in its current state."""
    code = "invalid_operation"
    http_status = 409


class AccessDeniedError(FulfillmentError):
    code = "access_denied"
    http_status = 403


class DuplicateAssignmentError(FulfillmentError):
    code = "duplicate_assignment"
    http_status = 409


class LastAssignmentError(FulfillmentError):
    code = "last_assignment"
    http_status = 409


class InvalidWarehouseError(FulfillmentError):
    code = "invalid_warehouse"
    http_status = 400


class ConcurrencyConflictError(FulfillmentError):
    """Another writer changed the same rows first; safe for the caller to retry."""
    code = "concurrency_conflict"
    http_status = 409
    retryable = True


class DependencyFailureError(FulfillmentError):
    code = "dependency_failure"
    http_status = 503


class OperationCancelledError(FulfillmentError):
    code = "operation_cancelled"
    http_status = 499
