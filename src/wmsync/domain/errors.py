"""Errors surfaced across the actor-visible boundary of the workflow core.

Each error carries a ``user_message`` suitable for display next to the action that
failed; the exception text itself stays technical for logs.
"""

from __future__ import annotations


class WorkflowError(RuntimeError):
    """Base class for failures of a workflow operation."""

    audit_action = "WORKFLOW_FAIL"
    default_user_message = "The operation could not be completed."

    def __init__(self, message: str, *, user_message: str | None = None) -> None:
        super().__init__(message)
        self.user_message = user_message or self.default_user_message


class AuthorizationError(WorkflowError):
    """The actor lacks the kind, role or scope required for the operation."""

    audit_action = "AUTHORIZATION_DENIED"
    default_user_message = "You are not allowed to perform this action."


class PreconditionError(WorkflowError):
    """The target record is not in the state the operation expects."""

    audit_action = "PRECONDITION_FAILED"
    default_user_message = "This record changed in the meantime. The view has been refreshed."


class TransientBackendError(WorkflowError):
    """The backend could not be reached or timed out; the action may be retried manually."""

    audit_action = "BACKEND_UNAVAILABLE"
    default_user_message = "The server could not be reached. Please try again."


class DataIntegrityError(WorkflowError):
    """A two-step transition applied its first step but not its second."""

    audit_action = "DATA_INTEGRITY_VIOLATION"
    default_user_message = (
        "The request was updated but the shipment was not. Support has been notified."
    )

    def __init__(
        self,
        message: str,
        *,
        request_id: str,
        shipment_id: str,
        user_message: str | None = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.request_id = request_id
        self.shipment_id = shipment_id
