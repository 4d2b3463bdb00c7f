"""
Application errors and their HTTP status codes.

WHAT: One exception class per way a proposal or approval request can fail.
Each class carries its status code and a default message; keyword
arguments passed to the constructor become the ``details`` of the JSON
error body.

WHY: Services raise these and the API layer never catches them; the
handlers in ``exception_handlers`` render them. Keeping the status code
on the class means a new failure mode is one subclass, not a new branch
in every route.

Bad numeric input is not an error here: the pricing engine coerces it to
zero. Approval refusals start life as a ``DecisionResult`` and only become
``ApprovalOrderViolationError`` when a service has to report them.
"""

from typing import Any, Dict, List, Optional


# Context keys never echoed back to clients
_HIDDEN_CONTEXT_KEYS = frozenset({"password", "token", "secret", "key", "api_key"})


class AppException(Exception):
    """Base class; unhandled subclasses of Exception are reported as 500."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON body for this error.

        Returns:
            ``error`` (class name), ``message``, ``status_code`` and
            ``details`` (the constructor context minus hidden keys, or None)
        """
        details = {
            name: value
            for name, value in self.context.items()
            if name.lower() not in _HIDDEN_CONTEXT_KEYS
        }
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": details or None,
        }


# ----------------------------------------------------------------------------
# 400: malformed input
# ----------------------------------------------------------------------------


class ValidationError(AppException):
    """Input that cannot be interpreted, e.g. an empty approver list."""

    status_code = 400
    default_message = "Validation failed"


# ----------------------------------------------------------------------------
# 404 / 409: lookups and uniqueness
# ----------------------------------------------------------------------------


class ResourceNotFoundError(AppException):
    status_code = 404
    default_message = "Resource not found"


class ProposalNotFoundError(ResourceNotFoundError):
    default_message = "Proposal not found"


class ProposalItemNotFoundError(ResourceNotFoundError):
    default_message = "Line item not found"


class ApprovalWorkflowNotFoundError(ResourceNotFoundError):
    default_message = "Approval workflow not found"


class ApprovalStepNotFoundError(ResourceNotFoundError):
    default_message = "Approval step not found"


class ResourceAlreadyExistsError(AppException):
    status_code = 409
    default_message = "Resource already exists"


class ApprovalWorkflowExistsError(ResourceAlreadyExistsError):
    """
    A proposal has at most one workflow and its steps are fixed when it is
    initiated. Re-initiating would leave two competing approval states.
    """

    default_message = "Proposal already has an approval workflow"


# ----------------------------------------------------------------------------
# 422 / 400 / 409: well-formed requests the current state does not allow
# ----------------------------------------------------------------------------


class BusinessRuleViolation(AppException):
    status_code = 422
    default_message = "Business rule violation"


class ProposalNotEditableError(BusinessRuleViolation):
    """
    Items, pricing and discount mode are frozen once a proposal leaves
    DRAFT, so the stored numbers always match what the client received.
    """

    default_message = "Only draft proposals can be edited"


class ProposalGateError(BusinessRuleViolation):
    """
    A send or accept gate failed.

    ``reasons`` holds the readable gate messages (also exposed under
    ``details.reasons``) so the editor can list what is missing.
    """

    default_message = "Proposal is not ready for this action"

    def __init__(
        self,
        message: Optional[str] = None,
        reasons: Optional[List[str]] = None,
        **context: Any,
    ):
        self.reasons: List[str] = list(reasons or [])
        super().__init__(message, reasons=self.reasons, **context)


class InvalidStateTransitionError(BusinessRuleViolation):
    """A status change that the proposal lifecycle has no edge for."""

    status_code = 400
    default_message = "Invalid state transition"


class ApprovalOrderViolationError(InvalidStateTransitionError):
    """
    The approval engine refused a decision, skip or cancel.

    ``details.refusal`` names the reason (``not_active_step``,
    ``workflow_closed``, ``required_step`` ...). Nothing was written, so the
    client can reload the workflow and try again.
    """

    status_code = 409
    default_message = "Approval step is not open for a decision"
