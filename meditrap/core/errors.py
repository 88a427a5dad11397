"""Error taxonomy shared by the approval engines and the API layer.

Every error carries the HTTP status and machine-readable code the API
exception handler renders. Engines raise these directly; routers never
translate them by hand.
"""

from typing import Any, Dict, Optional


class MeditrapError(Exception):
    """Base class for recoverable domain errors."""

    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.code, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(MeditrapError):
    """Requested entity or approval request does not exist."""

    status_code = 404
    code = "not_found"


class AlreadyProcessedError(MeditrapError):
    """Approval request is no longer pending."""

    status_code = 409
    code = "already_processed"


class UnauthorizedApproverError(MeditrapError):
    """Caller is not one of the request's candidate approvers."""

    status_code = 403
    code = "unauthorized_approver"


class InvalidTokenError(MeditrapError):
    """Approval or reset token is unknown, already used or malformed."""

    status_code = 400
    code = "invalid_token"


class InvalidRequestError(MeditrapError):
    """Submitted request fails validation (e.g. too few approvers)."""

    status_code = 400
    code = "invalid_request"


class AuthenticationError(MeditrapError):
    """Credentials or bearer token could not be validated."""

    status_code = 401
    code = "not_authenticated"


class ForbiddenError(MeditrapError):
    """Authenticated caller lacks the capability for the action."""

    status_code = 403
    code = "forbidden"


class ConflictError(MeditrapError):
    """Write would violate a uniqueness constraint."""

    status_code = 409
    code = "conflict"


class ConcurrencyConflictError(MeditrapError):
    """Another caller holds the request; the operation may be retried."""

    status_code = 409
    code = "concurrent_modification"


class GrantExecutionError(MeditrapError):
    """Downstream resource creation failed after an approval committed.

    Raised by grant executors. The threshold engine records it on the
    request and logs it; it never reaches approval callers.
    """

    status_code = 500
    code = "grant_failed"
