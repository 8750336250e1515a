"""Domain errors for invitations, family linking and access passes.

Every error carries a stable ``code`` the client can branch on and a
message that is safe to show to the user. They are terminal: callers
surface them as-is and never retry automatically.
"""

import uuid


class DomainError(Exception):
    """Base class for terminal, user-presentable failures."""

    code = "error"
    status_code = 400
    message = "Request could not be completed"

    def __init__(self, message: str | None = None, *, code: str | None = None, **extra) -> None:
        self.message = message or self.message
        if code is not None:
            self.code = code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        body.update({k: str(v) if isinstance(v, uuid.UUID) else v for k, v in self.extra.items()})
        return body


class NotFound(DomainError):
    code = "invalid"
    status_code = 404
    message = "This link or code is not valid"


class Expired(DomainError):
    code = "expired"
    status_code = 410
    message = "This invitation has expired"


class AlreadyConsumed(DomainError):
    code = "already_accepted"
    status_code = 409
    message = "This invitation has already been accepted"


class IdentityMismatch(DomainError):
    code = "email_mismatch"
    status_code = 403
    message = "This invitation was sent to a different email address"


class CapacityExhausted(DomainError):
    code = "exhausted"
    status_code = 409
    message = "That access code has reached its redemption limit"


class CodeInactive(DomainError):
    code = "inactive"
    status_code = 410
    message = "That access code is no longer active"


class AlreadyLinked(DomainError):
    code = "already_linked"
    status_code = 409
    message = "This account is already linked to a family"


class DuplicateInvitation(DomainError):
    code = "duplicate_invitation"
    status_code = 409
    message = "An invitation to this email is already pending"


class PlanLimitReached(DomainError):
    code = "plan_limit_reached"
    status_code = 403
    message = "Your plan does not allow more third-party members"


class NotPermitted(DomainError):
    code = "not_permitted"
    status_code = 403
    message = "You do not have permission to do this"


class InvalidRequest(DomainError):
    code = "invalid_request"
    status_code = 400


class TransientDeliveryFailure(Exception):
    """Email or notification delivery failed. Logged by callers, never surfaced."""
