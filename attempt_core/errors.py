"""Error taxonomy raised by the attempt engine.

Each error carries the HTTP status the API surface maps it to and a stable
``code`` the client uses to pick a recovery path (re-fetch, redirect to
results, show the subscription page, offer a retry).
"""
from __future__ import annotations


class AttemptError(Exception):
    status_code: int = 400
    code: str = "attempt_error"
    default_msg: str = "Attempt operation failed"

    def __init__(self, msg: str | None = None) -> None:
        self.msg = msg or self.default_msg
        super().__init__(self.msg)


class SubscriptionRequired(AttemptError):
    status_code = 403
    code = "subscription_required"
    default_msg = "Subscription required"


class Forbidden(AttemptError):
    status_code = 403
    code = "forbidden"
    default_msg = "Access denied"


class PaperNotAvailable(AttemptError):
    status_code = 403
    code = "paper_not_available"
    default_msg = "This assessment paper is not available"


class NotFound(AttemptError):
    status_code = 404
    code = "not_found"
    default_msg = "No in-progress attempt"


class AttemptNotFound(NotFound):
    code = "attempt_not_found"
    default_msg = "Attempt not found"


class PaperNotFound(NotFound):
    code = "paper_not_found"
    default_msg = "Assessment paper not found"


class AttemptNotActive(AttemptError):
    status_code = 409
    code = "attempt_not_active"
    default_msg = "Attempt is already submitted"


class Conflict(AttemptError):
    status_code = 409
    code = "conflict"
    default_msg = "You already have an in-progress attempt for this paper"


class AttemptNotSubmitted(AttemptError):
    status_code = 400
    code = "attempt_not_submitted"
    default_msg = "Attempt is still in progress"


class InvalidAnswer(AttemptError):
    status_code = 400
    code = "invalid_answer"
    default_msg = "Invalid answer payload"


class ActiveAttemptExists(Exception):
    """Raised by the store when the (student, paper) active slot is taken."""

    def __init__(self, existing_id: str) -> None:
        self.existing_id = existing_id
        super().__init__(f"active attempt already exists: {existing_id}")


_BY_CODE = {
    cls.code: cls
    for cls in (
        SubscriptionRequired,
        Forbidden,
        PaperNotAvailable,
        NotFound,
        AttemptNotFound,
        PaperNotFound,
        AttemptNotActive,
        Conflict,
        AttemptNotSubmitted,
        InvalidAnswer,
    )
}


def error_for_code(code: str | None, msg: str | None = None) -> AttemptError:
    cls = _BY_CODE.get(code or "", AttemptError)
    return cls(msg)


__all__ = [
    "AttemptError",
    "SubscriptionRequired",
    "Forbidden",
    "PaperNotAvailable",
    "NotFound",
    "AttemptNotFound",
    "PaperNotFound",
    "AttemptNotActive",
    "Conflict",
    "AttemptNotSubmitted",
    "InvalidAnswer",
    "ActiveAttemptExists",
    "error_for_code",
]
