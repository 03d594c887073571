"""Error taxonomy for authorization and membership failures.

Every error carries a stable ``kind`` and the resource ids involved, so the
HTTP layer can render an actionable message without re-querying state.
"""

from __future__ import annotations

from typing import Any


class AccessError(Exception):
    """Base class for all access-control and membership errors."""

    kind = "access_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an API error body."""
        return {"detail": self.message, "kind": self.kind, **self.details}


class PermissionDenied(AccessError):
    """The caller's role (or lack of membership) does not allow the action."""

    kind = "permission_denied"


class Forbidden(PermissionDenied):
    """A rule other than the role table denies the action (visibility, owner protection)."""

    kind = "forbidden"


class SubscriptionExpired(AccessError):
    """The role would allow the action but billing state blocks it."""

    kind = "subscription_expired"


class NotFound(AccessError):
    kind = "not_found"


class AlreadyMember(AccessError):
    kind = "already_member"


class NotMember(AccessError):
    kind = "not_member"


class SeatLimitReached(AccessError):
    kind = "conflict"


class InvariantViolation(AccessError):
    """A structural invariant would be broken. Indicates a bug or a race."""

    kind = "invariant_violation"
