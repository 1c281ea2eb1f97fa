"""
Domain errors raised by the services layer.

Every error carries a stable ``code`` so callers can branch on the specific
failure (e.g. ``InsufficientTeams``) while the HTTP layer only needs the
family (validation / state conflict / not found / concurrency).
"""
from typing import Optional


class HockeyError(Exception):
    status_code = 400
    default_code = "Error"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ValidationError(HockeyError):
    """Malformed or missing input."""

    status_code = 422
    default_code = "ValidationError"


class StateConflictError(HockeyError):
    """Operation not allowed in the entity's current status."""

    status_code = 409
    default_code = "StateConflict"


class NotFoundError(HockeyError):
    status_code = 404
    default_code = "NotFound"


class ConcurrencyError(HockeyError):
    """Lock contention or stale state detected during a concurrent mutation."""

    status_code = 409
    default_code = "ConcurrencyError"


# Named codes
INSUFFICIENT_TEAMS = "InsufficientTeams"
INVALID_SEEDING = "InvalidSeeding"
INVALID_MATCH_STATE = "InvalidMatchState"
TEAMS_NOT_ASSIGNED = "TeamsNotAssigned"
INVALID_TRANSITION = "InvalidTransition"
DUPLICATE_REGISTRATION = "DuplicateRegistration"
INVALID_WAITLIST_ORDER = "InvalidWaitlistOrder"
SLOT_CONFLICT = "SlotConflict"
LOCK_TIMEOUT = "LockTimeout"
