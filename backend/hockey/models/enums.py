from enum import Enum


class TournamentFormat(str, Enum):
    single_elimination = "SingleElimination"
    double_elimination = "DoubleElimination"
    round_robin = "RoundRobin"


class TeamFormation(str, Enum):
    organizer_assigned = "OrganizerAssigned"
    pre_formed = "PreFormed"


class TournamentStatus(str, Enum):
    draft = "Draft"
    open = "Open"
    registration_closed = "RegistrationClosed"
    in_progress = "InProgress"
    completed = "Completed"
    postponed = "Postponed"
    cancelled = "Cancelled"


class TournamentAction(str, Enum):
    publish = "Publish"
    close_registration = "CloseRegistration"
    start = "Start"
    complete = "Complete"
    postpone = "Postpone"
    resume = "Resume"
    cancel = "Cancel"


class TeamStatus(str, Enum):
    registered = "Registered"
    waitlisted = "Waitlisted"
    active = "Active"
    eliminated = "Eliminated"
    winner = "Winner"


class MatchStatus(str, Enum):
    scheduled = "Scheduled"
    in_progress = "InProgress"
    completed = "Completed"
    cancelled = "Cancelled"
    forfeit = "Forfeit"
    bye = "Bye"


class BracketType(str, Enum):
    winners = "Winners"
    losers = "Losers"
    grand_final = "GrandFinal"


class Slot(str, Enum):
    home = "home"
    away = "away"


class RegistrationStatus(str, Enum):
    registered = "Registered"
    waitlisted = "Waitlisted"
    assigned = "Assigned"
    cancelled = "Cancelled"


class PaymentStatus(str, Enum):
    pending = "Pending"
    marked_paid = "MarkedPaid"
    verified = "Verified"


class EventStatus(str, Enum):
    draft = "Draft"
    published = "Published"
    cancelled = "Cancelled"


class Lifecycle(str, Enum):
    """Soft-delete state; deleted rows stay in place but drop out of queries."""

    active = "Active"
    deleted = "Deleted"


class Tiebreaker(str, Enum):
    head_to_head = "HeadToHead"
    goal_differential = "GoalDifferential"
    goals_scored = "GoalsScored"


DEFAULT_TIEBREAKER_ORDER = [
    Tiebreaker.head_to_head.value,
    Tiebreaker.goal_differential.value,
    Tiebreaker.goals_scored.value,
]

# Match statuses that count as "decided" for completion checks
FINISHED_MATCH_STATUSES = frozenset(
    {MatchStatus.completed, MatchStatus.forfeit, MatchStatus.bye, MatchStatus.cancelled}
)
