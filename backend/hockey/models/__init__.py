from hockey.models.audit_log import TournamentAuditLog
from hockey.models.event import Event, EventRegistration
from hockey.models.match import TournamentMatch
from hockey.models.notification import Notification, UserDevice
from hockey.models.registration import TournamentRegistration
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament

__all__ = [
    "Tournament",
    "TournamentTeam",
    "TournamentMatch",
    "TournamentRegistration",
    "TournamentAuditLog",
    "Event",
    "EventRegistration",
    "Notification",
    "UserDevice",
]
