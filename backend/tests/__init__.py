# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from hockey.models.audit_log import TournamentAuditLog  # noqa: F401
from hockey.models.event import Event, EventRegistration  # noqa: F401
from hockey.models.match import TournamentMatch  # noqa: F401
from hockey.models.notification import Notification, UserDevice  # noqa: F401
from hockey.models.registration import TournamentRegistration  # noqa: F401
from hockey.models.team import TournamentTeam  # noqa: F401
from hockey.models.tournament import Tournament  # noqa: F401
