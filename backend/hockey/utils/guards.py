"""
Lookup guards shared by services.

Each guard loads an entity (optionally locking its row) and raises
NotFoundError when it is missing, soft-deleted, or belongs to another parent.
"""

from sqlmodel import Session, select

from hockey.exceptions import NotFoundError
from hockey.models.enums import Lifecycle
from hockey.models.event import Event
from hockey.models.match import TournamentMatch
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament


def require_tournament(session: Session, tournament_id: int, for_update: bool = False) -> Tournament:
    """
    Load a live tournament.

    Args:
        session: Database session
        tournament_id: Tournament ID
        for_update: Take a row lock (no-op on SQLite) and refresh from the database

    Raises:
        NotFoundError: Tournament missing or deleted
    """
    stmt = select(Tournament).where(Tournament.id == tournament_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    tournament = session.exec(stmt).first()
    if not tournament or tournament.lifecycle == Lifecycle.deleted:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


def require_event(session: Session, event_id: int, for_update: bool = False) -> Event:
    stmt = select(Event).where(Event.id == event_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    event = session.exec(stmt).first()
    if not event or event.lifecycle == Lifecycle.deleted:
        raise NotFoundError(f"Event {event_id} not found")
    return event


def require_match(session: Session, tournament_id: int, match_id: int) -> TournamentMatch:
    match = session.get(TournamentMatch, match_id)
    if not match or match.tournament_id != tournament_id:
        raise NotFoundError(f"Match {match_id} not found in tournament {tournament_id}")
    return match


def require_team(session: Session, tournament_id: int, team_id: int) -> TournamentTeam:
    team = session.get(TournamentTeam, team_id)
    if not team or team.tournament_id != tournament_id:
        raise NotFoundError(f"Team {team_id} not found in tournament {tournament_id}")
    return team
