"""Row builders and bracket drivers shared by the test modules."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List

from sqlmodel import Session, select

from hockey.models.enums import MatchStatus, TournamentAction, TournamentFormat, TournamentStatus
from hockey.models.event import Event
from hockey.models.match import TournamentMatch
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament
from hockey.services import bracket_generator, match_results, tournament_state_machine

ORGANIZER_ID = 100
START = datetime(2026, 11, 7, 9, 0)


def make_tournament(
    session: Session,
    format: TournamentFormat = TournamentFormat.single_elimination,
    status: TournamentStatus = TournamentStatus.open,
    **overrides,
) -> Tournament:
    values = dict(
        name="Winter Classic",
        creator_id=ORGANIZER_ID,
        format=format,
        status=status,
        start_date=START,
        end_date=START + timedelta(days=1),
        max_teams=16,
    )
    values.update(overrides)
    tournament = Tournament(**values)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


def add_teams(session: Session, tournament: Tournament, count: int, seeded: bool = True, captains: bool = False) -> List[TournamentTeam]:
    teams = []
    for i in range(1, count + 1):
        team = TournamentTeam(
            tournament_id=tournament.id,
            name=f"Team {i}",
            seed=i if seeded else None,
            captain_user_id=1000 + i if captains else None,
        )
        session.add(team)
        teams.append(team)
    session.commit()
    for team in teams:
        session.refresh(team)
    return teams


def make_event(session: Session, max_players: int = 2, cost: Decimal = Decimal("0"), **overrides) -> Event:
    values = dict(
        creator_id=ORGANIZER_ID,
        name="Tuesday Skate",
        event_date=START,
        venue="North Rink",
        max_players=max_players,
        cost=cost,
    )
    values.update(overrides)
    event = Event(**values)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


def start_bracket(session: Session, tournament: Tournament) -> List[TournamentMatch]:
    """Generate the bracket and move the tournament to InProgress."""
    matches = bracket_generator.generate_bracket(session, tournament.id, ORGANIZER_ID)
    tournament_state_machine.transition_tournament(session, tournament.id, TournamentAction.start, ORGANIZER_ID)
    return matches


def get_match(session: Session, tournament_id: int, position: str) -> TournamentMatch:
    session.expire_all()
    return session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == tournament_id,
            TournamentMatch.bracket_position == position,
        )
    ).one()


def playable_matches(session: Session, tournament_id: int) -> List[TournamentMatch]:
    session.expire_all()
    matches = session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.tournament_id == tournament_id)
        .order_by(TournamentMatch.id)
    ).all()
    return [
        m
        for m in matches
        if m.status == MatchStatus.scheduled and m.home_team_id is not None and m.away_team_id is not None
    ]


def home_wins(match: TournamentMatch) -> str:
    return "home"


def play_out(session: Session, tournament_id: int, pick: Callable[[TournamentMatch], str] = home_wins) -> int:
    """Report every playable match (3-1 to the picked side) until none remain; returns matches played."""
    played = 0
    for _ in range(200):
        ready = playable_matches(session, tournament_id)
        if not ready:
            return played
        match = ready[0]
        home_score, away_score = (3, 1) if pick(match) == "home" else (1, 3)
        match_results.report_match_result(session, tournament_id, match.id, ORGANIZER_ID, home_score, away_score)
        played += 1
    raise AssertionError("bracket never finished")


def team_by_seed(session: Session, tournament_id: int) -> dict:
    session.expire_all()
    teams = session.exec(select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)).all()
    return {t.seed: t for t in teams}
