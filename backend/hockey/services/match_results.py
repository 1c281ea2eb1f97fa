"""
Match Result Processor: when a match is decided, record it and move teams downstream.

Only this module writes match outcomes, successor team slots and team
statistics. Every operation runs under the tournament lock in a single
transaction with its audit row; match notifications go out after commit.
"""
import logging
from typing import Dict, List, Optional

from sqlmodel import Session, select

from hockey.exceptions import (
    INVALID_MATCH_STATE,
    SLOT_CONFLICT,
    TEAMS_NOT_ASSIGNED,
    ConcurrencyError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from hockey.models.enums import (
    FINISHED_MATCH_STATUSES,
    BracketType,
    MatchStatus,
    Slot,
    TeamStatus,
    TournamentAction,
    TournamentFormat,
    TournamentStatus,
)
from hockey.models.match import TournamentMatch
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament
from hockey.services import audit_service
from hockey.services.locks import tournament_lock
from hockey.services.notification_service import PendingNotification, get_push_service
from hockey.services.standings_service import calculate_standings, competing_teams
from hockey.services.tournament_state_machine import apply_transition
from hockey.utils.guards import require_tournament

logger = logging.getLogger(__name__)

PLAYABLE_STATUSES = (MatchStatus.scheduled, MatchStatus.in_progress)
CHAMPIONSHIP_POSITIONS = ("Final", "GF", "GF-Reset")


def _load_match(session: Session, match_id: int) -> Optional[TournamentMatch]:
    """Row-locked read that bypasses the identity map so concurrent commits are visible."""
    return session.exec(
        select(TournamentMatch)
        .where(TournamentMatch.id == match_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).first()


def _load_team(session: Session, team_id: int) -> TournamentTeam:
    return session.exec(
        select(TournamentTeam).where(TournamentTeam.id == team_id).execution_options(populate_existing=True)
    ).one()


def _snapshot(match: TournamentMatch) -> Dict:
    return {
        "status": match.status,
        "home_score": match.home_score,
        "away_score": match.away_score,
        "winner_team_id": match.winner_team_id,
    }


def _require_playable(session: Session, tournament_id: int, match_id: int):
    tournament = require_tournament(session, tournament_id, for_update=True)
    match = _load_match(session, match_id)
    if not match or match.tournament_id != tournament_id:
        raise NotFoundError(f"Match {match_id} not found in tournament {tournament_id}")
    if tournament.status != TournamentStatus.in_progress:
        raise StateConflictError(f"Tournament is {tournament.status}; results can only be recorded while InProgress")
    if match.status not in PLAYABLE_STATUSES:
        raise StateConflictError(f"Match {match_id} is {match.status}", code=INVALID_MATCH_STATE)
    if match.home_team_id is None or match.away_team_id is None:
        raise StateConflictError(f"Match {match_id} does not have both teams assigned", code=TEAMS_NOT_ASSIGNED)
    return tournament, match


# =============================================================================
# Advancement
# =============================================================================

def live_feeder_count(session: Session, match: TournamentMatch) -> int:
    """
    Feeder edges that can still send a team here.

    One source can feed both slots (a two-team double-elimination grand final
    takes the winner and the loser of the same match), so winner and loser
    edges count separately. Empty byes send nobody; byes never send a loser.
    """
    feeders = session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == match.tournament_id,
            (TournamentMatch.next_match_id == match.id) | (TournamentMatch.loser_next_match_id == match.id),
        )
    ).all()
    edges = 0
    for feeder in feeders:
        if feeder.status == MatchStatus.bye:
            continue
        if feeder.next_match_id == match.id:
            edges += 1
        if feeder.loser_next_match_id == match.id and not feeder.is_bye:
            edges += 1
    return edges


def _seat_team(session: Session, dest_id: int, slot: str, team_id: int) -> List[TournamentMatch]:
    """
    Put ``team_id`` into a successor slot and resolve any resulting byes.

    Returns:
        Matches changed (the destination plus any auto-completed byes)

    Raises:
        ConcurrencyError (SlotConflict): the slot already holds a different team
    """
    dest = _load_match(session, dest_id)
    current = dest.team_in(slot)
    if current is not None and current != team_id:
        raise ConcurrencyError(
            f"Match {dest_id} {slot} slot already holds team {current}", code=SLOT_CONFLICT
        )
    if current == team_id:
        return []

    if slot == Slot.home:
        dest.home_team_id = team_id
    else:
        dest.away_team_id = team_id
    session.add(dest)
    session.flush()
    changed = [dest]

    # A match only one team can ever reach is a bye for that team
    seated = [t for t in (dest.home_team_id, dest.away_team_id) if t is not None]
    if dest.status == MatchStatus.scheduled and len(seated) == 1 and live_feeder_count(session, dest) == 1:
        dest.is_bye = True
        dest.status = MatchStatus.completed
        dest.winner_team_id = team_id
        session.add(dest)
        logger.info(f"Match {dest.id} ({dest.bracket_position}) auto-completed as a bye for team {team_id}")
        if dest.next_match_id:
            changed.extend(_seat_team(session, dest.next_match_id, dest.next_match_slot, team_id))
    return changed


def _find_reset(session: Session, tournament_id: int) -> Optional[TournamentMatch]:
    return session.exec(
        select(TournamentMatch).where(
            TournamentMatch.tournament_id == tournament_id,
            TournamentMatch.bracket_position == "GF-Reset",
        )
    ).first()


def _place(team: TournamentTeam, placement: int, status: TeamStatus) -> None:
    team.final_placement = placement
    team.status = status


def _advance_elimination(
    session: Session, tournament: Tournament, match: TournamentMatch, winner: TournamentTeam, loser: TournamentTeam
) -> None:
    position = match.bracket_position

    if position == "GF" and winner.id == match.away_team_id:
        reset = _find_reset(session, tournament.id)
        if reset is not None:
            # Losers champion handed the winners champion their first loss: play again
            _seat_team(session, reset.id, Slot.home, match.home_team_id)
            _seat_team(session, reset.id, Slot.away, match.away_team_id)
            return

    if position in CHAMPIONSHIP_POSITIONS:
        _place(winner, 1, TeamStatus.winner)
        _place(loser, 2, TeamStatus.eliminated)
        if position == "GF":
            reset = _find_reset(session, tournament.id)
            if reset is not None and reset.status == MatchStatus.scheduled:
                reset.status = MatchStatus.cancelled
                session.add(reset)
        return

    if position == "3rdPlace":
        _place(winner, 3, TeamStatus.eliminated)
        _place(loser, 4, TeamStatus.eliminated)
        return

    if match.next_match_id:
        _seat_team(session, match.next_match_id, match.next_match_slot, winner.id)
    if match.loser_next_match_id:
        _seat_team(session, match.loser_next_match_id, match.loser_next_match_slot, loser.id)
    else:
        loser.status = TeamStatus.eliminated
        # Losing the losers-bracket final is third place
        if match.bracket_type == BracketType.losers and match.next_match_id:
            nxt = session.get(TournamentMatch, match.next_match_id)
            if nxt is not None and nxt.bracket_position == "GF":
                loser.final_placement = 3


# =============================================================================
# Statistics and completion
# =============================================================================

def _apply_stats(
    tournament: Tournament,
    home: TournamentTeam,
    away: TournamentTeam,
    home_goals: int,
    away_goals: int,
    winner_id: Optional[int],
) -> None:
    for team, gf, ga in ((home, home_goals, away_goals), (away, away_goals, home_goals)):
        team.goals_for += gf
        team.goals_against += ga
        if winner_id is None:
            team.ties += 1
            team.points += tournament.points_tie
        elif winner_id == team.id:
            team.wins += 1
            team.points += tournament.points_win
        else:
            team.losses += 1
            team.points += tournament.points_loss


def _all_matches(session: Session, tournament_id: int) -> List[TournamentMatch]:
    return session.exec(
        select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)
    ).all()


def _finalize_round_robin(session: Session, tournament: Tournament, matches: List[TournamentMatch]) -> None:
    teams = competing_teams(session, tournament.id)
    table = calculate_standings(
        teams,
        matches,
        tournament.points_win,
        tournament.points_tie,
        tournament.points_loss,
        tournament.tiebreaker_order,
        tournament.playoff_teams_count,
    )
    by_id = {t.id: t for t in teams}
    for row in table["standings"]:
        team = by_id[row["team_id"]]
        team.final_placement = row["rank"]
        team.status = TeamStatus.winner if row["rank"] == 1 else TeamStatus.eliminated
        session.add(team)


def _maybe_complete(session: Session, tournament: Tournament, actor_id: int) -> List[PendingNotification]:
    """Transition to Completed once the championship is decided and nothing is left to play."""
    session.flush()
    matches = _all_matches(session, tournament.id)
    if any(m.status not in FINISHED_MATCH_STATUSES for m in matches):
        return []

    if tournament.format == TournamentFormat.round_robin:
        _finalize_round_robin(session, tournament, matches)
    else:
        champion = session.exec(
            select(TournamentTeam.id).where(
                TournamentTeam.tournament_id == tournament.id,
                TournamentTeam.final_placement == 1,
            )
        ).first()
        if champion is None:
            return []

    logger.info(f"Tournament {tournament.id}: all matches decided, completing")
    return apply_transition(session, tournament, TournamentAction.complete, actor_id, {"reason": "bracket decided"})


def _match_notifications(
    match: TournamentMatch, home: TournamentTeam, away: TournamentTeam
) -> List[PendingNotification]:
    if match.status == MatchStatus.forfeit:
        body = f"{home.name} vs {away.name}: forfeit"
    else:
        body = f"{home.name} {match.home_score} - {match.away_score} {away.name}"
    title = f"Result: {match.bracket_position or 'Match'}"
    data = {"tournament_id": match.tournament_id, "match_id": match.id, "winner_team_id": match.winner_team_id}
    return [
        PendingNotification(user_id=t.captain_user_id, type="match_completed", title=title, body=body, data=data)
        for t in (home, away)
        if t.captain_user_id is not None
    ]


def _complete(
    session: Session,
    tournament_id: int,
    match_id: int,
    actor_id: int,
    audit_action: str,
    decide,
) -> TournamentMatch:
    """Shared locking/transaction/audit frame for score reports and forfeits."""
    with tournament_lock(tournament_id):
        try:
            tournament, match = _require_playable(session, tournament_id, match_id)
            home = _load_team(session, match.home_team_id)
            away = _load_team(session, match.away_team_id)
            old = _snapshot(match)

            decide(tournament, match, home, away)
            session.add_all([match, home, away])

            if tournament.is_elimination and match.winner_team_id is not None:
                winner, loser = (home, away) if match.winner_team_id == home.id else (away, home)
                _advance_elimination(session, tournament, match, winner, loser)
                session.add_all([winner, loser])

            audit_service.record(
                session,
                tournament_id,
                actor_id,
                audit_action,
                entity_type="TournamentMatch",
                entity_id=match.id,
                old_value=old,
                new_value=_snapshot(match),
            )
            pending = _match_notifications(match, home, away)
            pending.extend(_maybe_complete(session, tournament, actor_id))
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(match)

    get_push_service().dispatch_all(session, pending)
    return match


def report_match_result(
    session: Session,
    tournament_id: int,
    match_id: int,
    actor_id: int,
    home_score: int,
    away_score: int,
    overtime_winner_team_id: Optional[int] = None,
) -> TournamentMatch:
    """
    Record a final score and propagate the outcome.

    Returns:
        The updated match

    Raises:
        NotFoundError: tournament or match missing
        StateConflictError: tournament not InProgress, match already decided
            (InvalidMatchState), or a team slot empty (TeamsNotAssigned)
        ValidationError: negative scores, elimination tie without a valid overtime winner
        ConcurrencyError: lock timeout, or a successor slot holds another team (SlotConflict)

    Guarantees:
        - Winner seated in next_match_slot, loser in loser_next_match_slot
        - One EnterScore audit row; statistics counted exactly once
    """
    if home_score is None or away_score is None or home_score < 0 or away_score < 0:
        raise ValidationError("Scores must be non-negative integers")

    def decide(tournament: Tournament, match: TournamentMatch, home: TournamentTeam, away: TournamentTeam):
        if home_score > away_score:
            winner_id = home.id
        elif away_score > home_score:
            winner_id = away.id
        elif tournament.is_elimination:
            if overtime_winner_team_id not in (home.id, away.id):
                raise ValidationError("Tied elimination match needs overtime_winner_team_id set to one of its teams")
            winner_id = overtime_winner_team_id
        else:
            winner_id = None

        match.home_score = home_score
        match.away_score = away_score
        match.winner_team_id = winner_id
        match.status = MatchStatus.completed
        _apply_stats(tournament, home, away, home_score, away_score, winner_id)

    match = _complete(session, tournament_id, match_id, actor_id, "EnterScore", decide)
    logger.info(f"Match {match_id} final {home_score}-{away_score}, winner {match.winner_team_id}")
    return match


def forfeit_match(
    session: Session,
    tournament_id: int,
    match_id: int,
    actor_id: int,
    forfeiting_team_id: int,
    reason: Optional[str] = None,
) -> TournamentMatch:
    """Award the match to the opponent of ``forfeiting_team_id``; counted as W/L with no goals."""

    def decide(tournament: Tournament, match: TournamentMatch, home: TournamentTeam, away: TournamentTeam):
        if forfeiting_team_id not in (home.id, away.id):
            raise ValidationError(f"Team {forfeiting_team_id} is not playing in match {match.id}")
        winner_id = away.id if forfeiting_team_id == home.id else home.id
        match.winner_team_id = winner_id
        match.status = MatchStatus.forfeit
        match.forfeit_reason = reason
        _apply_stats(tournament, home, away, 0, 0, winner_id)

    match = _complete(session, tournament_id, match_id, actor_id, "Forfeit", decide)
    logger.info(f"Match {match_id} forfeited by team {forfeiting_team_id}")
    return match


def start_match(session: Session, tournament_id: int, match_id: int, actor_id: int) -> TournamentMatch:
    """Scheduled -> InProgress."""
    with tournament_lock(tournament_id):
        try:
            _, match = _require_playable(session, tournament_id, match_id)
            if match.status != MatchStatus.scheduled:
                raise StateConflictError(f"Match {match_id} is {match.status}", code=INVALID_MATCH_STATE)
            old = _snapshot(match)
            match.status = MatchStatus.in_progress
            session.add(match)
            audit_service.record(
                session,
                tournament_id,
                actor_id,
                "StartMatch",
                entity_type="TournamentMatch",
                entity_id=match.id,
                old_value=old,
                new_value=_snapshot(match),
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(match)
    return match
