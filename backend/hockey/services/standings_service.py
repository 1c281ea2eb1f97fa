"""
Standings Calculator (round robin).

calculate_standings is pure: it reads team and match objects and returns
ordered rows. compute_standings loads a tournament, runs the calculation and
writes the recomputed counters back onto the teams.
"""
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from sqlmodel import Session, select

from hockey.models.enums import DEFAULT_TIEBREAKER_ORDER, MatchStatus, TeamStatus, Tiebreaker
from hockey.models.match import TournamentMatch
from hockey.models.team import TournamentTeam
from hockey.services.locks import tournament_lock
from hockey.utils.guards import require_tournament

logger = logging.getLogger(__name__)

COUNTED_STATUSES = (MatchStatus.completed, MatchStatus.forfeit)


def competing_teams(session: Session, tournament_id: int) -> List[TournamentTeam]:
    """Teams that hold a bracket spot; the team waitlist never appears in a table."""
    return session.exec(
        select(TournamentTeam)
        .where(
            TournamentTeam.tournament_id == tournament_id,
            TournamentTeam.status != TeamStatus.waitlisted,
        )
        .order_by(TournamentTeam.id)
    ).all()


@dataclass
class _Record:
    team_id: int
    name: str
    seed: Optional[int]
    wins: int = 0
    losses: int = 0
    ties: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    @property
    def games_played(self) -> int:
        return self.wins + self.losses + self.ties

    @property
    def goal_differential(self) -> int:
        return self.goals_for - self.goals_against


def _counted(matches: Iterable[TournamentMatch]) -> List[TournamentMatch]:
    return [
        m
        for m in matches
        if m.status in COUNTED_STATUSES
        and not m.is_bye
        and m.home_team_id is not None
        and m.away_team_id is not None
    ]


def _goals(match: TournamentMatch):
    # Forfeits count the result but no goals
    if match.status == MatchStatus.forfeit:
        return 0, 0
    return match.home_score or 0, match.away_score or 0


def _outcome_points(match: TournamentMatch, team_id: int, weights) -> int:
    win, tie, loss = weights
    if match.winner_team_id is None:
        return tie
    return win if match.winner_team_id == team_id else loss


def _head_to_head_points(group: Sequence[_Record], matches: List[TournamentMatch], weights) -> Dict[int, int]:
    ids = {r.team_id for r in group}
    points = {tid: 0 for tid in ids}
    for m in matches:
        if m.home_team_id in ids and m.away_team_id in ids:
            points[m.home_team_id] += _outcome_points(m, m.home_team_id, weights)
            points[m.away_team_id] += _outcome_points(m, m.away_team_id, weights)
    return points


def _split(group: List[_Record], criteria: List[str], matches: List[TournamentMatch], weights) -> List[List[_Record]]:
    """Order a points-tied group by the remaining criteria; returns buckets still tied."""
    if len(group) <= 1 or not criteria:
        return [group]
    criterion, rest = criteria[0], criteria[1:]

    if criterion == Tiebreaker.head_to_head:
        h2h = _head_to_head_points(group, matches, weights)
        key = lambda r: h2h[r.team_id]  # noqa: E731
    elif criterion == Tiebreaker.goal_differential:
        key = lambda r: r.goal_differential  # noqa: E731
    elif criterion == Tiebreaker.goals_scored:
        key = lambda r: r.goals_for  # noqa: E731
    else:
        logger.warning(f"Ignoring unknown tiebreaker {criterion!r}")
        return _split(group, rest, matches, weights)

    ordered = sorted(group, key=key, reverse=True)  # stable: equal keys keep input order
    buckets: List[List[_Record]] = []
    for record in ordered:
        if buckets and key(buckets[-1][0]) == key(record):
            buckets[-1].append(record)
        else:
            buckets.append([record])

    result: List[List[_Record]] = []
    for bucket in buckets:
        result.extend(_split(bucket, rest, matches, weights))
    return result


def calculate_standings(
    teams: Sequence[TournamentTeam],
    matches: Iterable[TournamentMatch],
    points_win: int = 3,
    points_tie: int = 1,
    points_loss: int = 0,
    tiebreaker_order: Optional[List[str]] = None,
    playoff_teams_count: Optional[int] = None,
) -> Dict:
    """
    Rank teams from their Completed / Forfeit matches.

    Sort: points, then each configured tiebreaker in order (head-to-head is
    recomputed inside whichever group is still tied). Unresolved ties keep
    input order: seed, then id.

    Returns:
        Dict with:
        - standings: rows of rank, team_id, name, seed, games_played, wins,
          losses, ties, points, goals_for, goals_against, goal_differential,
          is_playoff_bound
        - tied_groups: team id lists still tied after every criterion
    """
    weights = (points_win, points_tie, points_loss)
    criteria = list(tiebreaker_order if tiebreaker_order is not None else DEFAULT_TIEBREAKER_ORDER)
    ordered_teams = sorted(teams, key=lambda t: (t.seed is None, t.seed or 0, t.id))
    records = {t.id: _Record(team_id=t.id, name=t.name, seed=t.seed) for t in ordered_teams}
    counted = [m for m in _counted(matches) if m.home_team_id in records and m.away_team_id in records]

    for m in counted:
        home, away = records[m.home_team_id], records[m.away_team_id]
        home_goals, away_goals = _goals(m)
        home.goals_for += home_goals
        home.goals_against += away_goals
        away.goals_for += away_goals
        away.goals_against += home_goals
        for rec in (home, away):
            if m.winner_team_id is None:
                rec.ties += 1
            elif m.winner_team_id == rec.team_id:
                rec.wins += 1
            else:
                rec.losses += 1

    for rec in records.values():
        rec.points = rec.wins * points_win + rec.ties * points_tie + rec.losses * points_loss

    by_points = sorted(records.values(), key=lambda r: r.points, reverse=True)
    point_groups: List[List[_Record]] = []
    for rec in by_points:
        if point_groups and point_groups[-1][0].points == rec.points:
            point_groups[-1].append(rec)
        else:
            point_groups.append([rec])

    buckets: List[List[_Record]] = []
    for group in point_groups:
        buckets.extend(_split(group, criteria, counted, weights))

    rows = []
    rank = 0
    for bucket in buckets:
        for rec in bucket:
            rank += 1
            rows.append(
                {
                    "rank": rank,
                    "team_id": rec.team_id,
                    "name": rec.name,
                    "seed": rec.seed,
                    "games_played": rec.games_played,
                    "wins": rec.wins,
                    "losses": rec.losses,
                    "ties": rec.ties,
                    "points": rec.points,
                    "goals_for": rec.goals_for,
                    "goals_against": rec.goals_against,
                    "goal_differential": rec.goal_differential,
                    "is_playoff_bound": bool(playoff_teams_count) and rank <= playoff_teams_count,
                }
            )

    return {
        "standings": rows,
        "tied_groups": [[r.team_id for r in bucket] for bucket in buckets if len(bucket) > 1],
    }


def compute_standings(session: Session, tournament_id: int) -> Dict:
    """Load a tournament, rank its teams and persist the recomputed counters."""
    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id)
            teams = competing_teams(session, tournament_id)
            matches = session.exec(
                select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)
            ).all()
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
                team.wins, team.losses, team.ties = row["wins"], row["losses"], row["ties"]
                team.goals_for, team.goals_against = row["goals_for"], row["goals_against"]
                team.points = row["points"]
                session.add(team)
            session.commit()
        except Exception:
            session.rollback()
            raise

    table["tournament_id"] = tournament_id
    return table
