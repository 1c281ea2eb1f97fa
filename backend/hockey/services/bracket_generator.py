"""
Bracket generator: builds the initial match tree for a tournament.

Planning is pure: ``plan_bracket`` works on seed numbers (1 = top seed) and
returns a ``BracketPlan`` whose matches reference each other by local key.
Persistence (``generate_bracket``) maps seeds onto teams, inserts the rows,
then resolves keys into successor ids.

Winner slot convention: a match with an odd match_number feeds the home slot
of its successor, an even match_number feeds the away slot. The slot is
stored on the source match (next_match_slot / loser_next_match_slot).
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlmodel import Session, select

from hockey.exceptions import (
    INSUFFICIENT_TEAMS,
    INVALID_SEEDING,
    StateConflictError,
    ValidationError,
)
from hockey.models.enums import (
    BracketType,
    MatchStatus,
    Slot,
    TeamStatus,
    TournamentFormat,
    TournamentStatus,
)
from hockey.models.match import TournamentMatch
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament
from hockey.services import audit_service
from hockey.services.locks import tournament_lock
from hockey.utils.guards import require_tournament

logger = logging.getLogger(__name__)

# Bracket (re)generation is only allowed before play starts
GENERATION_STATUSES = (TournamentStatus.draft, TournamentStatus.open, TournamentStatus.registration_closed)
BRACKET_TEAM_STATUSES = (TeamStatus.registered, TeamStatus.active)


@dataclass
class PlannedMatch:
    key: str
    round: int
    match_number: int
    bracket_position: str
    bracket_type: Optional[BracketType] = None
    home_seed: Optional[int] = None
    away_seed: Optional[int] = None
    is_bye: bool = False
    status: MatchStatus = MatchStatus.scheduled
    winner_seed: Optional[int] = None
    next_key: Optional[str] = None
    next_slot: Optional[Slot] = None
    loser_next_key: Optional[str] = None
    loser_next_slot: Optional[Slot] = None


@dataclass
class BracketPlan:
    """Ordered match arena. Successors always appear after their sources."""

    format: TournamentFormat
    team_count: int
    bracket_size: int
    matches: List[PlannedMatch] = field(default_factory=list)

    def by_key(self) -> Dict[str, PlannedMatch]:
        return {m.key: m for m in self.matches}

    def add(self, match: PlannedMatch) -> PlannedMatch:
        self.matches.append(match)
        return match


# =============================================================================
# Pure planning
# =============================================================================

def next_power_of_two(n: int) -> int:
    size = 1
    while size < n:
        size *= 2
    return size


def bracket_order(bracket_size: int) -> List[int]:
    """
    Standard seed order for a power-of-two bracket.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6] -> 1v8, 4v5, 2v7, 3v6, so seeds 1
    and 2 can only meet in the final.
    """
    if bracket_size <= 2:
        return [1, 2][:bracket_size]
    upper = bracket_order(bracket_size // 2)
    result: List[int] = []
    for seed in upper:
        result.extend([seed, bracket_size + 1 - seed])
    return result


def slot_for(match_number: int) -> Slot:
    return Slot.home if match_number % 2 == 1 else Slot.away


def _link(source: PlannedMatch, target: PlannedMatch, slot: Slot, loser: bool = False) -> None:
    if loser:
        source.loser_next_key, source.loser_next_slot = target.key, slot
    else:
        source.next_key, source.next_slot = target.key, slot


def _place(target: PlannedMatch, slot: Slot, seed: int) -> None:
    if slot == Slot.home:
        target.home_seed = seed
    else:
        target.away_seed = seed


def _elimination_label(round_num: int, total_rounds: int, match_number: int) -> str:
    from_end = total_rounds - round_num
    if from_end == 0:
        return "Final"
    if from_end == 1:
        return f"SF{match_number}"
    if from_end == 2:
        return f"QF{match_number}"
    return f"R{round_num}-M{match_number}"


def _plan_winners_tree(
    plan: BracketPlan,
    team_count: int,
    bracket_size: int,
    bracket_type: Optional[BracketType],
) -> List[List[PlannedMatch]]:
    """
    Add the winners tree to ``plan`` and return it as rounds of matches.

    Byes go to the top ``bracket_size - team_count`` seeds; a bye match is
    complete from the start and its winner is already seated in round 2.
    """
    total_rounds = int(math.log2(bracket_size))
    order = bracket_order(bracket_size)
    double = bracket_type == BracketType.winners
    rounds: List[List[PlannedMatch]] = []

    for r in range(1, total_rounds + 1):
        count = bracket_size // (2 ** r)
        round_matches = []
        for m in range(1, count + 1):
            label = f"W-R{r}-M{m}" if double else _elimination_label(r, total_rounds, m)
            round_matches.append(
                plan.add(PlannedMatch(key=f"W{r}-{m}", round=r, match_number=m, bracket_position=label, bracket_type=bracket_type))
            )
        rounds.append(round_matches)

    for r, round_matches in enumerate(rounds[:-1]):
        for match in round_matches:
            _link(match, rounds[r + 1][(match.match_number - 1) // 2], slot_for(match.match_number))

    for i, match in enumerate(rounds[0]):
        home, away = order[2 * i], order[2 * i + 1]
        match.home_seed = home if home <= team_count else None
        match.away_seed = away if away <= team_count else None
        if match.away_seed is None:
            match.is_bye = True
            match.status = MatchStatus.completed
            match.winner_seed = match.home_seed
            if match.next_key:
                _place(rounds[1][(match.match_number - 1) // 2], match.next_slot, match.winner_seed)

    return rounds


def plan_single_elimination(team_count: int, third_place_match: bool = False) -> BracketPlan:
    bracket_size = next_power_of_two(team_count)
    plan = BracketPlan(TournamentFormat.single_elimination, team_count, bracket_size)
    rounds = _plan_winners_tree(plan, team_count, bracket_size, None)

    # Semifinal losers play for third; with three teams there is only one real semifinal
    if third_place_match and team_count >= 4:
        final = rounds[-1][0]
        third = plan.add(PlannedMatch(key="3rd", round=final.round, match_number=2, bracket_position="3rdPlace"))
        for sf in rounds[-2]:
            _link(sf, third, slot_for(sf.match_number), loser=True)
    return plan


def plan_double_elimination(team_count: int, bracket_reset: bool = True) -> BracketPlan:
    """
    Winners tree, losers tree, grand final (and optional reset).

    Losers rounds for k = log2(size): 2(k-1) rounds.
      - L1 pairs the W1 losers (W1-M1 v W1-M2, ...)
      - L(2m) seats the W(m+1) losers in the away slot against the L(2m-1)
        winners; drop-in order is reversed for odd m and straight for even m
      - L(2m+1) pairs the L(2m) winners
    A losers match that no live team can ever reach is an empty bye.
    """
    bracket_size = next_power_of_two(team_count)
    plan = BracketPlan(TournamentFormat.double_elimination, team_count, bracket_size)
    winners = _plan_winners_tree(plan, team_count, bracket_size, BracketType.winners)
    k = len(winners)

    gf = PlannedMatch(key="GF", round=1, match_number=1, bracket_position="GF", bracket_type=BracketType.grand_final)
    w_final = winners[-1][0]

    if k == 1:
        plan.add(gf)
        _link(w_final, gf, Slot.home)
        _link(w_final, gf, Slot.away, loser=True)
    else:
        losers: List[List[PlannedMatch]] = []

        def add_losers_round(r: int, count: int) -> List[PlannedMatch]:
            matches = [
                plan.add(
                    PlannedMatch(key=f"L{r}-{m}", round=r, match_number=m, bracket_position=f"L-R{r}-M{m}", bracket_type=BracketType.losers)
                )
                for m in range(1, count + 1)
            ]
            losers.append(matches)
            return matches

        l1 = add_losers_round(1, bracket_size // 4)
        for w in winners[0]:
            if not w.is_bye:
                _link(w, l1[(w.match_number - 1) // 2], slot_for(w.match_number), loser=True)

        for m in range(1, k):
            prev = losers[-1]
            drop_round = winners[m]  # W(m+1)
            even = add_losers_round(2 * m, len(drop_round))
            for src, target in zip(prev, even):
                _link(src, target, Slot.home)
            drops = list(reversed(drop_round)) if m % 2 == 1 else drop_round
            for src, target in zip(drops, even):
                _link(src, target, Slot.away, loser=True)
            if m < k - 1:
                odd = add_losers_round(2 * m + 1, len(even) // 2)
                for src in even:
                    _link(src, odd[(src.match_number - 1) // 2], slot_for(src.match_number))

        plan.add(gf)
        _link(w_final, gf, Slot.home)
        _link(losers[-1][0], gf, Slot.away)
        _mark_empty_byes(plan)

    if bracket_reset:
        plan.add(
            PlannedMatch(key="GF-Reset", round=2, match_number=1, bracket_position="GF-Reset", bracket_type=BracketType.grand_final)
        )
    return plan


def _mark_empty_byes(plan: BracketPlan) -> None:
    """Losers matches with no live feeder become empty byes (plan order is topological)."""
    live_feeders: Dict[str, int] = {}
    for match in plan.matches:
        empty = match.bracket_type == BracketType.losers and live_feeders.get(match.key, 0) == 0
        if empty:
            match.is_bye = True
            match.status = MatchStatus.bye
            continue
        if match.next_key:
            live_feeders[match.next_key] = live_feeders.get(match.next_key, 0) + 1
        if match.loser_next_key and not match.is_bye:
            live_feeders[match.loser_next_key] = live_feeders.get(match.loser_next_key, 0) + 1


def plan_round_robin(team_count: int) -> BracketPlan:
    """
    Circle method: fix seed 1, rotate the rest. Odd counts add a phantom seat
    so one team rests each round. Home/away flips on even rounds.
    """
    n2 = team_count + 1 if team_count % 2 == 1 else team_count
    plan = BracketPlan(TournamentFormat.round_robin, team_count, n2)
    positions: List[Optional[int]] = list(range(1, team_count + 1)) + ([None] if n2 > team_count else [])
    half = n2 // 2

    for round_num in range(1, n2):
        seq = 0
        for i in range(half):
            a, b = positions[i], positions[n2 - 1 - i]
            if a is None or b is None:
                continue
            seq += 1
            home, away = (a, b) if round_num % 2 == 1 else (b, a)
            plan.add(
                PlannedMatch(
                    key=f"RR{round_num}-{seq}",
                    round=round_num,
                    match_number=seq,
                    bracket_position=f"RR-R{round_num}-M{seq}",
                    home_seed=home,
                    away_seed=away,
                )
            )
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return plan


def plan_bracket(
    format: TournamentFormat,
    team_count: int,
    third_place_match: bool = False,
    bracket_reset: bool = True,
) -> BracketPlan:
    if team_count < 2:
        raise ValidationError(f"At least 2 teams are required, got {team_count}", code=INSUFFICIENT_TEAMS)
    if format == TournamentFormat.single_elimination:
        return plan_single_elimination(team_count, third_place_match)
    if format == TournamentFormat.double_elimination:
        return plan_double_elimination(team_count, bracket_reset)
    if format == TournamentFormat.round_robin:
        return plan_round_robin(team_count)
    raise ValidationError(f"Unsupported tournament format: {format}")


# =============================================================================
# Seeding
# =============================================================================

def assign_seeds(teams: List[TournamentTeam]) -> List[TournamentTeam]:
    """
    Give every team a seed and return the teams ordered by seed.

    Seeds already set must be distinct and within 1..N; unseeded teams take
    the remaining numbers in input order.
    """
    n = len(teams)
    taken = [t.seed for t in teams if t.seed is not None]
    if len(set(taken)) != len(taken):
        raise ValidationError("Duplicate seeds", code=INVALID_SEEDING)
    out_of_range = [s for s in taken if s < 1 or s > n]
    if out_of_range:
        raise ValidationError(f"Seeds must be between 1 and {n}, got {sorted(out_of_range)}", code=INVALID_SEEDING)

    free = iter(s for s in range(1, n + 1) if s not in set(taken))
    for team in teams:
        if team.seed is None:
            team.seed = next(free)
    return sorted(teams, key=lambda t: t.seed)


# =============================================================================
# Persistence
# =============================================================================

def _bracket_teams(session: Session, tournament_id: int) -> List[TournamentTeam]:
    teams = session.exec(
        select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)
    ).all()
    eligible = [t for t in teams if t.status in BRACKET_TEAM_STATUSES]
    return sorted(eligible, key=lambda t: (t.seed is None, t.seed or 0, t.created_at, t.id))


def persist_plan(
    session: Session, tournament: Tournament, plan: BracketPlan, seeded: List[TournamentTeam]
) -> List[TournamentMatch]:
    """Insert the planned matches, then resolve successor keys into ids."""
    team_by_seed = {t.seed: t for t in seeded}

    def team_id(seed: Optional[int]) -> Optional[int]:
        return team_by_seed[seed].id if seed is not None else None

    rows: Dict[str, TournamentMatch] = {}
    for pm in plan.matches:
        row = TournamentMatch(
            tournament_id=tournament.id,
            round=pm.round,
            match_number=pm.match_number,
            bracket_position=pm.bracket_position,
            bracket_type=pm.bracket_type,
            home_team_id=team_id(pm.home_seed),
            away_team_id=team_id(pm.away_seed),
            is_bye=pm.is_bye,
            status=pm.status,
            winner_team_id=team_id(pm.winner_seed),
            venue=tournament.venue,
        )
        session.add(row)
        rows[pm.key] = row
    session.flush()

    for pm in plan.matches:
        row = rows[pm.key]
        if pm.next_key:
            row.next_match_id = rows[pm.next_key].id
            row.next_match_slot = pm.next_slot
        if pm.loser_next_key:
            row.loser_next_match_id = rows[pm.loser_next_key].id
            row.loser_next_match_slot = pm.loser_next_slot
        session.add(row)

    for pm in plan.matches:
        if pm.is_bye and pm.winner_seed is not None:
            team = team_by_seed[pm.winner_seed]
            team.has_bye = True
            session.add(team)

    return [rows[pm.key] for pm in plan.matches]


def generate_bracket(session: Session, tournament_id: int, actor_id: int) -> List[TournamentMatch]:
    """
    Build and persist the match tree for a tournament.

    Returns:
        The created matches in plan order (rounds ascending; winners, losers, grand final)

    Raises:
        NotFoundError: tournament missing
        StateConflictError: tournament already started, or a bracket already exists
        ValidationError: fewer than 2 teams (InsufficientTeams) or bad seeds (InvalidSeeding)

    Guarantees:
        - All-or-nothing: matches, seeds and the audit entry commit together
        - Deterministic for a given seeding
    """
    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id, for_update=True)
            if tournament.status not in GENERATION_STATUSES:
                raise StateConflictError(
                    f"Cannot generate a bracket for a tournament in status {tournament.status}"
                )
            existing = session.exec(
                select(TournamentMatch.id).where(TournamentMatch.tournament_id == tournament_id)
            ).first()
            if existing is not None:
                raise StateConflictError("Bracket already generated; clear it first")

            teams = _bracket_teams(session, tournament_id)
            if len(teams) < 2:
                raise ValidationError(f"At least 2 teams are required, got {len(teams)}", code=INSUFFICIENT_TEAMS)
            seeded = assign_seeds(teams)
            for team in seeded:
                session.add(team)

            plan = plan_bracket(
                TournamentFormat(tournament.format),
                len(seeded),
                third_place_match=tournament.third_place_match,
                bracket_reset=tournament.bracket_reset,
            )
            matches = persist_plan(session, tournament, plan, seeded)

            audit_service.record(
                session,
                tournament_id,
                actor_id,
                "GenerateBracket",
                details={"format": plan.format.value, "team_count": len(seeded), "match_count": len(matches)},
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

    for match in matches:
        session.refresh(match)
    logger.info(
        f"Generated {plan.format.value} bracket for tournament {tournament_id}: "
        f"{len(seeded)} teams, {len(matches)} matches"
    )
    return matches


def clear_bracket(session: Session, tournament_id: int, actor_id: int) -> int:
    """
    Delete every match of a tournament that has not started and reset team stats.

    Returns:
        Number of matches deleted
    """
    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id, for_update=True)
            if tournament.status not in GENERATION_STATUSES:
                raise StateConflictError(f"Cannot clear the bracket of a tournament in status {tournament.status}")

            matches = session.exec(
                select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)
            ).all()
            # Drop self-references first so deletes never trip the FK
            for match in matches:
                match.next_match_id = None
                match.loser_next_match_id = None
                session.add(match)
            session.flush()
            for match in matches:
                session.delete(match)

            teams = session.exec(
                select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)
            ).all()
            for team in teams:
                team.has_bye = False
                team.final_placement = None
                team.wins = team.losses = team.ties = team.points = 0
                team.goals_for = team.goals_against = 0
                session.add(team)

            audit_service.record(
                session, tournament_id, actor_id, "ClearBracket", details={"match_count": len(matches)}
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(f"Cleared {len(matches)} matches for tournament {tournament_id}")
    return len(matches)


def list_matches(session: Session, tournament_id: int) -> List[TournamentMatch]:
    require_tournament(session, tournament_id)
    matches = session.exec(
        select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)
    ).all()
    type_order = {None: 0, BracketType.winners.value: 0, BracketType.losers.value: 1, BracketType.grand_final.value: 2}
    return sorted(matches, key=lambda m: (type_order.get(m.bracket_type, 0), m.round, m.match_number))
