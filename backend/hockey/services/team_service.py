"""
Tournament team roster: adding teams, organizer seeding before the bracket
exists, and placing individual registrants onto teams (OrganizerAssigned).
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from hockey.exceptions import INVALID_SEEDING, NotFoundError, StateConflictError, ValidationError
from hockey.models.enums import RegistrationStatus, TeamStatus
from hockey.models.match import TournamentMatch
from hockey.models.registration import TournamentRegistration
from hockey.models.team import TournamentTeam
from hockey.services import audit_service
from hockey.services.bracket_generator import BRACKET_TEAM_STATUSES, GENERATION_STATUSES
from hockey.services.locks import tournament_lock
from hockey.utils.guards import require_team, require_tournament

logger = logging.getLogger(__name__)


def _require_no_bracket(session: Session, tournament_id: int) -> None:
    existing = session.exec(
        select(TournamentMatch.id).where(TournamentMatch.tournament_id == tournament_id)
    ).first()
    if existing is not None:
        raise StateConflictError("Bracket already generated; clear it before changing teams")


def list_teams(session: Session, tournament_id: int) -> List[TournamentTeam]:
    require_tournament(session, tournament_id)
    teams = session.exec(select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)).all()
    return sorted(teams, key=lambda t: (t.seed is None, t.seed or 0, t.id))


def add_team(
    session: Session,
    tournament_id: int,
    name: str,
    captain_user_id: Optional[int] = None,
    seed: Optional[int] = None,
) -> TournamentTeam:
    """Add a team; past max_teams it joins the team waitlist."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Team name is required")

    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id, for_update=True)
            if tournament.status not in GENERATION_STATUSES:
                raise StateConflictError(f"Cannot add teams to a tournament in status {tournament.status}")
            _require_no_bracket(session, tournament_id)

            teams = session.exec(select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)).all()
            if any(t.name.lower() == name.lower() for t in teams):
                raise StateConflictError(f"A team named {name!r} already exists")
            if seed is not None and any(t.seed == seed for t in teams):
                raise ValidationError(f"Seed {seed} is already taken", code=INVALID_SEEDING)

            team = TournamentTeam(tournament_id=tournament_id, name=name, captain_user_id=captain_user_id, seed=seed)
            in_bracket = sum(1 for t in teams if t.status in BRACKET_TEAM_STATUSES)
            if in_bracket >= tournament.max_teams:
                waiting = session.exec(
                    select(func.max(TournamentTeam.waitlist_position)).where(
                        TournamentTeam.tournament_id == tournament_id,
                        TournamentTeam.status == TeamStatus.waitlisted,
                    )
                ).one()
                team.status = TeamStatus.waitlisted
                team.waitlist_position = (waiting or 0) + 1
                team.seed = None
            session.add(team)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(team)

    logger.info(f"Team {team.id} ({team.name}) added to tournament {tournament_id} as {team.status}")
    return team


def set_seeds(session: Session, tournament_id: int, seeds: Dict[int, Optional[int]], actor_id: int) -> List[TournamentTeam]:
    """
    Apply organizer seeds ({team_id: seed or None}).

    Raises:
        ValidationError (InvalidSeeding): duplicates or seeds outside 1..N
        StateConflictError: bracket already generated or tournament started
    """
    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id, for_update=True)
            if tournament.status not in GENERATION_STATUSES:
                raise StateConflictError(f"Cannot reseed a tournament in status {tournament.status}")
            _require_no_bracket(session, tournament_id)

            teams = session.exec(select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)).all()
            eligible = {t.id: t for t in teams if t.status in BRACKET_TEAM_STATUSES}
            for team_id in seeds:
                if team_id not in eligible:
                    require_team(session, tournament_id, team_id)
                    raise ValidationError(f"Team {team_id} is not in the bracket pool", code=INVALID_SEEDING)

            proposed = {t.id: t.seed for t in eligible.values()}
            proposed.update(seeds)
            taken = [s for s in proposed.values() if s is not None]
            if len(taken) != len(set(taken)):
                raise ValidationError("Duplicate seeds", code=INVALID_SEEDING)
            if any(s < 1 or s > len(eligible) for s in taken):
                raise ValidationError(f"Seeds must be between 1 and {len(eligible)}", code=INVALID_SEEDING)

            old = {str(t.id): t.seed for t in eligible.values()}
            # Clear first so swapping two seeds never trips uq_tournament_seed mid-flush
            for team in eligible.values():
                team.seed = None
                session.add(team)
            session.flush()
            for team_id, seed in proposed.items():
                eligible[team_id].seed = seed
                session.add(eligible[team_id])

            audit_service.record(
                session,
                tournament_id,
                actor_id,
                "SetSeeds",
                entity_type="TournamentTeam",
                old_value=old,
                new_value={str(k): v for k, v in proposed.items()},
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

    return list_teams(session, tournament_id)


# =============================================================================
# Player assignment
# =============================================================================

ASSIGNABLE_STATUSES = (RegistrationStatus.registered, RegistrationStatus.assigned)


def _require_assignable_tournament(session: Session, tournament_id: int):
    tournament = require_tournament(session, tournament_id, for_update=True)
    if tournament.status not in GENERATION_STATUSES:
        raise StateConflictError(f"Cannot change team rosters while the tournament is {tournament.status}")
    return tournament


def _require_registration(session: Session, tournament_id: int, registration_id: int) -> TournamentRegistration:
    reg = session.exec(
        select(TournamentRegistration)
        .where(TournamentRegistration.id == registration_id)
        .execution_options(populate_existing=True)
    ).first()
    if not reg or reg.tournament_id != tournament_id:
        raise NotFoundError(f"Registration {registration_id} not found in tournament {tournament_id}")
    return reg


def _rostered_team(session: Session, tournament_id: int, team_id: int) -> TournamentTeam:
    team = require_team(session, tournament_id, team_id)
    if team.status == TeamStatus.waitlisted:
        raise StateConflictError(f"Team {team_id} is on the team waitlist")
    return team


def _assign(registration: TournamentRegistration, team_id: int) -> None:
    registration.assigned_team_id = team_id
    registration.status = RegistrationStatus.assigned


def assign_player(
    session: Session, tournament_id: int, registration_id: int, team_id: int, actor_id: int
) -> TournamentRegistration:
    """
    Put a registered player on a team, moving them if already on another.

    Raises:
        NotFoundError: registration or team not in this tournament
        StateConflictError: tournament past registration, registration not
            holding a spot, or the team is waitlisted
    """
    with tournament_lock(tournament_id):
        try:
            _require_assignable_tournament(session, tournament_id)
            reg = _require_registration(session, tournament_id, registration_id)
            if reg.status not in ASSIGNABLE_STATUSES:
                raise StateConflictError(f"Registration {registration_id} is {reg.status}; only players with a spot can join a team")
            _rostered_team(session, tournament_id, team_id)

            old_team = reg.assigned_team_id
            _assign(reg, team_id)
            session.add(reg)
            audit_service.record(
                session,
                tournament_id,
                actor_id,
                "AssignPlayer",
                entity_type="TournamentRegistration",
                entity_id=reg.id,
                old_value={"assigned_team_id": old_team},
                new_value={"assigned_team_id": team_id},
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(reg)

    logger.info(f"Registration {registration_id} assigned to team {team_id} (was {old_team})")
    return reg


def remove_player(session: Session, tournament_id: int, registration_id: int, actor_id: int) -> TournamentRegistration:
    """Take a player off their team; they keep their registration."""
    with tournament_lock(tournament_id):
        try:
            _require_assignable_tournament(session, tournament_id)
            reg = _require_registration(session, tournament_id, registration_id)
            if reg.assigned_team_id is None:
                raise StateConflictError(f"Registration {registration_id} is not on a team")

            old_team = reg.assigned_team_id
            reg.assigned_team_id = None
            reg.status = RegistrationStatus.registered
            session.add(reg)
            audit_service.record(
                session,
                tournament_id,
                actor_id,
                "RemovePlayer",
                entity_type="TournamentRegistration",
                entity_id=reg.id,
                old_value={"assigned_team_id": old_team},
                new_value={"assigned_team_id": None},
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(reg)
    return reg


def auto_assign_players(session: Session, tournament_id: int, actor_id: int) -> Dict[str, int]:
    """
    Spread every unassigned registered player over the rostered teams.

    Goalies are dealt first, one per team in turn, then skaters continue the
    rotation in registration order.

    Returns:
        Dict with assigned and teams counts
    """
    with tournament_lock(tournament_id):
        try:
            _require_assignable_tournament(session, tournament_id)
            teams = [
                t
                for t in session.exec(select(TournamentTeam).where(TournamentTeam.tournament_id == tournament_id)).all()
                if t.status in BRACKET_TEAM_STATUSES
            ]
            teams.sort(key=lambda t: (t.seed is None, t.seed or 0, t.id))
            if not teams:
                raise StateConflictError("No teams exist for this tournament; create teams first")

            unassigned = session.exec(
                select(TournamentRegistration)
                .where(
                    TournamentRegistration.tournament_id == tournament_id,
                    TournamentRegistration.status == RegistrationStatus.registered,
                    TournamentRegistration.assigned_team_id.is_(None),
                )
                .order_by(TournamentRegistration.registered_at, TournamentRegistration.id)
            ).all()
            goalies = [r for r in unassigned if (r.position or "").lower() == "goalie"]
            skaters = [r for r in unassigned if (r.position or "").lower() != "goalie"]

            placed: Dict[str, int] = {}
            for i, reg in enumerate(goalies + skaters):
                team = teams[i % len(teams)]
                _assign(reg, team.id)
                session.add(reg)
                placed[str(reg.id)] = team.id

            if placed:
                audit_service.record(
                    session,
                    tournament_id,
                    actor_id,
                    "AutoAssignPlayers",
                    entity_type="TournamentRegistration",
                    new_value=placed,
                    details={"goalies": len(goalies), "skaters": len(skaters), "teams": len(teams)},
                )
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(f"Auto-assigned {len(placed)} players across {len(teams)} teams in tournament {tournament_id}")
    return {"assigned": len(placed), "teams": len(teams)}
