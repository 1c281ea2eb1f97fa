"""
Tournament state machine: the only writer of Tournament.status.

    Draft --Publish--> Open --CloseRegistration--> RegistrationClosed
    Open / RegistrationClosed --Start--> InProgress --Complete--> Completed
    Open / RegistrationClosed / InProgress --Postpone--> Postponed --Resume--> (prior status)
    any non-terminal --Cancel--> Cancelled

Completed and Cancelled are terminal. Every successful transition writes one
audit row in the same transaction; a rejected transition writes nothing.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from hockey.exceptions import INVALID_TRANSITION, StateConflictError, ValidationError
from hockey.models.enums import (
    FINISHED_MATCH_STATUSES,
    RegistrationStatus,
    TeamStatus,
    TournamentAction,
    TournamentStatus,
)
from hockey.models.match import TournamentMatch
from hockey.models.registration import TournamentRegistration
from hockey.models.team import TournamentTeam
from hockey.models.tournament import Tournament
from hockey.services import audit_service
from hockey.services.audit_service import list_audit_logs  # noqa: F401  (re-exported for routes)
from hockey.services.locks import tournament_lock
from hockey.services.notification_service import PendingNotification, get_push_service
from hockey.utils.guards import require_tournament

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({TournamentStatus.completed, TournamentStatus.cancelled})

# action -> (allowed source statuses, target status); Resume's target is the stored prior status
TRANSITIONS: Dict[TournamentAction, tuple] = {
    TournamentAction.publish: ((TournamentStatus.draft,), TournamentStatus.open),
    TournamentAction.close_registration: ((TournamentStatus.open,), TournamentStatus.registration_closed),
    TournamentAction.start: (
        (TournamentStatus.open, TournamentStatus.registration_closed),
        TournamentStatus.in_progress,
    ),
    TournamentAction.complete: ((TournamentStatus.in_progress,), TournamentStatus.completed),
    TournamentAction.postpone: (
        (TournamentStatus.open, TournamentStatus.registration_closed, TournamentStatus.in_progress),
        TournamentStatus.postponed,
    ),
    TournamentAction.resume: ((TournamentStatus.postponed,), None),
    TournamentAction.cancel: (
        (
            TournamentStatus.draft,
            TournamentStatus.open,
            TournamentStatus.registration_closed,
            TournamentStatus.in_progress,
            TournamentStatus.postponed,
        ),
        TournamentStatus.cancelled,
    ),
}


def can_transition(status: str, action: str) -> bool:
    try:
        sources, _ = TRANSITIONS[TournamentAction(action)]
    except ValueError:
        return False
    return TournamentStatus(status) in sources


def allowed_actions(status: str) -> List[TournamentAction]:
    return [action for action in TournamentAction if can_transition(status, action)]


def _target_status(tournament: Tournament, action: TournamentAction) -> TournamentStatus:
    _, target = TRANSITIONS[action]
    if action == TournamentAction.resume:
        return TournamentStatus(tournament.status_before_postpone or TournamentStatus.open)
    return target


def _parse_date(details: Dict[str, Any], key: str) -> Optional[datetime]:
    value = details.get(key)
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{key} must be an ISO-8601 datetime, got {value!r}")


def _check_preconditions(session: Session, tournament: Tournament, action: TournamentAction) -> None:
    if action == TournamentAction.publish:
        missing = [f for f in ("name", "start_date", "end_date") if not getattr(tournament, f)]
        if missing:
            raise ValidationError(f"Cannot publish: missing {', '.join(missing)}")
        if tournament.end_date < tournament.start_date:
            raise ValidationError("Cannot publish: end_date is before start_date")
        if not tournament.max_teams or tournament.max_teams <= 0:
            raise ValidationError("Cannot publish: max_teams must be positive")

    elif action == TournamentAction.start:
        has_bracket = session.exec(
            select(TournamentMatch.id).where(TournamentMatch.tournament_id == tournament.id)
        ).first()
        if has_bracket is None:
            raise StateConflictError("Cannot start: bracket has not been generated", code=INVALID_TRANSITION)

    elif action == TournamentAction.complete:
        statuses = session.exec(
            select(TournamentMatch.status).where(TournamentMatch.tournament_id == tournament.id)
        ).all()
        unfinished = [s for s in statuses if s not in FINISHED_MATCH_STATUSES]
        if unfinished:
            raise StateConflictError(
                f"Cannot complete: {len(unfinished)} match(es) not finished", code=INVALID_TRANSITION
            )


def _registrant_ids(session: Session, tournament_id: int) -> List[int]:
    rows = session.exec(
        select(TournamentRegistration.user_id).where(
            TournamentRegistration.tournament_id == tournament_id,
            TournamentRegistration.status != RegistrationStatus.cancelled,
        )
    ).all()
    captains = session.exec(
        select(TournamentTeam.captain_user_id).where(
            TournamentTeam.tournament_id == tournament_id,
            TournamentTeam.captain_user_id.is_not(None),
        )
    ).all()
    return sorted(set(rows) | set(captains))


def apply_transition(
    session: Session,
    tournament: Tournament,
    action: TournamentAction,
    actor_id: int,
    details: Optional[Dict[str, Any]] = None,
) -> List[PendingNotification]:
    """
    Mutate ``tournament`` and add the audit row without committing.

    The caller holds the tournament lock and owns the transaction (used by
    transition_tournament and by the result processor's auto-complete).

    Returns:
        Notifications to dispatch once the caller has committed
    """
    action = TournamentAction(action)
    current = TournamentStatus(tournament.status)
    if not can_transition(current, action):
        raise StateConflictError(
            f"Cannot {action.value} a tournament in status {current.value}", code=INVALID_TRANSITION
        )
    _check_preconditions(session, tournament, action)

    details = dict(details or {})
    target = _target_status(tournament, action)
    now = datetime.utcnow()

    if action == TournamentAction.publish:
        tournament.published_at = now
    elif action == TournamentAction.start:
        tournament.started_at = now
        teams = session.exec(
            select(TournamentTeam).where(
                TournamentTeam.tournament_id == tournament.id,
                TournamentTeam.status == TeamStatus.registered,
            )
        ).all()
        for team in teams:
            team.status = TeamStatus.active
            session.add(team)
    elif action == TournamentAction.complete:
        tournament.completed_at = now
    elif action == TournamentAction.cancel:
        tournament.cancelled_at = now
    elif action == TournamentAction.postpone:
        tournament.status_before_postpone = current
        new_start = _parse_date(details, "start_date")
        new_end = _parse_date(details, "end_date")
        if new_start and new_end and new_end < new_start:
            raise ValidationError("end_date is before start_date")
        if new_start:
            details["old_start_date"] = tournament.start_date.isoformat()
            tournament.start_date = new_start
            tournament.postponed_to_date = new_start
        if new_end:
            details["old_end_date"] = tournament.end_date.isoformat()
            tournament.end_date = new_end
        details = {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in details.items()}
    elif action == TournamentAction.resume:
        tournament.status_before_postpone = None

    tournament.status = target
    session.add(tournament)
    audit_service.record(
        session,
        tournament.id,
        actor_id,
        action.value,
        from_status=current.value,
        to_status=target.value,
        details=details or None,
    )

    return [
        PendingNotification(
            user_id=user_id,
            type="tournament_status_changed",
            title=tournament.name,
            body=f"{tournament.name} is now {target.value}",
            data={"tournament_id": tournament.id, "from_status": current.value, "to_status": target.value},
        )
        for user_id in _registrant_ids(session, tournament.id)
        if user_id != actor_id
    ]


def transition_tournament(
    session: Session,
    tournament_id: int,
    action: str,
    actor_id: int,
    details: Optional[Dict[str, Any]] = None,
) -> TournamentStatus:
    """
    Apply ``action`` to a tournament.

    Returns:
        The new status

    Raises:
        NotFoundError: tournament missing
        StateConflictError (InvalidTransition): action not allowed from the current status
        ValidationError: unknown action, missing publish fields, bad postpone dates

    Guarantees:
        - Status change and audit row commit together; failures leave both untouched
    """
    try:
        action = TournamentAction(action)
    except ValueError:
        raise ValidationError(f"Unknown tournament action: {action}")

    with tournament_lock(tournament_id):
        try:
            tournament = require_tournament(session, tournament_id, for_update=True)
            from_status = tournament.status
            pending = apply_transition(session, tournament, action, actor_id, details)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(tournament)

    logger.info(f"Tournament {tournament_id}: {action.value} {from_status} -> {tournament.status}")
    get_push_service().dispatch_all(session, pending)
    return TournamentStatus(tournament.status)
