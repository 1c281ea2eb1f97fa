"""
Waitlist Manager for events and tournaments.

Waitlisted registrations of one parent carry a dense 1-based
waitlist_position (no gaps, no duplicates) whenever no operation is in
flight. All mutations of a parent's registrations run under that parent's
lock, so two cancellations can never promote the same person.

Payment deadlines have two independent switches: PAYMENT_DEADLINES_ENABLED
stamps a deadline on promotion into a paid parent, PAYMENT_DEADLINE_ENFORCED
lets the background sweep cancel promotions that stay unpaid past it.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import func
from sqlmodel import Session, SQLModel, select

from hockey import settings
from hockey.exceptions import (
    DUPLICATE_REGISTRATION,
    INVALID_WAITLIST_ORDER,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from hockey.models.enums import EventStatus, PaymentStatus, RegistrationStatus, TournamentStatus
from hockey.models.event import EventRegistration
from hockey.models.registration import TournamentRegistration
from hockey.services import audit_service
from hockey.services.locks import SCOPE_EVENT, SCOPE_TOURNAMENT, entity_lock
from hockey.services.notification_service import PendingNotification, get_push_service
from hockey.utils.guards import require_event, require_tournament

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (RegistrationStatus.registered, RegistrationStatus.assigned)
UNPAID_STATUSES = (None, PaymentStatus.pending)
PAYABLE_STATUSES = ACTIVE_STATUSES + (RegistrationStatus.waitlisted,)


@dataclass(frozen=True)
class ParentKind:
    """How the waitlist reaches one kind of parent and its registrations."""

    name: str
    lock_scope: str
    registration_model: Type[SQLModel]
    parent_field: str
    load: Callable[..., Any]
    capacity: Callable[[Any], Optional[int]]
    charges_fee: Callable[[Any], bool]
    accepts_registrations: Callable[[Any], bool]
    display_name: Callable[[Any], str]
    audited: bool

    def parent_id_of(self, registration) -> int:
        return getattr(registration, self.parent_field)

    def column(self):
        return getattr(self.registration_model, self.parent_field)


EVENT = ParentKind(
    name="event",
    lock_scope=SCOPE_EVENT,
    registration_model=EventRegistration,
    parent_field="event_id",
    load=require_event,
    capacity=lambda e: e.max_players,
    charges_fee=lambda e: (e.cost or 0) > 0,
    accepts_registrations=lambda e: e.status == EventStatus.published,
    display_name=lambda e: e.display_name,
    audited=False,
)

TOURNAMENT = ParentKind(
    name="tournament",
    lock_scope=SCOPE_TOURNAMENT,
    registration_model=TournamentRegistration,
    parent_field="tournament_id",
    load=require_tournament,
    capacity=lambda t: t.max_participants,
    charges_fee=lambda t: t.charges_fee,
    accepts_registrations=lambda t: t.status == TournamentStatus.open,
    display_name=lambda t: t.name,
    audited=True,
)

PARENT_KINDS: Dict[str, ParentKind] = {EVENT.name: EVENT, TOURNAMENT.name: TOURNAMENT}


def get_parent_kind(name: str) -> ParentKind:
    try:
        return PARENT_KINDS[name]
    except KeyError:
        raise ValidationError(f"Unknown registration parent: {name}")


# =============================================================================
# Queries
# =============================================================================

def _registrations(session: Session, kind: ParentKind, parent_id: int, statuses) -> List:
    model = kind.registration_model
    return session.exec(
        select(model)
        .where(kind.column() == parent_id, model.status.in_([s.value for s in statuses]))
        .order_by(model.waitlist_position, model.id)
        .execution_options(populate_existing=True)
    ).all()


def get_waitlist(session: Session, kind: ParentKind, parent_id: int) -> List:
    """Waitlisted registrations in promotion order."""
    kind.load(session, parent_id)
    return _registrations(session, kind, parent_id, (RegistrationStatus.waitlisted,))


def list_registrations(session: Session, kind: ParentKind, parent_id: int) -> List:
    """Every registration of a parent: active first by id, then the waitlist, then cancelled."""
    kind.load(session, parent_id)
    order = {RegistrationStatus.waitlisted.value: 1, RegistrationStatus.cancelled.value: 2}
    regs = _registrations(session, kind, parent_id, tuple(RegistrationStatus))
    return sorted(regs, key=lambda r: (order.get(r.status, 0), r.waitlist_position or 0, r.id))


def get_next_waitlist_position(session: Session, kind: ParentKind, parent_id: int) -> int:
    model = kind.registration_model
    current = session.exec(
        select(func.max(model.waitlist_position)).where(
            kind.column() == parent_id,
            model.status == RegistrationStatus.waitlisted,
        )
    ).one()
    return (current or 0) + 1


def _active_count(session: Session, kind: ParentKind, parent_id: int) -> int:
    return len(_registrations(session, kind, parent_id, ACTIVE_STATUSES))


def _has_room(session: Session, kind: ParentKind, parent) -> bool:
    capacity = kind.capacity(parent)
    return capacity is None or _active_count(session, kind, parent.id) < capacity


def _renumber(session: Session, kind: ParentKind, parent_id: int) -> None:
    for position, reg in enumerate(_registrations(session, kind, parent_id, (RegistrationStatus.waitlisted,)), start=1):
        if reg.waitlist_position != position:
            reg.waitlist_position = position
            session.add(reg)


def _load_registration(session: Session, kind: ParentKind, registration_id: int):
    model = kind.registration_model
    reg = session.exec(
        select(model).where(model.id == registration_id).execution_options(populate_existing=True)
    ).first()
    if not reg:
        raise NotFoundError(f"Registration {registration_id} not found")
    return reg


def _audit(session: Session, kind: ParentKind, parent_id: int, actor_id: Optional[int], action: str, **fields) -> None:
    if kind.audited:
        actor = actor_id if actor_id is not None else audit_service.SYSTEM_USER_ID
        audit_service.record(session, parent_id, actor, action, **fields)


# =============================================================================
# Promotion
# =============================================================================

def _promote_next(
    session: Session, kind: ParentKind, parent, actor_id: Optional[int], now: Optional[datetime] = None
) -> Tuple[Optional[Any], List[PendingNotification]]:
    """Promote the head of the waitlist inside the caller's transaction."""
    waitlist = _registrations(session, kind, parent.id, (RegistrationStatus.waitlisted,))
    if not waitlist or not _has_room(session, kind, parent):
        return None, []

    now = now or datetime.utcnow()
    promoted = waitlist[0]
    old_position = promoted.waitlist_position
    promoted.status = RegistrationStatus.registered
    promoted.promoted_at = now
    promoted.waitlist_position = None
    # Paying while waitlisted is allowed; only an unpaid promotion owes a deadline
    if kind.charges_fee(parent) and promoted.payment_status in UNPAID_STATUSES:
        promoted.payment_status = PaymentStatus.pending
        if settings.PAYMENT_DEADLINES_ENABLED:
            promoted.payment_deadline_at = now + timedelta(hours=settings.PAYMENT_DEADLINE_HOURS)
    session.add(promoted)
    session.flush()
    _renumber(session, kind, parent.id)

    _audit(
        session,
        kind,
        parent.id,
        actor_id,
        "Promote",
        entity_type=type(promoted).__name__,
        entity_id=promoted.id,
        old_value={"status": RegistrationStatus.waitlisted.value, "waitlist_position": old_position},
        new_value={
            "status": RegistrationStatus.registered.value,
            "payment_deadline_at": promoted.payment_deadline_at.isoformat() if promoted.payment_deadline_at else None,
        },
    )

    name = kind.display_name(parent)
    body = f"A spot opened up in {name} and you're in."
    if promoted.payment_deadline_at:
        body += f" Please pay by {promoted.payment_deadline_at:%H:%M} UTC to keep your spot."
    data = {"parent": kind.name, "parent_id": parent.id, "registration_id": promoted.id}
    pending = [
        PendingNotification(promoted.user_id, "auto_promoted", "You're off the waitlist", body, data),
        PendingNotification(
            parent.creator_id,
            "auto_promotion",
            "Waitlist promotion",
            f"User {promoted.user_id} was promoted from the waitlist for {name}.",
            data,
        ),
    ]
    logger.info(f"Promoted registration {promoted.id} from {kind.name} {parent.id} waitlist (was #{old_position})")
    return promoted, pending


def promote_from_waitlist(session: Session, kind: ParentKind, parent_id: int, actor_id: Optional[int] = None):
    """
    Promote the lowest-position waitlisted registration.

    Returns:
        The promoted registration, or None (and no mutation) when the
        waitlist is empty or the parent is full
    """
    with entity_lock(kind.lock_scope, parent_id):
        try:
            parent = kind.load(session, parent_id, for_update=True)
            promoted, pending = _promote_next(session, kind, parent, actor_id)
            if promoted is None:
                session.rollback()
                return None
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(promoted)

    get_push_service().dispatch_all(session, pending)
    return promoted


# =============================================================================
# Registration lifecycle
# =============================================================================

def register(session: Session, kind: ParentKind, parent_id: int, user_id: int, position: Optional[str] = None):
    """
    Sign a user up: Registered while there is room and nobody is waiting, else Waitlisted at the back.

    Raises:
        StateConflictError: parent not taking registrations, or user already registered (DuplicateRegistration)
    """
    model = kind.registration_model
    with entity_lock(kind.lock_scope, parent_id):
        try:
            parent = kind.load(session, parent_id, for_update=True)
            if not kind.accepts_registrations(parent):
                raise StateConflictError(f"{kind.name.title()} {parent_id} is not accepting registrations")

            reg = session.exec(
                select(model).where(kind.column() == parent_id, model.user_id == user_id)
            ).first()
            if reg is not None and reg.status != RegistrationStatus.cancelled:
                raise StateConflictError(
                    f"User {user_id} is already registered for {kind.name} {parent_id}", code=DUPLICATE_REGISTRATION
                )
            if reg is None:
                reg = model(**{kind.parent_field: parent_id, "user_id": user_id})

            waiting = get_next_waitlist_position(session, kind, parent_id)
            reg.registered_at = datetime.utcnow()
            reg.cancelled_at = None
            reg.promoted_at = None
            reg.payment_marked_at = None
            reg.payment_verified_at = None
            reg.payment_deadline_at = None
            if position is not None and hasattr(reg, "position"):
                reg.position = position

            if waiting == 1 and _has_room(session, kind, parent):
                reg.status = RegistrationStatus.registered
                reg.waitlist_position = None
                reg.payment_status = PaymentStatus.pending if kind.charges_fee(parent) else None
            else:
                reg.status = RegistrationStatus.waitlisted
                reg.waitlist_position = waiting
                reg.payment_status = None
            session.add(reg)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(reg)

    logger.info(f"User {user_id} {reg.status} for {kind.name} {parent_id}")
    return reg


def cancel_registration(session: Session, kind: ParentKind, registration_id: int, actor_id: int) -> Dict:
    """
    Cancel a registration. A freed active spot promotes the head of the
    waitlist; a cancelled waitlist entry closes its gap.

    Returns:
        Dict with registration and promoted (registration or None)
    """
    parent_id = kind.parent_id_of(_load_registration(session, kind, registration_id))
    with entity_lock(kind.lock_scope, parent_id):
        try:
            parent = kind.load(session, parent_id, for_update=True)
            reg = _load_registration(session, kind, registration_id)
            if reg.status == RegistrationStatus.cancelled:
                raise StateConflictError(f"Registration {registration_id} is already cancelled")

            old_status = reg.status
            was_active = old_status in ACTIVE_STATUSES
            reg.status = RegistrationStatus.cancelled
            reg.cancelled_at = datetime.utcnow()
            reg.waitlist_position = None
            reg.payment_deadline_at = None
            if hasattr(reg, "assigned_team_id"):
                reg.assigned_team_id = None
            session.add(reg)
            session.flush()

            _audit(
                session,
                kind,
                parent_id,
                actor_id,
                "CancelRegistration",
                entity_type=type(reg).__name__,
                entity_id=reg.id,
                old_value={"status": RegistrationStatus(old_status).value},
                new_value={"status": RegistrationStatus.cancelled.value},
            )

            promoted, pending = None, []
            if was_active:
                promoted, pending = _promote_next(session, kind, parent, actor_id)
            else:
                _renumber(session, kind, parent_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(reg)
        if promoted is not None:
            session.refresh(promoted)

    get_push_service().dispatch_all(session, pending)
    return {"registration": reg, "promoted": promoted}


def reorder_waitlist(
    session: Session, kind: ParentKind, parent_id: int, ordered_ids: List[int], actor_id: int
) -> List:
    """
    Replace the waitlist order. ``ordered_ids`` must name every waitlisted
    registration exactly once.

    Raises:
        ValidationError (InvalidWaitlistOrder)
    """
    with entity_lock(kind.lock_scope, parent_id):
        try:
            kind.load(session, parent_id, for_update=True)
            waitlist = _registrations(session, kind, parent_id, (RegistrationStatus.waitlisted,))
            current = [r.id for r in waitlist]
            if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(current):
                raise ValidationError(
                    "Order must list every waitlisted registration exactly once", code=INVALID_WAITLIST_ORDER
                )
            by_id = {r.id: r for r in waitlist}
            for position, reg_id in enumerate(ordered_ids, start=1):
                by_id[reg_id].waitlist_position = position
                session.add(by_id[reg_id])
            _audit(
                session, kind, parent_id, actor_id, "ReorderWaitlist", old_value=current, new_value=list(ordered_ids)
            )
            session.commit()
        except Exception:
            session.rollback()
            raise

    logger.info(f"Reordered {kind.name} {parent_id} waitlist ({len(ordered_ids)} entries)")
    return _registrations(session, kind, parent_id, (RegistrationStatus.waitlisted,))


# =============================================================================
# Manual payments
# =============================================================================

def _payment_update(session: Session, kind: ParentKind, registration_id: int, actor_id: int, apply) -> Any:
    parent_id = kind.parent_id_of(_load_registration(session, kind, registration_id))
    with entity_lock(kind.lock_scope, parent_id):
        try:
            reg = _load_registration(session, kind, registration_id)
            if reg.status not in PAYABLE_STATUSES:
                raise StateConflictError(f"Registration {registration_id} is {reg.status}; it takes no payments")
            old = reg.payment_status
            apply(reg)
            session.add(reg)
            _audit(
                session,
                kind,
                parent_id,
                actor_id,
                "Payment",
                entity_type=type(reg).__name__,
                entity_id=reg.id,
                old_value={"payment_status": old},
                new_value={"payment_status": reg.payment_status},
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        session.refresh(reg)
    return reg


def mark_payment(session: Session, kind: ParentKind, registration_id: int, actor_id: int):
    """Player says they paid (Venmo etc.): Pending -> MarkedPaid."""

    def apply(reg):
        if reg.payment_status not in UNPAID_STATUSES:
            raise StateConflictError(f"Payment already {reg.payment_status}")
        reg.payment_status = PaymentStatus.marked_paid
        reg.payment_marked_at = datetime.utcnow()

    return _payment_update(session, kind, registration_id, actor_id, apply)


def verify_payment(session: Session, kind: ParentKind, registration_id: int, actor_id: int):
    """Organizer confirms receipt; clears any payment deadline."""

    def apply(reg):
        if reg.payment_status == PaymentStatus.verified:
            raise StateConflictError("Payment already verified")
        reg.payment_status = PaymentStatus.verified
        reg.payment_verified_at = datetime.utcnow()
        reg.payment_deadline_at = None

    return _payment_update(session, kind, registration_id, actor_id, apply)


# =============================================================================
# Deadline expiry
# =============================================================================

def _expired_parent_ids(session: Session, kind: ParentKind, now: datetime) -> List[int]:
    model = kind.registration_model
    rows = session.exec(
        select(kind.column()).where(
            model.status.in_([s.value for s in ACTIVE_STATUSES]),
            model.promoted_at.is_not(None),
            model.payment_deadline_at.is_not(None),
            model.payment_deadline_at < now,
            (model.payment_status.is_(None)) | (model.payment_status == PaymentStatus.pending),
        )
    ).all()
    return sorted(set(rows))


def _expire_for_parent(session: Session, kind: ParentKind, parent_id: int, now: datetime) -> Tuple[int, int]:
    with entity_lock(kind.lock_scope, parent_id):
        try:
            parent = kind.load(session, parent_id, for_update=True)
            expired = [
                r
                for r in _registrations(session, kind, parent_id, ACTIVE_STATUSES)
                if r.promoted_at is not None
                and r.payment_deadline_at is not None
                and r.payment_deadline_at < now
                and r.payment_status in UNPAID_STATUSES
            ]
            pending: List[PendingNotification] = []
            for reg in expired:
                deadline = reg.payment_deadline_at
                reg.status = RegistrationStatus.cancelled
                reg.cancelled_at = now
                reg.payment_deadline_at = None
                session.add(reg)
                _audit(
                    session,
                    kind,
                    parent_id,
                    None,
                    "ExpirePayment",
                    entity_type=type(reg).__name__,
                    entity_id=reg.id,
                    details={"payment_deadline_at": deadline.isoformat()},
                )
                pending.append(
                    PendingNotification(
                        reg.user_id,
                        "registration_expired",
                        "Registration expired",
                        f"Your spot in {kind.display_name(parent)} was released because payment wasn't received in time.",
                        {"parent": kind.name, "parent_id": parent_id, "registration_id": reg.id},
                    )
                )
            session.flush()

            promoted = 0
            for _ in expired:
                reg, notes = _promote_next(session, kind, parent, None, now=now)
                if reg is None:
                    break
                promoted += 1
                pending.extend(notes)
            session.commit()
        except Exception:
            session.rollback()
            raise

    get_push_service().dispatch_all(session, pending)
    return len(expired), promoted


def process_expired_payment_deadlines(session: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Cancel promoted registrations still unpaid past their deadline and
    promote the next in line. Safe to run repeatedly: a second pass finds
    nothing to do.

    Returns:
        Dict with expired, promoted, failed counts
    """
    now = now or datetime.utcnow()
    totals = {"expired": 0, "promoted": 0, "failed": 0}
    for kind in PARENT_KINDS.values():
        for parent_id in _expired_parent_ids(session, kind, now):
            try:
                expired, promoted = _expire_for_parent(session, kind, parent_id, now)
            except Exception:
                logger.exception(f"Failed to expire payment deadlines for {kind.name} {parent_id}")
                totals["failed"] += 1
                continue
            totals["expired"] += expired
            totals["promoted"] += promoted
    if totals["expired"]:
        logger.info(f"Payment deadline sweep: {totals}")
    return totals
