"""Waitlist: registration, promotion on cancellation, dense positions, payments and deadline expiry."""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from hockey import settings
from hockey.exceptions import DUPLICATE_REGISTRATION, INVALID_WAITLIST_ORDER, StateConflictError, ValidationError
from hockey.models.audit_log import TournamentAuditLog
from hockey.models.enums import PaymentStatus, RegistrationStatus, TournamentStatus
from hockey.models.event import Event, EventRegistration
from hockey.models.notification import Notification
from hockey.models.registration import TournamentRegistration
from hockey.services import waitlist_service
from hockey.services.audit_service import SYSTEM_USER_ID
from hockey.services.waitlist_service import EVENT, TOURNAMENT
from tests.factories import ORGANIZER_ID, make_event, make_tournament


def _sign_up(session, event_id, user_ids, kind=EVENT):
    return {uid: waitlist_service.register(session, kind, event_id, uid).id for uid in user_ids}


def _reg(session, model, reg_id):
    session.expire_all()
    return session.get(model, reg_id)


def _waitlist(session, event_id, kind=EVENT):
    return [(r.user_id, r.waitlist_position) for r in waitlist_service.get_waitlist(session, kind, event_id)]


@pytest.fixture
def full_event(session: Session):
    """Two spots: users 1-2 registered, 3-5 waiting in order."""
    event = make_event(session, max_players=2)
    regs = _sign_up(session, event.id, range(1, 6))
    return {"event_id": event.id, "regs": regs}


def test_registration_fills_spots_then_waitlists(session: Session, full_event):
    eid = full_event["event_id"]
    active = [r for r in waitlist_service.list_registrations(session, EVENT, eid) if r.status == RegistrationStatus.registered]

    assert sorted(r.user_id for r in active) == [1, 2]
    assert _waitlist(session, eid) == [(3, 1), (4, 2), (5, 3)]
    assert waitlist_service.get_next_waitlist_position(session, EVENT, eid) == 4


def test_duplicate_registration_rejected(session: Session, full_event):
    with pytest.raises(StateConflictError) as exc:
        waitlist_service.register(session, EVENT, full_event["event_id"], 4)
    assert exc.value.code == DUPLICATE_REGISTRATION


def test_promote_does_nothing_when_full_or_empty(session: Session, full_event):
    eid = full_event["event_id"]
    assert waitlist_service.promote_from_waitlist(session, EVENT, eid) is None
    assert _waitlist(session, eid) == [(3, 1), (4, 2), (5, 3)]

    roomy = make_event(session, max_players=5)
    _sign_up(session, roomy.id, [1])
    assert waitlist_service.promote_from_waitlist(session, EVENT, roomy.id) is None


def test_cancelling_a_spot_promotes_the_head_of_the_line(session: Session, full_event):
    eid = full_event["event_id"]
    regs = full_event["regs"]

    result = waitlist_service.cancel_registration(session, EVENT, regs[1], actor_id=1)

    assert result["registration"].status == RegistrationStatus.cancelled
    promoted = result["promoted"]
    assert promoted.user_id == 3
    assert promoted.status == RegistrationStatus.registered
    assert promoted.promoted_at is not None
    assert promoted.waitlist_position is None
    # Free event: no payment owed
    assert promoted.payment_deadline_at is None
    assert _waitlist(session, eid) == [(4, 1), (5, 2)]

    notices = {(n.user_id, n.type) for n in session.exec(select(Notification)).all()}
    assert notices == {(3, "auto_promoted"), (ORGANIZER_ID, "auto_promotion")}


def test_cancelling_a_waitlist_entry_closes_the_gap(session: Session, full_event):
    eid = full_event["event_id"]

    result = waitlist_service.cancel_registration(session, EVENT, full_event["regs"][4], actor_id=4)

    assert result["promoted"] is None
    assert _waitlist(session, eid) == [(3, 1), (5, 2)]


def test_positions_stay_dense_through_many_cancellations(session: Session):
    event = make_event(session, max_players=2)
    regs = _sign_up(session, event.id, range(1, 11))

    waitlist_service.cancel_registration(session, EVENT, regs[1], actor_id=1)
    waitlist_service.cancel_registration(session, EVENT, regs[6], actor_id=6)
    waitlist_service.cancel_registration(session, EVENT, regs[2], actor_id=2)
    waitlist_service.cancel_registration(session, EVENT, regs[9], actor_id=9)
    assert waitlist_service.promote_from_waitlist(session, EVENT, event.id) is None

    waitlist = _waitlist(session, event.id)
    assert [uid for uid, _ in waitlist] == [5, 7, 8, 10]
    assert [pos for _, pos in waitlist] == [1, 2, 3, 4]
    active = [r.user_id for r in waitlist_service.list_registrations(session, EVENT, event.id) if r.status == RegistrationStatus.registered]
    assert sorted(active) == [3, 4]


def test_concurrent_cancellations_promote_distinct_players(tmp_path):
    """Two spots freed at once go to the first two in line, one each."""
    engine = create_engine(f"sqlite:///{tmp_path / 'waitlist.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    try:
        with Session(engine) as session:
            tournament = make_tournament(session, max_participants=2)
            tid = tournament.id
            regs = _sign_up(session, tid, range(1, 6), kind=TOURNAMENT)

        barrier = threading.Barrier(2)
        errors = []
        promoted = []

        def cancel(user_id):
            with Session(engine) as s:
                barrier.wait()
                try:
                    result = waitlist_service.cancel_registration(s, TOURNAMENT, regs[user_id], actor_id=user_id)
                    promoted.append(result["promoted"].user_id)
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=cancel, args=(uid,)) for uid in (1, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(promoted) == [3, 4]
        with Session(engine) as session:
            assert _waitlist(session, tid, kind=TOURNAMENT) == [(5, 1)]
            active = waitlist_service.list_registrations(session, TOURNAMENT, tid)
            assert sorted(r.user_id for r in active if r.status == RegistrationStatus.registered) == [3, 4]
            promotions = session.exec(
                select(TournamentAuditLog).where(TournamentAuditLog.action == "Promote")
            ).all()
            assert sorted(a.entity_id for a in promotions) == [regs[3], regs[4]]
    finally:
        engine.dispose()


def test_cancel_twice_rejected(session: Session, full_event):
    reg_id = full_event["regs"][3]
    waitlist_service.cancel_registration(session, EVENT, reg_id, actor_id=3)

    with pytest.raises(StateConflictError):
        waitlist_service.cancel_registration(session, EVENT, reg_id, actor_id=3)


def test_re_registering_after_cancel_joins_the_back(session: Session, full_event):
    eid = full_event["event_id"]
    waitlist_service.cancel_registration(session, EVENT, full_event["regs"][1], actor_id=1)

    again = waitlist_service.register(session, EVENT, eid, 1)

    assert again.id == full_event["regs"][1]
    assert again.status == RegistrationStatus.waitlisted
    assert _waitlist(session, eid) == [(4, 1), (5, 2), (1, 3)]


def test_new_sign_up_never_jumps_the_line(session: Session, full_event):
    eid = full_event["event_id"]
    event = session.get(Event, eid)
    event.max_players = 3
    session.add(event)
    session.commit()

    late = waitlist_service.register(session, EVENT, eid, 6)
    assert late.status == RegistrationStatus.waitlisted
    assert late.waitlist_position == 4

    promoted = waitlist_service.promote_from_waitlist(session, EVENT, eid, actor_id=ORGANIZER_ID)
    assert promoted.user_id == 3


def test_reorder_waitlist(session: Session, full_event):
    eid = full_event["event_id"]
    regs = full_event["regs"]

    reordered = waitlist_service.reorder_waitlist(session, EVENT, eid, [regs[5], regs[3], regs[4]], ORGANIZER_ID)

    assert [(r.user_id, r.waitlist_position) for r in reordered] == [(5, 1), (3, 2), (4, 3)]


@pytest.mark.parametrize(
    "order",
    [
        lambda r: [r[3], r[4]],  # missing one
        lambda r: [r[3], r[3], r[4], r[5]],  # duplicate
        lambda r: [r[3], r[4], r[1]],  # not waitlisted
    ],
)
def test_reorder_waitlist_rejects_bad_orders(session: Session, full_event, order):
    eid = full_event["event_id"]

    with pytest.raises(ValidationError) as exc:
        waitlist_service.reorder_waitlist(session, EVENT, eid, order(full_event["regs"]), ORGANIZER_ID)

    assert exc.value.code == INVALID_WAITLIST_ORDER
    assert _waitlist(session, eid) == [(3, 1), (4, 2), (5, 3)]


# ============================================================================
# Payments and deadlines
# ============================================================================


@pytest.fixture
def paid_event(session: Session):
    """$15 game, two spots, users 3-4 waiting; user 1 drops so user 3 is promoted."""
    event = make_event(session, max_players=2, cost=Decimal("15"))
    regs = _sign_up(session, event.id, range(1, 5))
    waitlist_service.cancel_registration(session, EVENT, regs[1], actor_id=1)
    return {"event_id": event.id, "regs": regs}


def test_paid_sign_up_owes_payment_without_deadline(session: Session, paid_event):
    reg = _reg(session, EventRegistration, paid_event["regs"][2])
    assert reg.payment_status == PaymentStatus.pending
    assert reg.payment_deadline_at is None


def test_promotion_into_paid_event_sets_deadline(session: Session, paid_event):
    promoted = _reg(session, EventRegistration, paid_event["regs"][3])

    assert promoted.status == RegistrationStatus.registered
    assert promoted.payment_status == PaymentStatus.pending
    assert promoted.payment_deadline_at == promoted.promoted_at + timedelta(hours=settings.PAYMENT_DEADLINE_HOURS)


def test_deadlines_can_be_switched_off(session: Session, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_DEADLINES_ENABLED", False)
    event = make_event(session, max_players=1, cost=Decimal("10"))
    regs = _sign_up(session, event.id, [1, 2])

    result = waitlist_service.cancel_registration(session, EVENT, regs[1], actor_id=1)

    assert result["promoted"].payment_status == PaymentStatus.pending
    assert result["promoted"].payment_deadline_at is None


def test_expired_promotion_is_released_to_the_next_in_line(session: Session, paid_event):
    regs = paid_event["regs"]
    deadline = _reg(session, EventRegistration, regs[3]).payment_deadline_at

    early = waitlist_service.process_expired_payment_deadlines(session, now=deadline - timedelta(minutes=1))
    assert early == {"expired": 0, "promoted": 0, "failed": 0}

    late = deadline + timedelta(minutes=1)
    assert waitlist_service.process_expired_payment_deadlines(session, now=late) == {
        "expired": 1,
        "promoted": 1,
        "failed": 0,
    }

    expired = _reg(session, EventRegistration, regs[3])
    assert expired.status == RegistrationStatus.cancelled
    assert expired.payment_deadline_at is None
    promoted = _reg(session, EventRegistration, regs[4])
    assert promoted.status == RegistrationStatus.registered
    assert promoted.payment_deadline_at == late + timedelta(hours=settings.PAYMENT_DEADLINE_HOURS)

    types = [n.type for n in session.exec(select(Notification).where(Notification.user_id == 3)).all()]
    assert "registration_expired" in types

    # A second pass at the same instant finds nothing
    assert waitlist_service.process_expired_payment_deadlines(session, now=late)["expired"] == 0


@pytest.mark.parametrize("pay", [waitlist_service.mark_payment, waitlist_service.verify_payment])
def test_paying_protects_the_spot(session: Session, paid_event, pay):
    regs = paid_event["regs"]
    deadline = _reg(session, EventRegistration, regs[3]).payment_deadline_at
    pay(session, EVENT, regs[3], 3)

    result = waitlist_service.process_expired_payment_deadlines(session, now=deadline + timedelta(hours=1))

    assert result["expired"] == 0
    assert _reg(session, EventRegistration, regs[3]).status == RegistrationStatus.registered


def test_payment_flow(session: Session, paid_event):
    reg_id = paid_event["regs"][3]

    marked = waitlist_service.mark_payment(session, EVENT, reg_id, 3)
    assert marked.payment_status == PaymentStatus.marked_paid
    assert marked.payment_marked_at is not None
    with pytest.raises(StateConflictError):
        waitlist_service.mark_payment(session, EVENT, reg_id, 3)

    verified = waitlist_service.verify_payment(session, EVENT, reg_id, ORGANIZER_ID)
    assert verified.payment_status == PaymentStatus.verified
    assert verified.payment_deadline_at is None
    with pytest.raises(StateConflictError):
        waitlist_service.verify_payment(session, EVENT, reg_id, ORGANIZER_ID)


def test_waitlisted_player_can_pay_ahead(session: Session, paid_event):
    regs = paid_event["regs"]

    waitlist_service.mark_payment(session, EVENT, regs[4], 4)
    verified = waitlist_service.verify_payment(session, EVENT, regs[4], ORGANIZER_ID)

    assert verified.status == RegistrationStatus.waitlisted
    assert verified.waitlist_position == 1
    assert verified.payment_status == PaymentStatus.verified

    result = waitlist_service.cancel_registration(session, EVENT, regs[2], actor_id=2)

    promoted = result["promoted"]
    assert promoted.id == regs[4]
    assert promoted.status == RegistrationStatus.registered
    assert promoted.payment_status == PaymentStatus.verified
    assert promoted.payment_deadline_at is None


def test_marked_paid_while_waiting_is_kept_on_promotion(session: Session, paid_event):
    regs = paid_event["regs"]
    waitlist_service.mark_payment(session, EVENT, regs[4], 4)

    promoted = waitlist_service.cancel_registration(session, EVENT, regs[2], actor_id=2)["promoted"]

    assert promoted.payment_status == PaymentStatus.marked_paid
    assert promoted.payment_deadline_at is None
    assert waitlist_service.process_expired_payment_deadlines(session)["expired"] == 0


def test_cancelled_registration_takes_no_payment(session: Session, paid_event):
    with pytest.raises(StateConflictError):
        waitlist_service.mark_payment(session, EVENT, paid_event["regs"][1], 1)


# ============================================================================
# Tournament registrations
# ============================================================================


def test_tournament_waitlist_is_audited(session: Session):
    tournament = make_tournament(session, max_participants=1)
    regs = _sign_up(session, tournament.id, [10, 11], kind=TOURNAMENT)

    result = waitlist_service.cancel_registration(session, TOURNAMENT, regs[10], actor_id=10)

    assert result["promoted"].user_id == 11
    audits = session.exec(select(TournamentAuditLog).order_by(TournamentAuditLog.id)).all()
    assert [(a.action, a.user_id) for a in audits] == [("CancelRegistration", 10), ("Promote", 10)]
    assert audits[1].entity_id == regs[11]
    assert audits[1].old_value == {"status": "Waitlisted", "waitlist_position": 1}


def test_tournament_deadline_expiry_is_audited_as_system(session: Session):
    tournament = make_tournament(session, max_participants=1, entry_fee=Decimal("40"))
    regs = _sign_up(session, tournament.id, [10, 11, 12], kind=TOURNAMENT)
    waitlist_service.cancel_registration(session, TOURNAMENT, regs[10], actor_id=10)
    deadline = _reg(session, TournamentRegistration, regs[11]).payment_deadline_at

    waitlist_service.process_expired_payment_deadlines(session, now=deadline + timedelta(seconds=1))

    session.expire_all()
    audits = session.exec(select(TournamentAuditLog).order_by(TournamentAuditLog.id)).all()
    assert [(a.action, a.user_id) for a in audits[-2:]] == [("ExpirePayment", SYSTEM_USER_ID), ("Promote", SYSTEM_USER_ID)]
    assert [uid for uid, _ in _waitlist(session, tournament.id, kind=TOURNAMENT)] == []


def test_tournament_without_participant_limit_never_waitlists(session: Session):
    tournament = make_tournament(session)
    _sign_up(session, tournament.id, range(1, 30), kind=TOURNAMENT)

    assert _waitlist(session, tournament.id, kind=TOURNAMENT) == []


def test_tournament_registration_requires_open_status(session: Session):
    tournament = make_tournament(session, status=TournamentStatus.draft)

    with pytest.raises(StateConflictError):
        waitlist_service.register(session, TOURNAMENT, tournament.id, 1)


def test_unknown_parent_kind():
    with pytest.raises(ValidationError):
        waitlist_service.get_parent_kind("league")
