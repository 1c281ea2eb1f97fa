"""
Periodic maintenance: payment-deadline sweep, event reminders, notification cleanup.

Each job is a plain synchronous ``run_*_once`` function that opens its own
session, logs and swallows its own failure, and is safe to run redundantly or
not at all. The async loops only schedule them (in a worker thread so the
event loop never blocks on the database).
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from hockey import settings
from hockey.models.enums import EventStatus, Lifecycle, PaymentStatus
from hockey.models.event import Event, EventRegistration
from hockey.models.notification import Notification
from hockey.services.notification_service import PendingNotification, get_push_service
from hockey.services.waitlist_service import ACTIVE_STATUSES, process_expired_payment_deadlines

logger = logging.getLogger(__name__)


def _engine(engine: Optional[Engine]) -> Engine:
    if engine is not None:
        return engine
    from hockey.database import engine as default_engine

    return default_engine


def run_waitlist_sweep_once(engine: Optional[Engine] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Expire unpaid promotions when enforcement is switched on."""
    if not settings.PAYMENT_DEADLINE_ENFORCED:
        logger.debug("Payment deadline enforcement disabled; sweep skipped")
        return {"expired": 0, "promoted": 0, "failed": 0}
    with Session(_engine(engine)) as session:
        try:
            return process_expired_payment_deadlines(session, now=now)
        except Exception:
            logger.exception("Waitlist sweep failed")
            return {"expired": 0, "promoted": 0, "failed": 1}


def _active_registrations(session: Session, event_id: int) -> List[EventRegistration]:
    return session.exec(
        select(EventRegistration).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
    ).all()


def _upcoming_events(session: Session, now: datetime, hours: float) -> List[Event]:
    return session.exec(
        select(Event).where(
            Event.status == EventStatus.published,
            Event.lifecycle == Lifecycle.active,
            Event.event_date > now,
            Event.event_date <= now + timedelta(hours=hours),
        )
    ).all()


def send_event_reminders(session: Session, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Player reminder PLAYER_REMINDER_HOURS before the game, organizer
    unpaid-players reminder ORGANIZER_PAYMENT_REMINDER_HOURS before. Each is
    sent at most once per event (stamped on the event).
    """
    now = now or datetime.utcnow()
    pending: List[PendingNotification] = []
    counts = {"player_reminders": 0, "organizer_reminders": 0}

    for event in _upcoming_events(session, now, settings.PLAYER_REMINDER_HOURS):
        if event.player_reminder_sent_at is not None:
            continue
        for reg in _active_registrations(session, event.id):
            pending.append(
                PendingNotification(
                    reg.user_id,
                    "game_reminder",
                    "Game starting soon",
                    f"{event.display_name} starts at {event.event_date:%H:%M}" + (f" at {event.venue}" if event.venue else ""),
                    {"event_id": event.id},
                )
            )
            counts["player_reminders"] += 1
        event.player_reminder_sent_at = now
        session.add(event)

    for event in _upcoming_events(session, now, settings.ORGANIZER_PAYMENT_REMINDER_HOURS):
        if event.organizer_payment_reminder_sent_at is not None or not (event.cost or 0) > 0:
            continue
        unpaid = [
            r
            for r in _active_registrations(session, event.id)
            if r.payment_status in (None, PaymentStatus.pending, PaymentStatus.marked_paid)
        ]
        if unpaid:
            pending.append(
                PendingNotification(
                    event.creator_id,
                    "organizer_payment_reminder",
                    "Unconfirmed payments",
                    f"{len(unpaid)} player(s) in {event.display_name} have no verified payment yet.",
                    {"event_id": event.id, "registration_ids": [r.id for r in unpaid]},
                )
            )
            counts["organizer_reminders"] += 1
        event.organizer_payment_reminder_sent_at = now
        session.add(event)

    # Stamped before dispatch; a reminder is never sent twice
    session.commit()
    get_push_service().dispatch_all(session, pending)
    return counts


def run_reminders_once(engine: Optional[Engine] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    with Session(_engine(engine)) as session:
        try:
            counts = send_event_reminders(session, now=now)
            if any(counts.values()):
                logger.info(f"Reminders sent: {counts}")
            return counts
        except Exception:
            session.rollback()
            logger.exception("Reminder run failed")
            return {"player_reminders": 0, "organizer_reminders": 0}


def cleanup_notifications(session: Session, now: Optional[datetime] = None) -> int:
    cutoff = (now or datetime.utcnow()) - timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)
    old = session.exec(select(Notification).where(Notification.created_at < cutoff)).all()
    for notification in old:
        session.delete(notification)
    session.commit()
    return len(old)


def run_notification_cleanup_once(engine: Optional[Engine] = None, now: Optional[datetime] = None) -> int:
    with Session(_engine(engine)) as session:
        try:
            count = cleanup_notifications(session, now=now)
            logger.info(f"Notification cleanup completed: {count} removed")
            return count
        except Exception:
            session.rollback()
            logger.exception("Notification cleanup failed")
            return 0


async def periodic_loop(name: str, job: Callable[[], object], interval_seconds: float) -> None:
    """Run ``job`` every ``interval_seconds`` until cancelled."""
    logger.info(f"Starting {name} loop with interval {interval_seconds}s")
    while True:
        try:
            await asyncio.to_thread(job)
        except Exception:
            logger.exception(f"{name} loop error")
        await asyncio.sleep(interval_seconds)


def start_background_tasks() -> List[asyncio.Task]:
    """Schedule every maintenance loop on the running event loop."""
    jobs = [
        ("waitlist-sweep", run_waitlist_sweep_once, settings.WAITLIST_SWEEP_MINUTES * 60),
        ("reminders", run_reminders_once, settings.REMINDER_INTERVAL_MINUTES * 60),
        ("notification-cleanup", run_notification_cleanup_once, settings.NOTIFICATION_CLEANUP_HOURS * 3600),
    ]
    return [asyncio.create_task(periodic_loop(name, job, interval)) for name, job, interval in jobs]


async def stop_background_tasks(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
