"""Audit-log sink. Rows are added to the caller's session and commit with the change they describe."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

from hockey.models.audit_log import TournamentAuditLog

MAX_AUDIT_PAGE = 50

# Actor recorded for background jobs (deadline sweep)
SYSTEM_USER_ID = 0


def record(
    session: Session,
    tournament_id: int,
    user_id: int,
    action: str,
    *,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    old_value: Optional[Any] = None,
    new_value: Optional[Any] = None,
    details: Optional[Any] = None,
) -> TournamentAuditLog:
    entry = TournamentAuditLog(
        tournament_id=tournament_id,
        user_id=user_id,
        action=action,
        from_status=from_status,
        to_status=to_status,
        entity_type=entity_type,
        entity_id=entity_id,
        old_value=old_value,
        new_value=new_value,
        details=details,
    )
    session.add(entry)
    return entry


def list_audit_logs(
    session: Session,
    tournament_id: int,
    offset: int = 0,
    limit: int = 20,
    action: Optional[str] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> Dict:
    """
    Page through a tournament's audit trail, newest first.

    Returns:
        Dict with items, total, offset, limit, has_more
    """
    limit = max(1, min(limit, MAX_AUDIT_PAGE))
    offset = max(0, offset)

    filters = [TournamentAuditLog.tournament_id == tournament_id]
    if action:
        filters.append(TournamentAuditLog.action == action)
    if since:
        filters.append(TournamentAuditLog.timestamp >= since)
    if until:
        filters.append(TournamentAuditLog.timestamp <= until)

    total = session.exec(select(func.count()).select_from(TournamentAuditLog).where(*filters)).one()
    items: List[TournamentAuditLog] = session.exec(
        select(TournamentAuditLog)
        .where(*filters)
        .order_by(TournamentAuditLog.timestamp.desc(), TournamentAuditLog.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return {
        "items": items,
        "total": total,
        "offset": offset,
        "limit": limit,
        "has_more": offset + len(items) < total,
    }
