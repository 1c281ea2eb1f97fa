"""Append-only audit trail for tournament state changes."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class TournamentAuditLog(SQLModel, table=True):
    """Who changed what, when. Rows are inserted, never updated or deleted."""

    __tablename__ = "tournament_audit_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    user_id: int
    action: str  # Publish | Start | Cancel | Postpone | Resume | Complete | CloseRegistration | GenerateBracket | EnterScore | Forfeit | Promote ...

    # Status transitions
    from_status: Optional[str] = None
    to_status: Optional[str] = None

    # General-purpose entity actions
    entity_type: Optional[str] = None  # "TournamentMatch" | "TournamentRegistration" | ...
    entity_id: Optional[int] = None
    old_value: Optional[Any] = Field(default=None, sa_column=Column(JSON, nullable=True))
    new_value: Optional[Any] = Field(default=None, sa_column=Column(JSON, nullable=True))
    details: Optional[Any] = Field(default=None, sa_column=Column(JSON, nullable=True))

    timestamp: datetime = Field(default_factory=datetime.utcnow, index=True)
