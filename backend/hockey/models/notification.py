"""Notification log and push-token lookup."""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class Notification(SQLModel, table=True):
    """Every notification dispatched through the system (in-app inbox + push attempt)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    type: str  # auto_promoted|auto_promotion|registration_expired|match_completed|tournament_status_changed|game_reminder|organizer_payment_reminder
    title: str
    body: str
    data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    push_status: str = Field(default="skipped")  # sent|dry_run|failed|skipped
    error_message: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)
    read_at: Optional[datetime] = None


class UserDevice(SQLModel, table=True):
    """Expo push token per user. Registration of tokens happens elsewhere; this table is read-only here."""

    __tablename__ = "user_device"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    push_token: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
