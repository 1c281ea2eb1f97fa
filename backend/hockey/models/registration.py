from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlmodel import Column, Field, SQLModel

from hockey.models.enums import RegistrationStatus


class TournamentRegistration(SQLModel, table=True):
    """Individual sign-up for a tournament (players later assigned to teams)."""

    __tablename__ = "tournament_registration"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    user_id: int = Field(index=True)
    status: RegistrationStatus = Field(default=RegistrationStatus.registered, sa_column=Column(String, nullable=False))
    position: Optional[str] = None  # "Goalie" | "Skater"

    # Waitlist
    waitlist_position: Optional[int] = Field(default=None)
    promoted_at: Optional[datetime] = None

    # Team assignment (OrganizerAssigned mode)
    assigned_team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")

    # Manual payment tracking
    payment_status: Optional[str] = Field(default=None)
    payment_marked_at: Optional[datetime] = None
    payment_verified_at: Optional[datetime] = None
    payment_deadline_at: Optional[datetime] = None

    registered_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
    cancelled_at: Optional[datetime] = None
