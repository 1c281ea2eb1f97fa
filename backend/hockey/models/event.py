from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String
from sqlmodel import Column, Field, Relationship, SQLModel

from hockey.models.enums import EventStatus, Lifecycle, RegistrationStatus


class Event(SQLModel, table=True):
    """A pickup game. Capacity-limited, optionally paid, with a waitlist."""

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: Optional[int] = Field(default=None, index=True)
    creator_id: int
    name: Optional[str] = None
    event_date: datetime
    venue: Optional[str] = None
    max_players: int
    cost: Decimal = Field(default=Decimal("0"))
    status: EventStatus = Field(default=EventStatus.published, sa_column=Column(String, nullable=False))
    lifecycle: Lifecycle = Field(default=Lifecycle.active, sa_column=Column(String, nullable=False))

    # Reminder tracking (each reminder is sent once)
    player_reminder_sent_at: Optional[datetime] = None
    organizer_payment_reminder_sent_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    registrations: List["EventRegistration"] = Relationship(back_populates="event")

    @property
    def display_name(self) -> str:
        return self.name or f"Event on {self.event_date:%b %d}"


class EventRegistration(SQLModel, table=True):
    __tablename__ = "event_registration"

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id", index=True)
    user_id: int = Field(index=True)
    status: RegistrationStatus = Field(default=RegistrationStatus.registered, sa_column=Column(String, nullable=False))

    # Waitlist
    waitlist_position: Optional[int] = Field(default=None)  # 1-based, dense among Waitlisted rows
    promoted_at: Optional[datetime] = None

    # Manual (Venmo-style) payment tracking
    payment_status: Optional[str] = Field(default=None)  # None | Pending | MarkedPaid | Verified
    payment_marked_at: Optional[datetime] = None
    payment_verified_at: Optional[datetime] = None
    payment_deadline_at: Optional[datetime] = None

    registered_at: datetime = Field(default_factory=datetime.utcnow)
    cancelled_at: Optional[datetime] = None

    # Relationships
    event: "Event" = Relationship(back_populates="registrations")
