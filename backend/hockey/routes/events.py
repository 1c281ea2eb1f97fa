from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session, select

from hockey.database import get_session
from hockey.models.enums import EventStatus, Lifecycle
from hockey.models.event import Event
from hockey.routes.deps import get_actor_id
from hockey.utils.guards import require_event

router = APIRouter()


class EventCreate(BaseModel):
    name: Optional[str] = None
    event_date: datetime
    venue: Optional[str] = None
    max_players: int = Field(gt=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    status: EventStatus = EventStatus.published
    organization_id: Optional[int] = None


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: Optional[str] = None
    display_name: str
    event_date: datetime
    venue: Optional[str] = None
    max_players: int
    cost: Decimal
    status: str
    creator_id: int
    created_at: datetime


@router.get("/events", response_model=List[EventResponse])
def list_events(session: Session = Depends(get_session)):
    """List live events by date"""
    return session.exec(
        select(Event).where(Event.lifecycle == Lifecycle.active).order_by(Event.event_date)
    ).all()


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(
    data: EventCreate,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Create a pickup game"""
    event = Event(**data.model_dump(), creator_id=actor_id)
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int, session: Session = Depends(get_session)):
    return require_event(session, event_id)
