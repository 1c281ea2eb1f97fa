"""
Registration / waitlist API for both events and tournaments.

``parent`` in the path is ``events`` or ``tournaments``; everything else is
shared through the waitlist manager's parent descriptors.
"""
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from hockey.database import get_session
from hockey.routes.deps import get_actor_id
from hockey.services import waitlist_service
from hockey.services.waitlist_service import ParentKind

router = APIRouter()

ParentPath = Literal["events", "tournaments"]


def _kind(parent: str) -> ParentKind:
    return waitlist_service.get_parent_kind(parent.rstrip("s"))


class RegisterRequest(BaseModel):
    position: Optional[str] = None  # tournaments only: "Goalie" | "Skater"


class ReorderRequest(BaseModel):
    registration_ids: List[int]


class RegistrationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    event_id: Optional[int] = None
    tournament_id: Optional[int] = None
    status: str
    position: Optional[str] = None
    assigned_team_id: Optional[int] = None
    waitlist_position: Optional[int] = None
    promoted_at: Optional[datetime] = None
    payment_status: Optional[str] = None
    payment_marked_at: Optional[datetime] = None
    payment_verified_at: Optional[datetime] = None
    payment_deadline_at: Optional[datetime] = None
    registered_at: datetime
    cancelled_at: Optional[datetime] = None


class CancelResponse(BaseModel):
    registration: RegistrationResponse
    promoted: Optional[RegistrationResponse] = None


@router.post("/{parent}/{parent_id}/registrations", response_model=RegistrationResponse, status_code=201)
def register(
    parent: ParentPath,
    parent_id: int,
    data: Optional[RegisterRequest] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Register the acting user; joins the waitlist when the parent is full"""
    return waitlist_service.register(
        session, _kind(parent), parent_id, actor_id, position=data.position if data else None
    )


@router.get("/{parent}/{parent_id}/registrations", response_model=List[RegistrationResponse])
def list_registrations(parent: ParentPath, parent_id: int, session: Session = Depends(get_session)):
    return waitlist_service.list_registrations(session, _kind(parent), parent_id)


@router.get("/{parent}/{parent_id}/waitlist", response_model=List[RegistrationResponse])
def get_waitlist(parent: ParentPath, parent_id: int, session: Session = Depends(get_session)):
    """Waitlisted registrations in promotion order"""
    return waitlist_service.get_waitlist(session, _kind(parent), parent_id)


@router.post("/{parent}/{parent_id}/waitlist/promote", response_model=Optional[RegistrationResponse])
def promote(
    parent: ParentPath,
    parent_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Promote the head of the waitlist; null when nobody is waiting or the parent is full"""
    return waitlist_service.promote_from_waitlist(session, _kind(parent), parent_id, actor_id)


@router.put("/{parent}/{parent_id}/waitlist/order", response_model=List[RegistrationResponse])
def reorder(
    parent: ParentPath,
    parent_id: int,
    data: ReorderRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return waitlist_service.reorder_waitlist(session, _kind(parent), parent_id, data.registration_ids, actor_id)


@router.delete("/{parent}/registrations/{registration_id}", response_model=CancelResponse)
def cancel(
    parent: ParentPath,
    registration_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Cancel a registration; a freed spot is handed to the head of the waitlist"""
    return waitlist_service.cancel_registration(session, _kind(parent), registration_id, actor_id)


@router.post("/{parent}/registrations/{registration_id}/payment/mark", response_model=RegistrationResponse)
def mark_paid(
    parent: ParentPath,
    registration_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return waitlist_service.mark_payment(session, _kind(parent), registration_id, actor_id)


@router.post("/{parent}/registrations/{registration_id}/payment/verify", response_model=RegistrationResponse)
def verify_paid(
    parent: ParentPath,
    registration_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return waitlist_service.verify_payment(session, _kind(parent), registration_id, actor_id)
