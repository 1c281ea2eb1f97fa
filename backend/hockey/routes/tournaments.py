from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from sqlmodel import Session, select

from hockey.database import get_session
from hockey.models.enums import (
    DEFAULT_TIEBREAKER_ORDER,
    Lifecycle,
    TeamFormation,
    Tiebreaker,
    TournamentFormat,
)
from hockey.models.tournament import Tournament
from hockey.routes.deps import get_actor_id
from hockey.services import tournament_state_machine
from hockey.services.audit_service import MAX_AUDIT_PAGE
from hockey.utils.guards import require_tournament

router = APIRouter()


class TournamentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    format: TournamentFormat = TournamentFormat.single_elimination
    team_formation: TeamFormation = TeamFormation.organizer_assigned
    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    max_teams: int = Field(gt=0)
    max_participants: Optional[int] = Field(default=None, gt=0)
    min_players_per_team: Optional[int] = None
    max_players_per_team: Optional[int] = None
    entry_fee: Decimal = Decimal("0")
    fee_type: Optional[str] = None
    points_win: int = 3
    points_tie: int = 1
    points_loss: int = 0
    tiebreaker_order: List[Tiebreaker] = Field(default_factory=lambda: [Tiebreaker(t) for t in DEFAULT_TIEBREAKER_ORDER])
    playoff_teams_count: Optional[int] = None
    third_place_match: bool = False
    bracket_reset: bool = True
    venue: Optional[str] = None
    organization_id: Optional[int] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must be >= start_date")
        if len(set(self.tiebreaker_order)) != len(self.tiebreaker_order):
            raise ValueError("tiebreaker_order must not repeat a criterion")
        return self


class TournamentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    format: str
    team_formation: str
    status: str
    start_date: datetime
    end_date: datetime
    postponed_to_date: Optional[datetime] = None
    max_teams: int
    max_participants: Optional[int] = None
    entry_fee: Decimal
    points_win: int
    points_tie: int
    points_loss: int
    tiebreaker_order: List[str]
    playoff_teams_count: Optional[int] = None
    third_place_match: bool
    bracket_reset: bool
    venue: Optional[str] = None
    creator_id: int
    created_at: datetime
    published_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class TransitionRequest(BaseModel):
    details: Optional[Dict[str, Any]] = None


class TransitionResponse(BaseModel):
    tournament_id: int
    action: str
    status: str
    allowed_actions: List[str]


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action: str
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    details: Optional[Any] = None
    timestamp: datetime


class AuditLogPage(BaseModel):
    items: List[AuditLogResponse]
    total: int
    offset: int
    limit: int
    has_more: bool


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all live tournaments"""
    return session.exec(
        select(Tournament).where(Tournament.lifecycle == Lifecycle.active).order_by(Tournament.start_date)
    ).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(
    data: TournamentCreate,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Create a tournament in Draft"""
    values = data.model_dump()
    values["tiebreaker_order"] = [t.value for t in data.tiebreaker_order]
    tournament = Tournament(**values, creator_id=actor_id)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return require_tournament(session, tournament_id)


@router.post("/tournaments/{tournament_id}/transitions/{action}", response_model=TransitionResponse)
def transition_tournament(
    tournament_id: int,
    action: str,
    body: Optional[TransitionRequest] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Apply a state-machine action (Publish, CloseRegistration, Start, Complete, Postpone, Resume, Cancel)"""
    status = tournament_state_machine.transition_tournament(
        session, tournament_id, action, actor_id, body.details if body else None
    )
    return TransitionResponse(
        tournament_id=tournament_id,
        action=action,
        status=status.value,
        allowed_actions=[a.value for a in tournament_state_machine.allowed_actions(status)],
    )


@router.get("/tournaments/{tournament_id}/audit-log", response_model=AuditLogPage)
def list_audit_log(
    tournament_id: int,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=MAX_AUDIT_PAGE),
    action: Optional[str] = None,
    since: Optional[datetime] = Query(None, alias="from"),
    until: Optional[datetime] = Query(None, alias="to"),
    session: Session = Depends(get_session),
):
    """Audit trail, newest first"""
    require_tournament(session, tournament_id)
    return tournament_state_machine.list_audit_logs(
        session, tournament_id, offset=offset, limit=limit, action=action, since=since, until=until
    )
