"""
Tournament team API routes: roster, organizer seeding and player assignment.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from hockey.database import get_session
from hockey.routes.deps import get_actor_id
from hockey.routes.registrations import RegistrationResponse
from hockey.services import team_service

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TeamCreateRequest(BaseModel):
    name: str
    captain_user_id: Optional[int] = None
    seed: Optional[int] = Field(default=None, gt=0)


class SeedAssignment(BaseModel):
    team_id: int
    seed: Optional[int] = Field(default=None, gt=0)


class SetSeedsRequest(BaseModel):
    seeds: List[SeedAssignment]


class AssignPlayerRequest(BaseModel):
    team_id: int


class AutoAssignResponse(BaseModel):
    assigned: int
    teams: int


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    name: str
    captain_user_id: Optional[int] = None
    status: str
    waitlist_position: Optional[int] = None
    seed: Optional[int] = None
    final_placement: Optional[int] = None
    has_bye: bool
    wins: int
    losses: int
    ties: int
    points: int
    goals_for: int
    goals_against: int
    goal_differential: int
    created_at: datetime


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def get_teams(tournament_id: int, session: Session = Depends(get_session)):
    """Teams ordered by seed (unseeded last)"""
    return team_service.list_teams(session, tournament_id)


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(
    tournament_id: int,
    data: TeamCreateRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return team_service.add_team(
        session, tournament_id, data.name, captain_user_id=data.captain_user_id, seed=data.seed
    )


@router.put("/tournaments/{tournament_id}/seeds", response_model=List[TeamResponse])
def set_seeds(
    tournament_id: int,
    data: SetSeedsRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    seeds: Dict[int, Optional[int]] = {s.team_id: s.seed for s in data.seeds}
    return team_service.set_seeds(session, tournament_id, seeds, actor_id)


@router.put(
    "/tournaments/{tournament_id}/registrations/{registration_id}/team",
    response_model=RegistrationResponse,
)
def assign_player(
    tournament_id: int,
    registration_id: int,
    data: AssignPlayerRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return team_service.assign_player(session, tournament_id, registration_id, data.team_id, actor_id)


@router.delete(
    "/tournaments/{tournament_id}/registrations/{registration_id}/team",
    response_model=RegistrationResponse,
)
def remove_player(
    tournament_id: int,
    registration_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return team_service.remove_player(session, tournament_id, registration_id, actor_id)


@router.post("/tournaments/{tournament_id}/teams/auto-assign", response_model=AutoAssignResponse)
def auto_assign_players(
    tournament_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Deal unassigned registered players onto teams, goalies first"""
    return team_service.auto_assign_players(session, tournament_id, actor_id)
