from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from hockey.database import get_session
from hockey.services.standings_service import compute_standings

router = APIRouter()


class StandingRow(BaseModel):
    rank: int
    team_id: int
    name: str
    seed: Optional[int] = None
    games_played: int
    wins: int
    losses: int
    ties: int
    points: int
    goals_for: int
    goals_against: int
    goal_differential: int
    is_playoff_bound: bool


class StandingsResponse(BaseModel):
    tournament_id: int
    standings: List[StandingRow]
    tied_groups: List[List[int]]


@router.get("/tournaments/{tournament_id}/standings", response_model=StandingsResponse)
def get_standings(tournament_id: int, session: Session = Depends(get_session)):
    """Ranked table from completed matches (points, then configured tiebreakers)"""
    return compute_standings(session, tournament_id)
