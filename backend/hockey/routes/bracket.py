"""
Bracket API: generate / clear the match tree and read it back.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from hockey.database import get_session
from hockey.routes.deps import get_actor_id
from hockey.services import bracket_generator
from hockey.utils.guards import require_match

router = APIRouter()


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tournament_id: int
    round: int
    match_number: int
    bracket_position: Optional[str] = None
    bracket_type: Optional[str] = None
    is_bye: bool
    status: str
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner_team_id: Optional[int] = None
    forfeit_reason: Optional[str] = None
    next_match_id: Optional[int] = None
    next_match_slot: Optional[str] = None
    loser_next_match_id: Optional[int] = None
    loser_next_match_slot: Optional[str] = None
    scheduled_time: Optional[datetime] = None
    venue: Optional[str] = None


class ClearBracketResponse(BaseModel):
    tournament_id: int
    deleted: int


@router.post("/tournaments/{tournament_id}/bracket", response_model=List[MatchResponse], status_code=201)
def generate_bracket(
    tournament_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Generate the bracket for the tournament's format from its current teams"""
    return bracket_generator.generate_bracket(session, tournament_id, actor_id)


@router.delete("/tournaments/{tournament_id}/bracket", response_model=ClearBracketResponse)
def clear_bracket(
    tournament_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    deleted = bracket_generator.clear_bracket(session, tournament_id, actor_id)
    return ClearBracketResponse(tournament_id=tournament_id, deleted=deleted)


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    return bracket_generator.list_matches(session, tournament_id)


@router.get("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchResponse)
def get_match(tournament_id: int, match_id: int, session: Session = Depends(get_session)):
    return require_match(session, tournament_id, match_id)
