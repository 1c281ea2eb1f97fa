"""
Match runtime: start, score, forfeit.
Scoring goes through the result processor, which also fills downstream team slots.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session

from hockey.database import get_session
from hockey.routes.bracket import MatchResponse
from hockey.routes.deps import get_actor_id
from hockey.services import match_results

router = APIRouter()


class ScoreRequest(BaseModel):
    home_score: int = Field(ge=0)
    away_score: int = Field(ge=0)
    overtime_winner_team_id: Optional[int] = None


class ForfeitRequest(BaseModel):
    forfeiting_team_id: int
    reason: Optional[str] = None


@router.post("/tournaments/{tournament_id}/matches/{match_id}/start", response_model=MatchResponse)
def start_match(
    tournament_id: int,
    match_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return match_results.start_match(session, tournament_id, match_id, actor_id)


@router.post("/tournaments/{tournament_id}/matches/{match_id}/score", response_model=MatchResponse)
def report_score(
    tournament_id: int,
    match_id: int,
    data: ScoreRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    """Record the final score (ties in elimination formats need overtime_winner_team_id)"""
    return match_results.report_match_result(
        session,
        tournament_id,
        match_id,
        actor_id,
        data.home_score,
        data.away_score,
        overtime_winner_team_id=data.overtime_winner_team_id,
    )


@router.post("/tournaments/{tournament_id}/matches/{match_id}/forfeit", response_model=MatchResponse)
def forfeit(
    tournament_id: int,
    match_id: int,
    data: ForfeitRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_actor_id),
):
    return match_results.forfeit_match(
        session, tournament_id, match_id, actor_id, data.forfeiting_team_id, reason=data.reason
    )
