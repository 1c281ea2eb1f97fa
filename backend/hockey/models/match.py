from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from hockey.models.enums import BracketType, MatchStatus, Slot

if TYPE_CHECKING:
    from hockey.models.tournament import Tournament


class TournamentMatch(SQLModel, table=True):
    __tablename__ = "tournament_match"
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "bracket_type", "round", "match_number", name="uq_match_position"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)

    # Team slots (nullable for TBD / bye)
    home_team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")

    # Position in the tournament
    round: int
    match_number: int  # 1-based within (bracket_type, round)
    bracket_position: Optional[str] = None  # "QF1" | "SF1" | "Final" | "3rdPlace" | "W-R1-M1" | "L-R2-M1" | "GF" | "RR-R1-M2"
    bracket_type: Optional[BracketType] = Field(default=None, sa_column=Column(String, nullable=True))
    is_bye: bool = Field(default=False)

    scheduled_time: Optional[datetime] = None
    venue: Optional[str] = None

    status: MatchStatus = Field(default=MatchStatus.scheduled, sa_column=Column(String, nullable=False))
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    winner_team_id: Optional[int] = Field(default=None, foreign_key="tournament_team.id")
    forfeit_reason: Optional[str] = None

    # Bracket advancement: successor ids + destination slot (no owning references)
    next_match_id: Optional[int] = Field(default=None, foreign_key="tournament_match.id")
    next_match_slot: Optional[Slot] = Field(default=None, sa_column=Column(String, nullable=True))
    loser_next_match_id: Optional[int] = Field(default=None, foreign_key="tournament_match.id")
    loser_next_match_slot: Optional[Slot] = Field(default=None, sa_column=Column(String, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")

    @property
    def loser_team_id(self) -> Optional[int]:
        if self.winner_team_id is None or self.home_team_id is None or self.away_team_id is None:
            return None
        return self.away_team_id if self.winner_team_id == self.home_team_id else self.home_team_id

    def team_in(self, slot: str) -> Optional[int]:
        return self.home_team_id if slot == Slot.home else self.away_team_id
