from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from hockey.models.enums import TeamStatus

if TYPE_CHECKING:
    from hockey.models.tournament import Tournament


class TournamentTeam(SQLModel, table=True):
    __tablename__ = "tournament_team"
    __table_args__ = (
        # Enforce unique seeds within a tournament (where seed is not null)
        SAUniqueConstraint("tournament_id", "seed", name="uq_tournament_seed"),
        SAUniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    captain_user_id: Optional[int] = Field(default=None)  # organizer-assigned teams may have no captain
    status: TeamStatus = Field(default=TeamStatus.registered, sa_column=Column(String, nullable=False))
    waitlist_position: Optional[int] = Field(default=None)
    seed: Optional[int] = Field(default=None)  # 1-based seed (1=highest)
    final_placement: Optional[int] = Field(default=None)
    has_bye: bool = Field(default=False)

    # Statistics (written by match_results / standings_service only)
    wins: int = Field(default=0)
    losses: int = Field(default=0)
    ties: int = Field(default=0)
    points: int = Field(default=0)
    goals_for: int = Field(default=0)
    goals_against: int = Field(default=0)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")

    @property
    def goal_differential(self) -> int:
        return self.goals_for - self.goals_against
