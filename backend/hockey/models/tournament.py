from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, String
from sqlmodel import Column, Field, Relationship, SQLModel

from hockey.models.enums import (
    DEFAULT_TIEBREAKER_ORDER,
    Lifecycle,
    TeamFormation,
    TournamentFormat,
    TournamentStatus,
)

if TYPE_CHECKING:
    from hockey.models.match import TournamentMatch
    from hockey.models.team import TournamentTeam


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: Optional[int] = Field(default=None, index=True)  # None = standalone tournament
    creator_id: int
    name: str
    description: Optional[str] = None

    format: TournamentFormat = Field(
        default=TournamentFormat.single_elimination, sa_column=Column(String, nullable=False)
    )
    team_formation: TeamFormation = Field(
        default=TeamFormation.organizer_assigned, sa_column=Column(String, nullable=False)
    )

    # State machine status; only tournament_state_machine writes it
    status: TournamentStatus = Field(default=TournamentStatus.draft, sa_column=Column(String, nullable=False))
    status_before_postpone: Optional[TournamentStatus] = Field(default=None, sa_column=Column(String, nullable=True))

    start_date: datetime
    end_date: datetime
    registration_deadline: Optional[datetime] = None
    postponed_to_date: Optional[datetime] = None

    # Team configuration
    max_teams: int
    max_participants: Optional[int] = Field(default=None)  # individual sign-ups before the waitlist kicks in
    min_players_per_team: Optional[int] = None
    max_players_per_team: Optional[int] = None

    # Payment
    entry_fee: Decimal = Field(default=Decimal("0"))
    fee_type: Optional[str] = None  # None (free) | "PerPlayer" | "PerTeam"

    # Round robin config
    points_win: int = Field(default=3)
    points_tie: int = Field(default=1)
    points_loss: int = Field(default=0)
    tiebreaker_order: List[str] = Field(
        default_factory=lambda: list(DEFAULT_TIEBREAKER_ORDER), sa_column=Column(JSON)
    )
    playoff_teams_count: Optional[int] = None

    # Bracket options
    third_place_match: bool = Field(default=False)
    bracket_reset: bool = Field(default=True)  # double elimination: replay GF if losers champion wins it

    venue: Optional[str] = None
    lifecycle: Lifecycle = Field(default=Lifecycle.active, sa_column=Column(String, nullable=False))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
    published_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    # Relationships
    teams: List["TournamentTeam"] = Relationship(back_populates="tournament")
    matches: List["TournamentMatch"] = Relationship(back_populates="tournament")

    @property
    def is_elimination(self) -> bool:
        return self.format in (TournamentFormat.single_elimination, TournamentFormat.double_elimination)

    @property
    def charges_fee(self) -> bool:
        return (self.entry_fee or 0) > 0
