from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tkd_core.models.division import Division


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("division_id", "round_number", "match_number", name="uq_match_division_round_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    round_number: int  # 1 = first round
    match_number: int  # 1-based, dense within the round

    # Slots hold DivisionParticipant ids; null = to be decided (or bye for slot 2)
    participant1_id: Optional[int] = Field(default=None, foreign_key="divisionparticipant.id")
    participant2_id: Optional[int] = Field(default=None, foreign_key="divisionparticipant.id")
    winner_id: Optional[int] = Field(default=None, foreign_key="divisionparticipant.id")

    status: str = Field(default="pending")  # "pending" | "in_progress" | "completed"
    is_bye: bool = Field(default=False)
    # Compared and bumped when a result is recorded
    version: int = Field(default=0)

    participant1_score: Optional[int] = Field(default=None)
    participant2_score: Optional[int] = Field(default=None)
    notes: Optional[str] = None
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    division: "Division" = Relationship(back_populates="matches")
