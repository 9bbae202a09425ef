from datetime import datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import String
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from tkd_core.services.division_rules import Gender

if TYPE_CHECKING:
    from tkd_core.models.match import Match
    from tkd_core.models.tournament import Tournament


class Division(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_division_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str  # "{Category} {Gender} {Band}", e.g. "Cadet Male -33kg"
    category: str  # rule table category key: "gradeschool" | "cadet" | ...
    gender: Gender = Field(sa_column=Column(String))
    criterion: str  # "height" | "weight"
    band_label: str
    min_age: int
    max_age: int
    min_height: Optional[float] = Field(default=None)
    max_height: Optional[float] = Field(default=None)
    min_weight: Optional[float] = Field(default=None)
    max_weight: Optional[float] = Field(default=None)
    sort_order: int = Field(default=0)  # category, gender, band order from the rule table

    # Compared and bumped by bracket (re)generation
    bracket_generation: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="divisions")
    participants: List["DivisionParticipant"] = Relationship(back_populates="division")
    matches: List["Match"] = Relationship(back_populates="division")


class DivisionParticipant(SQLModel, table=True):
    """Snapshot of a competitor at classification time."""

    __table_args__ = (SAUniqueConstraint("division_id", "competitor_id", name="uq_division_competitor"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id", index=True)
    competitor_id: str
    name: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    gender: str
    age: int
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    entry_order: int  # classification order (roster order)
    seed_number: Optional[int] = Field(default=None)  # 1-based bracket position, set by bracket generation

    # Relationships
    division: "Division" = Relationship(back_populates="participants")
