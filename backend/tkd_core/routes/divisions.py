"""
Division generation and listing.

Eligibility (official weigh-in) is decided by the roster system; only
eligible competitors are posted here.
"""

import math
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session

from tkd_core.database import get_session
from tkd_core.models.division import Division, DivisionParticipant
from tkd_core.services.division_classifier import Competitor, age_on
from tkd_core.services.division_rules import rule_table_from_dict
from tkd_core.services.division_service import (
    division_participants,
    division_status,
    division_team_conflicts,
    generate_divisions,
    list_divisions,
    require_division,
)
from tkd_core.services.errors import ConfigurationError, DivisionEngineError
from tkd_core.utils.http_errors import to_http_exception

router = APIRouter()


class CompetitorIn(BaseModel):
    id: str
    gender: str
    age: Optional[int] = None
    date_of_birth: Optional[date] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    name: Optional[str] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if not v or not v.strip():
            raise ValueError("id cannot be empty")
        return v.strip()

    @model_validator(mode="after")
    def validate_age_source(self):
        if self.age is None and self.date_of_birth is None:
            raise ValueError("age or date_of_birth is required")
        return self


class GenerateDivisionsRequest(BaseModel):
    competitors: List[CompetitorIn]
    # Date ages are computed on when only date_of_birth is given (default: today)
    as_of: Optional[date] = None
    # Optional rule table in the DIVISION_RULES_PATH JSON shape
    rules: Optional[Dict[str, Any]] = None


class ParticipantResponse(BaseModel):
    id: int
    competitor_id: str
    name: Optional[str] = None
    team_id: Optional[str] = None
    team_name: Optional[str] = None
    age: int
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    seed_number: Optional[int] = None

    class Config:
        from_attributes = True


class DivisionResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    category: str
    gender: str
    criterion: str
    band_label: str
    min_age: int
    max_age: int
    min_height: Optional[float] = None
    max_height: Optional[float] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    participant_count: int
    status: str  # "ready" | "needs_more_participants"
    team_conflicts: Dict[str, int] = {}
    bracket_generation: int = 0


class DivisionDetailResponse(DivisionResponse):
    participants: List[ParticipantResponse]


class GenerateDivisionsResponse(BaseModel):
    divisions: List[DivisionResponse]
    skipped: List[str]
    skip_reasons: Dict[str, str]
    deleted_divisions: int


def _division_to_response(division: Division, participants: List[DivisionParticipant]) -> DivisionResponse:
    return DivisionResponse(
        id=division.id,
        tournament_id=division.tournament_id,
        name=division.name,
        category=division.category,
        gender=str(getattr(division.gender, "value", division.gender)),
        criterion=division.criterion,
        band_label=division.band_label,
        min_age=division.min_age,
        max_age=division.max_age,
        min_height=division.min_height,
        max_height=division.max_height,
        min_weight=division.min_weight,
        max_weight=division.max_weight,
        participant_count=len(participants),
        status=division_status(len(participants)),
        team_conflicts=division_team_conflicts(participants),
        bracket_generation=division.bracket_generation or 0,
    )


def _require_finite_measurements(competitors: List[CompetitorIn]) -> None:
    # NaN and Infinity get past the JSON parser and pydantic float fields
    for c in competitors:
        for field_name in ("height_cm", "weight_kg"):
            value = getattr(c, field_name)
            if value is not None and not math.isfinite(value):
                raise HTTPException(
                    status_code=422,
                    detail=f"Competitor {c.id}: {field_name} must be a finite number",
                )


def _to_competitor(c: CompetitorIn, as_of: date) -> Competitor:
    age = c.age if c.age is not None else age_on(c.date_of_birth, as_of)
    return Competitor(
        id=c.id,
        gender=c.gender.strip().lower(),
        age=age,
        team_id=c.team_id,
        height_cm=c.height_cm,
        weight_kg=c.weight_kg,
        name=c.name,
        team_name=c.team_name,
    )


@router.post(
    "/tournaments/{tournament_id}/divisions/generate",
    response_model=GenerateDivisionsResponse,
)
def generate_tournament_divisions(
    tournament_id: int,
    payload: GenerateDivisionsRequest,
    session: Session = Depends(get_session),
) -> GenerateDivisionsResponse:
    """Replace the tournament's divisions (and their brackets) with a fresh classification."""
    _require_finite_measurements(payload.competitors)
    as_of = payload.as_of or date.today()
    competitors = [_to_competitor(c, as_of) for c in payload.competitors]
    try:
        rules = rule_table_from_dict(payload.rules) if payload.rules is not None else None
    except ConfigurationError as e:
        raise to_http_exception(e, client_rules=True)

    try:
        result = generate_divisions(session, tournament_id, competitors, rules)
    except DivisionEngineError as e:
        raise to_http_exception(e, client_rules=rules is not None)

    return GenerateDivisionsResponse(
        divisions=[_division_to_response(d, division_participants(session, d.id)) for d in result.divisions],
        skipped=result.skipped,
        skip_reasons=result.skip_reasons,
        deleted_divisions=result.deleted_divisions,
    )


@router.get("/tournaments/{tournament_id}/divisions", response_model=List[DivisionResponse])
def get_tournament_divisions(tournament_id: int, session: Session = Depends(get_session)):
    """Divisions in rule-table order with status and team-conflict summary"""
    try:
        divisions = list_divisions(session, tournament_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)
    return [_division_to_response(d, division_participants(session, d.id)) for d in divisions]


@router.get("/divisions/{division_id}", response_model=DivisionDetailResponse)
def get_division(division_id: int, session: Session = Depends(get_session)):
    try:
        division = require_division(session, division_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)
    participants = division_participants(session, division_id)
    summary = _division_to_response(division, participants)
    return DivisionDetailResponse(
        **summary.model_dump(),
        participants=[ParticipantResponse.model_validate(p) for p in participants],
    )
