from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from tkd_core.database import get_session
from tkd_core.models.match import Match
from tkd_core.services.bracket_service import generate_all_brackets, generate_bracket, get_bracket
from tkd_core.services.errors import DivisionEngineError
from tkd_core.services.results_service import tournament_results
from tkd_core.utils.http_errors import to_http_exception

router = APIRouter()


class MatchResponse(BaseModel):
    id: int
    division_id: int
    round_number: int
    match_number: int
    participant1_id: Optional[int] = None
    participant2_id: Optional[int] = None
    winner_id: Optional[int] = None
    status: str
    is_bye: bool = False
    participant1_score: Optional[int] = None
    participant2_score: Optional[int] = None
    notes: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BracketResponse(BaseModel):
    division_id: int
    participant_count: int
    round_count: int
    matches: List[MatchResponse]
    team_conflicts: List[str] = []


class BulkBracketResponse(BaseModel):
    generated: Dict[int, int]
    insufficient: Dict[int, int]


class PlacementResponse(BaseModel):
    division_id: int
    division_name: str
    placement: int
    medal: str
    participant_id: int
    competitor_id: str
    name: Optional[str] = None
    team_name: Optional[str] = None

    class Config:
        from_attributes = True


@router.post("/divisions/{division_id}/bracket", response_model=BracketResponse, status_code=201)
def create_division_bracket(division_id: int, session: Session = Depends(get_session)) -> BracketResponse:
    """(Re)generate the division's single-elimination bracket; previous matches are discarded."""
    try:
        result = generate_bracket(session, division_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)
    return BracketResponse(
        division_id=result.division_id,
        participant_count=result.participant_count,
        round_count=result.round_count,
        matches=[MatchResponse.model_validate(m) for m in result.matches],
        team_conflicts=result.team_conflicts,
    )


@router.get("/divisions/{division_id}/bracket", response_model=List[MatchResponse])
def get_division_bracket(division_id: int, session: Session = Depends(get_session)):
    """Matches ordered by round, match number"""
    try:
        return get_bracket(session, division_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)


@router.post("/tournaments/{tournament_id}/brackets/generate", response_model=BulkBracketResponse)
def create_all_brackets(tournament_id: int, session: Session = Depends(get_session)) -> BulkBracketResponse:
    """Generate brackets for all divisions; divisions with fewer than 2 participants are listed, not fatal."""
    try:
        result = generate_all_brackets(session, tournament_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)
    return BulkBracketResponse(generated=result.generated, insufficient=result.insufficient)


@router.get("/tournaments/{tournament_id}/results", response_model=List[PlacementResponse])
def get_tournament_results(tournament_id: int, session: Session = Depends(get_session)):
    """Gold/silver placements of every division whose final is completed"""
    try:
        return [PlacementResponse.model_validate(p) for p in tournament_results(session, tournament_id)]
    except DivisionEngineError as e:
        raise to_http_exception(e)
