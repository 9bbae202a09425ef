"""
Match runtime: record results, in-progress marker, notes.
Recording a result advances the winner into the next round's match.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator
from sqlmodel import Session

from tkd_core.database import get_session
from tkd_core.routes.brackets import MatchResponse
from tkd_core.services.errors import DivisionEngineError
from tkd_core.services.match_service import record_match_result, require_match, start_match, update_match_notes
from tkd_core.utils.http_errors import to_http_exception

router = APIRouter()

RUNTIME_IN_PROGRESS = "in_progress"


class MatchResultRequest(BaseModel):
    winner_id: Optional[int] = None
    participant1_score: Optional[int] = None
    participant2_score: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_winner_source(self):
        has_scores = self.participant1_score is not None and self.participant2_score is not None
        if self.winner_id is None and not has_scores:
            raise ValueError("winner_id or both participant scores are required")
        return self


class MatchResultResponse(BaseModel):
    match: MatchResponse
    noop: bool = False
    advanced: List[MatchResponse] = []
    champion_id: Optional[int] = None


class MatchRuntimeUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None


@router.post("/matches/{match_id}/result", response_model=MatchResultResponse)
def post_match_result(
    match_id: int,
    payload: MatchResultRequest,
    session: Session = Depends(get_session),
) -> MatchResultResponse:
    """Record a winner. Repeating the same winner is a no-op; a different winner is a 409 conflict."""
    try:
        outcome = record_match_result(
            session,
            match_id,
            winner_id=payload.winner_id,
            participant1_score=payload.participant1_score,
            participant2_score=payload.participant2_score,
            notes=payload.notes,
        )
    except DivisionEngineError as e:
        raise to_http_exception(e)

    return MatchResultResponse(
        match=MatchResponse.model_validate(outcome.match),
        noop=outcome.noop,
        advanced=[MatchResponse.model_validate(m) for m in outcome.advanced],
        champion_id=outcome.champion_id,
    )


@router.patch("/matches/{match_id}", response_model=MatchResponse)
def update_match_runtime(
    match_id: int,
    payload: MatchRuntimeUpdate,
    session: Session = Depends(get_session),
):
    """Set the in-progress marker and/or notes. Results go through POST /matches/{id}/result."""
    if payload.status is not None and payload.status != RUNTIME_IN_PROGRESS:
        raise HTTPException(
            status_code=422,
            detail=f"Invalid status: {payload.status}. Only '{RUNTIME_IN_PROGRESS}' can be set here",
        )
    try:
        match = require_match(session, match_id)
        if payload.status == RUNTIME_IN_PROGRESS:
            match = start_match(session, match_id)
        if payload.notes is not None:
            match = update_match_notes(session, match_id, payload.notes)
    except DivisionEngineError as e:
        raise to_http_exception(e)
    return match


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    try:
        return require_match(session, match_id)
    except DivisionEngineError as e:
        raise to_http_exception(e)
