"""
Match runtime operations (session-backed): record results, in-progress marker.

Calls on the same match are serialized with match_locks (in-process) and
the Match.version compare-and-set (across processes), so the
idempotence/conflict rules hold under concurrent client retries.
"""

import logging
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from tkd_core.models.match import Match
from tkd_core.services import advancement_service
from tkd_core.services.advancement_service import MATCH_COMPLETED, RecordOutcome
from tkd_core.services.errors import NotFound, PreconditionViolation, ResultConflict
from tkd_core.services.match_repository import SqlMatchRepository
from tkd_core.utils.locks import match_locks

logger = logging.getLogger(__name__)


def require_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFound(f"Match {match_id} not found")
    return match


def winner_from_scores(match: Match, participant1_score: int, participant2_score: int) -> Optional[int]:
    """Higher score wins; ties are rejected."""
    if participant1_score == participant2_score:
        raise PreconditionViolation("Scores cannot be tied. One participant must win.")
    if participant1_score > participant2_score:
        return match.participant1_id
    return match.participant2_id


class _StaleMatch(Exception):
    """Another writer recorded this match's result after it was read."""


def _bump_version(session: Session, match_id: int, expected: int) -> None:
    result = session.execute(
        update(Match)
        .where(Match.id == match_id, Match.version == expected)
        .values(version=expected + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise _StaleMatch()


def _scores_differ(match: Match, participant1_score, participant2_score, notes) -> bool:
    supplied = (
        (participant1_score, match.participant1_score),
        (participant2_score, match.participant2_score),
        (notes, match.notes),
    )
    return any(new is not None and new != stored for new, stored in supplied)


def record_match_result(
    session: Session,
    match_id: int,
    winner_id: Optional[int] = None,
    participant1_score: Optional[int] = None,
    participant2_score: Optional[int] = None,
    notes: Optional[str] = None,
) -> RecordOutcome:
    """
    Record the result of *match_id* and advance the winner.

    The winner is *winner_id*, or derived from both scores when omitted.
    Scores and notes are stored only when the result is newly recorded.

    Same-match calls are serialized in-process by match_locks and across
    processes by Match.version: the version read here must still be current
    when the result is written. A writer that loses the race sees the stored
    result instead (no-op for the same winner, ResultConflict otherwise).
    """
    with match_locks.hold(match_id):
        match = require_match(session, match_id)
        expected_version = match.version or 0

        have_scores = participant1_score is not None and participant2_score is not None
        if winner_id is None:
            if not have_scores:
                raise PreconditionViolation("winner_id or both scores are required")
            winner_id = winner_from_scores(match, participant1_score, participant2_score)
        elif (
            have_scores
            and match.status != MATCH_COMPLETED
            and winner_from_scores(match, participant1_score, participant2_score) != winner_id
        ):
            raise PreconditionViolation("winner_id does not match the higher score")

        repo = SqlMatchRepository(session)
        try:
            outcome = advancement_service.record_result(repo, match_id, winner_id)
            if not outcome.noop:
                if participant1_score is not None:
                    match.participant1_score = participant1_score
                if participant2_score is not None:
                    match.participant2_score = participant2_score
                if notes is not None:
                    match.notes = notes
                session.add(match)
                _bump_version(session, match_id, expected_version)
            session.commit()
        except _StaleMatch:
            session.rollback()
            session.refresh(match)
            logger.warning(
                "Match %d: result recorded concurrently (version %d is no longer current)",
                match_id,
                expected_version,
            )
            if match.status != MATCH_COMPLETED or match.winner_id != winner_id:
                raise ResultConflict(match.id, match.winner_id, winner_id)
            outcome = RecordOutcome(match=match, noop=True)
        except Exception:
            session.rollback()
            raise

    session.refresh(match)
    for advanced in outcome.advanced:
        session.refresh(advanced)

    if outcome.noop:
        logger.info("Match %d: result already recorded for %s (no-op)", match_id, winner_id)
        if _scores_differ(match, participant1_score, participant2_score, notes):
            logger.warning(
                "Match %d: scores/notes differ from the recorded result and were not applied",
                match_id,
            )
    else:
        logger.info(
            "Match %d (division %d, round %d, match %d): winner %s, advanced into %d match(es)",
            match.id,
            match.division_id,
            match.round_number,
            match.match_number,
            winner_id,
            len(outcome.advanced),
        )
    return outcome


def start_match(session: Session, match_id: int) -> Match:
    """Mark a match in progress (display only)."""
    with match_locks.hold(match_id):
        require_match(session, match_id)
        match = advancement_service.mark_in_progress(SqlMatchRepository(session), match_id)
        session.commit()
    session.refresh(match)
    return match


def update_match_notes(session: Session, match_id: int, notes: Optional[str]) -> Match:
    with match_locks.hold(match_id):
        match = require_match(session, match_id)
        match.notes = notes
        session.add(match)
        session.commit()
    session.refresh(match)
    return match
