"""
Match advancement: record a winner and place it in the next round.

Placement rule (the only place winners move between rounds):
    round r, match m  ->  round r+1, match ceil(m/2)
    odd m fills slot 1, even m fills slot 2
A match with no round r+1 destination is the final; its winner is the
division champion.

A destination whose slot-2 feeder does not exist (odd match count in the
previous round) can never receive an opponent. It is completed as a bye on
arrival and its winner moves on through the same rule.

State machine per match: pending (optionally in_progress) -> completed.
- winner must be in slot 1 or slot 2, and both slots must be filled
- same winner on a completed match: no-op
- different winner on a completed match: ResultConflict, nothing changes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from tkd_core.services.errors import NotFound, PreconditionViolation, ResultConflict
from tkd_core.services.match_repository import MatchRepository

logger = logging.getLogger(__name__)

MATCH_PENDING = "pending"
MATCH_IN_PROGRESS = "in_progress"
MATCH_COMPLETED = "completed"

SLOT_ATTRS = {1: "participant1_id", 2: "participant2_id"}


@dataclass
class RecordOutcome:
    match: Any
    noop: bool = False
    advanced: List[Any] = field(default_factory=list)
    champion_id: Optional[Any] = None


def next_slot(round_number: int, match_number: int) -> Tuple[int, int, int]:
    """(next_round, next_match_number, slot) for the winner of round/match."""
    next_match_number = (match_number + 1) // 2
    slot = 1 if match_number % 2 == 1 else 2
    return round_number + 1, next_match_number, slot


def _now() -> datetime:
    return datetime.now(timezone.utc)


def complete_match(match: Any, winner_id: Any, *, bye: bool = False) -> None:
    match.winner_id = winner_id
    match.status = MATCH_COMPLETED
    if bye:
        match.is_bye = True
    if hasattr(match, "completed_at"):
        match.completed_at = _now()


def _destination(repo: MatchRepository, match: Any) -> Tuple[Optional[Any], int]:
    next_round, next_number, slot = next_slot(match.round_number, match.match_number)
    return repo.find(match.division_id, next_round, next_number), slot


def _check_destination(repo: MatchRepository, match: Any, winner_id: Any) -> None:
    dest, slot = _destination(repo, match)
    if dest is None:
        return
    occupant = getattr(dest, SLOT_ATTRS[slot])
    if occupant is not None and occupant != winner_id:
        raise ResultConflict(dest.id, occupant, winner_id)


def advance_winner(repo: MatchRepository, match: Any) -> List[Any]:
    """
    Move a completed match's winner into its next-round slot.

    Returns the matches that were changed (destination, plus any bye it
    turned into and that bye's own destinations). Idempotent: a slot that
    already holds the winner is left alone.
    """
    changed: List[Any] = []
    current = match
    while current.winner_id is not None and current.status == MATCH_COMPLETED:
        dest, slot = _destination(repo, current)
        if dest is None:
            logger.info(
                "Division %s champion decided: %s (round %d match %d)",
                current.division_id,
                current.winner_id,
                current.round_number,
                current.match_number,
            )
            break

        attr = SLOT_ATTRS[slot]
        occupant = getattr(dest, attr)
        if occupant is not None and occupant != current.winner_id:
            raise ResultConflict(dest.id, occupant, current.winner_id)
        if occupant == current.winner_id:
            break

        setattr(dest, attr, current.winner_id)
        changed.append(dest)

        partner_feeder = None
        if slot == 1:
            partner_feeder = repo.find(current.division_id, current.round_number, current.match_number + 1)
        if slot == 1 and partner_feeder is None:
            complete_match(dest, current.winner_id, bye=True)
            repo.save(dest)
            logger.debug(
                "Round %d match %d has no second feeder; %s advances on a bye",
                dest.round_number,
                dest.match_number,
                current.winner_id,
            )
            current = dest
            continue

        repo.save(dest)
        break
    return changed


def record_result(repo: MatchRepository, match_id: int, winner_id: Any) -> RecordOutcome:
    """Declare *winner_id* the winner of match *match_id* and advance it."""
    match = repo.get(match_id)
    if match is None:
        raise NotFound(f"Match {match_id} not found")

    if match.status == MATCH_COMPLETED:
        if match.winner_id == winner_id:
            return RecordOutcome(match=match, noop=True)
        raise ResultConflict(match.id, match.winner_id, winner_id)

    if match.participant1_id is None or match.participant2_id is None:
        raise PreconditionViolation(
            f"Match {match_id} (round {match.round_number}, match {match.match_number}) "
            "still has an undecided slot"
        )
    if winner_id not in (match.participant1_id, match.participant2_id):
        raise PreconditionViolation(f"Participant {winner_id} is not in match {match_id}")

    _check_destination(repo, match, winner_id)

    complete_match(match, winner_id)
    repo.save(match)
    advanced = advance_winner(repo, match)

    # Byes never form in the final, so only recording the final crowns a champion
    dest, _ = _destination(repo, match)
    champion_id = winner_id if dest is None else None

    return RecordOutcome(match=match, advanced=advanced, champion_id=champion_id)


def mark_in_progress(repo: MatchRepository, match_id: int) -> Any:
    """Display-only marker; requires both slots filled and no result yet."""
    match = repo.get(match_id)
    if match is None:
        raise NotFound(f"Match {match_id} not found")
    if match.status == MATCH_IN_PROGRESS:
        return match
    if match.status == MATCH_COMPLETED:
        raise PreconditionViolation(f"Match {match_id} is already completed")
    if match.participant1_id is None or match.participant2_id is None:
        raise PreconditionViolation(f"Match {match_id} still has an undecided slot")
    match.status = MATCH_IN_PROGRESS
    if hasattr(match, "started_at") and match.started_at is None:
        match.started_at = _now()
    repo.save(match)
    return match
