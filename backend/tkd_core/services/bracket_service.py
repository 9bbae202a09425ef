"""
Bracket generation for a division (session-backed).

generate_bracket() replaces a division's bracket wholesale:
- participants read from storage, seeded for team separation, built into matches
- old matches deleted and new ones inserted in one transaction
- serialized per division (division_locks) and guarded by the division's
  bracket_generation counter: the counter read before building must still be
  current when the replacement is written, otherwise BracketGenerationConflict
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy import update
from sqlmodel import Session, select

from tkd_core.models.division import Division, DivisionParticipant
from tkd_core.models.match import Match
from tkd_core.services.bracket_builder import build_bracket
from tkd_core.services.division_service import division_participants, list_divisions, require_division
from tkd_core.services.errors import BracketGenerationConflict, InsufficientParticipants
from tkd_core.services.seeding import first_round_conflicts, seed_participants
from tkd_core.utils.locks import division_locks

logger = logging.getLogger(__name__)


@dataclass
class BracketGenerationResult:
    division_id: int
    matches: List[Match]
    participant_count: int
    round_count: int
    team_conflicts: List[str] = field(default_factory=list)


@dataclass
class BulkBracketResult:
    generated: Dict[int, int] = field(default_factory=dict)  # division_id -> match count
    insufficient: Dict[int, int] = field(default_factory=dict)  # division_id -> participant count


def get_bracket(session: Session, division_id: int) -> List[Match]:
    """All matches of a division ordered by round, match number."""
    require_division(session, division_id)
    return list(
        session.exec(
            select(Match).where(Match.division_id == division_id).order_by(Match.round_number, Match.match_number)
        ).all()
    )


def _bump_generation(session: Session, division_id: int, expected: int) -> None:
    result = session.execute(
        update(Division)
        .where(Division.id == division_id, Division.bracket_generation == expected)
        .values(bracket_generation=expected + 1)
    )
    if result.rowcount != 1:
        raise BracketGenerationConflict(
            f"Division {division_id} bracket was regenerated concurrently (expected generation {expected})"
        )


def generate_bracket(session: Session, division_id: int) -> BracketGenerationResult:
    """(Re)generate the single-elimination bracket of *division_id*."""
    with division_locks.hold(division_id):
        division = require_division(session, division_id)
        expected_generation = division.bracket_generation or 0

        participants = division_participants(session, division_id)
        if len(participants) < 2:
            raise InsufficientParticipants(division_id, len(participants))

        seeded: List[DivisionParticipant] = seed_participants(participants)
        conflicts = first_round_conflicts(seeded)
        for conflict in conflicts:
            logger.warning("Division %d: %s", division_id, conflict.reason)

        bracket = build_bracket(division_id, [p.id for p in seeded])

        try:
            _bump_generation(session, division_id, expected_generation)

            for old in session.exec(select(Match).where(Match.division_id == division_id)).all():
                session.delete(old)
            session.flush()

            for seed_number, participant in enumerate(seeded, start=1):
                participant.seed_number = seed_number
                session.add(participant)

            matches: List[Match] = []
            for built in bracket:
                match = Match(
                    division_id=division_id,
                    round_number=built.round_number,
                    match_number=built.match_number,
                    participant1_id=built.participant1_id,
                    participant2_id=built.participant2_id,
                    winner_id=built.winner_id,
                    status=built.status,
                    is_bye=built.is_bye,
                    completed_at=built.completed_at,
                )
                session.add(match)
                matches.append(match)
            session.commit()
        except Exception:
            session.rollback()
            raise

    for match in matches:
        session.refresh(match)

    round_total = max(m.round_number for m in matches)
    logger.info(
        "Division %d (%s): bracket generation %d with %d participants, %d rounds, %d matches",
        division_id,
        division.name,
        expected_generation + 1,
        len(participants),
        round_total,
        len(matches),
    )
    return BracketGenerationResult(
        division_id=division_id,
        matches=matches,
        participant_count=len(participants),
        round_count=round_total,
        team_conflicts=[c.reason for c in conflicts],
    )


def generate_all_brackets(session: Session, tournament_id: int) -> BulkBracketResult:
    """Generate brackets for every division; divisions with < 2 participants are reported, not fatal."""
    result = BulkBracketResult()
    for division in list_divisions(session, tournament_id):
        try:
            generated = generate_bracket(session, division.id)
        except InsufficientParticipants as exc:
            logger.info("Division %d skipped: %s", division.id, exc)
            result.insufficient[division.id] = exc.count
            continue
        result.generated[division.id] = len(generated.matches)
    return result
