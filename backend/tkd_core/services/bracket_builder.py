"""
Single-elimination bracket construction.

Given an already seeded participant list of size N (N >= 2):
- Round 1: consecutive pairs (0,1), (2,3), ...; an odd last entry is a bye,
  created completed with that entry as winner
- Rounds 2..ceil(log2 N): ceil(previous/2) placeholder matches, both slots
  empty, pending

Bye winners are moved on by advancement_service.advance_winner, the same
code path used for recorded results.

Pure: returns BracketMatch objects; persistence is the caller's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from tkd_core.services.advancement_service import MATCH_PENDING, advance_winner, complete_match
from tkd_core.services.errors import InsufficientParticipants
from tkd_core.services.match_repository import InMemoryMatchRepository

logger = logging.getLogger(__name__)


@dataclass
class BracketMatch:
    division_id: Optional[int]
    round_number: int
    match_number: int
    participant1_id: Optional[Any] = None
    participant2_id: Optional[Any] = None
    winner_id: Optional[Any] = None
    status: str = MATCH_PENDING
    is_bye: bool = False
    id: Optional[int] = None
    completed_at: Optional[datetime] = None


def round_count(n: int) -> int:
    """ceil(log2(n)) for n >= 1, computed exactly."""
    if n < 1:
        return 0
    return (n - 1).bit_length()


def matches_per_round(n: int) -> List[int]:
    """Match count of each round for n participants: [ceil(n/2), ceil(prev/2), ..., 1]."""
    sizes: List[int] = []
    count = n
    for _ in range(round_count(n)):
        count = (count + 1) // 2
        sizes.append(count)
    return sizes


def build_bracket(division_id: Optional[int], seeded: Sequence[Any]) -> List[BracketMatch]:
    """Build every match of a single-elimination bracket from *seeded* participant ids."""
    n = len(seeded)
    if n < 2:
        raise InsufficientParticipants(division_id, n)

    sizes = matches_per_round(n)
    repo = InMemoryMatchRepository()

    for i in range(sizes[0]):
        a = seeded[2 * i]
        b = seeded[2 * i + 1] if 2 * i + 1 < n else None
        repo.add(BracketMatch(division_id=division_id, round_number=1, match_number=i + 1, participant1_id=a, participant2_id=b))

    for round_index, count in enumerate(sizes[1:], start=2):
        for number in range(1, count + 1):
            repo.add(BracketMatch(division_id=division_id, round_number=round_index, match_number=number))

    for match in repo.all():
        if match.round_number == 1 and match.participant2_id is None:
            complete_match(match, match.participant1_id, bye=True)
            advance_winner(repo, match)

    matches = repo.all()
    logger.info(
        "Built bracket for division %s: %d participants, %d rounds, %d matches",
        division_id,
        n,
        len(sizes),
        len(matches),
    )
    return matches


def bracket_shape_problems(matches: Sequence[Any], n: int) -> List[str]:
    """Check the well-formedness rules of a bracket for n participants."""
    problems: List[str] = []
    by_round: Dict[int, List[int]] = {}
    for m in matches:
        by_round.setdefault(m.round_number, []).append(m.match_number)

    expected = matches_per_round(n)
    if sorted(by_round) != list(range(1, len(expected) + 1)):
        problems.append(f"expected rounds 1..{len(expected)}, found {sorted(by_round)}")
        return problems

    for round_number, count in enumerate(expected, start=1):
        numbers = sorted(by_round[round_number])
        if numbers != list(range(1, count + 1)):
            problems.append(f"round {round_number}: expected matches 1..{count}, found {numbers}")
    return problems
