"""
Team-separation seeding for single-elimination brackets.

Participants are grouped by team and drawn round-robin, one member from
each team in turn, so consecutive entries (round 1 opponents) come from
different teams whenever the roster allows it. The first k entries
(k = number of distinct teams) are always k different teams.

Known limitation: this is best-effort. When one team dominates the roster
(e.g. five from one club against four singletons) same-team first-round
pairings are unavoidable late in the order. No strength/rank seeding is
attempted and later rounds are not re-separated.

Deterministic: no randomness. A single-team roster keeps its input order.
Participants without a team are each treated as their own team.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, Callable, Dict, Hashable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

TeamKey = Callable[[Any], Optional[Hashable]]

_default_team_key: TeamKey = attrgetter("team_id")


@dataclass
class SeedConflict:
    match_number: int
    participant_a: Any
    participant_b: Any
    team_id: Hashable
    reason: str


def _group_by_team(participants: Sequence[T], team_key: TeamKey) -> "OrderedDict[Hashable, List[T]]":
    groups: "OrderedDict[Hashable, List[T]]" = OrderedDict()
    for index, participant in enumerate(participants):
        team = team_key(participant)
        key = team if team is not None else ("__no_team__", index)
        groups.setdefault(key, []).append(participant)
    return groups


def seed_participants(participants: Sequence[T], team_key: TeamKey = _default_team_key) -> List[T]:
    """Order *participants* so that adjacent pairs come from different teams where possible."""
    groups = _group_by_team(participants, team_key)
    if len(groups) <= 1:
        return list(participants)

    queues = [list(members) for members in groups.values()]
    result: List[T] = []
    while len(result) < len(participants):
        for queue in queues:
            if queue:
                result.append(queue.pop(0))
    return result


def first_round_conflicts(seeded: Sequence[Any], team_key: TeamKey = _default_team_key) -> List[SeedConflict]:
    """Same-team pairs among round 1 matches built from *seeded* (pairs 0-1, 2-3, ...)."""
    conflicts: List[SeedConflict] = []
    for i in range(0, len(seeded) - 1, 2):
        a, b = seeded[i], seeded[i + 1]
        team_a, team_b = team_key(a), team_key(b)
        if team_a is not None and team_a == team_b:
            match_number = i // 2 + 1
            conflicts.append(
                SeedConflict(
                    match_number=match_number,
                    participant_a=a,
                    participant_b=b,
                    team_id=team_a,
                    reason=f"Round 1 match {match_number}: both participants from team '{team_a}'",
                )
            )
    return conflicts


def team_conflict_summary(participants: Sequence[Any], team_key: TeamKey = _default_team_key) -> Dict[Hashable, int]:
    """Teams with more than one member in a division -> member count."""
    counts: Dict[Hashable, int] = {}
    for participant in participants:
        team = team_key(participant)
        if team is None:
            continue
        counts[team] = counts.get(team, 0) + 1
    return {team: count for team, count in counts.items() if count > 1}
