"""
Match storage seam for the advancement state machine.

Matches are addressed by id or by (division_id, round_number, match_number).
Two implementations:
- InMemoryMatchRepository: plain objects, used by the bracket builder and tests
- SqlMatchRepository: SQLModel session; save() stages changes, the caller commits
"""

from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple

from sqlmodel import Session, select

from tkd_core.models.match import Match


class MatchRepository(Protocol):
    def get(self, match_id: int) -> Optional[Any]:
        ...

    def find(self, division_id: Optional[int], round_number: int, match_number: int) -> Optional[Any]:
        ...

    def save(self, match: Any) -> None:
        ...


class InMemoryMatchRepository:
    """Keeps match objects in a dict keyed by (division_id, round_number, match_number)."""

    def __init__(self, matches: Iterable[Any] = ()):
        self._matches: Dict[Tuple[Optional[int], int, int], Any] = {}
        self.saved: List[Any] = []
        for match in matches:
            self.add(match)

    def add(self, match: Any) -> None:
        self._matches[(match.division_id, match.round_number, match.match_number)] = match

    def get(self, match_id: int) -> Optional[Any]:
        for match in self._matches.values():
            if match.id is not None and match.id == match_id:
                return match
        return None

    def find(self, division_id: Optional[int], round_number: int, match_number: int) -> Optional[Any]:
        return self._matches.get((division_id, round_number, match_number))

    def save(self, match: Any) -> None:
        self.saved.append(match)

    def all(self) -> List[Any]:
        return sorted(self._matches.values(), key=lambda m: (m.round_number, m.match_number))


class SqlMatchRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, match_id: int) -> Optional[Match]:
        return self.session.get(Match, match_id)

    def find(self, division_id: Optional[int], round_number: int, match_number: int) -> Optional[Match]:
        return self.session.exec(
            select(Match).where(
                Match.division_id == division_id,
                Match.round_number == round_number,
                Match.match_number == match_number,
            )
        ).first()

    def save(self, match: Match) -> None:
        self.session.add(match)
