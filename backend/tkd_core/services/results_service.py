"""
Tournament results: placements taken from each division's completed final.

1st (gold) = winner of the final, 2nd (silver) = the other finalist.
Divisions whose final is not completed yet are omitted.
"""

from dataclasses import dataclass
from typing import List, Optional

from sqlmodel import Session, select

from tkd_core.models.division import DivisionParticipant
from tkd_core.models.match import Match
from tkd_core.services.advancement_service import MATCH_COMPLETED
from tkd_core.services.division_service import list_divisions


@dataclass
class Placement:
    division_id: int
    division_name: str
    placement: int
    medal: str
    participant_id: int
    competitor_id: str
    name: Optional[str]
    team_name: Optional[str]


def final_match(session: Session, division_id: int) -> Optional[Match]:
    """The single match of the highest round, or None if no bracket exists."""
    return session.exec(
        select(Match)
        .where(Match.division_id == division_id)
        .order_by(Match.round_number.desc(), Match.match_number)
    ).first()


def _placement(session: Session, division, participant_id: int, placement: int, medal: str) -> Placement:
    participant = session.get(DivisionParticipant, participant_id)
    return Placement(
        division_id=division.id,
        division_name=division.name,
        placement=placement,
        medal=medal,
        participant_id=participant_id,
        competitor_id=participant.competitor_id,
        name=participant.name,
        team_name=participant.team_name,
    )


def tournament_results(session: Session, tournament_id: int) -> List[Placement]:
    placements: List[Placement] = []
    for division in list_divisions(session, tournament_id):
        final = final_match(session, division.id)
        if final is None or final.status != MATCH_COMPLETED or final.winner_id is None:
            continue
        placements.append(_placement(session, division, final.winner_id, 1, "gold"))
        runner_up = final.participant2_id if final.participant1_id == final.winner_id else final.participant1_id
        if runner_up is not None:
            placements.append(_placement(session, division, runner_up, 2, "silver"))
    return placements
