"""
Division generation for a tournament (session-backed).

generate_divisions():
1. classify the eligible competitors (ConfigurationError aborts before any write)
2. delete every existing division of the tournament with its participants and matches
3. insert the new divisions in rule-table order with their participant snapshots

Regeneration is wholesale; divisions are never patched in place.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sqlmodel import Session, select

from tkd_core.models.division import Division, DivisionParticipant
from tkd_core.models.match import Match
from tkd_core.models.tournament import Tournament
from tkd_core.services.division_classifier import (
    STATUS_NEEDS_MORE,
    STATUS_READY,
    Competitor,
    classify,
)
from tkd_core.services.division_rules import RuleTable, get_rule_table
from tkd_core.services.errors import NotFound
from tkd_core.services.seeding import team_conflict_summary
from tkd_core.utils.locks import tournament_locks

logger = logging.getLogger(__name__)


@dataclass
class DivisionGenerationResult:
    divisions: List[Division]
    skipped: List[str]
    skip_reasons: Dict[str, str]
    deleted_divisions: int


def require_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFound(f"Tournament {tournament_id} not found")
    return tournament


def require_division(session: Session, division_id: int) -> Division:
    division = session.get(Division, division_id)
    if not division:
        raise NotFound(f"Division {division_id} not found")
    return division


def delete_tournament_divisions(session: Session, tournament_id: int) -> int:
    """Delete all divisions of a tournament, cascading to participants and matches. Does not commit."""
    divisions = session.exec(select(Division).where(Division.tournament_id == tournament_id)).all()
    if not divisions:
        return 0
    division_ids = [d.id for d in divisions]

    for match in session.exec(select(Match).where(Match.division_id.in_(division_ids))).all():
        session.delete(match)
    session.flush()
    for participant in session.exec(
        select(DivisionParticipant).where(DivisionParticipant.division_id.in_(division_ids))
    ).all():
        session.delete(participant)
    session.flush()
    for division in divisions:
        session.delete(division)
    session.flush()
    return len(divisions)


def generate_divisions(
    session: Session,
    tournament_id: int,
    competitors: Iterable[Competitor],
    rules: Optional[RuleTable] = None,
) -> DivisionGenerationResult:
    """Classify *competitors* and replace the tournament's divisions with the result."""
    tournament = require_tournament(session, tournament_id)
    result = classify(list(competitors), rules or get_rule_table())

    with tournament_locks.hold(tournament_id):
        deleted = delete_tournament_divisions(session, tournament_id)

        created: List[Division] = []
        for order, draft in enumerate(result.divisions):
            division = Division(
                tournament_id=tournament_id,
                name=draft.name,
                category=draft.category_key,
                gender=draft.gender,
                criterion=draft.criterion.value,
                band_label=draft.band_label,
                min_age=draft.min_age,
                max_age=draft.max_age,
                min_height=draft.min_height,
                max_height=draft.max_height,
                min_weight=draft.min_weight,
                max_weight=draft.max_weight,
                sort_order=order,
            )
            session.add(division)
            session.flush()
            for entry_order, competitor in enumerate(draft.participants):
                session.add(
                    DivisionParticipant(
                        division_id=division.id,
                        competitor_id=competitor.id,
                        name=competitor.name,
                        team_id=competitor.team_id,
                        team_name=competitor.team_name,
                        gender=draft.gender.value,
                        age=competitor.age,
                        height_cm=competitor.height_cm,
                        weight_kg=competitor.weight_kg,
                        entry_order=entry_order,
                    )
                )
            created.append(division)

        tournament.division_generation = (tournament.division_generation or 0) + 1
        session.add(tournament)
        session.commit()

    for division in created:
        session.refresh(division)

    logger.info(
        "Tournament %d: generated %d division(s) (replaced %d), skipped %d competitor(s)",
        tournament_id,
        len(created),
        deleted,
        len(result.skipped),
    )
    return DivisionGenerationResult(
        divisions=created,
        skipped=result.skipped,
        skip_reasons=result.skip_reasons,
        deleted_divisions=deleted,
    )


def list_divisions(session: Session, tournament_id: int) -> List[Division]:
    """Divisions in rule-table order (category, gender, band)."""
    require_tournament(session, tournament_id)
    return list(
        session.exec(
            select(Division).where(Division.tournament_id == tournament_id).order_by(Division.sort_order, Division.id)
        ).all()
    )


def division_participants(session: Session, division_id: int) -> List[DivisionParticipant]:
    return list(
        session.exec(
            select(DivisionParticipant)
            .where(DivisionParticipant.division_id == division_id)
            .order_by(DivisionParticipant.entry_order, DivisionParticipant.id)
        ).all()
    )


def division_status(participant_count: int) -> str:
    return STATUS_READY if participant_count >= 2 else STATUS_NEEDS_MORE


def division_team_conflicts(participants: List[DivisionParticipant]) -> Dict[str, int]:
    """Teams with several members in the division (shown to organizers before bracket generation)."""
    return {str(team): count for team, count in team_conflict_summary(participants).items()}
