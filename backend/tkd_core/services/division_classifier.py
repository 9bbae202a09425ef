"""
Division Classifier — partition eligible competitors into divisions.

Classification order: age -> category (first matching age range), gender,
then the category's physical criterion (height or weight) -> band.

Competitors that cannot be placed (age outside every category, missing
height/weight required by their category, no matching band, malformed
gender) are never dropped silently: they are returned in ``skipped`` with
a reason. A repeated id is classified once; later copies are ignored. Eligibility itself (official weigh-in) is decided
by the caller before classification.

Pure: no I/O, no database access.
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from tkd_core.services.division_rules import (
    GENDER_ORDER,
    Band,
    CategoryRule,
    Criterion,
    Gender,
    RuleTable,
    validate_rule_table,
)

logger = logging.getLogger(__name__)

STATUS_READY = "ready"
STATUS_NEEDS_MORE = "needs_more_participants"

SKIP_NO_AGE_CATEGORY = "no age category"
SKIP_MISSING_HEIGHT = "missing height"
SKIP_MISSING_WEIGHT = "missing weight"
SKIP_NO_BAND = "no matching band"
SKIP_BAD_GENDER = "invalid gender"
SKIP_BAD_AGE = "invalid age"


@dataclass
class Competitor:
    """Eligible competitor as supplied by the roster system."""

    id: str
    gender: str
    age: Optional[int]
    team_id: Optional[str] = None
    height_cm: Optional[float] = None
    weight_kg: Optional[float] = None
    name: Optional[str] = None
    team_name: Optional[str] = None


@dataclass
class DivisionDraft:
    """A classified, not yet persisted division."""

    name: str
    category_key: str
    category_name: str
    gender: Gender
    criterion: Criterion
    band_label: str
    min_age: int
    max_age: int
    min_height: Optional[float] = None
    max_height: Optional[float] = None
    min_weight: Optional[float] = None
    max_weight: Optional[float] = None
    sort_key: Tuple[int, int, int] = (0, 0, 0)
    participants: List[Competitor] = field(default_factory=list)

    @property
    def status(self) -> str:
        return STATUS_READY if len(self.participants) >= 2 else STATUS_NEEDS_MORE


@dataclass
class ClassificationResult:
    divisions: List[DivisionDraft]
    skipped: List[str]
    skip_reasons: Dict[str, str]


def age_on(date_of_birth: date, on_date: date) -> int:
    """Age in whole years on *on_date* (birthday not yet reached counts one less)."""
    years = on_date.year - date_of_birth.year
    if (on_date.month, on_date.day) < (date_of_birth.month, date_of_birth.day):
        years -= 1
    return years


def division_name(category: CategoryRule, gender: Gender, band: Band) -> str:
    """Deterministic division name: '{Category} {Gender} {BandLabel}'."""
    return f"{category.name} {gender.value.capitalize()} {band.label}"


def _new_draft(category_index: int, category: CategoryRule, gender: Gender, band: Band) -> DivisionDraft:
    draft = DivisionDraft(
        name=division_name(category, gender, band),
        category_key=category.key,
        category_name=category.name,
        gender=gender,
        criterion=category.criterion,
        band_label=band.label,
        min_age=category.min_age,
        max_age=category.max_age,
        sort_key=(category_index, GENDER_ORDER.index(gender), band.index),
    )
    if category.criterion == Criterion.height:
        draft.min_height = band.lower
        draft.max_height = band.upper
    else:
        draft.min_weight = band.lower
        draft.max_weight = band.upper
    return draft


def _measurement(category: CategoryRule, competitor: Competitor) -> Optional[float]:
    if category.criterion == Criterion.height:
        value = competitor.height_cm
    else:
        value = competitor.weight_kg
    if value is None or not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def find_band(bands: Iterable[Band], value: float) -> Optional[Band]:
    for band in bands:
        if band.contains(value):
            return band
    return None


def classify(competitors: Iterable[Competitor], rules: RuleTable) -> ClassificationResult:
    """
    Partition *competitors* into divisions according to *rules*.

    Raises ConfigurationError before looking at any competitor if the rule
    table is malformed. Every input competitor ends up in exactly one
    division or in ``skipped``.
    """
    validate_rule_table(rules)

    drafts: Dict[Tuple[int, int, int], DivisionDraft] = {}
    skip_reasons: "OrderedDict[str, str]" = OrderedDict()
    seen: set = set()
    band_cache: Dict[Tuple[int, Gender], Tuple[Band, ...]] = {}

    def skip(competitor_id: str, reason: str) -> None:
        skip_reasons[competitor_id] = reason

    for competitor in competitors:
        if competitor.id in seen:
            # Each id is placed or skipped once; later copies are ignored
            logger.warning("Ignoring duplicate competitor id %s", competitor.id)
            continue
        seen.add(competitor.id)

        try:
            gender = Gender(competitor.gender)
        except ValueError:
            skip(competitor.id, SKIP_BAD_GENDER)
            continue

        if competitor.age is None or competitor.age < 0:
            skip(competitor.id, SKIP_BAD_AGE)
            continue

        found = rules.category_for_age(competitor.age)
        if found is None:
            skip(competitor.id, SKIP_NO_AGE_CATEGORY)
            continue
        category_index, category = found

        value = _measurement(category, competitor)
        if value is None:
            skip(
                competitor.id,
                SKIP_MISSING_HEIGHT if category.criterion == Criterion.height else SKIP_MISSING_WEIGHT,
            )
            continue

        cache_key = (category_index, gender)
        if cache_key not in band_cache:
            band_cache[cache_key] = category.bands_for(gender)
        band = find_band(band_cache[cache_key], value)
        if band is None:
            skip(competitor.id, SKIP_NO_BAND)
            continue

        key = (category_index, GENDER_ORDER.index(gender), band.index)
        if key not in drafts:
            drafts[key] = _new_draft(category_index, category, gender, band)
        drafts[key].participants.append(competitor)
        logger.debug("Competitor %s -> %s (%s=%s)", competitor.id, drafts[key].name, category.criterion.value, value)

    divisions = [drafts[key] for key in sorted(drafts)]

    if skip_reasons:
        logger.warning(
            "Classification skipped %d competitor(s): %s",
            len(skip_reasons),
            ", ".join(f"{cid} ({reason})" for cid, reason in skip_reasons.items()),
        )
    logger.info(
        "Classified %d competitor(s) into %d division(s)",
        sum(len(d.participants) for d in divisions),
        len(divisions),
    )

    return ClassificationResult(
        divisions=divisions,
        skipped=list(skip_reasons.keys()),
        skip_reasons=dict(skip_reasons),
    )
