"""
Division Rules — age categories, classification criterion and bands (Single Source of Truth)

This module defines the rule table used to split a roster into divisions.
The built-in table follows the World Taekwondo kyorugi categories:

- Gradeschool (5-11): height bands, same bands for both genders
- Cadet (12-14), Junior (15-17), Senior (18+, capped at 150): weight boundaries per gender

Weight boundaries are signed: -W means "weight <= W" (lower-exclusive at the
previous boundary), +W means "weight > W" (open-ended top band).

All other modules must import the rule table from here. A JSON file named by
DIVISION_RULES_PATH replaces the built-in table.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from tkd_core.services.errors import ConfigurationError

logger = logging.getLogger(__name__)


class Gender(str, Enum):
    male = "male"
    female = "female"


class Criterion(str, Enum):
    height = "height"
    weight = "weight"


# Listing order for divisions within a category
GENDER_ORDER: Tuple[Gender, ...] = (Gender.male, Gender.female)


@dataclass(frozen=True)
class HeightBandSpec:
    label: str
    lower: float  # exclusive; 0 means "anything up to upper"
    upper: Optional[float]  # inclusive; None = open-ended


@dataclass(frozen=True)
class Band:
    """A resolved band for one category/gender. Bounds are in cm or kg."""

    index: int
    label: str
    lower: Optional[float]  # None for the lowest band (inclusive at zero)
    upper: Optional[float]  # None for an open-ended top band

    def contains(self, value: float) -> bool:
        if self.lower is not None and value <= self.lower:
            return False
        if self.upper is not None and value > self.upper:
            return False
        return True


@dataclass(frozen=True)
class CategoryRule:
    key: str
    name: str
    min_age: int
    max_age: int
    criterion: Criterion
    height_bands: Dict[Gender, Tuple[HeightBandSpec, ...]] = field(default_factory=dict)
    weight_boundaries: Dict[Gender, Tuple[float, ...]] = field(default_factory=dict)

    def covers_age(self, age: int) -> bool:
        return self.min_age <= age <= self.max_age

    def bands_for(self, gender: Gender) -> Tuple[Band, ...]:
        """Resolve the ordered bands for *gender*."""
        if self.criterion == Criterion.height:
            specs = self.height_bands.get(gender, ())
            return tuple(
                Band(
                    index=i,
                    label=spec.label,
                    lower=spec.lower if spec.lower > 0 else None,
                    upper=spec.upper,
                )
                for i, spec in enumerate(specs)
            )

        boundaries = self.weight_boundaries.get(gender, ())
        bands: List[Band] = []
        for i, boundary in enumerate(boundaries):
            if boundary > 0:
                bands.append(Band(index=i, label=weight_label(boundary), lower=boundary, upper=None))
            else:
                prev = abs(boundaries[i - 1]) if i > 0 else None
                bands.append(Band(index=i, label=weight_label(boundary), lower=prev, upper=abs(boundary)))
        return tuple(bands)


@dataclass(frozen=True)
class RuleTable:
    categories: Tuple[CategoryRule, ...]

    def category_for_age(self, age: int) -> Optional[Tuple[int, CategoryRule]]:
        """First category whose [min_age, max_age] contains *age*, with its table index."""
        for index, category in enumerate(self.categories):
            if category.covers_age(age):
                return index, category
        return None


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"


def weight_label(boundary: float) -> str:
    """-33 -> '-33kg', 61 -> '+61kg'."""
    sign = "+" if boundary > 0 else "-"
    return f"{sign}{_format_number(abs(boundary))}kg"


# =============================================================================
# Validation
# =============================================================================

def _height_problems(category: CategoryRule, gender: Gender) -> List[str]:
    problems: List[str] = []
    specs = category.height_bands.get(gender, ())
    where = f"{category.name}/{gender.value}"
    if not specs:
        return [f"{where}: no height bands defined"]

    if specs[0].lower != 0:
        problems.append(f"{where}: lowest band '{specs[0].label}' must start at 0")

    for i, spec in enumerate(specs):
        if spec.upper is None:
            if i != len(specs) - 1:
                problems.append(f"{where}: open-ended band '{spec.label}' must be the last band")
            continue
        if spec.upper <= spec.lower:
            problems.append(f"{where}: band '{spec.label}' has upper <= lower")
        if i > 0:
            prev = specs[i - 1]
            if prev.upper is not None and spec.lower != prev.upper:
                kind = "overlaps" if spec.lower < prev.upper else "leaves a gap after"
                problems.append(f"{where}: band '{spec.label}' {kind} '{prev.label}'")

    labels = [spec.label for spec in specs]
    if len(set(labels)) != len(labels):
        problems.append(f"{where}: duplicate band labels")
    return problems


def _weight_problems(category: CategoryRule, gender: Gender) -> List[str]:
    problems: List[str] = []
    boundaries = category.weight_boundaries.get(gender, ())
    where = f"{category.name}/{gender.value}"
    if not boundaries:
        return [f"{where}: no weight boundaries defined"]

    if any(b == 0 for b in boundaries):
        problems.append(f"{where}: boundary 0 is not allowed")

    open_bands = [b for b in boundaries if b > 0]
    if len(open_bands) != 1:
        problems.append(f"{where}: expected exactly one open-ended (+) band, found {len(open_bands)}")
    elif boundaries[-1] <= 0:
        problems.append(f"{where}: open-ended (+) band must be last")

    limits = [abs(b) for b in boundaries if b < 0]
    for prev, cur in zip(limits, limits[1:]):
        if cur <= prev:
            problems.append(f"{where}: boundaries must increase ({_format_number(prev)} then {_format_number(cur)})")

    if len(open_bands) == 1 and limits and open_bands[0] != limits[-1]:
        problems.append(
            f"{where}: open band +{_format_number(open_bands[0])} must continue from "
            f"-{_format_number(limits[-1])}"
        )
    return problems


def rule_table_problems(table: RuleTable) -> List[str]:
    """Return every structural defect of *table* (empty list = well-formed)."""
    problems: List[str] = []
    if not table.categories:
        return ["rule table has no categories"]

    keys = [c.key for c in table.categories]
    if len(set(keys)) != len(keys):
        problems.append("duplicate category keys")

    for category in table.categories:
        if category.min_age > category.max_age:
            problems.append(f"{category.name}: min_age > max_age")
        for gender in GENDER_ORDER:
            if category.criterion == Criterion.height:
                problems.extend(_height_problems(category, gender))
            else:
                problems.extend(_weight_problems(category, gender))

    ordered = sorted(table.categories, key=lambda c: c.min_age)
    for a, b in zip(ordered, ordered[1:]):
        if b.min_age <= a.max_age:
            problems.append(f"age ranges of {a.name} ({a.min_age}-{a.max_age}) and {b.name} ({b.min_age}-{b.max_age}) overlap")
    return problems


def validate_rule_table(table: RuleTable) -> RuleTable:
    """Raise ConfigurationError if *table* is malformed, otherwise return it."""
    problems = rule_table_problems(table)
    if problems:
        raise ConfigurationError(problems)
    return table


# =============================================================================
# Built-in table
# =============================================================================

_GRADESCHOOL_BANDS: Tuple[HeightBandSpec, ...] = (
    HeightBandSpec("Group 0", 0, 120),
    HeightBandSpec("Group 1", 120, 128),
    HeightBandSpec("Group 2", 128, 136),
    HeightBandSpec("Group 3", 136, 144),
    HeightBandSpec("Group 4", 144, 152),
    HeightBandSpec("Group 5", 152, 160),
    HeightBandSpec("Group 6", 160, 168),
)

DEFAULT_RULE_TABLE = RuleTable(
    categories=(
        CategoryRule(
            key="gradeschool",
            name="Gradeschool",
            min_age=5,
            max_age=11,
            criterion=Criterion.height,
            height_bands={Gender.male: _GRADESCHOOL_BANDS, Gender.female: _GRADESCHOOL_BANDS},
        ),
        CategoryRule(
            key="cadet",
            name="Cadet",
            min_age=12,
            max_age=14,
            criterion=Criterion.weight,
            weight_boundaries={
                Gender.male: (-33, -37, -41, -45, -49, -53, -57, -61, 61),
                Gender.female: (-29, -33, -37, -41, -44, -47, -51, -55, 55),
            },
        ),
        CategoryRule(
            key="junior",
            name="Junior",
            min_age=15,
            max_age=17,
            criterion=Criterion.weight,
            weight_boundaries={
                Gender.male: (-45, -48, -51, -55, -59, -63, -68, -73, -78, 78),
                Gender.female: (-42, -44, -46, -49, -52, -55, -59, -63, -68, 68),
            },
        ),
        CategoryRule(
            key="senior",
            name="Senior",
            min_age=18,
            max_age=150,
            criterion=Criterion.weight,
            weight_boundaries={
                Gender.male: (-54, -58, -63, -68, -74, -80, -87, 87),
                Gender.female: (-46, -49, -53, -57, -62, -67, -73, 73),
            },
        ),
    )
)


# =============================================================================
# JSON loading
# =============================================================================

def rule_table_from_dict(data: Dict[str, Any]) -> RuleTable:
    """
    Build a RuleTable from its JSON shape:

        {"categories": [
            {"key": "gradeschool", "name": "Gradeschool", "min_age": 5, "max_age": 11,
             "criterion": "height",
             "bands": {"male": [{"label": "Group 0", "min": 0, "max": 120}, ...],
                       "female": [...]}},
            {"key": "cadet", "name": "Cadet", "min_age": 12, "max_age": 14,
             "criterion": "weight",
             "boundaries": {"male": [-33, ..., 61], "female": [...]}}
        ]}

    Structural problems raise ConfigurationError.
    """
    try:
        categories: List[CategoryRule] = []
        for raw in data["categories"]:
            criterion = Criterion(raw["criterion"])
            height_bands: Dict[Gender, Tuple[HeightBandSpec, ...]] = {}
            weight_boundaries: Dict[Gender, Tuple[float, ...]] = {}
            if criterion == Criterion.height:
                for gender_key, bands in raw.get("bands", {}).items():
                    height_bands[Gender(gender_key)] = tuple(
                        HeightBandSpec(
                            label=str(b["label"]),
                            lower=float(b.get("min", 0) or 0),
                            upper=float(b["max"]) if b.get("max") is not None else None,
                        )
                        for b in bands
                    )
            else:
                for gender_key, boundaries in raw.get("boundaries", {}).items():
                    weight_boundaries[Gender(gender_key)] = tuple(float(b) for b in boundaries)
            categories.append(
                CategoryRule(
                    key=str(raw["key"]),
                    name=str(raw.get("name") or raw["key"]),
                    min_age=int(raw["min_age"]),
                    max_age=int(raw["max_age"]),
                    criterion=criterion,
                    height_bands=height_bands,
                    weight_boundaries=weight_boundaries,
                )
            )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError([f"unreadable rule table: {exc!r}"]) from exc

    return validate_rule_table(RuleTable(categories=tuple(categories)))


def load_rule_table(path: str) -> RuleTable:
    """Load and validate a rule table from a JSON file."""
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError([f"cannot read rule table {path}: {exc}"]) from exc
    return rule_table_from_dict(data)


_active_table: Optional[RuleTable] = None


def get_rule_table() -> RuleTable:
    """Return the configured rule table (DIVISION_RULES_PATH or the built-in one)."""
    global _active_table
    if _active_table is None:
        path = os.getenv("DIVISION_RULES_PATH", "")
        if path:
            logger.info("Loading division rules from %s", path)
            _active_table = load_rule_table(path)
        else:
            _active_table = validate_rule_table(DEFAULT_RULE_TABLE)
    return _active_table


def reset_rule_table() -> None:
    """Forget the cached table (tests, config reload)."""
    global _active_table
    _active_table = None
