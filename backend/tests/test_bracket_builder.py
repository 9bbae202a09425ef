"""
Tests for single-elimination bracket construction (pure).
"""

import pytest

from tkd_core.services.advancement_service import MATCH_COMPLETED, MATCH_PENDING
from tkd_core.services.bracket_builder import (
    BracketMatch,
    bracket_shape_problems,
    build_bracket,
    matches_per_round,
    round_count,
)
from tkd_core.services.errors import InsufficientParticipants


def _by_position(matches):
    return {(m.round_number, m.match_number): m for m in matches}


class TestShape:
    @pytest.mark.parametrize(
        "n,rounds",
        [(1, 0), (2, 1), (3, 2), (4, 2), (5, 3), (8, 3), (9, 4), (16, 4), (17, 5), (64, 6), (65, 7)],
    )
    def test_round_count(self, n, rounds):
        assert round_count(n) == rounds

    def test_matches_per_round(self):
        assert matches_per_round(2) == [1]
        assert matches_per_round(5) == [3, 2, 1]
        assert matches_per_round(6) == [3, 2, 1]
        assert matches_per_round(8) == [4, 2, 1]
        assert matches_per_round(11) == [6, 3, 2, 1]

    @pytest.mark.parametrize("n", range(2, 34))
    def test_bracket_is_well_formed(self, n):
        matches = build_bracket(1, list(range(1, n + 1)))
        assert bracket_shape_problems(matches, n) == []
        assert len(matches) == sum(matches_per_round(n))
        # exactly one final
        finals = [m for m in matches if m.round_number == round_count(n)]
        assert len(finals) == 1

    @pytest.mark.parametrize("n", range(2, 34))
    def test_round_one_holds_every_participant_once(self, n):
        matches = build_bracket(1, list(range(1, n + 1)))
        round_one = [m for m in matches if m.round_number == 1]
        slots = [pid for m in round_one for pid in (m.participant1_id, m.participant2_id) if pid is not None]
        assert sorted(slots) == list(range(1, n + 1))

    def test_shape_problems_detects_missing_match(self):
        matches = build_bracket(1, [1, 2, 3, 4, 5])
        broken = [m for m in matches if (m.round_number, m.match_number) != (2, 2)]
        problems = bracket_shape_problems(broken, 5)
        assert problems == ["round 2: expected matches 1..2, found [1]"]

    def test_shape_problems_detects_missing_round(self):
        matches = build_bracket(1, [1, 2, 3, 4])
        problems = bracket_shape_problems([m for m in matches if m.round_number == 1], 4)
        assert len(problems) == 1


class TestPairing:
    def test_consecutive_pairs(self):
        matches = _by_position(build_bracket(7, ["a", "b", "c", "d"]))
        assert (matches[(1, 1)].participant1_id, matches[(1, 1)].participant2_id) == ("a", "b")
        assert (matches[(1, 2)].participant1_id, matches[(1, 2)].participant2_id) == ("c", "d")
        assert all(m.division_id == 7 for m in matches.values())

    def test_power_of_two_has_no_byes(self):
        matches = build_bracket(1, list(range(1, 9)))
        assert not any(m.is_bye for m in matches)
        assert all(m.status == MATCH_PENDING for m in matches)
        later = [m for m in matches if m.round_number > 1]
        assert all(m.participant1_id is None and m.participant2_id is None for m in later)

    def test_two_participants_single_final(self):
        matches = build_bracket(1, ["a", "b"])
        assert len(matches) == 1
        final = matches[0]
        assert (final.round_number, final.match_number) == (1, 1)
        assert final.status == MATCH_PENDING


class TestByes:
    def test_three_participants(self):
        matches = _by_position(build_bracket(1, [1, 2, 3]))
        bye = matches[(1, 2)]
        assert (bye.participant1_id, bye.participant2_id) == (3, None)
        assert bye.is_bye
        assert bye.status == MATCH_COMPLETED
        assert bye.winner_id == 3
        assert bye.completed_at is not None

        final = matches[(2, 1)]
        assert (final.participant1_id, final.participant2_id) == (None, 3)
        assert final.status == MATCH_PENDING

    def test_five_participants_walkover_in_round_two(self):
        matches = _by_position(build_bracket(1, [1, 2, 3, 4, 5]))
        assert len(matches) == 6

        assert matches[(1, 3)].is_bye and matches[(1, 3)].winner_id == 5
        # round 2 match 2 has no second feeder, so 5 walks through it
        walkover = matches[(2, 2)]
        assert (walkover.participant1_id, walkover.participant2_id) == (5, None)
        assert walkover.is_bye
        assert walkover.status == MATCH_COMPLETED
        assert walkover.winner_id == 5

        assert (matches[(2, 1)].participant1_id, matches[(2, 1)].participant2_id) == (None, None)
        assert (matches[(3, 1)].participant1_id, matches[(3, 1)].participant2_id) == (None, 5)

    def test_six_participants_no_round_one_bye(self):
        matches = _by_position(build_bracket(1, list(range(1, 7))))
        assert not any(m.is_bye for (r, _), m in matches.items() if r == 1)
        # round 2 match 2 waits for round 1 match 3 and becomes a walkover only later
        assert matches[(2, 2)].status == MATCH_PENDING

    def test_bye_matches_have_winner_in_slot_one(self):
        for n in range(2, 40):
            for m in build_bracket(1, list(range(1, n + 1))):
                if m.is_bye:
                    assert m.participant2_id is None
                    assert m.winner_id == m.participant1_id
                    assert m.status == MATCH_COMPLETED


class TestInsufficient:
    @pytest.mark.parametrize("seeded", [[], ["only"]])
    def test_fewer_than_two(self, seeded):
        with pytest.raises(InsufficientParticipants) as excinfo:
            build_bracket(42, seeded)
        assert excinfo.value.division_id == 42
        assert excinfo.value.count == len(seeded)
        assert str(excinfo.value).startswith("INSUFFICIENT_PARTICIPANTS:")


def test_bracket_match_defaults():
    match = BracketMatch(division_id=1, round_number=2, match_number=1)
    assert match.status == MATCH_PENDING
    assert match.winner_id is None
    assert not match.is_bye
