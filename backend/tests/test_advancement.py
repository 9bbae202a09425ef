"""
Tests for the match advancement state machine, run against the in-memory repository.
"""

import copy
from dataclasses import asdict

import pytest

from tkd_core.services.advancement_service import (
    MATCH_COMPLETED,
    MATCH_IN_PROGRESS,
    MATCH_PENDING,
    mark_in_progress,
    next_slot,
    record_result,
)
from tkd_core.services.bracket_builder import build_bracket
from tkd_core.services.errors import NotFound, PreconditionViolation, ResultConflict
from tkd_core.services.match_repository import InMemoryMatchRepository


def _bracket(n, division_id=1):
    """Repository holding a freshly built bracket for participants 1..n, match ids assigned."""
    matches = build_bracket(division_id, list(range(1, n + 1)))
    for match_id, match in enumerate(matches, start=1):
        match.id = match_id
    return InMemoryMatchRepository(matches)


def _at(repo, round_number, match_number, division_id=1):
    return repo.find(division_id, round_number, match_number)


def _snapshot(repo):
    return {m.id: asdict(m) for m in repo.all()}


def _play_out(repo, pick=min):
    """Record results until no playable match is left; returns the champion."""
    champion = None
    while True:
        playable = [
            m for m in repo.all()
            if m.status != MATCH_COMPLETED and m.participant1_id is not None and m.participant2_id is not None
        ]
        if not playable:
            return champion
        match = playable[0]
        outcome = record_result(repo, match.id, pick(match.participant1_id, match.participant2_id))
        if outcome.champion_id is not None:
            champion = outcome.champion_id


class TestNextSlot:
    @pytest.mark.parametrize(
        "round_number,match_number,expected",
        [(1, 1, (2, 1, 1)), (1, 2, (2, 1, 2)), (1, 3, (2, 2, 1)), (1, 4, (2, 2, 2)), (3, 7, (4, 4, 1))],
    )
    def test_mapping(self, round_number, match_number, expected):
        assert next_slot(round_number, match_number) == expected


class TestRecordResult:
    def test_odd_match_fills_slot_one(self):
        repo = _bracket(8)
        outcome = record_result(repo, _at(repo, 1, 3).id, 6)

        assert not outcome.noop
        assert outcome.match.winner_id == 6
        assert outcome.match.status == MATCH_COMPLETED
        assert outcome.match.completed_at is not None
        dest = _at(repo, 2, 2)
        assert dest.participant1_id == 6
        assert dest.participant2_id is None
        assert outcome.advanced == [dest]
        assert outcome.champion_id is None

    def test_even_match_fills_slot_two(self):
        repo = _bracket(8)
        record_result(repo, _at(repo, 1, 4).id, 7)
        assert _at(repo, 2, 2).participant2_id == 7

    def test_only_match_and_destination_change(self):
        repo = _bracket(8)
        before = _snapshot(repo)
        target = _at(repo, 1, 3)
        dest = _at(repo, 2, 2)

        record_result(repo, target.id, 5)

        after = _snapshot(repo)
        changed = {mid for mid in before if before[mid] != after[mid]}
        assert changed == {target.id, dest.id}

    def test_same_winner_twice_is_noop(self):
        repo = _bracket(4)
        match = _at(repo, 1, 1)
        record_result(repo, match.id, 1)
        before = _snapshot(repo)

        outcome = record_result(repo, match.id, 1)

        assert outcome.noop
        assert outcome.advanced == []
        assert _snapshot(repo) == before

    def test_different_winner_conflicts(self):
        repo = _bracket(4)
        match = _at(repo, 1, 1)
        record_result(repo, match.id, 1)
        before = _snapshot(repo)

        with pytest.raises(ResultConflict) as excinfo:
            record_result(repo, match.id, 2)

        assert excinfo.value.recorded_winner_id == 1
        assert excinfo.value.requested_winner_id == 2
        assert str(excinfo.value).startswith("RESULT_CONFLICT:")
        assert _snapshot(repo) == before

    def test_winner_must_be_in_match(self):
        repo = _bracket(4)
        before = _snapshot(repo)
        with pytest.raises(PreconditionViolation):
            record_result(repo, _at(repo, 1, 1).id, 3)
        assert _snapshot(repo) == before

    def test_both_slots_must_be_filled(self):
        repo = _bracket(4)
        record_result(repo, _at(repo, 1, 1).id, 1)
        final = _at(repo, 2, 1)
        assert final.participant1_id == 1

        with pytest.raises(PreconditionViolation):
            record_result(repo, final.id, 1)
        assert final.status == MATCH_PENDING

    def test_unknown_match(self):
        with pytest.raises(NotFound):
            record_result(_bracket(2), 999, 1)

    def test_occupied_destination_conflicts_without_changes(self):
        repo = _bracket(4)
        # slot already holds someone else (e.g. stale data); nothing may change
        _at(repo, 2, 1).participant1_id = 99
        before = _snapshot(repo)

        with pytest.raises(ResultConflict):
            record_result(repo, _at(repo, 1, 1).id, 1)
        assert _snapshot(repo) == before

    def test_final_crowns_champion(self):
        repo = _bracket(2)
        outcome = record_result(repo, _at(repo, 1, 1).id, 2)
        assert outcome.champion_id == 2
        assert outcome.advanced == []


class TestWalkovers:
    def test_six_participants_walkover_cascade(self):
        repo = _bracket(6)
        outcome = record_result(repo, _at(repo, 1, 3).id, 5)

        walkover = _at(repo, 2, 2)
        assert walkover.participant1_id == 5
        assert walkover.is_bye
        assert walkover.status == MATCH_COMPLETED
        assert walkover.winner_id == 5
        assert _at(repo, 3, 1).participant2_id == 5
        assert outcome.advanced == [walkover, _at(repo, 3, 1)]

    def test_five_participants_final_fed_by_walkover(self):
        repo = _bracket(5)
        record_result(repo, _at(repo, 1, 1).id, 2)
        record_result(repo, _at(repo, 1, 2).id, 3)
        record_result(repo, _at(repo, 2, 1).id, 3)
        final = _at(repo, 3, 1)
        assert (final.participant1_id, final.participant2_id) == (3, 5)

        outcome = record_result(repo, final.id, 5)
        assert outcome.champion_id == 5


class TestFullTournament:
    @pytest.mark.parametrize("n", range(2, 33))
    def test_lowest_id_always_wins(self, n):
        repo = _bracket(n)
        champion = _play_out(repo, pick=min)

        assert champion == 1
        matches = repo.all()
        assert all(m.status == MATCH_COMPLETED for m in matches)
        # every real match eliminates exactly one participant
        assert sum(1 for m in matches if not m.is_bye) == n - 1

    @pytest.mark.parametrize("n", [3, 5, 7, 12, 19])
    def test_highest_id_always_wins(self, n):
        repo = _bracket(n)
        assert _play_out(repo, pick=max) == n

    def test_each_participant_plays_each_round_at_most_once(self):
        repo = _bracket(13)
        _play_out(repo)
        per_round = {}
        for m in repo.all():
            for pid in (m.participant1_id, m.participant2_id):
                if pid is None:
                    continue
                key = (m.round_number, pid)
                per_round[key] = per_round.get(key, 0) + 1
        assert max(per_round.values()) == 1

    def test_play_out_is_independent_of_other_divisions(self):
        one = build_bracket(1, [1, 2, 3])
        two = build_bracket(2, [1, 2, 3])
        for match_id, match in enumerate(one + two, start=1):
            match.id = match_id
        repo = InMemoryMatchRepository(one + two)
        pristine = copy.deepcopy([asdict(m) for m in two])

        record_result(repo, repo.find(1, 1, 1).id, 2)

        assert [asdict(m) for m in two] == pristine


class TestInProgress:
    def test_marks_match(self):
        repo = _bracket(4)
        match = mark_in_progress(repo, _at(repo, 1, 1).id)
        assert match.status == MATCH_IN_PROGRESS

    def test_repeat_is_harmless(self):
        repo = _bracket(4)
        match_id = _at(repo, 1, 1).id
        mark_in_progress(repo, match_id)
        assert mark_in_progress(repo, match_id).status == MATCH_IN_PROGRESS

    def test_in_progress_match_can_be_completed(self):
        repo = _bracket(4)
        match_id = _at(repo, 1, 1).id
        mark_in_progress(repo, match_id)
        assert record_result(repo, match_id, 2).match.status == MATCH_COMPLETED

    def test_requires_both_slots(self):
        repo = _bracket(4)
        with pytest.raises(PreconditionViolation):
            mark_in_progress(repo, _at(repo, 2, 1).id)

    def test_completed_match_rejected(self):
        repo = _bracket(3)
        with pytest.raises(PreconditionViolation):
            mark_in_progress(repo, _at(repo, 1, 2).id)
