"""Tests for half-open interval overlap and conflict lookup."""

from typing import NamedTuple

from salonbook.scheduling.conflicts import find_conflict, has_conflict, overlaps


class Block(NamedTuple):
    start_time: int
    end_time: int


class TestOverlaps:
    def test_partial_overlap(self):
        assert overlaps(600, 660, 630, 690)

    def test_containment(self):
        assert overlaps(600, 720, 630, 660)

    def test_identical(self):
        assert overlaps(600, 630, 600, 630)

    def test_touching_intervals_do_not_overlap(self):
        assert not overlaps(600, 630, 630, 660)
        assert not overlaps(630, 660, 600, 630)

    def test_disjoint(self):
        assert not overlaps(540, 570, 600, 630)

    def test_symmetric(self):
        assert overlaps(585, 615, 600, 630) == overlaps(600, 630, 585, 615)


class TestFindConflict:
    def test_returns_first_overlapping_interval(self):
        blocked = [Block(540, 570), Block(600, 630)]
        assert find_conflict(615, 645, blocked) == blocked[1]

    def test_none_when_free(self):
        blocked = [Block(600, 630)]
        assert find_conflict(630, 660, blocked) is None
        assert not has_conflict(630, 660, blocked)

    def test_empty_blocked_set(self):
        assert not has_conflict(0, 1440, [])
