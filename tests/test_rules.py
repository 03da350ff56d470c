"""Tests for the choice table, tie-breaks and team balancing."""
from __future__ import annotations

import itertools
import random

import pytest
from rules import CHOICES, Choice, Winner, empty_tally, generate_player_name, get_winner, pick_team, top_choice


class TestGetWinner:
    """Test the rock-paper-scissors beats table."""

    def test_examples(self):
        assert get_winner(Choice.ROCK, Choice.SCISSORS) == Winner.TEAM1
        assert get_winner(Choice.PAPER, Choice.ROCK) == Winner.TEAM1
        assert get_winner(Choice.ROCK, Choice.PAPER) == Winner.TEAM2
        assert get_winner(Choice.SCISSORS, Choice.SCISSORS) == Winner.TIE

    def test_tie_iff_equal(self):
        for a, b in itertools.product(CHOICES, repeat=2):
            assert (get_winner(a, b) == Winner.TIE) == (a == b)

    def test_swapping_sides_swaps_winner(self):
        """Swapping the two teams' choices mirrors the result."""
        mirror = {Winner.TEAM1: Winner.TEAM2, Winner.TEAM2: Winner.TEAM1, Winner.TIE: Winner.TIE}
        for a, b in itertools.product(CHOICES, repeat=2):
            assert get_winner(b, a) == mirror[get_winner(a, b)]

    def test_each_choice_beats_exactly_one(self):
        for a in CHOICES:
            wins = [b for b in CHOICES if get_winner(a, b) == Winner.TEAM1]
            assert len(wins) == 1


class TestTopChoice:
    """Test per-team winning choice selection."""

    def test_strict_maximum_wins(self):
        votes = {Choice.ROCK: 1, Choice.PAPER: 4, Choice.SCISSORS: 2}
        assert top_choice(votes, random.Random(0)) == Choice.PAPER

    def test_tie_goes_to_first_in_order(self):
        votes = {Choice.ROCK: 0, Choice.PAPER: 3, Choice.SCISSORS: 3}
        assert top_choice(votes, random.Random(0)) == Choice.PAPER

        votes = {Choice.ROCK: 2, Choice.PAPER: 2, Choice.SCISSORS: 2}
        assert top_choice(votes, random.Random(0)) == Choice.ROCK

    def test_zero_votes_picks_some_choice(self):
        rng = random.Random(3)
        picks = {top_choice(empty_tally(), rng) for _ in range(60)}
        assert picks <= set(CHOICES)
        assert len(picks) == 3

    def test_zero_votes_is_reproducible_with_seed(self):
        a = [top_choice(empty_tally(), random.Random(11)) for _ in range(5)]
        b = [top_choice(empty_tally(), random.Random(11)) for _ in range(5)]
        assert a == b


class TestPickTeam:
    """Test team balancing."""

    def test_smaller_team_wins(self):
        rng = random.Random(0)
        assert pick_team(0, 1, rng) == 1
        assert pick_team(5, 2, rng) == 2

    def test_equal_sizes_pick_either(self):
        rng = random.Random(5)
        picks = {pick_team(3, 3, rng) for _ in range(40)}
        assert picks == {1, 2}

    @pytest.mark.parametrize("n", [1, 2, 7, 50])
    def test_sequential_assignment_stays_balanced(self, n):
        rng = random.Random(n)
        sizes = {1: 0, 2: 0}
        for _ in range(n):
            sizes[pick_team(sizes[1], sizes[2], rng)] += 1
            assert abs(sizes[1] - sizes[2]) <= 1


def test_generated_names_look_like_names():
    name = generate_player_name(random.Random(1))
    assert name[0].isupper()
    assert name[-1].isdigit()
