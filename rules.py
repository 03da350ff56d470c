from __future__ import annotations

import random
from enum import Enum
from typing import Dict, Mapping


class Choice(str, Enum):
    ROCK = "rock"
    PAPER = "paper"
    SCISSORS = "scissors"


class Winner(str, Enum):
    TEAM1 = "team1"
    TEAM2 = "team2"
    TIE = "tie"


# Enumeration order doubles as the tie-break order
CHOICES = (Choice.ROCK, Choice.PAPER, Choice.SCISSORS)

BEATS = {
    Choice.ROCK: Choice.SCISSORS,
    Choice.SCISSORS: Choice.PAPER,
    Choice.PAPER: Choice.ROCK,
}

TEAMS = (1, 2)

ADJECTIVES = ["Swift", "Brave", "Smart", "Quick", "Bold", "Wise", "Cool", "Fast", "Sharp", "Bright"]
ANIMALS = ["Fox", "Wolf", "Eagle", "Lion", "Tiger", "Bear", "Hawk", "Shark", "Falcon", "Panther"]


def empty_tally() -> Dict[Choice, int]:
    return {c: 0 for c in CHOICES}


def get_winner(team1_choice: Choice, team2_choice: Choice) -> Winner:
    if team1_choice == team2_choice:
        return Winner.TIE
    if BEATS[team1_choice] == team2_choice:
        return Winner.TEAM1
    return Winner.TEAM2


def top_choice(votes: Mapping[Choice, int], rng: random.Random) -> Choice:
    """Winning choice for one team's tally.

    With no votes at all the choice is random so every round has a result.
    Otherwise the first choice (rock, paper, scissors) holding the maximum wins.
    """
    counts = [votes.get(c, 0) for c in CHOICES]
    if not any(counts):
        return rng.choice(CHOICES)
    best = max(counts)
    return CHOICES[counts.index(best)]


def pick_team(team1_size: int, team2_size: int, rng: random.Random) -> int:
    if team1_size < team2_size:
        return 1
    if team2_size < team1_size:
        return 2
    return rng.choice(TEAMS)


def generate_player_name(rng: random.Random) -> str:
    return f"{rng.choice(ADJECTIVES)}{rng.choice(ANIMALS)}{rng.randint(1, 99)}"
