from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
APP_DIR = ROOT / "src" / "app"
sys.path.insert(0, str(APP_DIR))

from contract_errors import InvalidChoice  # type: ignore[import-not-found]  # noqa: E402
from protocol import (  # type: ignore[import-not-found]  # noqa: E402
    CHOICE_RANKS,
    choice_to_rank,
    determine_outcome,
    is_valid_choice,
    resolve_ranks,
)

CHOICES = ("rock", "paper", "scissors")


def test_determine_outcome_truth_table() -> None:
    assert determine_outcome("rock", "paper") == "p2_win"
    assert determine_outcome("rock", "scissors") == "p1_win"
    assert determine_outcome("scissors", "paper") == "p1_win"
    assert determine_outcome("paper", "paper") == "draw"

    assert determine_outcome("paper", "rock") == "p1_win"
    assert determine_outcome("scissors", "rock") == "p2_win"
    assert determine_outcome("paper", "scissors") == "p2_win"


def test_draw_iff_equal() -> None:
    for a, b in itertools.product(CHOICES, repeat=2):
        assert (determine_outcome(a, b) == "draw") == (a == b)


def test_swapping_players_swaps_winner() -> None:
    swapped = {"p1_win": "p2_win", "p2_win": "p1_win", "draw": "draw"}
    for a, b in itertools.product(CHOICES, repeat=2):
        assert determine_outcome(b, a) == swapped[determine_outcome(a, b)]


def test_ranks() -> None:
    assert CHOICE_RANKS == {"rock": 3, "scissors": 2, "paper": 1}
    assert resolve_ranks(3, 1) == "p2_win"
    assert resolve_ranks(1, 3) == "p1_win"
    assert resolve_ranks(2, 1) == "p1_win"


@pytest.mark.parametrize("bad", ["Rock", "lizard", "", " rock"])
def test_invalid_choice(bad: str) -> None:
    assert not is_valid_choice(bad)
    with pytest.raises(InvalidChoice):
        choice_to_rank(bad)
    with pytest.raises(InvalidChoice):
        determine_outcome("rock", bad)
