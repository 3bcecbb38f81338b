"""Shared test fixtures.

Fixtures:
    tree             - Empty tree at the standard starting position.
    branching_tree   - 1.e4 e5 2.Nf3 main line with 1.d4 and 1...c5 variations.
    make_stockfish   - Factory for StockfishEvaluation records with winrates.
    enable_validation - Sets ANALYSIS_TREE_VALIDATE=1 for schema validation.
"""

from __future__ import annotations

import os

import pytest

from analysis_tree.models import StockfishEvaluation
from analysis_tree.tree import GameTree

AFTER_E4_FEN = "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq - 0 1"
AFTER_E4_E5_FEN = "rnbqkbnr/pppp1ppp/8/4p3/4P3/8/PPPP1PPP/RNBQKBNR w KQkq - 0 2"


# ---------------------------------------------------------------------------
# Tree fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def tree() -> GameTree:
    return GameTree()


@pytest.fixture()
def branching_tree() -> GameTree:
    """1.e4 e5 2.Nf3 (1.d4) (1...c5)."""
    game = GameTree()
    game.add_moves_to_main_line(["e2e4", "e7e5", "g1f3"])
    root = game.get_root()
    game.play_move(root, "d2d4")
    e4 = root.main_child
    game.play_move(e4, "c7c5")
    return game


# ---------------------------------------------------------------------------
# Evaluation factory
# ---------------------------------------------------------------------------


def _make_stockfish(
    winrates: dict[str, float],
    depth: int = 15,
    model_move: str | None = None,
) -> StockfishEvaluation:
    """Build a StockfishEvaluation whose winrate_vec is ``winrates``."""
    best = model_move or max(winrates, key=winrates.get)
    best_wr = winrates[best]
    return StockfishEvaluation(
        depth=depth,
        model_move=best,
        model_optimal_cp=50,
        cp_vec={m: 50 for m in winrates},
        cp_relative_vec={m: 0 for m in winrates},
        winrate_vec=dict(winrates),
        winrate_loss_vec={m: wr - best_wr for m, wr in winrates.items()},
    )


@pytest.fixture()
def make_stockfish():
    return _make_stockfish


# ---------------------------------------------------------------------------
# Schema validation fixture
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def enable_validation():
    """Set ANALYSIS_TREE_VALIDATE=1 for the test session.

    Restores the original env var value after the test.
    """
    original = os.environ.get("ANALYSIS_TREE_VALIDATE")
    os.environ["ANALYSIS_TREE_VALIDATE"] = "1"
    yield
    if original is None:
        os.environ.pop("ANALYSIS_TREE_VALIDATE", None)
    else:
        os.environ["ANALYSIS_TREE_VALIDATE"] = original
