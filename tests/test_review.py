"""Pytest tests for game review helpers."""

from __future__ import annotations

import pytest

from analysis_tree import evaluation
from analysis_tree.models import EvaluationSource, Verdict
from analysis_tree.review import best_move_for_position, extract_player_mistakes

TACTICAL = EvaluationSource.TACTICAL_ENGINE


@pytest.fixture()
def reviewed_tree(tree, make_stockfish):
    """1.a3 h5 2.e4 with White's 1.a3 a blunder and Black's 1...h5 an inaccuracy."""
    tree.add_moves_to_main_line(["a2a3", "h7h5", "e2e4"])
    root, a3, h5, _ = tree.get_main_line()
    evaluation.attach(root, TACTICAL, make_stockfish({"e2e4": 0.75, "a2a3": 0.5}))
    evaluation.attach(a3, TACTICAL, make_stockfish({"e7e5": 0.75, "h7h5": 0.6875 - 2**-10}))
    evaluation.attach(h5, TACTICAL, make_stockfish({"e2e4": 0.5}))
    return tree


class TestBestMove:

    def test_best_move_uci_and_san(self, reviewed_tree):
        root = reviewed_tree.get_root()
        assert best_move_for_position(root) == ("e2e4", "e4")

    def test_no_evaluation(self, tree):
        assert best_move_for_position(tree.get_root()) is None

    def test_illegal_model_move(self, tree, make_stockfish):
        root = tree.get_root()
        evaluation.attach(root, TACTICAL, make_stockfish({"e7e5": 0.5}))
        assert best_move_for_position(root) is None


class TestExtractMistakes:

    def test_white_mistakes(self, reviewed_tree):
        mistakes = extract_player_mistakes(reviewed_tree, "white")
        assert len(mistakes) == 1
        mistake = mistakes[0]
        assert mistake.move_index == 1
        assert mistake.played_move == "a2a3"
        assert mistake.san == "a3"
        assert mistake.verdict is Verdict.BLUNDER
        assert mistake.best_move == "e2e4"
        assert mistake.best_move_san == "e4"
        assert mistake.fen == reviewed_tree.get_root().fen
        assert mistake.player_color == "white"

    def test_black_mistakes(self, reviewed_tree):
        mistakes = extract_player_mistakes(reviewed_tree, "black")
        assert [(m.san, m.verdict, m.best_move_san) for m in mistakes] == [
            ("h5", Verdict.INACCURACY, "e5")
        ]

    def test_unevaluated_game_has_no_mistakes(self, branching_tree):
        assert extract_player_mistakes(branching_tree, "white") == []
