"""Pytest tests for GameTree and GameNode.

Covers: root creation, child insertion and main-child defaults,
promotion, removal, structural errors, main-line traversal,
tree integrity under mixed mutations, and PGN import/export.
"""

from __future__ import annotations

import gc

import chess
import pytest

from analysis_tree.errors import (
    ForeignNodeError,
    IllegalMoveError,
    InvalidPositionError,
    NotAChildError,
)
from analysis_tree.models import Move
from analysis_tree.tree import GameNode, GameTree

from conftest import AFTER_E4_FEN


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _move(fen: str, uci: str) -> Move:
    board = chess.Board(fen)
    return Move.from_chess(board, chess.Move.from_uci(uci))


def _assert_integrity(tree: GameTree) -> None:
    """One root, no node its own ancestor, each node listed once by its parent."""
    roots = [n for n in tree.nodes() if n.parent is None]
    assert roots == [tree.get_root()]

    for node in tree.nodes():
        seen = set()
        ancestor = node.parent
        while ancestor is not None:
            assert ancestor is not node
            assert ancestor.node_id not in seen
            seen.add(ancestor.node_id)
            ancestor = ancestor.parent

        if node.parent is not None:
            assert sum(1 for c in node.parent.children if c is node) == 1
        if node.main_child is not None:
            assert node.main_child in node.children


# ---------------------------------------------------------------------------
# Root creation
# ---------------------------------------------------------------------------


class TestCreateRoot:

    def test_default_root_is_starting_position(self, tree):
        root = tree.get_root()
        assert root.fen == chess.STARTING_FEN
        assert root.move is None
        assert root.parent is None
        assert root.children == ()
        assert dict(root.evaluations) == {}

    def test_invalid_fen_raises(self):
        with pytest.raises(InvalidPositionError):
            GameTree("this is not a position")

    def test_custom_start_sets_headers(self):
        tree = GameTree(AFTER_E4_FEN)
        assert tree.get_header("SetUp") == "1"
        assert tree.get_header("FEN") == AFTER_E4_FEN

    def test_standard_start_has_no_setup_header(self, tree):
        assert tree.get_header("SetUp") is None

    def test_create_root_resets_arena(self, branching_tree):
        old_root = branching_tree.get_root()
        new_root = branching_tree.create_root(AFTER_E4_FEN)
        assert branching_tree.get_root() is new_root
        assert len(branching_tree) == 1
        assert not branching_tree.owns(old_root)

    def test_root_turn_and_move_number(self, tree):
        root = tree.get_root()
        assert root.turn == "w"
        assert root.move_number == 0
        assert root.ply == 0


# ---------------------------------------------------------------------------
# Child insertion
# ---------------------------------------------------------------------------


class TestAddChild:

    def test_first_child_becomes_main(self, tree):
        root = tree.get_root()
        e4 = tree.add_child(root, _move(root.fen, "e2e4"), AFTER_E4_FEN)
        assert root.main_child is e4
        assert e4.parent is root
        assert e4.fen == AFTER_E4_FEN

    def test_later_children_are_variations(self, tree):
        root = tree.get_root()
        e4 = tree.add_child(root, _move(root.fen, "e2e4"), AFTER_E4_FEN)
        d4_move = _move(root.fen, "d2d4")
        d4 = tree.add_child(root, d4_move, d4_move.board)
        assert root.main_child is e4
        assert root.children == (e4, d4)
        assert root.variations == (d4,)
        assert not d4.is_main_line

    def test_add_child_does_not_deduplicate(self, tree):
        root = tree.get_root()
        move = _move(root.fen, "e2e4")
        a = tree.add_child(root, move, move.board)
        b = tree.add_child(root, move, move.board)
        assert a is not b
        assert len(root.children) == 2

    def test_add_variation_reuses_existing_child(self, tree):
        root = tree.get_root()
        move = _move(root.fen, "e2e4")
        a = tree.add_variation(root, move, move.board)
        b = tree.add_variation(root, move, move.board)
        assert a is b

    def test_add_main_move_promotes(self, tree):
        root = tree.get_root()
        tree.play_move(root, "e2e4")
        d4_move = _move(root.fen, "d2d4")
        d4 = tree.add_main_move(root, d4_move, d4_move.board)
        assert root.main_child is d4

    def test_foreign_parent_raises(self, tree):
        other = GameTree()
        move = _move(chess.STARTING_FEN, "e2e4")
        with pytest.raises(ForeignNodeError):
            tree.add_child(other.get_root(), move, move.board)

    def test_time_is_stored(self, tree):
        node = tree.add_move_to_main_line("e2e4", time=3.5)
        assert node.time == 3.5


class TestPlayMove:

    def test_play_uci(self, tree):
        node = tree.play_move(tree.get_root(), "e2e4")
        assert node.san == "e4"
        assert node.uci == "e2e4"
        assert node.move.last_move == ("e2", "e4")
        assert node.fen == AFTER_E4_FEN

    def test_play_san(self, tree):
        node = tree.play_move(tree.get_root(), "Nf3")
        assert node.uci == "g1f3"

    def test_play_reuses_child(self, tree):
        root = tree.get_root()
        assert tree.play_move(root, "e2e4") is tree.play_move(root, "e4")
        assert len(root.children) == 1

    def test_illegal_move_raises(self, tree):
        with pytest.raises(IllegalMoveError):
            tree.play_move(tree.get_root(), "e2e5")

    @pytest.mark.parametrize("move_text", ["0000", "--"])
    def test_null_move_raises(self, tree, move_text):
        root = tree.get_root()
        with pytest.raises(IllegalMoveError):
            tree.play_move(root, move_text)
        assert root.children == ()

    def test_garbage_move_raises(self, tree):
        with pytest.raises(IllegalMoveError):
            tree.play_move(tree.get_root(), "zz")

    def test_check_flag(self, tree):
        node = tree.add_moves_to_main_line(["e2e4", "f7f6", "d1h5"])
        assert node.check is True
        assert node.move.check is True

    def test_promotion_recorded(self):
        tree = GameTree("8/P7/8/8/8/8/8/K6k w - - 0 1")
        node = tree.play_move(tree.get_root(), "a7a8q")
        assert node.move.promotion == "q"
        assert node.san == "a8=Q+"


# ---------------------------------------------------------------------------
# Main line
# ---------------------------------------------------------------------------


class TestMainLine:

    def test_scenario_single_move(self, tree):
        root = tree.get_root()
        e4 = tree.play_move(root, "e2e4")
        assert tree.get_main_line() == [root, e4]

    def test_main_line_is_restartable(self, branching_tree):
        first = branching_tree.get_main_line()
        second = branching_tree.get_main_line()
        assert first == second
        assert [n.san for n in first[1:]] == ["e4", "e5", "Nf3"]

    def test_iterators_are_independent(self, branching_tree):
        a = branching_tree.iter_main_line()
        b = branching_tree.iter_main_line()
        next(a)
        next(a)
        assert next(b) is branching_tree.get_root()

    def test_move_array(self, branching_tree):
        assert branching_tree.to_move_array() == ["e2e4", "e7e5", "g1f3"]

    def test_last_main_line_node(self, branching_tree):
        assert branching_tree.get_last_main_line_node().san == "Nf3"

    def test_add_moves_to_main_line_extends_end(self, branching_tree):
        node = branching_tree.add_moves_to_main_line(["b8c6", "f1b5"])
        assert node.san == "Bb5"
        assert len(branching_tree.get_main_line()) == 6

    def test_get_path(self, branching_tree):
        nf3 = branching_tree.get_last_main_line_node()
        path = branching_tree.get_path(nf3)
        assert [n.san for n in path] == [None, "e4", "e5", "Nf3"]
        assert nf3.ply == 3

    def test_is_main_line_for_deep_variation_child(self, branching_tree):
        e4 = branching_tree.get_root().main_child
        c5 = branching_tree.find_child(e4, "c7c5")
        reply = branching_tree.play_move(c5, "g1f3")
        assert c5.main_child is reply
        assert not reply.is_main_line


# ---------------------------------------------------------------------------
# Promotion and removal
# ---------------------------------------------------------------------------


class TestPromotion:

    def test_promote_changes_main_line_not_topology(self, branching_tree):
        root = branching_tree.get_root()
        d4 = branching_tree.find_child(root, "d2d4")
        before = root.children
        branching_tree.promote_to_main(d4)
        assert root.main_child is d4
        assert root.children == before
        assert [n.san for n in branching_tree.get_main_line()] == [None, "d4"]

    def test_promote_root_raises(self, branching_tree):
        with pytest.raises(NotAChildError):
            branching_tree.promote_to_main(branching_tree.get_root())

    def test_promote_foreign_node_raises(self, branching_tree):
        other = GameTree()
        node = other.play_move(other.get_root(), "e2e4")
        with pytest.raises(ForeignNodeError):
            branching_tree.promote_to_main(node)


class TestRemoveVariation:

    def test_remove_variation_drops_subtree(self, branching_tree):
        root = branching_tree.get_root()
        d4 = branching_tree.find_child(root, "d2d4")
        branching_tree.play_move(d4, "d7d5")
        size = len(branching_tree)
        branching_tree.remove_variation(d4)
        assert len(branching_tree) == size - 2
        assert d4 not in root.children
        assert not branching_tree.owns(d4)
        assert d4.parent is None

    def test_remove_main_child_promotes_next(self, branching_tree):
        root = branching_tree.get_root()
        e4 = root.main_child
        d4 = branching_tree.find_child(root, "d2d4")
        branching_tree.remove_variation(e4)
        assert root.main_child is d4
        assert len(branching_tree) == 2

    def test_remove_last_child_clears_main(self, tree):
        node = tree.play_move(tree.get_root(), "e2e4")
        tree.remove_variation(node)
        assert tree.get_root().main_child is None
        assert tree.get_main_line() == [tree.get_root()]

    def test_remove_root_raises(self, tree):
        with pytest.raises(NotAChildError):
            tree.remove_variation(tree.get_root())


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class TestIntegrity:

    def test_integrity_after_mixed_mutations(self, branching_tree):
        root = branching_tree.get_root()
        d4 = branching_tree.find_child(root, "d2d4")
        d5 = branching_tree.play_move(d4, "d7d5")
        branching_tree.play_move(d4, "g8f6")
        branching_tree.promote_to_main(d4)
        c4 = branching_tree.play_move(d5, "c2c4")
        branching_tree.promote_to_main(c4)
        e4 = branching_tree.find_child(root, "e2e4")
        branching_tree.remove_variation(e4)
        branching_tree.play_move(root, "c2c4")
        _assert_integrity(branching_tree)

    def test_parent_reference_is_not_owning(self):
        tree = GameTree()
        node = tree.add_moves_to_main_line(["e2e4", "e7e5"])
        del tree
        gc.collect()
        assert node.parent is None
        assert node.tree is None

    def test_node_repr(self, tree):
        node = tree.play_move(tree.get_root(), "e2e4")
        assert "e4" in repr(node)
        assert isinstance(node, GameNode)


# ---------------------------------------------------------------------------
# PGN
# ---------------------------------------------------------------------------


_PGN_WITH_VARIATIONS = """[Event "Casual"]
[White "Alice"]
[Black "Bob"]
[Result "*"]

1. e4 e5 (1... c5 2. Nf3) 2. Nf3 Nc6 (2... d6) *
"""


class TestPgn:

    def test_from_pgn_builds_main_line_and_variations(self):
        tree = GameTree.from_pgn(_PGN_WITH_VARIATIONS)
        assert tree.to_move_array() == ["e2e4", "e7e5", "g1f3", "b8c6"]
        e4 = tree.get_root().main_child
        assert [c.san for c in e4.children] == ["e5", "c5"]
        c5 = tree.find_child(e4, "c7c5")
        assert c5.main_child.san == "Nf3"
        assert tree.get_header("White") == "Alice"

    def test_to_pgn_keeps_variations(self):
        tree = GameTree.from_pgn(_PGN_WITH_VARIATIONS)
        pgn = tree.to_pgn()
        assert "( 1... c5 2. Nf3 )" in pgn
        assert "( 2... d6 )" in pgn
        assert '[White "Alice"]' in pgn

    def test_to_pgn_follows_promoted_main_line(self, branching_tree):
        root = branching_tree.get_root()
        branching_tree.promote_to_main(branching_tree.find_child(root, "d2d4"))
        pgn = branching_tree.to_pgn()
        assert "1. d4 ( 1. e4 e5" in pgn
        assert GameTree.from_pgn(pgn).to_move_array() == ["d2d4"]

    def test_from_pgn_custom_start(self):
        pgn = (
            '[SetUp "1"]\n'
            f'[FEN "{AFTER_E4_FEN}"]\n\n'
            "1... e5 2. Nf3 *\n"
        )
        tree = GameTree.from_pgn(pgn)
        assert tree.get_root().fen == AFTER_E4_FEN
        assert tree.to_move_array() == ["e7e5", "g1f3"]

    def test_from_pgn_empty_raises(self):
        with pytest.raises(InvalidPositionError):
            GameTree.from_pgn("")
