"""Pytest tests for FEN helpers."""

from __future__ import annotations

import chess
import pytest

from analysis_tree.errors import InvalidPositionError
from analysis_tree.fen import (
    color_name,
    fullmove_number,
    move_number,
    parse_board,
    position_key,
    turn_of,
    validate_fen,
)

from conftest import AFTER_E4_E5_FEN, AFTER_E4_FEN


class TestParsing:

    def test_starting_position_parses(self):
        board = parse_board(chess.STARTING_FEN)
        assert board.fen() == chess.STARTING_FEN

    @pytest.mark.parametrize("fen", ["", "   ", "not a fen", "8/8/8 w - - 0 1"])
    def test_malformed_fen_raises(self, fen):
        with pytest.raises(InvalidPositionError):
            parse_board(fen)

    def test_invalid_position_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_fen("garbage")

    def test_validate_returns_normalized_fen(self):
        assert validate_fen(AFTER_E4_FEN) == AFTER_E4_FEN


class TestPositionIdentity:

    def test_key_ignores_move_counters(self):
        a = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
        b = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 4 3"
        assert position_key(a) == position_key(b)

    def test_key_distinguishes_side_to_move(self):
        a = "8/8/8/8/8/8/8/K6k w - - 0 1"
        b = "8/8/8/8/8/8/8/K6k b - - 0 1"
        assert position_key(a) != position_key(b)


class TestTurnAndNumbers:

    def test_turn_of(self):
        assert turn_of(chess.STARTING_FEN) == "w"
        assert turn_of(AFTER_E4_FEN) == "b"

    def test_turn_of_missing_field(self):
        with pytest.raises(InvalidPositionError):
            turn_of("8/8/8/8/8/8/8/K6k")

    def test_move_number(self):
        assert move_number(chess.STARTING_FEN) == 0
        assert move_number(AFTER_E4_FEN) == 1
        assert move_number(AFTER_E4_E5_FEN) == 1

    def test_fullmove_number_defaults_to_one(self):
        assert fullmove_number("8/8/8/8/8/8/8/K6k w - -") == 1
        assert fullmove_number(AFTER_E4_E5_FEN) == 2

    def test_color_name(self):
        assert color_name("w") == "white"
        assert color_name("b") == "black"
