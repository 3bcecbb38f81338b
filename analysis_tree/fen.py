"""Position identity helpers built on python-chess.

python-chess is the rules oracle: a FEN is well formed when
``chess.Board`` accepts it. Everything else here is string slicing
over the six FEN fields.
"""

from __future__ import annotations

import chess

from analysis_tree.errors import InvalidPositionError

STARTING_FEN = chess.STARTING_FEN


def parse_board(fen: str) -> chess.Board:
    """Parse a FEN into a board.

    Args:
        fen: FEN string.

    Returns:
        A new chess.Board for the position.

    Raises:
        InvalidPositionError: If python-chess rejects the FEN.
    """
    if not isinstance(fen, str) or not fen.strip():
        raise InvalidPositionError(str(fen), "empty position")
    try:
        return chess.Board(fen)
    except ValueError as exc:
        raise InvalidPositionError(fen, str(exc)) from exc


def validate_fen(fen: str) -> str:
    """Return the normalized FEN for a well-formed position string.

    Raises:
        InvalidPositionError: If the FEN is malformed.
    """
    return parse_board(fen).fen()


def position_key(fen: str) -> str:
    """Canonical identity of a position: the first four FEN fields.

    Move counters are dropped so the same position reached at
    different move numbers gets the same key.
    """
    return " ".join(fen.split()[:4])


def turn_of(fen: str) -> str:
    """Side to move, ``"w"`` or ``"b"``."""
    parts = fen.split()
    if len(parts) < 2 or parts[1] not in ("w", "b"):
        raise InvalidPositionError(fen, "missing side to move")
    return parts[1]


def fullmove_number(fen: str) -> int:
    """The FEN fullmove counter; 1 when the field is missing."""
    parts = fen.split()
    try:
        return int(parts[5])
    except (IndexError, ValueError):
        return 1


def move_number(fen: str) -> int:
    """Number of full moves completed before the side to move plays.

    Mirrors how the analysis board numbers nodes: the fullmove counter,
    minus one when White is to move.
    """
    return fullmove_number(fen) - (1 if turn_of(fen) == "w" else 0)


def color_name(turn: str) -> str:
    """Map ``"w"``/``"b"`` to ``"white"``/``"black"``."""
    return "white" if turn == "w" else "black"
