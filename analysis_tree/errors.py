"""Exception types raised by the analysis tree.

Structural violations (wrong parent/child relationship, nodes from another
tree) are always raised to the caller and never corrected silently.
Missing evaluations are not errors: they are represented as None.
"""

from __future__ import annotations


class AnalysisTreeError(Exception):
    """Base class for all analysis tree errors."""


class InvalidPositionError(AnalysisTreeError, ValueError):
    """Raised when a FEN string cannot be parsed into a position."""

    def __init__(self, fen: str, reason: str = "") -> None:
        self.fen = fen
        message = f"Invalid FEN: {fen!r}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class IllegalMoveError(AnalysisTreeError, ValueError):
    """Raised when a move cannot be played from a node's position."""

    def __init__(self, move: str, fen: str) -> None:
        self.move = move
        self.fen = fen
        super().__init__(f"Illegal move: {move} in position {fen}")


class NotAChildError(AnalysisTreeError):
    """Raised when a node is not a member of its claimed parent's children."""


class ForeignNodeError(AnalysisTreeError):
    """Raised when a node does not belong to the tree being operated on."""
