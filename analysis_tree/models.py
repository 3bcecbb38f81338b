"""Shared data models for the analysis tree.

Move, StockfishEvaluation and MoveMap are the contract between the
engine layer that produces evaluations and the tree that stores them.
Verdict and MistakePosition are what the UI layer renders.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Union

import chess

# Engine mate scores are flattened to this many centipawns
MATE_SCORE = 10000

# Logistic slope used to map centipawns to a win probability
_WINRATE_SLOPE = 0.00368208


class EvaluationSource(str, Enum):
    """Known producers of per-position evaluations."""

    HUMAN_MODEL = "maia"
    TACTICAL_ENGINE = "stockfish"


class Verdict(str, Enum):
    """Move quality buckets shown next to a played move."""

    BLUNDER = "blunder"
    INACCURACY = "inaccuracy"
    EXCELLENT = "excellent"
    GOOD = "good"
    NEUTRAL = "neutral"
    UNCLASSIFIED = "unclassified"

    @property
    def glyph(self) -> str:
        """Annotation symbol for the verdict."""
        return _VERDICT_GLYPHS[self]


_VERDICT_GLYPHS: dict[Verdict, str] = {
    Verdict.BLUNDER: "??",
    Verdict.INACCURACY: "?!",
    Verdict.EXCELLENT: "!!",
    Verdict.GOOD: "!",
    Verdict.NEUTRAL: "",
    Verdict.UNCLASSIFIED: "–",
}


@dataclass(frozen=True)
class Move:
    """A move played from a node, with its resulting position."""

    uci: str
    san: str
    board: str
    last_move: tuple[str, str]
    check: bool = False
    promotion: str | None = None

    @property
    def from_square(self) -> str:
        return self.last_move[0]

    @property
    def to_square(self) -> str:
        return self.last_move[1]

    @classmethod
    def from_chess(cls, board: chess.Board, move: chess.Move) -> Move:
        """Build a Move from a python-chess board and a legal move.

        The board is not modified.

        Args:
            board: Position before the move.
            move: Legal move in that position.

        Returns:
            Move carrying SAN, resulting FEN and check flag.
        """
        san = board.san(move)
        after = board.copy(stack=False)
        after.push(move)
        promotion = chess.piece_symbol(move.promotion) if move.promotion else None
        return cls(
            uci=move.uci(),
            san=san,
            board=after.fen(),
            last_move=(
                chess.square_name(move.from_square),
                chess.square_name(move.to_square),
            ),
            check=after.is_check(),
            promotion=promotion,
        )


# Human-model output: uci move -> probability in [0, 1]
MoveMap = dict[str, float]


def cp_to_winrate(cp: float) -> float:
    """Convert a centipawn score to the mover's win probability.

    Args:
        cp: Centipawns from the mover's point of view.

    Returns:
        Win probability in [0, 1].
    """
    clamped = max(-MATE_SCORE, min(MATE_SCORE, cp))
    return 1 / (1 + math.exp(-_WINRATE_SLOPE * clamped))


@dataclass(frozen=True)
class StockfishEvaluation:
    """Tactical engine output for one position.

    ``cp_vec`` holds White-relative centipawns per candidate move.
    ``winrate_vec`` holds the mover's win probability per candidate and
    ``winrate_loss_vec`` the signed difference to the best candidate
    (zero for the best move, negative otherwise).
    """

    depth: int
    model_move: str
    model_optimal_cp: float
    cp_vec: dict[str, float] = field(default_factory=dict)
    cp_relative_vec: dict[str, float] = field(default_factory=dict)
    winrate_vec: dict[str, float] | None = None
    winrate_loss_vec: dict[str, float] | None = None

    @classmethod
    def from_centipawns(
        cls,
        depth: int,
        cp_vec: dict[str, float],
        white_to_move: bool,
    ) -> StockfishEvaluation:
        """Build a full evaluation from raw White-relative centipawns.

        Args:
            depth: Search depth the scores were produced at.
            cp_vec: uci move -> centipawns from White's point of view.
            white_to_move: Side to move in the evaluated position.

        Returns:
            StockfishEvaluation with relative and winrate vectors filled.

        Raises:
            ValueError: If cp_vec is empty.
        """
        if not cp_vec:
            raise ValueError("cp_vec must contain at least one move")

        sign = 1 if white_to_move else -1
        best_move = max(cp_vec, key=lambda m: cp_vec[m] * sign)
        best_cp = cp_vec[best_move]

        cp_relative_vec = {m: (cp - best_cp) * sign for m, cp in cp_vec.items()}
        winrate_vec = {m: cp_to_winrate(cp * sign) for m, cp in cp_vec.items()}
        best_winrate = max(winrate_vec.values())
        winrate_loss_vec = {m: wr - best_winrate for m, wr in winrate_vec.items()}

        return cls(
            depth=depth,
            model_move=best_move,
            model_optimal_cp=best_cp,
            cp_vec=dict(cp_vec),
            cp_relative_vec=cp_relative_vec,
            winrate_vec=winrate_vec,
            winrate_loss_vec=winrate_loss_vec,
        )


EvaluationRecord = Union[MoveMap, StockfishEvaluation]


@dataclass(frozen=True)
class MistakePosition:
    """A main-line blunder or inaccuracy, for review and drilling."""

    move_index: int
    fen: str
    played_move: str
    san: str
    verdict: Verdict
    best_move: str
    best_move_san: str
    player_color: str


def record_to_dict(record: EvaluationRecord) -> dict:
    """Serialize an evaluation record to a plain dict.

    A MoveMap becomes ``{"policy": {...}}``; a StockfishEvaluation keeps
    its field names.
    """
    if isinstance(record, StockfishEvaluation):
        data = {
            "depth": record.depth,
            "model_move": record.model_move,
            "model_optimal_cp": record.model_optimal_cp,
            "cp_vec": dict(record.cp_vec),
            "cp_relative_vec": dict(record.cp_relative_vec),
        }
        if record.winrate_vec is not None:
            data["winrate_vec"] = dict(record.winrate_vec)
        if record.winrate_loss_vec is not None:
            data["winrate_loss_vec"] = dict(record.winrate_loss_vec)
        return data
    return {"policy": dict(record)}


def record_from_dict(source: EvaluationSource, data: dict) -> EvaluationRecord:
    """Parse a plain dict into the record type produced by ``source``.

    Human-model data may be given either as ``{"policy": {...}}`` or as the
    bare move map.

    Raises:
        ValueError: If required fields are missing or malformed.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Evaluation for {source.value} must be an object")

    if source is EvaluationSource.HUMAN_MODEL:
        policy = data.get("policy", data)
        try:
            return {str(m): float(p) for m, p in policy.items()}
        except (AttributeError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed move map: {exc}") from exc

    try:
        return StockfishEvaluation(
            depth=int(data["depth"]),
            model_move=str(data["model_move"]),
            model_optimal_cp=float(data["model_optimal_cp"]),
            cp_vec={str(m): float(v) for m, v in data.get("cp_vec", {}).items()},
            cp_relative_vec={
                str(m): float(v) for m, v in data.get("cp_relative_vec", {}).items()
            },
            winrate_vec=_optional_vec(data.get("winrate_vec")),
            winrate_loss_vec=_optional_vec(data.get("winrate_loss_vec")),
        )
    except KeyError as exc:
        raise ValueError(f"Missing field in stockfish evaluation: {exc}") from exc
    except (AttributeError, TypeError) as exc:
        raise ValueError(f"Malformed stockfish evaluation: {exc}") from exc


def _optional_vec(vec: dict | None) -> dict[str, float] | None:
    if vec is None:
        return None
    return {str(m): float(v) for m, v in vec.items()}
