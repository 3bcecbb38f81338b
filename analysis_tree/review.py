"""Game review helpers: find a player's mistakes on the main line."""

from __future__ import annotations

import chess

from analysis_tree import evaluation
from analysis_tree.classification import (
    DEFAULT_THRESHOLDS,
    ClassificationThresholds,
    classify_node,
)
from analysis_tree.fen import color_name
from analysis_tree.models import (
    EvaluationSource,
    MistakePosition,
    StockfishEvaluation,
    Verdict,
)
from analysis_tree.tree import GameNode, GameTree

_MISTAKE_VERDICTS = (Verdict.BLUNDER, Verdict.INACCURACY)


def best_move_for_position(node: GameNode) -> tuple[str, str] | None:
    """Engine best move for ``node`` as ``(uci, san)``.

    Returns None when there is no tactical record or its best move is not
    legal in the position.
    """
    record = evaluation.get(node, EvaluationSource.TACTICAL_ENGINE)
    if not isinstance(record, StockfishEvaluation) or not record.model_move:
        return None

    board = chess.Board(node.fen)
    try:
        move = board.parse_uci(record.model_move)
    except ValueError:
        return None
    return record.model_move, board.san(move)


def extract_player_mistakes(
    tree: GameTree,
    player_color: str,
    thresholds: ClassificationThresholds = DEFAULT_THRESHOLDS,
) -> list[MistakePosition]:
    """Collect main-line blunders and inaccuracies played by one side.

    Args:
        tree: Game to review.
        player_color: ``"white"`` or ``"black"``.
        thresholds: Classification cut-offs.

    Returns:
        Mistakes in game order. Each carries the position before the
        mistake and the engine's best move there.
    """
    mistakes: list[MistakePosition] = []

    for index, node in enumerate(tree.iter_main_line()):
        parent = node.parent
        if parent is None or node.move is None:
            continue
        if color_name(parent.turn) != player_color:
            continue

        verdict = classify_node(node, thresholds)
        if verdict not in _MISTAKE_VERDICTS:
            continue

        best = best_move_for_position(parent)
        if best is None:
            continue

        mistakes.append(
            MistakePosition(
                move_index=index,
                fen=parent.fen,
                played_move=node.move.uci,
                san=node.move.san,
                verdict=verdict,
                best_move=best[0],
                best_move_san=best[1],
                player_color=player_color,
            )
        )

    return mistakes
