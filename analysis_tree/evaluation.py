"""Per-node storage of engine evaluations.

Records are attached by evaluation source. Attaching replaces the node's
whole evaluation mapping with an updated copy, so a reader holding the
previous mapping never sees a partially written record. Attachment does
not depend on navigation state: nodes off the visible line accept late
results like any other node.
"""

from __future__ import annotations

import logging

from analysis_tree.models import (
    EvaluationRecord,
    EvaluationSource,
    MoveMap,
    StockfishEvaluation,
    cp_to_winrate,
)
from analysis_tree.tree import GameNode

_LOGGER = logging.getLogger(__name__)


def attach(node: GameNode, source: EvaluationSource, record: EvaluationRecord) -> None:
    """Store ``record`` as the ``source`` evaluation of ``node``.

    An existing record for the same source is replaced, never merged.

    Args:
        node: Node the evaluation belongs to.
        source: Producer of the evaluation.
        record: MoveMap for the human model, StockfishEvaluation for the
            tactical engine.

    Raises:
        ValueError: If the record does not fit the source or holds
            out-of-range values.
    """
    _validate(source, record)

    previous = node.evaluations.get(source)
    updated = dict(node.evaluations)
    updated[source] = record
    node._replace_evaluations(updated)

    if previous is not None:
        _LOGGER.debug(
            "Replaced %s evaluation on node %d", source.value, node.node_id
        )
    else:
        _LOGGER.debug("Attached %s evaluation to node %d", source.value, node.node_id)


def get(node: GameNode, source: EvaluationSource) -> EvaluationRecord | None:
    """Return the ``source`` record of ``node``, or None if absent."""
    return node.evaluations.get(source)


def best_move_evaluation(node: GameNode, source: EvaluationSource) -> float | None:
    """Win probability of the best move recorded for ``node``.

    Taken from ``winrate_vec`` when the record carries one. Otherwise the
    White-relative ``model_optimal_cp`` is turned into the side to move's
    win probability. Human-model records carry no best score, so they
    yield None.
    """
    record = get(node, source)
    if not isinstance(record, StockfishEvaluation):
        return None
    return _mover_winrate(node, record, record.model_move)


def move_evaluation(node: GameNode, uci: str) -> float | None:
    """Win probability of candidate ``uci`` in ``node``, same frame as the best.

    Returns None when the node has no tactical record or the move was not
    among the evaluated candidates.
    """
    record = get(node, EvaluationSource.TACTICAL_ENGINE)
    if not isinstance(record, StockfishEvaluation):
        return None
    return _mover_winrate(node, record, uci)


def human_probability(node: GameNode, uci: str) -> float | None:
    """Probability the human model assigns to ``uci`` in ``node``.

    Returns None when no human-model record is attached. A move the model
    left out of its (truncated) distribution gets probability 0.
    """
    record = get(node, EvaluationSource.HUMAN_MODEL)
    if record is None or isinstance(record, StockfishEvaluation):
        return None
    return record.get(uci, 0.0)


def _mover_winrate(
    node: GameNode, record: StockfishEvaluation, uci: str
) -> float | None:
    # Winrate vectors are only trusted when they cover the best move
    if record.winrate_vec is not None and record.model_move in record.winrate_vec:
        return record.winrate_vec.get(uci)

    if uci == record.model_move:
        cp = record.model_optimal_cp
    else:
        cp = record.cp_vec.get(uci)
    if cp is None:
        return None
    sign = 1 if node.turn == "w" else -1
    return cp_to_winrate(cp * sign)


def _validate(source: EvaluationSource, record: EvaluationRecord) -> None:
    if source is EvaluationSource.TACTICAL_ENGINE:
        if not isinstance(record, StockfishEvaluation):
            raise ValueError("Tactical engine evaluations must be StockfishEvaluation")
        if record.depth < 0:
            raise ValueError(f"Depth must be non-negative, got {record.depth}")
        return

    if not isinstance(record, dict):
        raise ValueError("Human model evaluations must be a move map")
    _validate_move_map(record)


def _validate_move_map(move_map: MoveMap) -> None:
    for move, probability in move_map.items():
        if not 0.0 <= probability <= 1.0:
            raise ValueError(
                f"Probability for {move} must be in [0, 1], got {probability}"
            )
